"""HR Console remote API access layer
GraphQL-over-HTTP wrapper for the user directory, role directory, field registry and issue mirror
"""
import os, logging
from typing import Optional

import httpx

API_URL = os.environ.get("REMOTE_API_URL", "http://localhost:4000/graphql")
API_TIMEOUT = float(os.environ.get("REMOTE_API_TIMEOUT", 10))

# Tests swap in an httpx.MockTransport here; None means the real network
TRANSPORT: Optional[httpx.AsyncBaseTransport] = None

logger = logging.getLogger(__name__)


class RemoteAPIError(Exception):
    """A remote call rejected. `message` is the remote text, shown to the viewer as-is."""
    def __init__(self, message, status_code=None, code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def is_unauthenticated(self):
        return self.status_code == 401 or self.code == "UNAUTHENTICATED"


# ── Operations ──
ISSUE_FIELDS = """
fragment IssueFields on Issue {
  id title description status stage priority issueType inputSource
  gitlabState gitlabLabels gitlabProjectId gitlabIssueIid gitlabUrl gitlabUpdatedAt
  createdAt updatedAt
  creator { id name username }
  assignee { id name username }
}
"""

ME_QUERY = """
query Me { me { id username name roles { id name } } }
"""

FIELD_DEFINITIONS_QUERY = """
query FieldDefinitions { fieldDefinitions { key label classification selfEditable } }
"""

UPSERT_FIELD_DEFINITION_MUTATION = """
mutation UpsertFieldDefinition($input: FieldDefinitionInput!) {
  upsertFieldDefinition(input: $input) { key label classification selfEditable }
}
"""

DELETE_FIELD_DEFINITION_MUTATION = """
mutation DeleteFieldDefinition($key: String!) { deleteFieldDefinition(key: $key) }
"""

VISIBLE_FIELD_KEYS_QUERY = """
query VisibleFieldKeys($resource: String!, $targetUserId: ID) {
  visibleFieldKeys(resource: $resource, targetUserId: $targetUserId)
}
"""

USER_QUERY = """
query User($id: ID!) {
  user(id: $id) {
    id name email username avatar phone isActive createdAt
    department { id name }
    roles { id name }
    fieldValues { fieldKey valueString valueNumber valueDate valueJson }
  }
}
"""

USERS_QUERY = """
query Users($take: Int) {
  users(take: $take) {
    users { id name email username isActive department { id name } roles { id name } }
    total
  }
}
"""

DELETE_USER_MUTATION = """
mutation DeleteUser($id: ID!) { deleteUser(id: $id) { success message } }
"""

ROLES_QUERY = """
query Roles { roles { id name } }
"""

USER_PERMISSIONS_QUERY = """
query UserPermissions($userId: ID!) { user(id: $userId) { id roles { id name } } }
"""

SET_USER_ROLES_MUTATION = """
mutation SetUserRoles($userId: ID!, $roleNames: [String!]!) {
  setUserRoles(userId: $userId, roleNames: $roleNames) { id roles { id name } }
}
"""

ISSUE_QUERY = ISSUE_FIELDS + """
query Issue($id: ID!) { issue(id: $id) { ...IssueFields } }
"""

ISSUES_QUERY = ISSUE_FIELDS + """
query Issues($filter: IssueFilter, $take: Int) {
  issues(filter: $filter, take: $take) { issues { ...IssueFields } total }
}
"""

APPROVE_ISSUE_MUTATION = ISSUE_FIELDS + """
mutation ApproveIssue($issueId: ID!, $approverId: ID!) {
  approveIssue(issueId: $issueId, approverId: $approverId) { ...IssueFields }
}
"""


def _error_from_response(resp):
    """Build a RemoteAPIError from a non-2xx HTTP response"""
    message = ""
    code = None
    try:
        body = resp.json()
        errors = (body.get("errors") or []) if isinstance(body, dict) else []
        if errors:
            message = errors[0].get("message", "")
            code = (errors[0].get("extensions") or {}).get("code")
    except ValueError:
        pass
    if not message:
        message = resp.text[:500] or f"HTTP {resp.status_code}"
    return RemoteAPIError(message, status_code=resp.status_code, code=code)


class RemoteAPI:
    """Wrapper around an httpx client bound to the remote GraphQL endpoint.
    One instance per request, carrying the viewer's bearer token."""
    def __init__(self, client: httpx.AsyncClient, url: Optional[str] = None):
        self._client = client
        self._url = url or API_URL

    async def execute(self, operation: str, query: str, variables: Optional[dict] = None) -> dict:
        """POST one GraphQL operation and return its `data` object"""
        payload = {"operationName": operation, "query": query, "variables": variables or {}}
        try:
            resp = await self._client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("remote %s transport error: %s", operation, e)
            raise RemoteAPIError(f"远程服务不可用: {e}") from e
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        try:
            body = resp.json()
        except ValueError as e:
            raise RemoteAPIError("远程服务返回了无效数据", status_code=resp.status_code) from e
        if not isinstance(body, dict):
            raise RemoteAPIError("远程服务返回了无效数据", status_code=resp.status_code)
        errors = body.get("errors") or []
        if errors:
            first = errors[0]
            raise RemoteAPIError(first.get("message", "未知错误"),
                                 status_code=resp.status_code,
                                 code=(first.get("extensions") or {}).get("code"))
        return body.get("data") or {}

    # ── Session ──
    async def me(self) -> dict:
        data = await self.execute("Me", ME_QUERY)
        return data.get("me") or {}

    # ── Field registry ──
    async def field_definitions(self) -> list:
        data = await self.execute("FieldDefinitions", FIELD_DEFINITIONS_QUERY)
        return data.get("fieldDefinitions") or []

    async def upsert_field_definition(self, key: str, label: str, classification: str = "PUBLIC",
                                      self_editable: bool = False) -> dict:
        """Create or replace a definition; idempotent by key"""
        data = await self.execute("UpsertFieldDefinition", UPSERT_FIELD_DEFINITION_MUTATION, {
            "input": {"key": key, "label": label, "classification": classification,
                      "selfEditable": self_editable}})
        return data.get("upsertFieldDefinition") or {}

    async def delete_field_definition(self, key: str) -> None:
        await self.execute("DeleteFieldDefinition", DELETE_FIELD_DEFINITION_MUTATION, {"key": key})

    async def visible_field_keys(self, resource: str, target_user_id: Optional[str] = None) -> list:
        data = await self.execute("VisibleFieldKeys", VISIBLE_FIELD_KEYS_QUERY,
                                  {"resource": resource, "targetUserId": target_user_id})
        return data.get("visibleFieldKeys") or []

    # ── Users & roles ──
    async def get_user(self, user_id: str) -> Optional[dict]:
        data = await self.execute("User", USER_QUERY, {"id": user_id})
        return data.get("user")

    async def get_users(self, take: Optional[int] = None) -> list:
        data = await self.execute("Users", USERS_QUERY, {"take": take})
        return (data.get("users") or {}).get("users") or []

    async def delete_user(self, user_id: str) -> dict:
        data = await self.execute("DeleteUser", DELETE_USER_MUTATION, {"id": user_id})
        return data.get("deleteUser") or {"success": False, "message": ""}

    async def get_roles(self) -> list:
        data = await self.execute("Roles", ROLES_QUERY)
        return data.get("roles") or []

    async def get_user_permissions(self, user_id: str) -> dict:
        data = await self.execute("UserPermissions", USER_PERMISSIONS_QUERY, {"userId": user_id})
        user = data.get("user") or {}
        return {"roles": user.get("roles") or []}

    async def set_user_roles(self, user_id: str, role_names: list) -> None:
        """Full overwrite of the user's role set"""
        await self.execute("SetUserRoles", SET_USER_ROLES_MUTATION,
                           {"userId": user_id, "roleNames": list(role_names)})

    # ── Issue mirror ──
    async def get_issue(self, issue_id: str) -> Optional[dict]:
        data = await self.execute("Issue", ISSUE_QUERY, {"id": issue_id})
        return data.get("issue")

    async def get_issues(self, issue_filter: Optional[dict] = None, take: Optional[int] = None) -> list:
        data = await self.execute("Issues", ISSUES_QUERY, {"filter": issue_filter or {}, "take": take})
        return (data.get("issues") or {}).get("issues") or []

    async def approve_issue(self, issue_id: str, approver_id: str) -> dict:
        data = await self.execute("ApproveIssue", APPROVE_ISSUE_MUTATION,
                                  {"issueId": issue_id, "approverId": approver_id})
        return data.get("approveIssue") or {}

    async def close(self):
        await self._client.aclose()


def get_api(token: str = "") -> RemoteAPI:
    """Get a remote API handle for one request, forwarding the viewer's token"""
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    client = httpx.AsyncClient(headers=headers, timeout=API_TIMEOUT, transport=TRANSPORT)
    return RemoteAPI(client)
