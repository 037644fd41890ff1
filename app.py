"""HR Console API — FastAPI backend for personnel records, field registry, permissions, demand pool and versions"""
import os, json, logging, sys, copy, asyncio
from contextlib import asynccontextmanager
from typing import Optional, Literal
from fastapi import FastAPI, HTTPException, Depends, Request, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import remote_api
from remote_api import RemoteAPIError
from visibility import Viewer, build_sections, role_names
from field_categories import group_by_category, FIELD_CATEGORIES
import demand_pool

VERSION_PROJECT_ID = os.environ.get("VERSION_PROJECT_ID", "1206")
DEMAND_PAGE_SIZE = int(os.environ.get("DEMAND_PAGE_SIZE", 20))
ISSUE_FETCH_LIMIT = int(os.environ.get("ISSUE_FETCH_LIMIT", 1000))
USER_FETCH_LIMIT = int(os.environ.get("USER_FETCH_LIMIT", 1000))
APPROVER_CANDIDATES = 10

logger = logging.getLogger("uvicorn.error")
audit_logger = logging.getLogger("audit")

@asynccontextmanager
async def lifespan(app):
    logger.info(f"HR Console API using remote API at {remote_api.API_URL}")
    yield
    logger.info("Application shutting down gracefully")

app = FastAPI(title="HR Console API", lifespan=lifespan)
# CORS: Restrict to specific origins in production. Use "*" only for development.
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

async def get_viewer(request: Request) -> Viewer:
    """Resolve the current viewer once per request from the remote session identity"""
    token = request.headers.get("Authorization", "").replace("Bearer ", "")
    if not token:
        raise HTTPException(401, "Unauthorized")
    api = remote_api.get_api(token)
    try:
        me = await api.me()
    except RemoteAPIError as e:
        if e.is_unauthenticated:
            raise HTTPException(401, "Unauthorized")
        # Identity lookup failed for another reason: continue without override roles
        logger.warning(f"me() failed, continuing without roles: {e.message}")
        return Viewer(token=token)
    finally:
        await api.close()
    if not me:
        raise HTTPException(401, "Unauthorized")
    return Viewer.from_me(me, token=token)

async def _load(what: str, *calls):
    """Run remote reads concurrently. Any failure aborts the whole join."""
    tasks = [asyncio.ensure_future(c) for c in calls]
    try:
        return await asyncio.gather(*tasks)
    except RemoteAPIError as e:
        for t in tasks:
            t.cancel()
        # Let the cancelled siblings unwind before the caller closes the client
        await asyncio.gather(*tasks, return_exceptions=True)
        if e.is_unauthenticated:
            raise HTTPException(401, "Unauthorized")
        logger.error(f"Failed to load {what}: {e.message}")
        raise HTTPException(502, "加载失败")

def _mutation_failed(what: str, e: RemoteAPIError):
    logger.error(f"{what} failed: {e.message}")
    if e.is_unauthenticated:
        raise HTTPException(401, "Unauthorized")
    raise HTTPException(502, e.message)

def audit_log(username: str, action: str, resource_type: str, resource_id: str, details: str = ""):
    """记录审计日志"""
    try:
        audit_logger.info(f"{username or '-'} {action} {resource_type}/{resource_id} {details}".rstrip())
    except Exception as e:
        # Log the failure but don't fail the operation
        print(f"AUDIT LOG FAILURE: {username} {action} {resource_type}/{resource_id} - Error: {e}", file=sys.stderr)

# ── Request models ──
class FieldDefinitionReq(BaseModel):
    key: str = ""
    label: str = ""
    classification: Literal["PUBLIC", "CONFIDENTIAL"] = "PUBLIC"
    self_editable: bool = False

class FieldDefinitionUpdateReq(BaseModel):
    # Upsert replaces the whole definition, so the client resends the current values
    label: str = ""
    classification: Literal["PUBLIC", "CONFIDENTIAL"]
    self_editable: bool

class SetRolesReq(BaseModel):
    roles: list[str] = []

class ApproveReq(BaseModel):
    version: str = ""
    comment: str = ""
    approver_id: str = ""

@app.get("/health")
def health_check():
    """Health check endpoint for deployment monitoring"""
    return {"status": "ok", "remote_api": remote_api.API_URL}

@app.get("/api/me")
def get_me(viewer: Viewer = Depends(get_viewer)):
    return {"username": viewer.username, "user_id": viewer.user_id,
            "roles": sorted(viewer.roles), "is_elevated": viewer.is_elevated}

# ── Personnel ──
@app.get("/api/personnel/{user_id}")
async def get_personnel(user_id: str, hide_masked: bool = False, viewer: Viewer = Depends(get_viewer)):
    """Personnel detail: basic info plus field values laid out in sections, masked per viewer.
    User, visible keys and field definitions load together; any failure fails the page."""
    api = remote_api.get_api(viewer.token)
    try:
        user, visible_keys, definitions = await _load(
            "personnel detail",
            api.get_user(user_id),
            api.visible_field_keys("user", user_id),
            api.field_definitions(),
        )
    finally:
        await api.close()
    if not user:
        raise HTTPException(404, "用户不存在")
    field_defs = {d["key"]: d for d in definitions if d.get("key")}
    department = user.get("department") or {}
    return {
        "user": {
            "id": user.get("id"),
            "name": user.get("name"),
            "username": user.get("username"),
            "email": user.get("email"),
            "phone": user.get("phone"),
            "avatar": user.get("avatar"),
            "is_active": bool(user.get("isActive")),
            "status_label": "在职" if user.get("isActive") else "离职",
            "department": department.get("name"),
            "created_at": user.get("createdAt"),
        },
        "can_delete": viewer.is_elevated,
        "sections": build_sections(user.get("fieldValues"), field_defs, visible_keys, viewer,
                                   hide_masked=hide_masked),
    }

@app.delete("/api/personnel/{user_id}")
async def delete_personnel(user_id: str, viewer: Viewer = Depends(get_viewer)):
    if not viewer.is_elevated:
        raise HTTPException(403, "仅超级管理员或HR管理员可删除人员")
    api = remote_api.get_api(viewer.token)
    try:
        res = await api.delete_user(user_id)
    except RemoteAPIError as e:
        _mutation_failed("delete user", e)
    finally:
        await api.close()
    if not res.get("success"):
        raise HTTPException(400, res.get("message") or "删除失败")
    audit_log(viewer.username, "delete", "users", user_id)
    return {"ok": True, "message": res.get("message") or "已删除"}

# ── Field registry ──
@app.get("/api/admin/fields")
async def get_field_config(viewer: Viewer = Depends(get_viewer)):
    """All field definitions grouped into the five display categories"""
    api = remote_api.get_api(viewer.token)
    try:
        definitions, = await _load("field definitions", api.field_definitions())
    finally:
        await api.close()
    return {"total": len(definitions), "categories": group_by_category(definitions)}

@app.get("/api/admin/field-categories")
def get_field_categories(viewer: Viewer = Depends(get_viewer)):
    return FIELD_CATEGORIES

@app.post("/api/admin/fields")
async def create_field(req: FieldDefinitionReq, viewer: Viewer = Depends(get_viewer)):
    key, label = req.key.strip(), req.label.strip()
    if not key or not label:
        raise HTTPException(400, "请填写字段key和名称")
    api = remote_api.get_api(viewer.token)
    try:
        saved = await api.upsert_field_definition(key, label, req.classification, req.self_editable)
    except RemoteAPIError as e:
        _mutation_failed("create field definition", e)
    finally:
        await api.close()
    audit_log(viewer.username, "create", "field_definitions", key, json.dumps(
        {"label": label, "classification": req.classification}, ensure_ascii=False))
    return {"ok": True, "field": saved}

@app.put("/api/admin/fields/{key}")
async def update_field(key: str, req: FieldDefinitionUpdateReq, viewer: Viewer = Depends(get_viewer)):
    label = req.label.strip()
    if not label:
        raise HTTPException(400, "字段名称不能为空")
    api = remote_api.get_api(viewer.token)
    try:
        saved = await api.upsert_field_definition(key, label, req.classification, req.self_editable)
    except RemoteAPIError as e:
        _mutation_failed("update field definition", e)
    finally:
        await api.close()
    audit_log(viewer.username, "update", "field_definitions", key, json.dumps(
        {"label": label, "classification": req.classification, "self_editable": req.self_editable},
        ensure_ascii=False))
    return {"ok": True, "field": saved}

@app.delete("/api/admin/fields/{key}")
async def delete_field(key: str, viewer: Viewer = Depends(get_viewer)):
    api = remote_api.get_api(viewer.token)
    try:
        await api.delete_field_definition(key)
    except RemoteAPIError as e:
        _mutation_failed("delete field definition", e)
    finally:
        await api.close()
    audit_log(viewer.username, "delete", "field_definitions", key)
    return {"ok": True}

# ── Roles & permissions ──
ROLE_CN_MAP = {
    "super_admin": "超级管理员",
    "admin": "管理员",
    "hr_manager": "HR管理员",
    "project_manager": "主管",
    "member": "普通成员",
}

ROLE_DESCRIPTIONS = {
    "super_admin": "拥有系统所有权限，可管理所有用户和数据",
    "admin": "可管理用户、部门、项目等，但不能修改系统配置",
    "hr_manager": "可查看和管理人员信息，包括保密字段",
    "project_manager": "可管理项目和团队，查看项目成员信息",
    "member": "普通成员，只能查看公开信息和编辑自己的资料",
}

ADMIN_ROLE_NAMES = {"super_admin", "admin", "hr_manager", "project_manager"}

def _role_badge(role: dict) -> dict:
    name = role.get("name")
    return {"id": role.get("id"), "name": name, "label": ROLE_CN_MAP.get(name, name)}

def _user_row(u: dict) -> dict:
    return {"id": u.get("id"), "name": u.get("name") or "", "email": u.get("email") or "",
            "roles": [_role_badge(r) for r in u.get("roles") or []]}

def _matches(u: dict, term: str) -> bool:
    term = term.lower()
    return term in (u.get("name") or "").lower() or term in (u.get("email") or "").lower()

@app.get("/api/admin/permissions")
async def get_permissions_overview(search: Optional[str] = None, viewer: Viewer = Depends(get_viewer)):
    """Role catalogue and users with their role badges.
    Admin users are those holding any administrative role."""
    api = remote_api.get_api(viewer.token)
    try:
        users, roles = await _load("users and roles", api.get_users(take=USER_FETCH_LIMIT), api.get_roles())
    finally:
        await api.close()
    rows = [_user_row(u) for u in users]
    result = {
        "roles": [{**_role_badge(r), "description": ROLE_DESCRIPTIONS.get(r.get("name"), "")} for r in roles],
        "users": rows,
        "admin_users": [r for r in rows if any(b["name"] in ADMIN_ROLE_NAMES for b in r["roles"])],
    }
    if search:
        result["search_results"] = [r for r in rows if _matches(r, search)]
    return result

@app.get("/api/admin/permissions/{user_id}")
async def get_user_roles(user_id: str, viewer: Viewer = Depends(get_viewer)):
    """Current role names of one user, used to prefill the role checkboxes"""
    api = remote_api.get_api(viewer.token)
    try:
        res = await api.get_user_permissions(user_id)
        names = role_names(res.get("roles"))
    except RemoteAPIError as e:
        # An unreadable selection starts empty rather than blocking the editor
        logger.warning(f"Failed to load roles of {user_id}: {e.message}")
        names = []
    finally:
        await api.close()
    return {"user_id": user_id, "roles": names}

async def _overwrite_roles(api, viewer: Viewer, user_id: str, names: list, action: str):
    try:
        await api.set_user_roles(user_id, names)
    except RemoteAPIError as e:
        _mutation_failed("set user roles", e)
    audit_log(viewer.username, action, "user_roles", user_id, json.dumps(names, ensure_ascii=False))
    # The overwrite is already committed; a failed list reload must not report it as failed
    try:
        users = await api.get_users(take=USER_FETCH_LIMIT)
    except RemoteAPIError as e:
        logger.error(f"Failed to reload users after role change: {e.message}")
        return {"ok": True, "user_id": user_id, "roles": names, "users": [], "reload_failed": True}
    return {"ok": True, "user_id": user_id, "roles": names, "users": [_user_row(u) for u in users],
            "reload_failed": False}

@app.put("/api/admin/permissions/{user_id}")
async def set_user_roles(user_id: str, req: SetRolesReq, viewer: Viewer = Depends(get_viewer)):
    """Replace the user's whole role set. An empty list is a valid outcome.
    The viewer's own session roles are not refreshed."""
    names = list(dict.fromkeys(r.strip() for r in req.roles if r and r.strip()))
    api = remote_api.get_api(viewer.token)
    try:
        return await _overwrite_roles(api, viewer, user_id, names, "set_roles")
    finally:
        await api.close()

@app.delete("/api/admin/permissions/{user_id}/roles/{role_name}")
async def remove_user_role(user_id: str, role_name: str, viewer: Viewer = Depends(get_viewer)):
    api = remote_api.get_api(viewer.token)
    try:
        current, = await _load("user roles", api.get_user_permissions(user_id))
        names = [n for n in role_names(current.get("roles")) if n != role_name]
        return await _overwrite_roles(api, viewer, user_id, names, "remove_role")
    finally:
        await api.close()

# ── Demand pool ──
@app.get("/api/demands")
async def get_demands(
    state: str = "opened",
    priority: Optional[list[str]] = Query(None),
    demand_type: Optional[list[str]] = Query(None, alias="type"),
    creator: Optional[list[str]] = Query(None),
    page: int = 1,
    viewer: Viewer = Depends(get_viewer),
):
    """Demand pool list: tracker-state tab, priority/type/creator filters, paginated"""
    if state not in demand_pool.GITLAB_STATES:
        raise HTTPException(400, f"无效的状态筛选: {state}")
    api = remote_api.get_api(viewer.token)
    try:
        issues, = await _load("issues", api.get_issues({}, take=ISSUE_FETCH_LIMIT))
    finally:
        await api.close()
    filtered = demand_pool.filter_issues(issues, state, priority, demand_type, creator)
    items, total_pages, page = demand_pool.paginate(filtered, page, DEMAND_PAGE_SIZE)
    creators = {}
    for i in issues:
        c = i.get("creator") or {}
        if c.get("id"):
            creators[c["id"]] = c.get("name")
    return {
        "state": state,
        "counts": demand_pool.state_counts(issues),
        "total": len(filtered),
        "page": page,
        "page_size": DEMAND_PAGE_SIZE,
        "total_pages": total_pages,
        "items": [demand_pool.issue_row(i) for i in items],
        "filter_options": {
            "priorities": demand_pool.PRIORITY_LABELS,
            "types": sorted({demand_pool.type_from_labels(i.get("gitlabLabels")) for i in issues}),
            "creators": [{"id": k, "name": v} for k, v in creators.items()],
        },
    }

@app.get("/api/demands/{issue_id}")
async def get_demand(issue_id: str, viewer: Viewer = Depends(get_viewer)):
    api = remote_api.get_api(viewer.token)
    try:
        issue, users = await _load("demand detail", api.get_issue(issue_id), api.get_users())
    finally:
        await api.close()
    if not issue:
        raise HTTPException(404, "需求不存在")
    approvers = [{"id": u.get("id"), "name": u.get("name"), "email": u.get("email")}
                 for u in users[:APPROVER_CANDIDATES]]
    return {"issue": demand_pool.issue_detail(issue), "approvers": approvers}

@app.post("/api/demands/{issue_id}/approve")
async def approve_demand(issue_id: str, req: ApproveReq, viewer: Viewer = Depends(get_viewer)):
    """Single-level review: records the approver on the issue, then returns the refreshed issue"""
    if not req.version.strip() or not req.comment.strip() or not req.approver_id.strip():
        raise HTTPException(400, "请填写完整信息：版本、评审意见和审批人")
    logger.info(f"评审提交: issue={issue_id} version={req.version} approver={req.approver_id}")
    api = remote_api.get_api(viewer.token)
    try:
        try:
            await api.approve_issue(issue_id, req.approver_id)
        except RemoteAPIError as e:
            _mutation_failed("approve issue", e)
        audit_log(viewer.username, "approve", "issues", issue_id, json.dumps(
            {"version": req.version, "comment": req.comment, "approver_id": req.approver_id},
            ensure_ascii=False))
        issue, = await _load("demand detail", api.get_issue(issue_id))
    finally:
        await api.close()
    return {"ok": True, "message": "评审提交成功",
            "issue": demand_pool.issue_detail(issue) if issue else None}

# ── Versions ──
@app.get("/api/versions")
async def get_versions(version: Optional[str] = None, viewer: Viewer = Depends(get_viewer)):
    """Version management: issues of the release project grouped by `V:` label.
    Without a selection the first version is shown; `all` lists every issue."""
    api = remote_api.get_api(viewer.token)
    try:
        issues, = await _load("issues", api.get_issues({}, take=ISSUE_FETCH_LIMIT))
    finally:
        await api.close()
    issues = demand_pool.project_issues(issues, VERSION_PROJECT_ID)
    versions = demand_pool.versions_from_issues(issues)
    selected = version or (versions[0] if versions else "all")
    return {
        "project_id": VERSION_PROJECT_ID,
        "versions": versions,
        "selected_version": selected,
        "items": [demand_pool.issue_row(i) for i in demand_pool.select_version(issues, selected)],
        "columns": demand_pool.kanban_columns(issues, versions),
    }

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8080))

    # Configure uvicorn logging to use stdout instead of stderr.
    # This prevents deployment platforms from tagging
    # INFO-level lifecycle messages (startup/shutdown) as errors.
    log_config = copy.deepcopy(uvicorn.config.LOGGING_CONFIG)
    log_config["handlers"]["default"]["stream"] = "ext://sys.stdout"
    log_config["handlers"]["access"]["stream"] = "ext://sys.stdout"

    uvicorn.run(app, host="0.0.0.0", port=port, log_config=log_config)
