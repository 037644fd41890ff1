"""Demand pool and version kanban over issues mirrored from the issue tracker.

Tracker labels carry the structure: `C:<type>` is the demand type and
`V:<version>` the release a demand is scheduled into.
"""
import math
from typing import Optional

UNASSIGNED_VERSION = "未分配"
NO_TYPE = "-"

GITLAB_STATES = ("opened", "closed", "all")

PRIORITY_LABELS = {"LOW": "低", "MEDIUM": "中", "HIGH": "高", "URGENT": "紧急"}

STATUS_LABELS = {
    "OPEN": "待处理", "IN_DISCUSSION": "讨论中", "APPROVED": "已批准", "IN_PRD": "PRD中",
    "IN_DEVELOPMENT": "开发中", "IN_TESTING": "测试中", "IN_ACCEPTANCE": "验收中",
    "COMPLETED": "已完成", "REJECTED": "已拒绝", "CANCELLED": "已取消",
}

STAGE_LABELS = {
    "FEEDBACK": "反馈池", "SCHEDULED": "已排期", "IN_PROGRESS": "进行中",
    "RELEASED": "已发布", "REJECTED": "已拒绝", "ARCHIVED": "已归档",
}

INPUT_SOURCE_LABELS = {
    "INTERNAL": ("内部", "🏢"), "CLIENT": ("客户", "👤"), "MARKET": ("市场", "📊"),
    "COMPETITOR": ("竞品", "⚔️"), "FEEDBACK": ("用户反馈", "💬"), "BUG": ("Bug修复", "🐛"),
}

ISSUE_TYPE_LABELS = {
    "FEATURE": ("新功能", "✨"), "ENHANCEMENT": ("功能优化", "⚡"), "BUG_FIX": ("Bug修复", "🐛"),
    "TECHNICAL_DEBT": ("技术债", "🔧"), "RESEARCH": ("研究", "🔬"), "OPTIMIZATION": ("性能优化", "🚀"),
}


def _label_value(labels, prefix: str) -> Optional[str]:
    for label in labels or []:
        if label.startswith(prefix):
            return label[len(prefix):].strip()
    return None


def type_from_labels(labels) -> str:
    """Demand type from the first `C:` label"""
    return _label_value(labels, "C:") or NO_TYPE


def version_from_labels(labels) -> str:
    """Release version from the first `V:` label"""
    return _label_value(labels, "V:") or UNASSIGNED_VERSION


def _person(p):
    if not p:
        return None
    return {"id": p.get("id"), "name": p.get("name"), "username": p.get("username")}


def updated_at(issue: dict) -> Optional[str]:
    return issue.get("gitlabUpdatedAt") or issue.get("updatedAt") or issue.get("createdAt")


def filter_issues(issues, state: str = "opened", priorities=None, types=None, creators=None) -> list:
    """Apply the tracker-state tab, then each non-empty filter (AND across kinds, OR within)"""
    result = []
    for issue in issues or []:
        if state != "all" and issue.get("gitlabState") != state:
            continue
        if priorities and issue.get("priority") not in priorities:
            continue
        if types and type_from_labels(issue.get("gitlabLabels")) not in types:
            continue
        if creators and ((issue.get("creator") or {}).get("id")) not in creators:
            continue
        result.append(issue)
    return result


def state_counts(issues) -> dict:
    issues = issues or []
    return {
        "opened": sum(1 for i in issues if i.get("gitlabState") == "opened"),
        "closed": sum(1 for i in issues if i.get("gitlabState") == "closed"),
        "all": len(issues),
    }


def paginate(items, page: int, page_size: int):
    """Returns (page items, total pages, clamped page number)"""
    total_pages = math.ceil(len(items) / page_size) if page_size > 0 else 0
    page = max(1, min(page, total_pages or 1))
    start = (page - 1) * page_size
    return items[start:start + page_size], total_pages, page


def issue_row(issue: dict) -> dict:
    """Compact row for the demand list and the version list view"""
    priority = issue.get("priority")
    return {
        "id": issue.get("id"),
        "title": issue.get("title"),
        "priority": priority,
        "priority_label": PRIORITY_LABELS.get(priority, priority),
        "type": type_from_labels(issue.get("gitlabLabels")),
        "version": version_from_labels(issue.get("gitlabLabels")),
        "gitlab_state": issue.get("gitlabState"),
        "creator": _person(issue.get("creator")),
        "assignee": _person(issue.get("assignee")),
        "updated_at": updated_at(issue),
    }


def issue_detail(issue: dict) -> dict:
    """Issue with display labels resolved; unknown codes fall back to the raw value"""
    stage, status, priority = issue.get("stage"), issue.get("status"), issue.get("priority")
    issue_type, source = issue.get("issueType"), issue.get("inputSource")
    type_label, type_icon = ISSUE_TYPE_LABELS.get(issue_type, (issue_type, "📝"))
    source_label, source_icon = INPUT_SOURCE_LABELS.get(source, (source, "📌"))
    gitlab_state = issue.get("gitlabState")
    detail = dict(issue)
    detail.update({
        "stage_label": STAGE_LABELS.get(stage, stage) if stage else None,
        "status_label": STATUS_LABELS.get(status, status),
        "priority_label": PRIORITY_LABELS.get(priority, priority),
        "issue_type_label": type_label, "issue_type_icon": type_icon,
        "input_source_label": source_label, "input_source_icon": source_icon,
        "gitlab_state_label": ("开放中" if gitlab_state == "opened" else "已关闭") if gitlab_state else None,
        "gitlab_ref": (f"{issue.get('gitlabProjectId')}/#{issue.get('gitlabIssueIid')}"
                       if issue.get("gitlabUrl") else None),
        "demand_type": type_from_labels(issue.get("gitlabLabels")),
    })
    return detail


# ── Version kanban ──
def project_issues(issues, project_id) -> list:
    return [i for i in issues or [] if str(i.get("gitlabProjectId")) == str(project_id)]


def versions_from_issues(issues) -> list:
    """Distinct `V:` versions, sorted"""
    found = set()
    for issue in issues or []:
        for label in issue.get("gitlabLabels") or []:
            if label.startswith("V:"):
                found.add(label[2:].strip())
    return sorted(found)


def kanban_columns(issues, versions) -> list:
    """Unassigned column first, then one column per version"""
    columns = []
    for column_id, name in [("unassigned", UNASSIGNED_VERSION)] + [(v, v) for v in versions]:
        cards = []
        for issue in issues or []:
            if version_from_labels(issue.get("gitlabLabels")) != name:
                continue
            priority = issue.get("priority")
            cards.append({
                "id": issue.get("id"),
                "title": issue.get("title"),
                "type": type_from_labels(issue.get("gitlabLabels")),
                "priority_label": PRIORITY_LABELS.get(priority, priority),
                "assignee": _person(issue.get("assignee")),
            })
        columns.append({"id": column_id, "name": name, "count": len(cards), "cards": cards})
    return columns


def select_version(issues, version: str) -> list:
    if version == "all":
        return list(issues or [])
    return [i for i in issues or [] if version_from_labels(i.get("gitlabLabels")) == version]
