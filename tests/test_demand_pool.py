"""Tests for demand pool filtering, pagination and the version kanban."""
from demand_pool import (
    filter_issues, issue_detail, kanban_columns, paginate, project_issues, select_version,
    state_counts, type_from_labels, updated_at, version_from_labels, versions_from_issues,
)


def _issue(id, state="opened", priority="MEDIUM", labels=(), creator="u-1", project=1206, **extra):
    issue = {"id": id, "title": f"需求{id}", "gitlabState": state, "priority": priority,
             "gitlabLabels": list(labels), "gitlabProjectId": project,
             "creator": {"id": creator, "name": creator}}
    issue.update(extra)
    return issue


ISSUES = [
    _issue("1", labels=["C:功能", "V:1.0"], priority="HIGH"),
    _issue("2", labels=["C:缺陷"], creator="u-2"),
    _issue("3", state="closed", labels=["V:1.0", "C:功能"]),
    _issue("4", labels=["V:0.9"], priority="URGENT", project="77"),
]


def test_labels():
    assert type_from_labels(["V:1.0", "C: 功能 "]) == "功能"
    assert type_from_labels([]) == "-"
    assert version_from_labels(None) == "未分配"
    assert version_from_labels(["V:2.1.0", "V:2.2.0"]) == "2.1.0"


def test_filter_by_state():
    assert [i["id"] for i in filter_issues(ISSUES)] == ["1", "2", "4"]
    assert [i["id"] for i in filter_issues(ISSUES, "closed")] == ["3"]
    assert len(filter_issues(ISSUES, "all")) == 4


def test_filters_combine():
    assert [i["id"] for i in filter_issues(ISSUES, "all", types=["功能"])] == ["1", "3"]
    assert [i["id"] for i in filter_issues(ISSUES, "all", types=["功能"], priorities=["HIGH"])] == ["1"]
    assert [i["id"] for i in filter_issues(ISSUES, "opened", priorities=["HIGH", "URGENT"])] == ["1", "4"]
    assert [i["id"] for i in filter_issues(ISSUES, "all", creators=["u-2"])] == ["2"]
    assert [i["id"] for i in filter_issues(ISSUES, "all", types=["-"])] == ["4"]


def test_state_counts():
    assert state_counts(ISSUES) == {"opened": 3, "closed": 1, "all": 4}
    assert state_counts([]) == {"opened": 0, "closed": 0, "all": 0}


def test_paginate_clamps_page():
    items = list(range(45))
    page_items, total_pages, page = paginate(items, 3, 20)
    assert (page_items, total_pages, page) == (list(range(40, 45)), 3, 3)
    assert paginate(items, 9, 20)[2] == 3
    assert paginate(items, 0, 20)[0] == list(range(20))
    assert paginate([], 1, 20) == ([], 0, 1)


def test_updated_at_fallback():
    assert updated_at({"gitlabUpdatedAt": "a", "updatedAt": "b", "createdAt": "c"}) == "a"
    assert updated_at({"updatedAt": "b", "createdAt": "c"}) == "b"
    assert updated_at({"createdAt": "c"}) == "c"


def test_issue_detail_labels_fall_back_to_raw_code():
    detail = issue_detail({"id": "x", "status": "ON_HOLD", "priority": "URGENT", "issueType": "SPIKE",
                           "inputSource": "BUG", "gitlabState": "closed", "gitlabLabels": ["C:功能"]})
    assert detail["status_label"] == "ON_HOLD"
    assert detail["priority_label"] == "紧急"
    assert (detail["issue_type_label"], detail["issue_type_icon"]) == ("SPIKE", "📝")
    assert detail["input_source_label"] == "Bug修复"
    assert detail["gitlab_state_label"] == "已关闭"
    assert detail["stage_label"] is None
    assert detail["gitlab_ref"] is None
    assert detail["demand_type"] == "功能"


def test_version_kanban():
    issues = project_issues(ISSUES, "1206")
    assert [i["id"] for i in issues] == ["1", "2", "3"]
    versions = versions_from_issues(issues)
    assert versions == ["1.0"]
    columns = kanban_columns(issues, versions)
    assert [(c["id"], c["name"], c["count"]) for c in columns] == [("unassigned", "未分配", 1), ("1.0", "1.0", 2)]
    assert columns[1]["cards"][0]["type"] == "功能"
    assert columns[1]["cards"][0]["priority_label"] == "高"


def test_select_version():
    assert [i["id"] for i in select_version(ISSUES, "1.0")] == ["1", "3"]
    assert [i["id"] for i in select_version(ISSUES, "未分配")] == ["2"]
    assert len(select_version(ISSUES, "all")) == 4
