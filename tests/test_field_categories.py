"""Tests for the field category heuristic."""
import pytest

from field_categories import (
    BANK, CONTRACT, DEFAULT_FIELD_LABELS, FIELD_CATEGORIES, IDENTITY, PERSONAL, WORK,
    categorize, default_catalog, group_by_category,
)
from visibility import PERSONNEL_SECTIONS


@pytest.mark.parametrize("key,label,expected", [
    ("employee_code", "工号", WORK),
    ("reporting_manager", "直属上级", WORK),
    ("id_number", "证件号码", IDENTITY),
    ("passport_no", "Passport", IDENTITY),
    ("bank_account_number", "银行账号", BANK),
    ("bank_name", "开户银行", BANK),
    ("contract_signed_times", "合同签订次数", CONTRACT),
    ("gender", "性别", PERSONAL),
    ("wechat", "微信", PERSONAL),
])
def test_categorize(key, label, expected):
    assert categorize({"key": key, "label": label}) == expected


def test_first_matching_rule_wins():
    # "类型" is a work token, checked before the contract rule
    assert categorize({"key": "contract_type", "label": "合同类型"}) == WORK
    assert categorize({"key": "primary_id_type", "label": "证件类型"}) == WORK
    # "account" in the key beats the personal fallback
    assert categorize({"key": "provident_fund_account", "label": "公积金"}) == BANK


def test_key_match_is_case_insensitive():
    assert categorize({"key": "Bank_Branch", "label": "支行"}) == BANK


def test_every_field_gets_exactly_one_category():
    names = {c["name"] for c in FIELD_CATEGORIES}
    for d in default_catalog():
        assert categorize(d) in names
    assert categorize({}) == PERSONAL


def test_group_by_category_keeps_all_categories():
    groups = group_by_category([{"key": "employee_code", "label": "工号"}, {"key": "gender", "label": "性别"}])
    assert [g["name"] for g in groups] == [WORK, PERSONAL, IDENTITY, BANK, CONTRACT]
    counts = {g["name"]: g["count"] for g in groups}
    assert counts == {WORK: 1, PERSONAL: 1, IDENTITY: 0, BANK: 0, CONTRACT: 0}
    assert sum(g["count"] for g in group_by_category(default_catalog())) == len(default_catalog())


def test_default_catalog_covers_layout():
    catalog = default_catalog()
    keys = [d["key"] for d in catalog]
    layout_keys = [k for _, _, ks in PERSONNEL_SECTIONS for k in ks]
    assert keys == layout_keys
    assert len(set(keys)) == len(keys)
    assert set(DEFAULT_FIELD_LABELS) == set(keys)
    by_key = {d["key"]: d for d in catalog}
    assert by_key["id_number"]["classification"] == "CONFIDENTIAL"
    assert by_key["employee_code"]["classification"] == "PUBLIC"
    assert all(d["selfEditable"] is False for d in catalog)
