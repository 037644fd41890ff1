"""Field visibility and masking for personnel records.

A viewer sees a personnel field in clear when they hold an override role
(super_admin / hr_manager) or when the remote resolver listed the field key
for this (viewer, target) pair. Everything else is rendered masked.
"""
import json
from datetime import date, datetime
from typing import Iterable, Optional

OVERRIDE_ROLES = frozenset({"super_admin", "hr_manager"})

DATE_MASK = "****/**/**"
NUMBER_MASK = "***"


class Viewer:
    """The current session's viewer, resolved once per request"""
    def __init__(self, username: str = "", roles: Iterable[str] = (), user_id: Optional[str] = None,
                 token: str = ""):
        self.username = username
        self.user_id = user_id
        self.roles = frozenset(r for r in roles if r)
        self.token = token

    @property
    def is_elevated(self) -> bool:
        return bool(self.roles & OVERRIDE_ROLES)

    @classmethod
    def from_me(cls, me: Optional[dict], token: str = ""):
        """Build from a `me()` payload; role entries may be names or {name} objects"""
        me = me or {}
        return cls(username=me.get("username") or "", roles=role_names(me.get("roles")),
                   user_id=me.get("id"), token=token)

    def __repr__(self):
        return f"Viewer({self.username!r}, roles={sorted(self.roles)!r})"


def role_names(roles) -> list:
    """Normalise a mixed list of role names / role objects into names"""
    names = []
    for r in roles or []:
        name = r if isinstance(r, str) else (r or {}).get("name")
        if name:
            names.append(name)
    return names


def resolve_visibility(viewer_roles, visible_keys, field_key) -> bool:
    """True if the viewer may see `field_key` in clear. Fails closed on missing input."""
    if viewer_roles and OVERRIDE_ROLES.intersection(viewer_roles):
        return True
    if not visible_keys or not field_key:
        return False
    return field_key in visible_keys


def has_value(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (dict, list, tuple)):
        return len(value) > 0
    return True


def _format_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_date(value) -> str:
    return f"{value.year}/{value.month}/{value.day}"


def mask_value(value, visible: bool) -> str:
    """Display string for a field value: clear when visible, a coarse placeholder otherwise.

    String placeholders only leak one of three length bands.
    """
    if not has_value(value):
        return ""
    if isinstance(value, (datetime, date)):
        return _format_date(value) if visible else DATE_MASK
    if isinstance(value, bool):
        return str(value).lower() if visible else NUMBER_MASK
    if isinstance(value, (int, float)):
        return _format_number(value) if visible else NUMBER_MASK
    if isinstance(value, str):
        if visible:
            return value
        if len(value) <= 3:
            return "***"
        if len(value) <= 6:
            return "****"
        return "******"
    if visible:
        return json.dumps(value, ensure_ascii=False)
    return "***"


def _parse_date(raw):
    if isinstance(raw, (datetime, date)):
        return raw
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return raw


def field_value(fv: Optional[dict]):
    """Pick the populated value out of a remote FieldValue record"""
    if not fv:
        return None
    for key in ("valueString", "valueNumber", "valueDate", "valueJson"):
        raw = fv.get(key)
        if has_value(raw):
            return _parse_date(raw) if key == "valueDate" else raw
    return None


# Detail-page layout: (section key, title, ordered field keys)
PERSONNEL_SECTIONS = [
    ("workInfo", "工作信息", [
        "employee_code", "employee_status", "employee_type", "career_sequence",
        "reporting_manager", "business_unit", "business_unit_leader", "department",
        "position", "tag", "join_company_date", "internship_period_months",
        "internship_to_regular_date", "onboarding_date", "probation_period_months",
        "regularization_date"]),
    ("personalInfo", "个人信息", [
        "gender", "birth_date", "age", "height_cm", "weight_kg", "blood_type",
        "medical_history", "nationality", "ethnicity", "ancestral_home_province_city",
        "political_status", "first_work_date", "seniority_calculation_date",
        "work_years", "household_registration_type", "household_province",
        "household_city", "household_address", "id_address", "contact_phone",
        "qq", "wechat", "personal_email", "current_residence_address"]),
    ("documentInfo", "证件信息", [
        "primary_id_type", "id_number", "id_valid_until", "id_days_remaining"]),
    ("bankInfo", "银行卡信息", [
        "bank_account_number", "bank_name", "social_security_number", "provident_fund_account"]),
    ("contractInfo", "合同信息", [
        "contract_type", "contract_signed_times", "latest_contract_start",
        "latest_contract_end", "contract_remaining_days"]),
    ("educationInfo", "教育经历", [
        "education_degree", "enrollment_date", "major", "study_form",
        "schooling_years", "degree_awarding_country", "degree_awarding_institution",
        "degree_awarding_date", "graduation_school", "graduation_date",
        "foreign_language_level"]),
    ("familyInfo", "家庭与婚姻", [
        "marital_status", "marriage_leave_status", "marriage_leave_date",
        "spouse_name", "spouse_phone", "spouse_employer", "spouse_position",
        "emergency_contact_name", "emergency_contact_relation",
        "emergency_contact_phone", "emergency_contact_address"]),
    ("workHistory", "工作履历", [
        "rehire_count", "previous_join_date", "previous_leave_date",
        "previous_employer", "non_compete_agreement"]),
    ("resignationInfo", "离职信息", [
        "resignation_date", "resignation_type", "resignation_reason_category",
        "resignation_reason_detail", "remarks"]),
]


def build_sections(field_values, field_defs: dict, visible_keys, viewer: Viewer,
                   hide_masked: bool = False) -> list:
    """Lay out a person's field values into display sections.

    A field is listed only when it has a definition and a non-empty value.
    Hidden fields are masked, or dropped entirely with `hide_masked`.
    Sections left empty are omitted.
    """
    values = {}
    for fv in field_values or []:
        key = fv.get("fieldKey")
        if key and key not in values:
            values[key] = field_value(fv)
    visible_set = set(visible_keys or [])

    sections = []
    for section_key, title, keys in PERSONNEL_SECTIONS:
        fields = []
        for key in keys:
            definition = field_defs.get(key)
            if definition is None or not has_value(values.get(key)):
                continue
            visible = resolve_visibility(viewer.roles, visible_set, key)
            if not visible and hide_masked:
                continue
            fields.append({
                "key": key,
                "label": definition.get("label") or key,
                "classification": definition.get("classification") or "PUBLIC",
                "value": mask_value(values[key], visible),
                "masked": not visible,
                # visible only through an override role, not through the resolver
                "shown_by_role": visible and key not in visible_set,
            })
        if fields:
            sections.append({"key": section_key, "title": title, "count": len(fields), "fields": fields})
    return sections
