"""Field-to-category inference for the field registry admin screen.

There is no stored field -> category relation yet, so each definition is
placed by keyword matching on its key and label. Rules are tried in order
and the first match wins; anything unmatched lands in personal info.
"""
from visibility import PERSONNEL_SECTIONS

WORK = "工作信息"
PERSONAL = "个人信息"
IDENTITY = "证件信息"
BANK = "银行卡信息"
CONTRACT = "合同信息"

FIELD_CATEGORIES = [
    {"name": WORK, "description": "工号、人员状态、部门、职务等工作相关信息"},
    {"name": PERSONAL, "description": "性别、出生日期、民族、籍贯、婚姻状况等"},
    {"name": IDENTITY, "description": "身份标识、身份证/护照号码、证件有效期等"},
    {"name": BANK, "description": "银行账号、开户行等银行卡信息"},
    {"name": CONTRACT, "description": "合同类型、签订次数、合同起止日期等"},
]


def _matcher(key_tokens, label_tokens):
    def predicate(key: str, label: str) -> bool:
        return any(t in key for t in key_tokens) or any(t in label for t in label_tokens)
    return predicate


CATEGORY_RULES = [
    (WORK, _matcher(
        ("employee", "job", "department", "position", "work", "office"),
        ("工号", "部门", "职务", "岗位", "序列", "上级", "事业部", "入职", "转正",
         "试用", "实习", "状态", "类型", "标签"))),
    (IDENTITY, _matcher(
        ("id_", "passport", "document"),
        ("身份", "证件", "护照", "有效期", "剩余"))),
    (BANK, _matcher(
        ("bank", "account"),
        ("银行", "账号", "开户", "卡号"))),
    (CONTRACT, _matcher(
        ("contract",),
        ("合同",))),
]


def categorize(field) -> str:
    """Category name for a field definition (dict with `key` and `label`)"""
    key = (field.get("key") or "").lower()
    label = field.get("label") or ""
    for name, predicate in CATEGORY_RULES:
        if predicate(key, label):
            return name
    return PERSONAL


def group_by_category(definitions) -> list:
    """Definitions bucketed per category, categories in display order"""
    buckets = {c["name"]: [] for c in FIELD_CATEGORIES}
    for d in definitions or []:
        buckets[categorize(d)].append(d)
    return [{"name": c["name"], "description": c["description"],
             "count": len(buckets[c["name"]]), "fields": buckets[c["name"]]}
            for c in FIELD_CATEGORIES]


# Default registry content: key -> (label, classification)
DEFAULT_FIELD_LABELS = {
    "employee_code": ("工号", "PUBLIC"),
    "employee_status": ("人员状态", "PUBLIC"),
    "employee_type": ("人员类型", "PUBLIC"),
    "career_sequence": ("职业序列", "PUBLIC"),
    "reporting_manager": ("直属上级", "PUBLIC"),
    "business_unit": ("事业部", "PUBLIC"),
    "business_unit_leader": ("事业部负责人", "PUBLIC"),
    "department": ("部门", "PUBLIC"),
    "position": ("职务", "PUBLIC"),
    "tag": ("标签", "PUBLIC"),
    "join_company_date": ("入职集团日期", "PUBLIC"),
    "internship_period_months": ("实习期(月)", "PUBLIC"),
    "internship_to_regular_date": ("实习转正日期", "PUBLIC"),
    "onboarding_date": ("入职日期", "PUBLIC"),
    "probation_period_months": ("试用期(月)", "PUBLIC"),
    "regularization_date": ("转正日期", "PUBLIC"),
    "gender": ("性别", "PUBLIC"),
    "birth_date": ("出生日期", "CONFIDENTIAL"),
    "age": ("年龄", "CONFIDENTIAL"),
    "height_cm": ("身高(cm)", "CONFIDENTIAL"),
    "weight_kg": ("体重(kg)", "CONFIDENTIAL"),
    "blood_type": ("血型", "CONFIDENTIAL"),
    "medical_history": ("既往病史", "CONFIDENTIAL"),
    "nationality": ("国籍", "PUBLIC"),
    "ethnicity": ("民族", "PUBLIC"),
    "ancestral_home_province_city": ("籍贯", "PUBLIC"),
    "political_status": ("政治面貌", "CONFIDENTIAL"),
    "first_work_date": ("首次参加工作日期", "PUBLIC"),
    "seniority_calculation_date": ("工龄计算日期", "PUBLIC"),
    "work_years": ("工龄", "PUBLIC"),
    "household_registration_type": ("户口性质", "CONFIDENTIAL"),
    "household_province": ("户籍省份", "CONFIDENTIAL"),
    "household_city": ("户籍城市", "CONFIDENTIAL"),
    "household_address": ("户籍地址", "CONFIDENTIAL"),
    "id_address": ("身份证地址", "CONFIDENTIAL"),
    "contact_phone": ("联系电话", "CONFIDENTIAL"),
    "qq": ("QQ", "PUBLIC"),
    "wechat": ("微信", "PUBLIC"),
    "personal_email": ("个人邮箱", "CONFIDENTIAL"),
    "current_residence_address": ("现居住地址", "CONFIDENTIAL"),
    "primary_id_type": ("证件类型", "CONFIDENTIAL"),
    "id_number": ("证件号码", "CONFIDENTIAL"),
    "id_valid_until": ("证件有效期", "CONFIDENTIAL"),
    "id_days_remaining": ("证件剩余天数", "CONFIDENTIAL"),
    "bank_account_number": ("银行账号", "CONFIDENTIAL"),
    "bank_name": ("开户银行", "CONFIDENTIAL"),
    "social_security_number": ("社保账号", "CONFIDENTIAL"),
    "provident_fund_account": ("公积金账号", "CONFIDENTIAL"),
    "contract_type": ("合同类型", "PUBLIC"),
    "contract_signed_times": ("合同签订次数", "PUBLIC"),
    "latest_contract_start": ("最新合同开始日期", "PUBLIC"),
    "latest_contract_end": ("最新合同结束日期", "PUBLIC"),
    "contract_remaining_days": ("合同剩余天数", "PUBLIC"),
    "education_degree": ("学历", "PUBLIC"),
    "enrollment_date": ("入学日期", "PUBLIC"),
    "major": ("专业", "PUBLIC"),
    "study_form": ("学习形式", "PUBLIC"),
    "schooling_years": ("学制", "PUBLIC"),
    "degree_awarding_country": ("学位授予国家", "PUBLIC"),
    "degree_awarding_institution": ("学位授予单位", "PUBLIC"),
    "degree_awarding_date": ("学位授予日期", "PUBLIC"),
    "graduation_school": ("毕业院校", "PUBLIC"),
    "graduation_date": ("毕业日期", "PUBLIC"),
    "foreign_language_level": ("外语水平", "PUBLIC"),
    "marital_status": ("婚姻状况", "CONFIDENTIAL"),
    "marriage_leave_status": ("婚假状态", "CONFIDENTIAL"),
    "marriage_leave_date": ("婚假日期", "CONFIDENTIAL"),
    "spouse_name": ("配偶姓名", "CONFIDENTIAL"),
    "spouse_phone": ("配偶电话", "CONFIDENTIAL"),
    "spouse_employer": ("配偶工作单位", "CONFIDENTIAL"),
    "spouse_position": ("配偶职务", "CONFIDENTIAL"),
    "emergency_contact_name": ("紧急联系人", "CONFIDENTIAL"),
    "emergency_contact_relation": ("紧急联系人关系", "CONFIDENTIAL"),
    "emergency_contact_phone": ("紧急联系人电话", "CONFIDENTIAL"),
    "emergency_contact_address": ("紧急联系人地址", "CONFIDENTIAL"),
    "rehire_count": ("再入职次数", "PUBLIC"),
    "previous_join_date": ("上次入职日期", "PUBLIC"),
    "previous_leave_date": ("上次离职日期", "PUBLIC"),
    "previous_employer": ("前雇主", "PUBLIC"),
    "non_compete_agreement": ("竞业协议", "CONFIDENTIAL"),
    "resignation_date": ("离职日期", "PUBLIC"),
    "resignation_type": ("离职类型", "PUBLIC"),
    "resignation_reason_category": ("离职原因分类", "CONFIDENTIAL"),
    "resignation_reason_detail": ("离职原因详情", "CONFIDENTIAL"),
    "remarks": ("备注", "PUBLIC"),
}


def default_catalog() -> list:
    """Default definitions in detail-page order, one per section key"""
    catalog = []
    for _section, _title, keys in PERSONNEL_SECTIONS:
        for key in keys:
            label, classification = DEFAULT_FIELD_LABELS.get(key, (key, "PUBLIC"))
            catalog.append({"key": key, "label": label, "classification": classification,
                            "selfEditable": False})
    return catalog
