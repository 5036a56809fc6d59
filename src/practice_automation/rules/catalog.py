"""Closed lookup tables shared by the rule engine.

Every string the engine compares against (service keys, task categories,
frequency fields, target entities) is an enum member here, so a typo in a
stored rule fails validation instead of silently disabling a category.
"""

from enum import Enum


class Service(str, Enum):
    """Service types a client can subscribe to."""

    BOOKKEEPING = "bookkeeping"
    BOOKKEEPING_FULL = "bookkeeping_full"
    VAT_REPORTING = "vat_reporting"
    TAX_ADVANCES = "tax_advances"
    PAYROLL = "payroll"
    SOCIAL_SECURITY = "social_security"
    DEDUCTIONS = "deductions"
    MASAV_EMPLOYEES = "masav_employees"
    MASAV_SOCIAL = "masav_social"
    MASAV_SUPPLIERS = "masav_suppliers"
    MASAV_AUTHORITIES = "masav_authorities"
    AUTHORITIES_PAYMENT = "authorities_payment"
    PNL_REPORTS = "pnl_reports"
    ANNUAL_REPORTS = "annual_reports"
    RECONCILIATION = "reconciliation"
    OPERATOR_REPORTING = "operator_reporting"
    TAML_REPORTING = "taml_reporting"
    PAYSLIP_SENDING = "payslip_sending"
    RESERVE_CLAIMS = "reserve_claims"
    ADMIN = "admin"


SERVICE_LABELS: dict[Service, str] = {
    Service.BOOKKEEPING: "הנהלת חשבונות",
    Service.BOOKKEEPING_FULL: "הנהלת חשבונות מלאה",
    Service.VAT_REPORTING: "דיווחי מע״מ",
    Service.TAX_ADVANCES: "מקדמות מס",
    Service.PAYROLL: "שכר",
    Service.SOCIAL_SECURITY: "ביטוח לאומי",
    Service.DEDUCTIONS: "מ״ה ניכויים",
    Service.MASAV_EMPLOYEES: "מס״ב עובדים",
    Service.MASAV_SOCIAL: "מס״ב סוציאליות",
    Service.MASAV_SUPPLIERS: "מס״ב ספקים",
    Service.MASAV_AUTHORITIES: "מס״ב רשויות",
    Service.AUTHORITIES_PAYMENT: "תשלום רשויות",
    Service.PNL_REPORTS: "דוחות רווח והפסד",
    Service.ANNUAL_REPORTS: "מאזנים / דוחות שנתיים",
    Service.RECONCILIATION: "התאמות חשבונות",
    Service.OPERATOR_REPORTING: "דיווח למתפעל",
    Service.TAML_REPORTING: "דיווח לטמל",
    Service.PAYSLIP_SENDING: "משלוח תלושים",
    Service.RESERVE_CLAIMS: "תביעות מילואים",
    Service.ADMIN: "אדמיניסטרציה",
}


class BusinessType(str, Enum):
    """Legal form of a client business (rule condition values)."""

    EXEMPT_DEALER = "exempt_dealer"
    LICENSED_DEALER = "licensed_dealer"
    COMPANY = "company"
    FREELANCER = "freelancer"
    PARTNERSHIP = "partnership"
    NONPROFIT = "nonprofit"
    COOPERATIVE = "cooperative"


class Frequency(str, Enum):
    """Reporting frequency stored on a client's reporting_info."""

    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    NOT_APPLICABLE = "not_applicable"


class FrequencyField(str, Enum):
    """Keys of client.reporting_info that hold a Frequency."""

    VAT = "vat_reporting_frequency"
    TAX_ADVANCES = "tax_advances_frequency"
    PAYROLL = "payroll_frequency"
    SOCIAL_SECURITY = "social_security_frequency"
    DEDUCTIONS = "deductions_frequency"


# Hebrew gershayim and plain double quotes are used interchangeably in
# category names typed by operators.
_GERSHAYIM = "״"


class TaskCategory(str, Enum):
    """Task categories generated on the Task_* boards."""

    VAT = 'מע"מ'
    VAT_874 = 'מע"מ 874'
    TAX_ADVANCES = "מקדמות מס"
    PAYROLL = "שכר"
    SOCIAL_SECURITY = "ביטוח לאומי"
    DEDUCTIONS = "ניכויים"
    MASAV_SOCIAL = 'מס"ב סוציאליות'
    MASAV_EMPLOYEES = 'מס"ב עובדים'
    MASAV_AUTHORITIES = 'מס"ב רשויות'
    MASAV_SUPPLIERS = 'מס"ב ספקים'
    PAYSLIP_SENDING = "משלוח תלושים"
    AUTHORITIES_PAYMENT = "תשלום רשויות"
    OPERATOR_MASAV_INSTRUCTIONS = 'הנחיות מס"ב ממתפעל'
    RESERVE_CLAIMS = "מילואים"
    OPERATOR_REPORTING = "דיווח למתפעל"
    TAML_REPORTING = "דיווח לטמל"

    @classmethod
    def _missing_(cls, value: object) -> "TaskCategory | None":
        if not isinstance(value, str):
            return None
        normalized = value.replace(_GERSHAYIM, '"').strip()
        alias = _CATEGORY_ALIASES.get(normalized)
        if alias is not None:
            return cls(alias)
        for member in cls:
            if member.value == normalized:
                return member
        return None


_CATEGORY_ALIASES: dict[str, str] = {
    'מ"ה ניכויים': "ניכויים",
    "ניכויי מס הכנסה": "ניכויים",
    "תביעות מילואים": "מילואים",
}


class TargetEntity(str, Enum):
    """Board a ReportAutoCreateRule generates records on."""

    PERIODIC_REPORT = "PeriodicReport"
    BALANCE_SHEET = "BalanceSheet"
    ACCOUNT_RECONCILIATION = "AccountReconciliation"
    TASK_MONTHLY_REPORTS = "Task_monthly_reports"
    TASK_TAX_REPORTS = "Task_tax_reports"
    TASK_PAYROLL = "Task_payroll"
    TASK_ADDITIONAL_SERVICES = "Task_additional_services"

    @property
    def is_task_board(self) -> bool:
        return self.value.startswith("Task_")

    @property
    def record_entity(self) -> str:
        """Name of the persisted entity family for this board."""
        return "Task" if self.is_task_board else self.value

    @property
    def label(self) -> str:
        return TARGET_ENTITY_LABELS[self]


TARGET_ENTITY_LABELS: dict[TargetEntity, str] = {
    TargetEntity.PERIODIC_REPORT: "דיווחים מרכזים תקופתיים",
    TargetEntity.BALANCE_SHEET: "מאזנים שנתיים",
    TargetEntity.ACCOUNT_RECONCILIATION: "התאמות חשבונות",
    TargetEntity.TASK_MONTHLY_REPORTS: "ריכוז דיווחים חודשיים",
    TargetEntity.TASK_TAX_REPORTS: "דיווחי מיסים חודשיים",
    TargetEntity.TASK_PAYROLL: "שכר ודיווחי רשויות",
    TargetEntity.TASK_ADDITIONAL_SERVICES: "שירותים נוספים",
}

# Labels shown on individual preview items.
ITEM_LABELS: dict[TargetEntity, str] = {
    TargetEntity.PERIODIC_REPORT: "דיווח מרכז",
    TargetEntity.BALANCE_SHEET: "מאזן שנתי",
    TargetEntity.ACCOUNT_RECONCILIATION: "התאמת חשבון",
}


class PeriodicReportType(str, Enum):
    BITUACH_LEUMI_126 = "bituach_leumi_126"
    DEDUCTIONS_126_WAGE = "deductions_126_wage"


PERIODIC_REPORT_TYPE_LABELS: dict[PeriodicReportType, str] = {
    PeriodicReportType.BITUACH_LEUMI_126: "ביטוח לאומי 126",
    PeriodicReportType.DEDUCTIONS_126_WAGE: "ניכויים 126 שכר",
}


class ReportPeriod(str, Enum):
    H1 = "h1"
    H2 = "h2"
    ANNUAL = "annual"


REPORT_PERIOD_LABELS: dict[ReportPeriod, str] = {
    ReportPeriod.H1: "מחצית ראשונה",
    ReportPeriod.H2: "מחצית שנייה",
    ReportPeriod.ANNUAL: "שנתי",
}


class RecordStatus(str, Enum):
    """Status values of generated records."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    WAITING_FOR_MATERIALS = "waiting_for_materials"
    WAITING_FOR_APPROVAL = "waiting_for_approval"
    READY_FOR_REPORTING = "ready_for_reporting"
    REPORTED_WAITING_FOR_PAYMENT = "reported_waiting_for_payment"
    PENDING_EXTERNAL = "pending_external"
    COMPLETED = "completed"
    NOT_RELEVANT = "not_relevant"


# Statuses after which cleanup never touches a task.
CLOSED_STATUSES = frozenset({RecordStatus.COMPLETED.value, RecordStatus.NOT_RELEVANT.value})


# =============================================================================
# BOARD / CATEGORY / SERVICE TABLES
# =============================================================================

TASK_BOARD_CATEGORIES: dict[TargetEntity, tuple[TaskCategory, ...]] = {
    TargetEntity.TASK_MONTHLY_REPORTS: (
        TaskCategory.VAT,
        TaskCategory.TAX_ADVANCES,
        TaskCategory.PAYROLL,
        TaskCategory.SOCIAL_SECURITY,
        TaskCategory.DEDUCTIONS,
    ),
    TargetEntity.TASK_TAX_REPORTS: (
        TaskCategory.VAT,
        TaskCategory.VAT_874,
        TaskCategory.TAX_ADVANCES,
    ),
    TargetEntity.TASK_PAYROLL: (
        TaskCategory.PAYROLL,
        TaskCategory.SOCIAL_SECURITY,
        TaskCategory.DEDUCTIONS,
    ),
    TargetEntity.TASK_ADDITIONAL_SERVICES: (
        TaskCategory.MASAV_SOCIAL,
        TaskCategory.MASAV_EMPLOYEES,
        TaskCategory.MASAV_AUTHORITIES,
        TaskCategory.MASAV_SUPPLIERS,
        TaskCategory.PAYSLIP_SENDING,
        TaskCategory.AUTHORITIES_PAYMENT,
        TaskCategory.OPERATOR_MASAV_INSTRUCTIONS,
        TaskCategory.RESERVE_CLAIMS,
        TaskCategory.OPERATOR_REPORTING,
        TaskCategory.TAML_REPORTING,
    ),
}

# 1:1 category -> service that must be active for the category to be relevant.
CATEGORY_SERVICE: dict[TaskCategory, Service] = {
    TaskCategory.VAT: Service.VAT_REPORTING,
    TaskCategory.VAT_874: Service.VAT_REPORTING,
    TaskCategory.TAX_ADVANCES: Service.TAX_ADVANCES,
    TaskCategory.PAYROLL: Service.PAYROLL,
    TaskCategory.SOCIAL_SECURITY: Service.SOCIAL_SECURITY,
    TaskCategory.DEDUCTIONS: Service.DEDUCTIONS,
    TaskCategory.MASAV_SOCIAL: Service.MASAV_SOCIAL,
    TaskCategory.MASAV_EMPLOYEES: Service.MASAV_EMPLOYEES,
    TaskCategory.MASAV_AUTHORITIES: Service.MASAV_AUTHORITIES,
    TaskCategory.MASAV_SUPPLIERS: Service.MASAV_SUPPLIERS,
    TaskCategory.PAYSLIP_SENDING: Service.PAYSLIP_SENDING,
    TaskCategory.AUTHORITIES_PAYMENT: Service.AUTHORITIES_PAYMENT,
    TaskCategory.OPERATOR_MASAV_INSTRUCTIONS: Service.OPERATOR_REPORTING,
    TaskCategory.RESERVE_CLAIMS: Service.RESERVE_CLAIMS,
    TaskCategory.OPERATOR_REPORTING: Service.OPERATOR_REPORTING,
    TaskCategory.TAML_REPORTING: Service.TAML_REPORTING,
}


def _invert_category_service() -> dict[Service, tuple[TaskCategory, ...]]:
    inverted: dict[Service, list[TaskCategory]] = {}
    for category, service in CATEGORY_SERVICE.items():
        inverted.setdefault(service, []).append(category)
    return {service: tuple(categories) for service, categories in inverted.items()}


SERVICE_CATEGORIES: dict[Service, tuple[TaskCategory, ...]] = _invert_category_service()

# Recurring categories whose validity depends on a client reporting frequency.
CATEGORY_FREQUENCY_FIELD: dict[TaskCategory, FrequencyField] = {
    TaskCategory.VAT: FrequencyField.VAT,
    TaskCategory.TAX_ADVANCES: FrequencyField.TAX_ADVANCES,
    TaskCategory.PAYROLL: FrequencyField.PAYROLL,
    TaskCategory.SOCIAL_SECURITY: FrequencyField.SOCIAL_SECURITY,
    TaskCategory.DEDUCTIONS: FrequencyField.DEDUCTIONS,
}

# Categories that can run several batches per month (e.g. supplier payment
# runs). Value is the reporting_info key holding the number of cycles.
CYCLE_CATEGORIES: dict[TaskCategory, str] = {
    TaskCategory.MASAV_SUPPLIERS: "masav_suppliers_cycles",
    TaskCategory.MASAV_EMPLOYEES: "masav_employees_cycles",
}
