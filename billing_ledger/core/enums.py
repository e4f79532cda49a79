from enum import Enum


class RecordStatus(str, Enum):
    """Lifecycle status shared by schools, cycles, groups and students."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class BillingScope(str, Enum):
    ALL_STUDENTS = "all_students"
    SPECIFIC_GROUPS = "specific_groups"
    SPECIFIC_GRADES = "specific_grades"
    SPECIFIC_STUDENTS = "specific_students"


class BillingConfigStatus(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    INACTIVE = "inactive"


class BillingType(str, Enum):
    INSCRIPTION = "inscription"
    TUITION = "tuition"
    EXAM = "exam"
    SCHOOL_SUPPLIES = "school_supplies"
    LIFE_INSURANCE = "life_insurance"
    MEAL_PLAN = "meal_plan"
    OTHER = "other"


class RecurrenceType(str, Enum):
    FOUR_MONTHLY = "four_monthly"
    SEMIANNUAL = "semiannual"
    SATURDAY = "saturday"
    MONTHLY = "monthly"
    DAILY = "daily"
    WEEKLY = "weekly"
    ANNUAL = "annual"
    ONE_TIME = "one_time"


class BillingRecordStatus(str, Enum):
    pending = "pending"
    partial = "partial"
    completed = "completed"
    overdue = "overdue"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    OTHER = "other"


class LedgerAccount(str, Enum):
    BALANCE = "balance"
    CREDIT = "credit"


class LedgerEntryReason(str, Enum):
    OBLIGATION_DEBIT = "obligation_debit"
    OVERPAYMENT_CREDIT = "overpayment_credit"


class StudentStanding(str, Enum):
    CURRENT = "current"
    LATE = "late"
    DELINQUENT = "delinquent"


class BillingRuleType(str, Enum):
    LATE_FEE = "late_fee"
    EARLY_DISCOUNT = "early_discount"
    CUTOFF = "cutoff"


class BillingRuleScope(str, Enum):
    """Student population a rule is written for."""

    STANDARD = "standard"
    SCHOLARSHIP = "scholarship"
    ALL_STUDENTS = "all_students"


class BillingRuleStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class FeeValueType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


INVOICE_STATUS_PENDING = "pending"
