from billing_ledger.core.models.school import School
from billing_ledger.core.models.school_cycle import SchoolCycle
from billing_ledger.core.models.group import Group
from billing_ledger.core.models.student import Student
from billing_ledger.core.models.billing_rule import BillingRule
from billing_ledger.core.models.billing_config import BillingConfig
from billing_ledger.core.models.billing_record import BillingRecord
from billing_ledger.core.models.payment import Payment
from billing_ledger.core.models.balance_ledger_entry import BalanceLedgerEntry

__all__ = [
    "School",
    "SchoolCycle",
    "Group",
    "Student",
    "BillingRule",
    "BillingConfig",
    "BillingRecord",
    "Payment",
    "BalanceLedgerEntry",
]
