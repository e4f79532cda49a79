"""Reporting schemas: student statements and policy collection stats."""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from billing_ledger.core.enums import BillingRecordStatus, StudentStanding


class StatementLine(BaseModel):
    billing_record_id: UUID
    billing_config_id: UUID
    billing_type: str
    amount: Decimal
    amount_paid: Decimal
    remaining: Decimal
    status: BillingRecordStatus
    due_date: date
    days_late: int


class StudentStatement(BaseModel):
    student_id: UUID
    student_name: str
    enrollment: Optional[str] = None
    grade: Optional[str] = None
    group: Optional[str] = None
    tutor_name: Optional[str] = None
    tutor_phone: Optional[str] = None
    balance: Decimal
    credit: Decimal
    # Sums of balance_ledger_entries; equal to balance / credit unless the projection drifted
    ledger_balance: Decimal
    ledger_credit: Decimal
    outstanding: Decimal
    max_days_late: int
    standing: StudentStanding
    lines: List[StatementLine] = Field(default_factory=list)


class ConfigCollectionStats(BaseModel):
    billing_config_id: UUID
    billing_type: str
    total_records: int
    by_status: Dict[str, int]
    total_billed: Decimal
    total_remaining: Decimal
    total_collected: Decimal
