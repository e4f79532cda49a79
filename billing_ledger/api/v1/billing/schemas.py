"""Billing schemas: obligations, generation and sweep results."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from billing_ledger.core.enums import BillingRecordStatus


class BillingRecordResponse(BaseModel):
    id: UUID
    school_id: UUID
    student_id: UUID
    billing_config_id: UUID
    amount: Decimal
    total_amount: Decimal
    status: BillingRecordStatus
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BillingRecordWithStudent(BillingRecordResponse):
    student_name: Optional[str] = None
    enrollment: Optional[str] = None


class BillingRecordWithConfig(BillingRecordResponse):
    billing_type: Optional[str] = None
    config_status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# --- Generation ---
class BillingConfigSummary(BaseModel):
    """Policy snapshot echoed back with generation results."""

    id: UUID
    billing_type: str
    recurrence_type: str
    scope: str
    status: str
    amount: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    school_cycle_name: Optional[str] = None
    school_cycle_status: Optional[str] = None


class ObligationSummary(BaseModel):
    student_id: UUID
    student_name: str
    enrollment: Optional[str] = None
    group_id: Optional[UUID] = None
    group: Optional[str] = None
    billing_record_id: UUID


class GenerationFailure(BaseModel):
    student_id: UUID
    error: str


class GenerationResult(BaseModel):
    message: str
    billing_config: BillingConfigSummary
    created: List[ObligationSummary] = Field(default_factory=list)
    skipped: List[UUID] = Field(default_factory=list, description="Already billed, lost a concurrent insert, or no longer active")
    failed: List[GenerationFailure] = Field(default_factory=list)


# --- Overdue sweep ---
class SweepResult(BaseModel):
    message: str
    billing_config_id: UUID
    updated_count: int
    updated: List[UUID] = Field(default_factory=list)


class SweepAllResult(BaseModel):
    swept_configs: int
    updated_count: int
    results: List[SweepResult] = Field(default_factory=list)
