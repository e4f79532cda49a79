"""Billing config (policy) schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from billing_ledger.api.v1.billing.schemas import GenerationResult
from billing_ledger.core.enums import BillingConfigStatus, BillingScope, BillingType, RecurrenceType


class BillingConfigCreate(BaseModel):
    school_cycle_id: UUID
    scope: BillingScope
    target_groups: List[UUID] = Field(default_factory=list)
    target_grades: List[str] = Field(default_factory=list)
    target_students: List[UUID] = Field(default_factory=list)
    rule_ids: List[UUID] = Field(default_factory=list)
    billing_type: BillingType
    recurrence_type: RecurrenceType
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    status: BillingConfigStatus = BillingConfigStatus.REQUIRED
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class BillingConfigUpdate(BaseModel):
    school_cycle_id: Optional[UUID] = None
    scope: Optional[BillingScope] = None
    target_groups: Optional[List[UUID]] = None
    target_grades: Optional[List[str]] = None
    target_students: Optional[List[UUID]] = None
    rule_ids: Optional[List[UUID]] = None
    billing_type: Optional[BillingType] = None
    recurrence_type: Optional[RecurrenceType] = None
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    status: Optional[BillingConfigStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class BillingConfigResponse(BaseModel):
    id: UUID
    school_id: UUID
    school_cycle_id: UUID
    scope: BillingScope
    target_groups: List[str]
    target_grades: List[str]
    target_students: List[str]
    rule_ids: List[str]
    billing_type: str
    recurrence_type: str
    amount: Decimal
    status: BillingConfigStatus
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_by: Optional[UUID] = None
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BillingConfigWithGeneration(BaseModel):
    """Write response: the saved policy plus the obligations generated from it."""

    billing_config: BillingConfigResponse
    generation: GenerationResult
