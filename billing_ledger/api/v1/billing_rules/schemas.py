"""Billing rule schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from billing_ledger.core.enums import BillingRuleScope, BillingRuleStatus, BillingRuleType, FeeValueType


class BillingRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)
    description: Optional[str] = Field(None, max_length=400)
    type: BillingRuleType
    scope: BillingRuleScope = BillingRuleScope.ALL_STUDENTS
    status: BillingRuleStatus = BillingRuleStatus.ACTIVE
    fee_type: Optional[FeeValueType] = None
    fee_value: Optional[Decimal] = Field(None, ge=1, max_digits=12, decimal_places=2)
    start_day: Optional[int] = Field(None, ge=1)
    end_day: Optional[int] = Field(None, ge=1)
    max_uses: Optional[int] = Field(None, ge=0)
    used_count: Optional[int] = Field(None, ge=0)
    cutoff_after_days: Optional[int] = Field(None, ge=1)


class BillingRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=80)
    description: Optional[str] = Field(None, max_length=400)
    type: Optional[BillingRuleType] = None
    scope: Optional[BillingRuleScope] = None
    status: Optional[BillingRuleStatus] = None
    fee_type: Optional[FeeValueType] = None
    fee_value: Optional[Decimal] = Field(None, ge=1, max_digits=12, decimal_places=2)
    start_day: Optional[int] = Field(None, ge=1)
    end_day: Optional[int] = Field(None, ge=1)
    max_uses: Optional[int] = Field(None, ge=0)
    used_count: Optional[int] = Field(None, ge=0)
    cutoff_after_days: Optional[int] = Field(None, ge=1)


class BillingRuleResponse(BaseModel):
    id: UUID
    school_id: UUID
    name: str
    description: Optional[str] = None
    summary: str
    type: BillingRuleType
    scope: BillingRuleScope
    status: BillingRuleStatus
    fee_type: Optional[FeeValueType] = None
    fee_value: Optional[Decimal] = None
    start_day: Optional[int] = None
    end_day: Optional[int] = None
    max_uses: Optional[int] = None
    used_count: Optional[int] = None
    cutoff_after_days: Optional[int] = None
    created_by: Optional[UUID] = None
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BillingRuleDeleted(BaseModel):
    deleted: bool = True
    message: str
    detached_from_configs: int = 0
