"""Payment schemas: processor confirmations, manual payments, invoice annotations, history."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from billing_ledger.core.enums import BillingRecordStatus, PaymentMethod


class PaymentConfirm(BaseModel):
    """Confirmation event from the payment processor. Delivered at least once."""

    payment_intent_ref: str = Field(..., min_length=1, max_length=255)
    billing_record_id: UUID
    student_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod = PaymentMethod.CARD
    charge_ref: Optional[str] = Field(None, max_length=255)
    transfer_ref: Optional[str] = Field(None, max_length=255)


class ManualPaymentCreate(BaseModel):
    """Payment taken at the school's cash desk; no processor reference."""

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod = PaymentMethod.CASH


class SettlementResult(BaseModel):
    payment_id: UUID
    billing_record_id: UUID
    student_id: UUID
    status: BillingRecordStatus
    previous_status: Optional[BillingRecordStatus] = None
    previous_total_amount: Decimal
    new_total_amount: Decimal
    overpayment: Decimal = Decimal("0")
    credit_added: Decimal = Decimal("0")
    already_processed: bool = False
    message: str


class InvoiceAttach(BaseModel):
    invoice_id: str = Field(..., min_length=1, max_length=255)
    invoice_number: Optional[str] = Field(None, max_length=100)
    invoice_status: str = Field("valid", max_length=30, description="Status reported by the invoicing service")


class PaymentResponse(BaseModel):
    id: UUID
    school_id: UUID
    billing_record_id: UUID
    student_id: UUID
    amount: Decimal
    method: PaymentMethod
    payment_intent_ref: Optional[str] = None
    charge_ref: Optional[str] = None
    transfer_ref: Optional[str] = None
    invoice_status: str
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentHistoryItem(BaseModel):
    payment_id: UUID
    student_id: UUID
    student_name: str
    enrollment: Optional[str] = None
    grade: Optional[str] = None
    group: Optional[str] = None
    billing_record_id: UUID
    billing_config_id: UUID
    billing_type: Optional[str] = None
    billing_status: str
    billing_amount: Decimal
    billing_remaining: Decimal
    amount: Decimal
    method: str
    method_label: str
    created_by: Optional[UUID] = None
    created_at: datetime
    invoice_status: str
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None


class PaymentStats(BaseModel):
    total_payments: int
    total_amount_collected: Decimal
    # Payments grouped by the current status of the obligation they settled
    paid_payments: int
    partial_payments: int
    pending_payments: int
    overdue_payments: int
    payment_methods: Dict[str, int]
