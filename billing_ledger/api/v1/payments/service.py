"""
Payments service: settlement of obligations, invoice annotations, payment history and stats.

Settlement arithmetic (total_amount is the amount still owed):
    new_total = total_amount - amount
    new_total == 0 -> completed, paid_at = now
    new_total <  0 -> completed, paid_at = now, |new_total| added to student credit
    new_total >  0 -> partial
total_amount is stored as max(0, new_total). Student balance is never touched here; it was
debited when the obligation was generated.
"""

from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.core.enums import (
    BillingRecordStatus,
    LedgerAccount,
    LedgerEntryReason,
    PaymentMethod,
)
from billing_ledger.core.exceptions import NotFoundError, ServiceError
from billing_ledger.core.logging_config import get_logger
from billing_ledger.core.models import BillingConfig, BillingRecord, Group, Payment, Student
from billing_ledger.core.services import ensure_cents, post_ledger_entry, to_decimal, to_uuid, utcnow

from .schemas import (
    InvoiceAttach,
    ManualPaymentCreate,
    PaymentConfirm,
    PaymentHistoryItem,
    PaymentResponse,
    PaymentStats,
    SettlementResult,
)

logger = get_logger("payments")

ALREADY_PROCESSED_MESSAGE = "Payment already processed"


def _payment_to_response(p: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=to_uuid(p.id),
        school_id=to_uuid(p.school_id),
        billing_record_id=to_uuid(p.billing_record_id),
        student_id=to_uuid(p.student_id),
        amount=to_decimal(p.amount),
        method=p.method,
        payment_intent_ref=p.payment_intent_ref,
        charge_ref=p.charge_ref,
        transfer_ref=p.transfer_ref,
        invoice_status=p.invoice_status,
        invoice_id=p.invoice_id,
        invoice_number=p.invoice_number,
        created_by=to_uuid(p.created_by),
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


def method_label(method: str, payment_intent_ref: Optional[str]) -> str:
    """Human label for a payment method. Processor-backed cash and transfers are OXXO and SPEI."""
    if method == PaymentMethod.CASH.value:
        return "OXXO" if payment_intent_ref else "Cash"
    if method == PaymentMethod.BANK_TRANSFER.value:
        return "SPEI" if payment_intent_ref else "Bank transfer"
    if method == PaymentMethod.CARD.value:
        return "Card"
    return "Other"


async def _load_record_for_update(db: AsyncSession, school_id: UUID, billing_record_id: UUID) -> BillingRecord:
    record = (
        await db.execute(
            select(BillingRecord)
            .where(BillingRecord.id == billing_record_id, BillingRecord.school_id == school_id)
            .with_for_update()
        )
    ).scalar_one_or_none()
    if not record:
        raise NotFoundError("Billing record not found")
    return record


async def _find_by_intent(db: AsyncSession, payment_intent_ref: str) -> Optional[Payment]:
    return (
        await db.execute(select(Payment).where(Payment.payment_intent_ref == payment_intent_ref))
    ).scalar_one_or_none()


async def _replay_result(db: AsyncSession, school_id: UUID, payment: Payment) -> SettlementResult:
    """Result for an intent that was already settled. Reads current state, applies nothing."""
    if payment.school_id != school_id:
        raise ServiceError("Payment intent already used", status.HTTP_409_CONFLICT)
    record = await db.get(BillingRecord, payment.billing_record_id)
    remaining = to_decimal(record.total_amount)
    logger.info(
        "Duplicate payment confirmation ignored",
        extra={"payment_id": payment.id, "payment_intent_ref": payment.payment_intent_ref},
    )
    return SettlementResult(
        payment_id=to_uuid(payment.id),
        billing_record_id=to_uuid(record.id),
        student_id=to_uuid(payment.student_id),
        status=record.status,
        previous_status=record.status,
        previous_total_amount=remaining,
        new_total_amount=remaining,
        already_processed=True,
        message=ALREADY_PROCESSED_MESSAGE,
    )


async def _apply_payment(
    db: AsyncSession,
    record: BillingRecord,
    amount: Decimal,
    method: PaymentMethod,
    created_by: Optional[UUID],
    payment_intent_ref: Optional[str] = None,
    charge_ref: Optional[str] = None,
    transfer_ref: Optional[str] = None,
) -> SettlementResult:
    """Insert the payment, resolve the obligation and grant credit. Caller commits or rolls back."""
    amount = ensure_cents(amount)
    payment = Payment(
        school_id=record.school_id,
        billing_record_id=record.id,
        student_id=record.student_id,
        amount=amount,
        method=method.value,
        payment_intent_ref=payment_intent_ref,
        charge_ref=charge_ref,
        transfer_ref=transfer_ref,
        created_by=created_by,
    )
    db.add(payment)
    await db.flush()

    previous_total = to_decimal(record.total_amount)
    previous_status = record.status
    new_total = previous_total - amount
    now = utcnow()
    credit_to_add = Decimal("0")

    if new_total == 0:
        new_status = BillingRecordStatus.completed.value
        paid_at = now
    elif new_total < 0:
        new_status = BillingRecordStatus.completed.value
        paid_at = now
        credit_to_add = -new_total
    else:
        new_status = BillingRecordStatus.partial.value
        paid_at = None

    record.total_amount = max(Decimal("0"), new_total)
    record.status = new_status
    record.paid_at = paid_at
    record.updated_at = now

    if credit_to_add > 0:
        await post_ledger_entry(
            db,
            record.school_id,
            record.student_id,
            LedgerAccount.CREDIT,
            credit_to_add,
            LedgerEntryReason.OVERPAYMENT_CREDIT,
            billing_record_id=record.id,
            payment_id=payment.id,
        )

    return SettlementResult(
        payment_id=to_uuid(payment.id),
        billing_record_id=to_uuid(record.id),
        student_id=to_uuid(record.student_id),
        status=new_status,
        previous_status=previous_status,
        previous_total_amount=previous_total,
        new_total_amount=max(Decimal("0"), new_total),
        overpayment=credit_to_add,
        credit_added=credit_to_add,
        message="Payment applied",
    )


async def settle_payment(
    db: AsyncSession,
    school_id: UUID,
    payload: PaymentConfirm,
    created_by: Optional[UUID] = None,
) -> SettlementResult:
    """
    Apply a processor-confirmed payment exactly once per payment_intent_ref.
    A replayed confirmation returns the original payment and leaves the ledger untouched; a
    concurrent duplicate loses on the unique index and is answered the same way.
    """
    existing = await _find_by_intent(db, payload.payment_intent_ref)
    if existing:
        return await _replay_result(db, school_id, existing)

    record = await _load_record_for_update(db, school_id, payload.billing_record_id)
    student = await db.get(Student, payload.student_id)
    if not student or student.school_id != school_id:
        raise NotFoundError("Student not found")
    if record.student_id != student.id:
        raise NotFoundError("Billing record not found for this student")

    try:
        result = await _apply_payment(
            db,
            record,
            to_decimal(payload.amount),
            payload.method,
            created_by,
            payment_intent_ref=payload.payment_intent_ref,
            charge_ref=payload.charge_ref,
            transfer_ref=payload.transfer_ref,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await _find_by_intent(db, payload.payment_intent_ref)
        if existing is None:
            raise
        logger.warning(
            "Concurrent confirmation for the same payment intent",
            extra={"payment_intent_ref": payload.payment_intent_ref},
        )
        return await _replay_result(db, school_id, existing)

    logger.info(
        "Payment settled",
        extra={
            "school_id": school_id,
            "payment_id": result.payment_id,
            "billing_record_id": result.billing_record_id,
            "amount": payload.amount,
            "status": result.status.value,
            "credit_added": result.credit_added,
        },
    )
    return result


async def process_manual_payment(
    db: AsyncSession,
    school_id: UUID,
    billing_record_id: UUID,
    payload: ManualPaymentCreate,
    created_by: Optional[UUID] = None,
) -> SettlementResult:
    """Cash-desk payment: same arithmetic as settle_payment, no idempotency key."""
    record = await _load_record_for_update(db, school_id, billing_record_id)
    result = await _apply_payment(db, record, to_decimal(payload.amount), payload.method, created_by)
    await db.commit()
    logger.info(
        "Manual payment recorded",
        extra={
            "school_id": school_id,
            "payment_id": result.payment_id,
            "billing_record_id": billing_record_id,
            "amount": payload.amount,
            "status": result.status.value,
        },
    )
    return result


async def attach_invoice(
    db: AsyncSession,
    school_id: UUID,
    payment_id: UUID,
    payload: InvoiceAttach,
) -> PaymentResponse:
    """Record the invoice issued for a payment. The only mutation allowed on a payment."""
    payment = await db.get(Payment, payment_id)
    if not payment or payment.school_id != school_id:
        raise NotFoundError("Payment not found")
    payment.invoice_id = payload.invoice_id
    payment.invoice_number = payload.invoice_number
    payment.invoice_status = payload.invoice_status
    await db.commit()
    await db.refresh(payment)
    logger.info(
        "Invoice attached to payment",
        extra={"payment_id": payment_id, "invoice_id": payload.invoice_id, "invoice_status": payload.invoice_status},
    )
    return _payment_to_response(payment)


async def list_payments_by_billing(
    db: AsyncSession,
    school_id: UUID,
    billing_record_id: UUID,
) -> List[PaymentResponse]:
    record = await db.get(BillingRecord, billing_record_id)
    if not record or record.school_id != school_id:
        raise NotFoundError("Billing record not found")
    result = await db.execute(
        select(Payment)
        .where(Payment.billing_record_id == billing_record_id)
        .order_by(Payment.created_at)
    )
    return [_payment_to_response(p) for p in result.scalars().all()]


# --- History & stats ---
def _history_stmt(school_id: UUID, school_cycle_id: Optional[UUID]):
    stmt = (
        select(Payment, BillingRecord, Student, Group, BillingConfig)
        .join(BillingRecord, BillingRecord.id == Payment.billing_record_id)
        .join(Student, Student.id == Payment.student_id)
        .outerjoin(Group, Group.id == Student.group_id)
        .join(BillingConfig, BillingConfig.id == BillingRecord.billing_config_id)
        .where(Payment.school_id == school_id)
    )
    if school_cycle_id is not None:
        stmt = stmt.where(Student.school_cycle_id == school_cycle_id)
    return stmt


async def get_payment_history(
    db: AsyncSession,
    school_id: UUID,
    school_cycle_id: Optional[UUID] = None,
) -> List[PaymentHistoryItem]:
    stmt = _history_stmt(school_id, school_cycle_id).order_by(Payment.created_at.desc())
    rows = (await db.execute(stmt)).all()
    items = []
    for payment, record, student, group, config in rows:
        items.append(
            PaymentHistoryItem(
                payment_id=to_uuid(payment.id),
                student_id=to_uuid(student.id),
                student_name=student.full_name,
                enrollment=student.enrollment,
                grade=group.grade if group else None,
                group=group.name if group else None,
                billing_record_id=to_uuid(record.id),
                billing_config_id=to_uuid(record.billing_config_id),
                billing_type=config.billing_type,
                billing_status=record.status,
                billing_amount=to_decimal(record.amount),
                billing_remaining=to_decimal(record.total_amount),
                amount=to_decimal(payment.amount),
                method=payment.method,
                method_label=method_label(payment.method, payment.payment_intent_ref),
                created_by=to_uuid(payment.created_by),
                created_at=payment.created_at,
                invoice_status=payment.invoice_status,
                invoice_id=payment.invoice_id,
                invoice_number=payment.invoice_number,
            )
        )
    return items


async def get_payment_stats(
    db: AsyncSession,
    school_id: UUID,
    school_cycle_id: Optional[UUID] = None,
) -> PaymentStats:
    stmt = (
        select(Payment.amount, Payment.method, BillingRecord.status)
        .join(BillingRecord, BillingRecord.id == Payment.billing_record_id)
        .join(Student, Student.id == Payment.student_id)
        .where(Payment.school_id == school_id)
    )
    if school_cycle_id is not None:
        stmt = stmt.where(Student.school_cycle_id == school_cycle_id)
    rows = (await db.execute(stmt)).all()

    by_status: Dict[str, int] = {}
    by_method: Dict[str, int] = {}
    total = Decimal("0")
    for amount, method, record_status in rows:
        total += to_decimal(amount)
        by_status[record_status] = by_status.get(record_status, 0) + 1
        by_method[method] = by_method.get(method, 0) + 1

    return PaymentStats(
        total_payments=len(rows),
        total_amount_collected=total,
        paid_payments=by_status.get(BillingRecordStatus.completed.value, 0),
        partial_payments=by_status.get(BillingRecordStatus.partial.value, 0),
        pending_payments=by_status.get(BillingRecordStatus.pending.value, 0),
        overdue_payments=by_status.get(BillingRecordStatus.overdue.value, 0),
        payment_methods=by_method,
    )
