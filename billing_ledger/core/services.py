"""Shared service helpers: value coercion and the balance ledger write path."""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.core.enums import LedgerAccount, LedgerEntryReason
from billing_ledger.core.exceptions import ServiceError
from billing_ledger.core.models import BalanceLedgerEntry, Student
from billing_ledger.db.session import utcnow


def to_uuid(val):
    if val is None:
        return None
    return val if isinstance(val, UUID) else UUID(str(val))


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


CENT = Decimal("0.01")


def ensure_cents(amount: Decimal) -> Decimal:
    """Money is stored as Numeric(12,2); anything finer would be rounded away on write."""
    if amount != amount.quantize(CENT):
        raise ServiceError("Amount cannot have more than 2 decimal places", status.HTTP_422_UNPROCESSABLE_ENTITY)
    return amount


async def post_ledger_entry(
    db: AsyncSession,
    school_id: UUID,
    student_id: UUID,
    account: LedgerAccount,
    delta: Decimal,
    reason: LedgerEntryReason,
    billing_record_id: Optional[UUID] = None,
    payment_id: Optional[UUID] = None,
) -> BalanceLedgerEntry:
    """
    Append a ledger entry and move the student's cached projection by the same delta.
    The projection is updated relative to its stored value (col = col + delta) so concurrent
    writers commute. Caller owns the transaction; entry and projection commit together.
    """
    entry = BalanceLedgerEntry(
        school_id=school_id,
        student_id=student_id,
        account=account.value,
        delta=delta,
        reason=reason.value,
        billing_record_id=billing_record_id,
        payment_id=payment_id,
    )
    db.add(entry)
    column = Student.balance if account == LedgerAccount.BALANCE else Student.credit
    await db.execute(
        update(Student)
        .where(Student.id == student_id)
        .values({column: column + delta, Student.updated_at: utcnow()})
    )
    return entry
