"""Reporting service: read-only views recomputed per request. Nothing here writes."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.core.config import settings
from billing_ledger.core.enums import BillingRecordStatus, LedgerAccount, RecordStatus, StudentStanding
from billing_ledger.core.exceptions import NotFoundError
from billing_ledger.core.models import (
    BalanceLedgerEntry,
    BillingConfig,
    BillingRecord,
    Group,
    Payment,
    SchoolCycle,
    Student,
)
from billing_ledger.core.services import to_decimal, to_uuid

from .schemas import ConfigCollectionStats, StatementLine, StudentStatement


def due_date_for(
    end_date: Optional[date],
    start_date: Optional[date],
    created_at: Optional[datetime],
    due_days: Optional[int] = None,
) -> date:
    """end_date, else start_date + due_days, else created_at + due_days."""
    if due_days is None:
        due_days = settings.default_due_days
    if end_date is not None:
        return end_date
    if start_date is not None:
        return start_date + timedelta(days=due_days)
    base = created_at.date() if created_at is not None else date.today()
    return base + timedelta(days=due_days)


def days_late(due_date: date, today: date) -> int:
    return max(0, (today - due_date).days)


def standing_for(max_days_late: int, delinquent_after: Optional[int] = None) -> StudentStanding:
    if delinquent_after is None:
        delinquent_after = settings.delinquent_after_days
    if max_days_late > delinquent_after:
        return StudentStanding.DELINQUENT
    if max_days_late > 0:
        return StudentStanding.LATE
    return StudentStanding.CURRENT


async def _ledger_sums(db: AsyncSession, student_ids: List[UUID]) -> Dict[UUID, Dict[str, Decimal]]:
    sums: Dict[UUID, Dict[str, Decimal]] = {}
    if not student_ids:
        return sums
    rows = (
        await db.execute(
            select(BalanceLedgerEntry.student_id, BalanceLedgerEntry.account, func.sum(BalanceLedgerEntry.delta))
            .where(BalanceLedgerEntry.student_id.in_(student_ids))
            .group_by(BalanceLedgerEntry.student_id, BalanceLedgerEntry.account)
        )
    ).all()
    for student_id, account, total in rows:
        sums.setdefault(student_id, {})[account] = to_decimal(total)
    return sums


async def _build_statements(
    db: AsyncSession,
    school_id: UUID,
    students: List[tuple],
    today: date,
) -> List[StudentStatement]:
    """students: (Student, Group | None) rows."""
    student_ids = [s.id for s, _ in students]
    lines_by_student: Dict[UUID, List[StatementLine]] = {sid: [] for sid in student_ids}
    if student_ids:
        rows = (
            await db.execute(
                select(BillingRecord, BillingConfig)
                .join(BillingConfig, BillingConfig.id == BillingRecord.billing_config_id)
                .where(BillingRecord.school_id == school_id, BillingRecord.student_id.in_(student_ids))
                .order_by(BillingRecord.created_at)
            )
        ).all()
        for record, config in rows:
            due = due_date_for(config.end_date, config.start_date, record.created_at)
            amount = to_decimal(record.amount)
            remaining = to_decimal(record.total_amount)
            lines_by_student[record.student_id].append(
                StatementLine(
                    billing_record_id=to_uuid(record.id),
                    billing_config_id=to_uuid(config.id),
                    billing_type=config.billing_type,
                    amount=amount,
                    amount_paid=amount - remaining,
                    remaining=remaining,
                    status=record.status,
                    due_date=due,
                    days_late=days_late(due, today),
                )
            )
    ledger = await _ledger_sums(db, student_ids)

    statements = []
    for student, group in students:
        lines = lines_by_student[student.id]
        open_lines = [l for l in lines if l.status != BillingRecordStatus.completed]
        outstanding = sum((l.remaining for l in open_lines), Decimal("0"))
        max_late = max((l.days_late for l in open_lines), default=0)
        sums = ledger.get(student.id, {})
        statements.append(
            StudentStatement(
                student_id=to_uuid(student.id),
                student_name=student.full_name,
                enrollment=student.enrollment,
                grade=group.grade if group else None,
                group=group.name if group else None,
                tutor_name=student.tutor_name,
                tutor_phone=student.tutor_phone,
                balance=to_decimal(student.balance),
                credit=to_decimal(student.credit),
                ledger_balance=sums.get(LedgerAccount.BALANCE.value, Decimal("0")),
                ledger_credit=sums.get(LedgerAccount.CREDIT.value, Decimal("0")),
                outstanding=outstanding,
                max_days_late=max_late,
                standing=standing_for(max_late),
                lines=lines,
            )
        )
    return statements


async def get_student_statement(
    db: AsyncSession,
    school_id: UUID,
    student_id: UUID,
    today: Optional[date] = None,
) -> StudentStatement:
    row = (
        await db.execute(
            select(Student, Group)
            .outerjoin(Group, Group.id == Student.group_id)
            .where(Student.id == student_id, Student.school_id == school_id)
        )
    ).first()
    if not row:
        raise NotFoundError("Student not found")
    statements = await _build_statements(db, school_id, [tuple(row)], today or date.today())
    return statements[0]


async def _active_cycle_id(db: AsyncSession, school_id: UUID) -> Optional[UUID]:
    return (
        await db.execute(
            select(SchoolCycle.id)
            .where(SchoolCycle.school_id == school_id, SchoolCycle.status == RecordStatus.ACTIVE.value)
            .order_by(SchoolCycle.start_date.desc())
            .limit(1)
        )
    ).scalar_one_or_none()


async def list_student_statements(
    db: AsyncSession,
    school_id: UUID,
    school_cycle_id: Optional[UUID] = None,
    today: Optional[date] = None,
) -> List[StudentStatement]:
    """Statements for every active student of a cycle; defaults to the school's active cycle."""
    if school_cycle_id is None:
        school_cycle_id = await _active_cycle_id(db, school_id)
        if school_cycle_id is None:
            return []
    rows = (
        await db.execute(
            select(Student, Group)
            .outerjoin(Group, Group.id == Student.group_id)
            .where(
                Student.school_id == school_id,
                Student.school_cycle_id == school_cycle_id,
                Student.status == RecordStatus.ACTIVE.value,
            )
            .order_by(Student.last_name, Student.name)
        )
    ).all()
    return await _build_statements(db, school_id, [tuple(r) for r in rows], today or date.today())


async def get_config_collection_stats(
    db: AsyncSession,
    school_id: UUID,
    billing_config_id: UUID,
) -> ConfigCollectionStats:
    config = await db.get(BillingConfig, billing_config_id)
    if not config or config.school_id != school_id:
        raise NotFoundError("Billing config not found")

    rows = (
        await db.execute(
            select(BillingRecord.status, BillingRecord.amount, BillingRecord.total_amount).where(
                BillingRecord.billing_config_id == billing_config_id
            )
        )
    ).all()
    by_status = {s.value: 0 for s in BillingRecordStatus}
    billed = Decimal("0")
    remaining = Decimal("0")
    for record_status, amount, total_amount in rows:
        by_status[record_status] = by_status.get(record_status, 0) + 1
        billed += to_decimal(amount)
        remaining += to_decimal(total_amount)

    collected = (
        await db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0))
            .join(BillingRecord, BillingRecord.id == Payment.billing_record_id)
            .where(BillingRecord.billing_config_id == billing_config_id)
        )
    ).scalar_one()

    return ConfigCollectionStats(
        billing_config_id=to_uuid(config.id),
        billing_type=config.billing_type,
        total_records=len(rows),
        by_status=by_status,
        total_billed=billed,
        total_remaining=remaining,
        total_collected=to_decimal(collected),
    )
