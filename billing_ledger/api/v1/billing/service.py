"""Billing service: obligation generation, overdue sweeps, obligation listings."""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.core.enums import (
    BillingConfigStatus,
    BillingRecordStatus,
    LedgerAccount,
    LedgerEntryReason,
)
from billing_ledger.core.exceptions import NotFoundError
from billing_ledger.core.logging_config import get_logger
from billing_ledger.core.models import BillingConfig, BillingRecord, Group, SchoolCycle, Student
from billing_ledger.core.services import post_ledger_entry, to_decimal, to_uuid, utcnow

from .schemas import (
    BillingConfigSummary,
    BillingRecordResponse,
    BillingRecordWithConfig,
    BillingRecordWithStudent,
    GenerationFailure,
    GenerationResult,
    ObligationSummary,
    SweepAllResult,
    SweepResult,
)
from .scope import requested_student_ids, resolve_targets

logger = get_logger("billing")

INACTIVE_CONFIG_MESSAGE = "Billing config is inactive"


async def get_billing_config(db: AsyncSession, school_id: UUID, billing_config_id: UUID) -> BillingConfig:
    config = await db.get(BillingConfig, billing_config_id)
    if not config or config.school_id != school_id:
        raise NotFoundError("Billing config not found")
    return config


async def _config_summary(db: AsyncSession, config: BillingConfig) -> BillingConfigSummary:
    cycle = await db.get(SchoolCycle, config.school_cycle_id)
    return BillingConfigSummary(
        id=to_uuid(config.id),
        billing_type=config.billing_type,
        recurrence_type=config.recurrence_type,
        scope=config.scope,
        status=config.status,
        amount=to_decimal(config.amount),
        start_date=config.start_date,
        end_date=config.end_date,
        school_cycle_name=cycle.name if cycle else None,
        school_cycle_status=cycle.status if cycle else None,
    )


def _record_to_response(record: BillingRecord) -> BillingRecordResponse:
    return BillingRecordResponse(
        id=to_uuid(record.id),
        school_id=to_uuid(record.school_id),
        student_id=to_uuid(record.student_id),
        billing_config_id=to_uuid(record.billing_config_id),
        amount=to_decimal(record.amount),
        total_amount=to_decimal(record.total_amount),
        status=record.status,
        paid_at=record.paid_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


# --- Obligation generation ---
async def _insert_obligation(
    db: AsyncSession,
    school_id: UUID,
    billing_config_id: UUID,
    student_id: UUID,
    amount: Decimal,
    debit_balance: bool,
) -> BillingRecord:
    """Insert one obligation and, for required configs, debit the student in the same transaction."""
    record = BillingRecord(
        school_id=school_id,
        student_id=student_id,
        billing_config_id=billing_config_id,
        amount=amount,
        total_amount=amount,
        status=BillingRecordStatus.pending.value,
    )
    db.add(record)
    await db.flush()
    if debit_balance:
        await post_ledger_entry(
            db,
            school_id,
            student_id,
            LedgerAccount.BALANCE,
            -amount,
            LedgerEntryReason.OBLIGATION_DEBIT,
            billing_record_id=record.id,
        )
    return record


async def _already_billed(db: AsyncSession, billing_config_id: UUID, student_ids: Set[UUID]) -> Set[UUID]:
    result = await db.execute(
        select(BillingRecord.student_id).where(
            BillingRecord.billing_config_id == billing_config_id,
            BillingRecord.student_id.in_(list(student_ids)),
        )
    )
    return set(result.scalars().all())


async def generate_billings_for_config(
    db: AsyncSession,
    school_id: UUID,
    billing_config_id: UUID,
) -> GenerationResult:
    """
    Materialize one billing record per targeted student. Safe to re-run: students that already
    have a record for this config are skipped, never re-charged. Each student commits in its own
    transaction; the (student_id, billing_config_id) unique constraint settles concurrent runs.
    """
    config = await get_billing_config(db, school_id, billing_config_id)
    summary = await _config_summary(db, config)
    if config.status == BillingConfigStatus.INACTIVE.value:
        logger.info(
            "Skipping generation for inactive billing config",
            extra={"school_id": school_id, "billing_config_id": billing_config_id},
        )
        return GenerationResult(message=INACTIVE_CONFIG_MESSAGE, billing_config=summary)

    target_ids = await resolve_targets(db, config)
    skipped: List[UUID] = sorted(requested_student_ids(config) - target_ids, key=str)

    # Plain values only from here on: a per-student rollback expires every loaded instance.
    config_id = to_uuid(config.id)
    amount = to_decimal(config.amount)
    debit_balance = config.status == BillingConfigStatus.REQUIRED.value

    already_billed: Set[UUID] = set()
    students: Dict[UUID, tuple] = {}
    if target_ids:
        already_billed = await _already_billed(db, config_id, target_ids)
        rows = (
            await db.execute(
                select(
                    Student.id,
                    Student.name,
                    Student.last_name,
                    Student.enrollment,
                    Student.group_id,
                    Group.grade,
                    Group.name,
                )
                .outerjoin(Group, Group.id == Student.group_id)
                .where(Student.id.in_(list(target_ids)))
            )
        ).all()
        for sid, name, last_name, enrollment, group_id, grade, group_name in rows:
            group_label = f"{grade} {group_name}" if group_name else None
            students[sid] = (f"{name} {last_name or ''}".strip(), enrollment, group_id, group_label)

    created: List[ObligationSummary] = []
    failed: List[GenerationFailure] = []
    for student_id in sorted(target_ids, key=str):
        if student_id in already_billed:
            skipped.append(student_id)
            continue
        try:
            record = await _insert_obligation(db, school_id, config_id, student_id, amount, debit_balance)
            record_id = record.id
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(
                "Billing record already exists; concurrent generation won",
                extra={"billing_config_id": config_id, "student_id": student_id},
            )
            skipped.append(student_id)
            continue
        except SQLAlchemyError as e:
            await db.rollback()
            logger.exception(
                "Failed to generate billing record",
                extra={"billing_config_id": config_id, "student_id": student_id},
            )
            failed.append(GenerationFailure(student_id=student_id, error=str(e)))
            continue

        student_name, enrollment, group_id, group_label = students.get(student_id, ("", None, None, None))
        created.append(
            ObligationSummary(
                student_id=student_id,
                student_name=student_name,
                enrollment=enrollment,
                group_id=group_id,
                group=group_label,
                billing_record_id=record_id,
            )
        )

    logger.info(
        "Generated billing records",
        extra={
            "school_id": school_id,
            "billing_config_id": config_id,
            "created_count": len(created),
            "skipped_count": len(skipped),
            "failed_count": len(failed),
            "balance_debited": debit_balance,
        },
    )
    return GenerationResult(
        message=f"Generated {len(created)} billing records",
        billing_config=summary,
        created=created,
        skipped=skipped,
        failed=failed,
    )


# --- Overdue sweep ---
async def _sweep_config(db: AsyncSession, config: BillingConfig, today: date) -> SweepResult:
    config_id = to_uuid(config.id)
    if config.end_date is None or not today > config.end_date:
        return SweepResult(message="Marked 0 billing records as overdue", billing_config_id=config_id, updated_count=0)

    # Only pending is swept; partial obligations keep their status past the end date.
    records = (
        await db.execute(
            select(BillingRecord)
            .where(
                BillingRecord.billing_config_id == config_id,
                BillingRecord.status == BillingRecordStatus.pending.value,
            )
            .with_for_update()
        )
    ).scalars().all()
    now = utcnow()
    updated: List[UUID] = []
    for record in records:
        record.status = BillingRecordStatus.overdue.value
        record.updated_at = now
        updated.append(to_uuid(record.id))
    return SweepResult(
        message=f"Marked {len(updated)} billing records as overdue",
        billing_config_id=config_id,
        updated_count=len(updated),
        updated=updated,
    )


async def sweep_overdue(
    db: AsyncSession,
    school_id: UUID,
    billing_config_id: UUID,
    today: Optional[date] = None,
) -> SweepResult:
    """Move pending records of a config to overdue once today is past its end_date. Idempotent."""
    config = await get_billing_config(db, school_id, billing_config_id)
    result = await _sweep_config(db, config, today or date.today())
    await db.commit()
    logger.info(
        "Overdue sweep finished",
        extra={"school_id": school_id, "billing_config_id": billing_config_id, "updated_count": result.updated_count},
    )
    return result


async def sweep_all_expired(db: AsyncSession, today: Optional[date] = None) -> SweepAllResult:
    """Sweep every non-inactive config (all schools) whose end_date has passed. Used by the scheduled job."""
    today = today or date.today()
    configs = (
        await db.execute(
            select(BillingConfig).where(
                BillingConfig.status != BillingConfigStatus.INACTIVE.value,
                BillingConfig.end_date.is_not(None),
                BillingConfig.end_date < today,
            )
        )
    ).scalars().all()
    results: List[SweepResult] = []
    for config in configs:
        results.append(await _sweep_config(db, config, today))
    await db.commit()
    total = sum(r.updated_count for r in results)
    logger.info("Scheduled overdue sweep finished", extra={"swept_configs": len(results), "updated_count": total})
    return SweepAllResult(swept_configs=len(results), updated_count=total, results=results)


# --- Listings ---
async def list_billing_records_by_student(
    db: AsyncSession,
    school_id: UUID,
    student_id: UUID,
) -> List[BillingRecordWithConfig]:
    rows = (
        await db.execute(
            select(BillingRecord, BillingConfig)
            .join(BillingConfig, BillingConfig.id == BillingRecord.billing_config_id)
            .where(BillingRecord.school_id == school_id, BillingRecord.student_id == student_id)
            .order_by(BillingRecord.created_at)
        )
    ).all()
    items = []
    for record, config in rows:
        base = _record_to_response(record)
        items.append(
            BillingRecordWithConfig(
                **base.model_dump(),
                billing_type=config.billing_type,
                config_status=config.status,
                start_date=config.start_date,
                end_date=config.end_date,
            )
        )
    return items


async def list_billing_records_by_config(
    db: AsyncSession,
    school_id: UUID,
    billing_config_id: UUID,
) -> List[BillingRecordWithStudent]:
    await get_billing_config(db, school_id, billing_config_id)
    rows = (
        await db.execute(
            select(BillingRecord, Student)
            .join(Student, Student.id == BillingRecord.student_id)
            .where(BillingRecord.billing_config_id == billing_config_id)
            .order_by(Student.last_name, Student.name)
        )
    ).all()
    return [
        BillingRecordWithStudent(
            **_record_to_response(record).model_dump(),
            student_name=student.full_name,
            enrollment=student.enrollment,
        )
        for record, student in rows
    ]
