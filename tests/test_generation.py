from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.api.v1.billing import service as billing_service
from billing_ledger.api.v1.billing_configs import service as config_service
from billing_ledger.api.v1.billing_configs.schemas import BillingConfigCreate, BillingConfigUpdate
from billing_ledger.core.enums import BillingConfigStatus, BillingScope
from billing_ledger.core.exceptions import InvalidScopeError, NotFoundError, ServiceError
from billing_ledger.core.models import BalanceLedgerEntry, BillingRecord


def _create_payload(seed: SimpleNamespace, **overrides) -> BillingConfigCreate:
    data = {
        "school_cycle_id": seed.cycle_id,
        "scope": BillingScope.ALL_STUDENTS,
        "billing_type": "tuition",
        "recurrence_type": "monthly",
        "amount": Decimal("2500"),
    }
    data.update(overrides)
    return BillingConfigCreate(**data)


async def _records(db: AsyncSession, billing_config_id):
    result = await db.execute(
        select(BillingRecord)
        .where(BillingRecord.billing_config_id == billing_config_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


@pytest.mark.asyncio
async def test_required_config_bills_every_active_student(
    db_session: AsyncSession, seed: SimpleNamespace, load_student
) -> None:
    saved = await config_service.create_billing_config(db_session, seed.school_id, _create_payload(seed))

    generation = saved.generation
    assert generation.message == "Generated 2 billing records"
    assert {c.student_id for c in generation.created} == {seed.ana_id, seed.beto_id}
    assert generation.skipped == []
    assert generation.failed == []

    records = await _records(db_session, saved.billing_config.id)
    assert len(records) == 2
    for record in records:
        assert record.status == "pending"
        assert record.amount == Decimal("2500")
        assert record.total_amount == Decimal("2500")

    for student_id in (seed.ana_id, seed.beto_id):
        student = await load_student(student_id)
        assert student.balance == Decimal("-2500")
        assert student.credit == Decimal("0")
    carla = await load_student(seed.carla_id)
    assert carla.balance == Decimal("0")


@pytest.mark.asyncio
async def test_generation_is_idempotent(db_session: AsyncSession, seed: SimpleNamespace, load_student) -> None:
    saved = await config_service.create_billing_config(db_session, seed.school_id, _create_payload(seed))

    again = await billing_service.generate_billings_for_config(db_session, seed.school_id, saved.billing_config.id)

    assert again.message == "Generated 0 billing records"
    assert again.created == []
    assert set(again.skipped) == {seed.ana_id, seed.beto_id}
    assert len(await _records(db_session, saved.billing_config.id)) == 2
    ana = await load_student(seed.ana_id)
    assert ana.balance == Decimal("-2500")
    entries = (
        await db_session.execute(
            select(func.count()).select_from(BalanceLedgerEntry).where(BalanceLedgerEntry.student_id == seed.ana_id)
        )
    ).scalar_one()
    assert entries == 1


@pytest.mark.asyncio
async def test_optional_config_does_not_touch_balance(
    db_session: AsyncSession, seed: SimpleNamespace, load_student
) -> None:
    saved = await config_service.create_billing_config(
        db_session,
        seed.school_id,
        _create_payload(seed, status=BillingConfigStatus.OPTIONAL, amount=Decimal("300")),
    )

    assert len(saved.generation.created) == 2
    ana = await load_student(seed.ana_id)
    assert ana.balance == Decimal("0")


@pytest.mark.asyncio
async def test_inactive_config_generates_nothing(db_session: AsyncSession, seed: SimpleNamespace) -> None:
    saved = await config_service.create_billing_config(
        db_session, seed.school_id, _create_payload(seed, status=BillingConfigStatus.INACTIVE)
    )

    assert saved.generation.message == billing_service.INACTIVE_CONFIG_MESSAGE
    assert saved.generation.created == []
    assert await _records(db_session, saved.billing_config.id) == []


@pytest.mark.asyncio
async def test_specific_students_reports_inactive_as_skipped(db_session: AsyncSession, seed: SimpleNamespace) -> None:
    saved = await config_service.create_billing_config(
        db_session,
        seed.school_id,
        _create_payload(
            seed,
            scope=BillingScope.SPECIFIC_STUDENTS,
            target_students=[seed.ana_id, seed.carla_id],
        ),
    )

    assert [c.student_id for c in saved.generation.created] == [seed.ana_id]
    assert saved.generation.skipped == [seed.carla_id]
    assert saved.generation.created[0].student_name == "Ana Lopez"
    assert saved.generation.created[0].group == "1 A"


@pytest.mark.asyncio
async def test_generation_for_missing_config(db_session: AsyncSession, seed: SimpleNamespace) -> None:
    with pytest.raises(NotFoundError):
        await billing_service.generate_billings_for_config(db_session, seed.school_id, uuid4())


@pytest.mark.asyncio
async def test_config_of_other_school_is_not_found(db_session: AsyncSession, seed: SimpleNamespace) -> None:
    saved = await config_service.create_billing_config(db_session, seed.school_id, _create_payload(seed))

    with pytest.raises(NotFoundError):
        await billing_service.generate_billings_for_config(db_session, seed.other_school_id, saved.billing_config.id)


@pytest.mark.asyncio
async def test_create_rejects_scope_without_targets(db_session: AsyncSession, seed: SimpleNamespace) -> None:
    with pytest.raises(InvalidScopeError):
        await config_service.create_billing_config(
            db_session, seed.school_id, _create_payload(seed, scope=BillingScope.SPECIFIC_GRADES)
        )


@pytest.mark.asyncio
async def test_create_rejects_inverted_dates(db_session: AsyncSession, seed: SimpleNamespace) -> None:
    with pytest.raises(ServiceError) as exc:
        await config_service.create_billing_config(
            db_session,
            seed.school_id,
            _create_payload(seed, start_date="2026-02-01", end_date="2026-01-01"),
        )
    assert exc.value.status_code == 422


@pytest.mark.asyncio
async def test_update_extends_scope_without_rebilling(
    db_session: AsyncSession, seed: SimpleNamespace, load_student
) -> None:
    saved = await config_service.create_billing_config(
        db_session,
        seed.school_id,
        _create_payload(seed, scope=BillingScope.SPECIFIC_GROUPS, target_groups=[seed.group_a_id]),
    )
    assert [c.student_id for c in saved.generation.created] == [seed.ana_id]

    updated = await config_service.update_billing_config(
        db_session,
        seed.school_id,
        saved.billing_config.id,
        BillingConfigUpdate(target_groups=[seed.group_a_id, seed.group_b_id], amount=Decimal("3000")),
    )

    assert [c.student_id for c in updated.generation.created] == [seed.beto_id]
    assert updated.generation.skipped == [seed.ana_id]
    ana = await load_student(seed.ana_id)
    beto = await load_student(seed.beto_id)
    # Existing obligations keep the amount they were generated with
    assert ana.balance == Decimal("-2500")
    assert beto.balance == Decimal("-3000")


@pytest.mark.asyncio
async def test_deactivate_keeps_existing_records(db_session: AsyncSession, seed: SimpleNamespace) -> None:
    saved = await config_service.create_billing_config(db_session, seed.school_id, _create_payload(seed))

    deactivated = await config_service.deactivate_billing_config(db_session, seed.school_id, saved.billing_config.id)

    assert deactivated.status == BillingConfigStatus.INACTIVE
    assert len(await _records(db_session, saved.billing_config.id)) == 2
    listed = await config_service.list_billing_configs(db_session, seed.school_id)
    assert listed == []
    listed = await config_service.list_billing_configs(db_session, seed.school_id, include_inactive=True)
    assert [c.id for c in listed] == [saved.billing_config.id]


@pytest.mark.asyncio
async def test_concurrent_generation_loses_on_unique_constraint(
    db_session: AsyncSession, seed: SimpleNamespace, load_student, monkeypatch: pytest.MonkeyPatch
) -> None:
    saved = await config_service.create_billing_config(db_session, seed.school_id, _create_payload(seed))

    # Another worker inserted the records after this run's existence check
    async def nothing_billed(db, billing_config_id, student_ids):
        return set()

    monkeypatch.setattr(billing_service, "_already_billed", nothing_billed)

    again = await billing_service.generate_billings_for_config(db_session, seed.school_id, saved.billing_config.id)

    assert again.created == []
    assert again.failed == []
    assert set(again.skipped) == {seed.ana_id, seed.beto_id}
    assert len(await _records(db_session, saved.billing_config.id)) == 2
    ana = await load_student(seed.ana_id)
    assert ana.balance == Decimal("-2500")
    entries = (
        await db_session.execute(
            select(func.count()).select_from(BalanceLedgerEntry).where(BalanceLedgerEntry.student_id == seed.ana_id)
        )
    ).scalar_one()
    assert entries == 1


@pytest.mark.asyncio
async def test_database_error_for_one_student_is_reported_as_failed(
    db_session: AsyncSession, seed: SimpleNamespace, load_student, monkeypatch: pytest.MonkeyPatch
) -> None:
    real_insert = billing_service._insert_obligation

    async def flaky_insert(db, school_id, billing_config_id, student_id, amount, debit_balance):
        if student_id == seed.beto_id:
            raise SQLAlchemyError("connection reset")
        return await real_insert(db, school_id, billing_config_id, student_id, amount, debit_balance)

    monkeypatch.setattr(billing_service, "_insert_obligation", flaky_insert)

    saved = await config_service.create_billing_config(db_session, seed.school_id, _create_payload(seed))

    generation = saved.generation
    assert [c.student_id for c in generation.created] == [seed.ana_id]
    assert [f.student_id for f in generation.failed] == [seed.beto_id]
    assert "connection reset" in generation.failed[0].error
    beto = await load_student(seed.beto_id)
    assert beto.balance == Decimal("0")

    # A later run tops up the student that failed
    monkeypatch.setattr(billing_service, "_insert_obligation", real_insert)
    retry = await billing_service.generate_billings_for_config(db_session, seed.school_id, saved.billing_config.id)
    assert [c.student_id for c in retry.created] == [seed.beto_id]
    assert retry.skipped == [seed.ana_id]


@pytest.mark.asyncio
async def test_policy_amount_finer_than_cents_is_rejected(db_session: AsyncSession, seed: SimpleNamespace) -> None:
    with pytest.raises(ValidationError):
        _create_payload(seed, amount=Decimal("99.995"))

    payload = _create_payload(seed).model_copy(update={"amount": Decimal("99.995")})
    with pytest.raises(ServiceError) as exc:
        await config_service.create_billing_config(db_session, seed.school_id, payload)
    assert exc.value.status_code == 422
