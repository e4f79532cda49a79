"""Billing config service: policy authoring. Every save re-runs obligation generation for the policy."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.api.v1.billing import service as billing_service
from billing_ledger.api.v1.billing.scope import normalize_targets
from billing_ledger.api.v1.billing_rules.service import resolve_rule_ids
from billing_ledger.core.enums import BillingConfigStatus, BillingScope
from billing_ledger.core.exceptions import NotFoundError, ServiceError
from billing_ledger.core.logging_config import get_logger
from billing_ledger.core.models import BillingConfig, SchoolCycle
from billing_ledger.core.services import ensure_cents, to_decimal, to_uuid

from .schemas import (
    BillingConfigCreate,
    BillingConfigResponse,
    BillingConfigUpdate,
    BillingConfigWithGeneration,
)

logger = get_logger("billing_configs")


def _bc_to_response(bc: BillingConfig) -> BillingConfigResponse:
    return BillingConfigResponse(
        id=to_uuid(bc.id),
        school_id=to_uuid(bc.school_id),
        school_cycle_id=to_uuid(bc.school_cycle_id),
        scope=bc.scope,
        target_groups=list(bc.target_groups or []),
        target_grades=list(bc.target_grades or []),
        target_students=list(bc.target_students or []),
        rule_ids=list(bc.rule_ids or []),
        billing_type=bc.billing_type,
        recurrence_type=bc.recurrence_type,
        amount=to_decimal(bc.amount),
        status=bc.status,
        start_date=bc.start_date,
        end_date=bc.end_date,
        created_by=to_uuid(bc.created_by),
        updated_by=to_uuid(bc.updated_by),
        created_at=bc.created_at,
        updated_at=bc.updated_at,
    )


def _validate_amount_and_dates(amount: Decimal, start_date: Optional[date], end_date: Optional[date]) -> None:
    if amount < 0:
        raise ServiceError("Amount cannot be negative", status.HTTP_422_UNPROCESSABLE_ENTITY)
    ensure_cents(amount)
    if start_date and end_date and start_date > end_date:
        raise ServiceError("start_date must be on or before end_date", status.HTTP_422_UNPROCESSABLE_ENTITY)


async def _ensure_cycle(db: AsyncSession, school_id: UUID, school_cycle_id: UUID) -> SchoolCycle:
    cycle = await db.get(SchoolCycle, school_cycle_id)
    if not cycle or cycle.school_id != school_id:
        raise NotFoundError("School cycle not found")
    return cycle


async def create_billing_config(
    db: AsyncSession,
    school_id: UUID,
    payload: BillingConfigCreate,
    created_by: Optional[UUID] = None,
) -> BillingConfigWithGeneration:
    amount = to_decimal(payload.amount)
    _validate_amount_and_dates(amount, payload.start_date, payload.end_date)
    targets = normalize_targets(
        payload.scope,
        payload.target_groups,
        payload.target_grades,
        payload.target_students,
    )
    await _ensure_cycle(db, school_id, payload.school_cycle_id)
    rule_ids = await resolve_rule_ids(db, school_id, payload.rule_ids)

    bc = BillingConfig(
        school_id=school_id,
        school_cycle_id=payload.school_cycle_id,
        scope=payload.scope.value,
        billing_type=payload.billing_type.value,
        recurrence_type=payload.recurrence_type.value,
        amount=amount,
        status=payload.status.value,
        start_date=payload.start_date,
        end_date=payload.end_date,
        rule_ids=rule_ids,
        created_by=created_by,
        updated_by=created_by,
        **targets,
    )
    db.add(bc)
    await db.commit()
    await db.refresh(bc)
    logger.info(
        "Billing config created",
        extra={"school_id": school_id, "billing_config_id": bc.id, "scope": bc.scope, "status": bc.status},
    )
    response = _bc_to_response(bc)
    generation = await billing_service.generate_billings_for_config(db, school_id, bc.id)
    return BillingConfigWithGeneration(billing_config=response, generation=generation)


async def list_billing_configs(
    db: AsyncSession,
    school_id: UUID,
    school_cycle_id: Optional[UUID] = None,
    include_inactive: bool = False,
) -> List[BillingConfigResponse]:
    stmt = select(BillingConfig).where(BillingConfig.school_id == school_id)
    if school_cycle_id is not None:
        stmt = stmt.where(BillingConfig.school_cycle_id == school_cycle_id)
    if not include_inactive:
        stmt = stmt.where(BillingConfig.status != BillingConfigStatus.INACTIVE.value)
    stmt = stmt.order_by(BillingConfig.created_at.desc())
    result = await db.execute(stmt)
    return [_bc_to_response(bc) for bc in result.scalars().all()]


async def get_billing_config(db: AsyncSession, school_id: UUID, billing_config_id: UUID) -> BillingConfigResponse:
    bc = await billing_service.get_billing_config(db, school_id, billing_config_id)
    return _bc_to_response(bc)


async def update_billing_config(
    db: AsyncSession,
    school_id: UUID,
    billing_config_id: UUID,
    payload: BillingConfigUpdate,
    updated_by: Optional[UUID] = None,
) -> BillingConfigWithGeneration:
    """
    Partial update. Scope and target lists are re-validated together against the effective values.
    Existing obligations keep the amount they were generated with; a new amount only applies to
    students billed after this update.
    """
    bc = await billing_service.get_billing_config(db, school_id, billing_config_id)
    data = payload.model_dump(exclude_unset=True)

    amount = to_decimal(data["amount"]) if data.get("amount") is not None else to_decimal(bc.amount)
    start_date = data["start_date"] if "start_date" in data else bc.start_date
    end_date = data["end_date"] if "end_date" in data else bc.end_date
    _validate_amount_and_dates(amount, start_date, end_date)

    if data.get("school_cycle_id") is not None:
        await _ensure_cycle(db, school_id, data["school_cycle_id"])
        bc.school_cycle_id = data["school_cycle_id"]

    scope = data.get("scope") or BillingScope(bc.scope)
    targets = normalize_targets(
        scope,
        data["target_groups"] if data.get("target_groups") is not None else bc.target_groups,
        data["target_grades"] if data.get("target_grades") is not None else bc.target_grades,
        data["target_students"] if data.get("target_students") is not None else bc.target_students,
    )
    rule_ids = None
    if data.get("rule_ids") is not None:
        rule_ids = await resolve_rule_ids(db, school_id, data["rule_ids"])
    old_status = bc.status
    bc.scope = scope.value
    bc.target_groups = targets["target_groups"]
    bc.target_grades = targets["target_grades"]
    bc.target_students = targets["target_students"]
    if rule_ids is not None:
        bc.rule_ids = rule_ids
    if data.get("billing_type") is not None:
        bc.billing_type = data["billing_type"].value
    if data.get("recurrence_type") is not None:
        bc.recurrence_type = data["recurrence_type"].value
    if data.get("status") is not None:
        bc.status = data["status"].value
    bc.amount = amount
    bc.start_date = start_date
    bc.end_date = end_date
    bc.updated_by = updated_by
    await db.commit()
    await db.refresh(bc)
    logger.info(
        "Billing config updated",
        extra={
            "school_id": school_id,
            "billing_config_id": bc.id,
            "old_status": old_status,
            "new_status": bc.status,
            "fields": sorted(data),
        },
    )
    response = _bc_to_response(bc)
    generation = await billing_service.generate_billings_for_config(db, school_id, bc.id)
    return BillingConfigWithGeneration(billing_config=response, generation=generation)


async def deactivate_billing_config(
    db: AsyncSession,
    school_id: UUID,
    billing_config_id: UUID,
    updated_by: Optional[UUID] = None,
) -> BillingConfigResponse:
    """Soft delete: status -> inactive. Existing obligations and payments are left untouched."""
    bc = await billing_service.get_billing_config(db, school_id, billing_config_id)
    bc.status = BillingConfigStatus.INACTIVE.value
    bc.updated_by = updated_by
    await db.commit()
    await db.refresh(bc)
    logger.info("Billing config deactivated", extra={"school_id": school_id, "billing_config_id": bc.id})
    return _bc_to_response(bc)
