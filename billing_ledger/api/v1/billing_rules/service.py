"""Billing rules service: per-school late-fee, early-discount and cutoff rules, and their plain-text summaries."""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.core.enums import BillingRuleScope, BillingRuleStatus, BillingRuleType, FeeValueType
from billing_ledger.core.exceptions import NotFoundError, ServiceError
from billing_ledger.core.logging_config import get_logger
from billing_ledger.core.models import BillingConfig, BillingRule
from billing_ledger.core.services import ensure_cents, to_decimal, to_uuid

from .schemas import BillingRuleCreate, BillingRuleDeleted, BillingRuleResponse, BillingRuleUpdate

logger = get_logger("billing_rules")

WINDOW_FIELDS = ("fee_type", "fee_value", "start_day", "end_day")
RULE_FIELDS = (
    "name",
    "description",
    "type",
    "scope",
    "status",
    "fee_type",
    "fee_value",
    "start_day",
    "end_day",
    "max_uses",
    "used_count",
    "cutoff_after_days",
)
# Explicit null on these means "leave as is"; the rest can be cleared.
NON_NULLABLE_FIELDS = ("name", "type", "scope", "status")


def _format_value(value: Decimal) -> str:
    return format(value.normalize(), "f")


def describe_rule(rule: BillingRule) -> str:
    """Human-readable summary of what the rule means for a student."""
    fee_type = rule.fee_type
    has_window = (
        fee_type is not None and rule.fee_value is not None and rule.start_day is not None and rule.end_day is not None
    )
    if has_window:
        value = _format_value(to_decimal(rule.fee_value))
        value_text = f"{value}%" if fee_type == FeeValueType.PERCENTAGE.value else f"${value}"
        kind = "percentage" if fee_type == FeeValueType.PERCENTAGE.value else "fixed amount"

    if rule.type == BillingRuleType.LATE_FEE.value:
        if has_window:
            text = (
                f"Late payment fee from day {rule.start_day} after the due date until day {rule.end_day}, "
                f"applying a {kind} of {value_text}. Example: a student who does not pay on time is charged "
                f"{value_text} for each day late between day {rule.start_day} and day {rule.end_day}, "
                f"or until the payment is made."
            )
        else:
            text = "Late payment fee"
    elif rule.type == BillingRuleType.EARLY_DISCOUNT.value:
        if has_window:
            text = (
                f"Early payment discount from day {rule.start_day} until day {rule.end_day}, "
                f"with a {kind} of {value_text}. Example: a student who pays early receives a discount of "
                f"{value_text} between days {rule.start_day} and {rule.end_day}."
            )
        else:
            text = "Early payment discount"
    elif rule.cutoff_after_days is not None:
        text = (
            f"Service or access cutoff after {rule.cutoff_after_days} days overdue. Example: a student with "
            f"payments pending for more than {rule.cutoff_after_days} days loses access to school services."
        )
    else:
        text = "Suspension for non-payment"

    if rule.scope and rule.scope != BillingRuleScope.ALL_STUDENTS.value:
        text += f" Applies to {rule.scope} students."
    return text


def _rule_to_response(rule: BillingRule) -> BillingRuleResponse:
    return BillingRuleResponse(
        id=to_uuid(rule.id),
        school_id=to_uuid(rule.school_id),
        name=rule.name,
        description=rule.description,
        summary=describe_rule(rule),
        type=rule.type,
        scope=rule.scope,
        status=rule.status,
        fee_type=rule.fee_type,
        fee_value=to_decimal(rule.fee_value) if rule.fee_value is not None else None,
        start_day=rule.start_day,
        end_day=rule.end_day,
        max_uses=rule.max_uses,
        used_count=rule.used_count,
        cutoff_after_days=rule.cutoff_after_days,
        created_by=to_uuid(rule.created_by),
        updated_by=to_uuid(rule.updated_by),
        created_at=rule.created_at,
        updated_at=rule.updated_at,
    )


def _unprocessable(message: str) -> ServiceError:
    return ServiceError(message, status.HTTP_422_UNPROCESSABLE_ENTITY)


def _normalize_rule_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check the fields required by the rule type and null out the ones it does not use.
    Enum members are stored by value.
    """
    fields = {k: (v.value if isinstance(v, Enum) else v) for k, v in fields.items()}
    rule_type = fields["type"]
    if rule_type == BillingRuleType.CUTOFF.value:
        if not fields.get("cutoff_after_days"):
            raise _unprocessable("cutoff_after_days is required for cutoff rules")
        for key in WINDOW_FIELDS:
            fields[key] = None
        return fields

    for key in WINDOW_FIELDS:
        if fields.get(key) is None:
            raise _unprocessable(f"{key} is required for {rule_type} rules")
    fee_value = ensure_cents(to_decimal(fields["fee_value"]))
    if fee_value < 1:
        raise _unprocessable("fee_value must be at least 1")
    if fields["fee_type"] == FeeValueType.PERCENTAGE.value and fee_value > 100:
        raise _unprocessable("A percentage fee_value cannot exceed 100")
    if fields["start_day"] > fields["end_day"]:
        raise _unprocessable("start_day must be on or before end_day")
    fields["fee_value"] = fee_value
    fields["cutoff_after_days"] = None
    return fields


async def _name_taken(db: AsyncSession, school_id: UUID, name: str, exclude_id: Optional[UUID] = None) -> bool:
    stmt = select(BillingRule.id).where(BillingRule.school_id == school_id, BillingRule.name == name)
    if exclude_id is not None:
        stmt = stmt.where(BillingRule.id != exclude_id)
    return (await db.execute(stmt)).first() is not None


async def _get_rule(db: AsyncSession, school_id: UUID, billing_rule_id: UUID) -> BillingRule:
    rule = await db.get(BillingRule, billing_rule_id)
    if not rule or rule.school_id != school_id:
        raise NotFoundError("Billing rule not found")
    return rule


async def _commit_rule(db: AsyncSession, rule: BillingRule) -> None:
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("A billing rule with this name already exists in this school", status.HTTP_409_CONFLICT)
    await db.refresh(rule)


async def create_billing_rule(
    db: AsyncSession,
    school_id: UUID,
    payload: BillingRuleCreate,
    created_by: Optional[UUID] = None,
) -> BillingRuleResponse:
    fields = _normalize_rule_fields(payload.model_dump())
    if await _name_taken(db, school_id, fields["name"]):
        raise ServiceError("A billing rule with this name already exists in this school", status.HTTP_409_CONFLICT)

    rule = BillingRule(school_id=school_id, created_by=created_by, updated_by=created_by, **fields)
    db.add(rule)
    await _commit_rule(db, rule)
    logger.info(
        "Billing rule created",
        extra={"school_id": school_id, "billing_rule_id": rule.id, "rule_type": rule.type},
    )
    return _rule_to_response(rule)


async def list_billing_rules(db: AsyncSession, school_id: UUID, active_only: bool = False) -> List[BillingRuleResponse]:
    stmt = select(BillingRule).where(BillingRule.school_id == school_id)
    if active_only:
        stmt = stmt.where(BillingRule.status == BillingRuleStatus.ACTIVE.value)
    result = await db.execute(stmt.order_by(BillingRule.name))
    return [_rule_to_response(r) for r in result.scalars().all()]


async def get_billing_rule(db: AsyncSession, school_id: UUID, billing_rule_id: UUID) -> BillingRuleResponse:
    return _rule_to_response(await _get_rule(db, school_id, billing_rule_id))


async def update_billing_rule(
    db: AsyncSession,
    school_id: UUID,
    billing_rule_id: UUID,
    payload: BillingRuleUpdate,
    updated_by: Optional[UUID] = None,
) -> BillingRuleResponse:
    """Partial update; type-specific requirements are checked against the merged values."""
    rule = await _get_rule(db, school_id, billing_rule_id)
    data = payload.model_dump(exclude_unset=True)
    for key in NON_NULLABLE_FIELDS:
        if key in data and data[key] is None:
            del data[key]

    merged = {key: getattr(rule, key) for key in RULE_FIELDS}
    merged.update(data)
    fields = _normalize_rule_fields(merged)
    if "name" in data and await _name_taken(db, school_id, fields["name"], exclude_id=rule.id):
        raise ServiceError("A billing rule with this name already exists in this school", status.HTTP_409_CONFLICT)

    for key, value in fields.items():
        setattr(rule, key, value)
    rule.updated_by = updated_by
    await _commit_rule(db, rule)
    logger.info(
        "Billing rule updated",
        extra={"school_id": school_id, "billing_rule_id": rule.id, "fields": sorted(data)},
    )
    return _rule_to_response(rule)


async def delete_billing_rule(db: AsyncSession, school_id: UUID, billing_rule_id: UUID) -> BillingRuleDeleted:
    """Hard delete. The rule id is removed from every config of the school in the same transaction."""
    rule = await _get_rule(db, school_id, billing_rule_id)
    rule_key = str(rule.id)

    result = await db.execute(select(BillingConfig).where(BillingConfig.school_id == school_id))
    detached = 0
    for bc in result.scalars().all():
        if rule_key in (bc.rule_ids or []):
            bc.rule_ids = [r for r in bc.rule_ids if r != rule_key]
            detached += 1

    await db.delete(rule)
    await db.commit()
    logger.info(
        "Billing rule deleted",
        extra={"school_id": school_id, "billing_rule_id": rule_key, "detached_from_configs": detached},
    )
    return BillingRuleDeleted(message="Billing rule deleted", detached_from_configs=detached)


async def resolve_rule_ids(db: AsyncSession, school_id: UUID, rule_ids: Iterable[UUID]) -> List[str]:
    """Validate that every rule belongs to the school; returns de-duplicated ids as strings, in order."""
    unique: List[UUID] = []
    for rid in rule_ids:
        rid = to_uuid(rid)
        if rid not in unique:
            unique.append(rid)
    if not unique:
        return []
    result = await db.execute(
        select(BillingRule.id).where(BillingRule.school_id == school_id, BillingRule.id.in_(unique))
    )
    found = {to_uuid(r) for r in result.scalars().all()}
    missing = [rid for rid in unique if rid not in found]
    if missing:
        raise NotFoundError(f"Billing rule not found: {missing[0]}")
    return [str(rid) for rid in unique]
