"""Billing rules router: CRUD for late-fee, early-discount and cutoff rules."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.auth.dependencies import get_current_user
from billing_ledger.auth.rbac import check_permission
from billing_ledger.auth.schemas import CurrentUser
from billing_ledger.core.exceptions import ServiceError
from billing_ledger.db.session import get_db

from .schemas import BillingRuleCreate, BillingRuleDeleted, BillingRuleResponse, BillingRuleUpdate
from . import service

router = APIRouter(prefix="/api/v1/billing-rules", tags=["billing-rules"])


@router.post(
    "",
    response_model=BillingRuleResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("billing", "create"))],
)
async def create_billing_rule(
    payload: BillingRuleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BillingRuleResponse:
    try:
        return await service.create_billing_rule(db, current_user.school_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[BillingRuleResponse],
    dependencies=[Depends(check_permission("billing", "read"))],
)
async def list_billing_rules(
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[BillingRuleResponse]:
    return await service.list_billing_rules(db, current_user.school_id, active_only=active_only)


@router.get(
    "/{billing_rule_id}",
    response_model=BillingRuleResponse,
    dependencies=[Depends(check_permission("billing", "read"))],
)
async def get_billing_rule(
    billing_rule_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BillingRuleResponse:
    try:
        return await service.get_billing_rule(db, current_user.school_id, billing_rule_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{billing_rule_id}",
    response_model=BillingRuleResponse,
    dependencies=[Depends(check_permission("billing", "update"))],
)
async def update_billing_rule(
    billing_rule_id: UUID,
    payload: BillingRuleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BillingRuleResponse:
    try:
        return await service.update_billing_rule(
            db, current_user.school_id, billing_rule_id, payload, updated_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{billing_rule_id}",
    response_model=BillingRuleDeleted,
    dependencies=[Depends(check_permission("billing", "delete"))],
)
async def delete_billing_rule(
    billing_rule_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BillingRuleDeleted:
    try:
        return await service.delete_billing_rule(db, current_user.school_id, billing_rule_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
