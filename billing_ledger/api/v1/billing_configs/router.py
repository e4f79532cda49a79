"""Billing configs router: policy CRUD. Create and update also generate obligations."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.auth.dependencies import get_current_user
from billing_ledger.auth.rbac import check_permission
from billing_ledger.auth.schemas import CurrentUser
from billing_ledger.core.exceptions import ServiceError
from billing_ledger.db.session import get_db

from .schemas import (
    BillingConfigCreate,
    BillingConfigResponse,
    BillingConfigUpdate,
    BillingConfigWithGeneration,
)
from . import service

router = APIRouter(prefix="/api/v1/billing-configs", tags=["billing-configs"])


@router.post(
    "",
    response_model=BillingConfigWithGeneration,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("billing", "create"))],
)
async def create_billing_config(
    payload: BillingConfigCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BillingConfigWithGeneration:
    try:
        return await service.create_billing_config(
            db, current_user.school_id, payload, created_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[BillingConfigResponse],
    dependencies=[Depends(check_permission("billing", "read"))],
)
async def list_billing_configs(
    school_cycle_id: Optional[UUID] = Query(None),
    include_inactive: bool = Query(False, description="Include soft-deleted (inactive) configs"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[BillingConfigResponse]:
    return await service.list_billing_configs(
        db,
        current_user.school_id,
        school_cycle_id=school_cycle_id,
        include_inactive=include_inactive,
    )


@router.get(
    "/{billing_config_id}",
    response_model=BillingConfigResponse,
    dependencies=[Depends(check_permission("billing", "read"))],
)
async def get_billing_config(
    billing_config_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BillingConfigResponse:
    try:
        return await service.get_billing_config(db, current_user.school_id, billing_config_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{billing_config_id}",
    response_model=BillingConfigWithGeneration,
    dependencies=[Depends(check_permission("billing", "update"))],
)
async def update_billing_config(
    billing_config_id: UUID,
    payload: BillingConfigUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BillingConfigWithGeneration:
    try:
        return await service.update_billing_config(
            db, current_user.school_id, billing_config_id, payload, updated_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{billing_config_id}",
    response_model=BillingConfigResponse,
    dependencies=[Depends(check_permission("billing", "delete"))],
)
async def deactivate_billing_config(
    billing_config_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BillingConfigResponse:
    try:
        return await service.deactivate_billing_config(
            db, current_user.school_id, billing_config_id, updated_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
