"""Billing router: generate obligations, sweep overdue, list obligations."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.auth.dependencies import get_current_user
from billing_ledger.auth.rbac import check_permission
from billing_ledger.auth.schemas import CurrentUser
from billing_ledger.core.exceptions import ServiceError
from billing_ledger.db.session import get_db

from .schemas import BillingRecordWithConfig, BillingRecordWithStudent, GenerationResult, SweepResult
from . import service

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


@router.post(
    "/generate/{billing_config_id}",
    response_model=GenerationResult,
    dependencies=[Depends(check_permission("billing", "create"))],
)
async def generate_billings(
    billing_config_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> GenerationResult:
    try:
        return await service.generate_billings_for_config(db, current_user.school_id, billing_config_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/sweep/{billing_config_id}",
    response_model=SweepResult,
    dependencies=[Depends(check_permission("billing", "update"))],
)
async def sweep_overdue(
    billing_config_id: UUID,
    as_of: Optional[date] = Query(None, description="Evaluate the sweep as of this date (defaults to today)"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SweepResult:
    try:
        return await service.sweep_overdue(db, current_user.school_id, billing_config_id, today=as_of)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/student/{student_id}",
    response_model=List[BillingRecordWithConfig],
    dependencies=[Depends(check_permission("billing", "read"))],
)
async def list_student_billings(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[BillingRecordWithConfig]:
    return await service.list_billing_records_by_student(db, current_user.school_id, student_id)


@router.get(
    "/config/{billing_config_id}",
    response_model=List[BillingRecordWithStudent],
    dependencies=[Depends(check_permission("billing", "read"))],
)
async def list_config_billings(
    billing_config_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[BillingRecordWithStudent]:
    try:
        return await service.list_billing_records_by_config(db, current_user.school_id, billing_config_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
