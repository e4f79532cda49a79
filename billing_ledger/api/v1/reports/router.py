"""Reports router: student statements and policy collection stats."""

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

from .schemas import ConfigCollectionStats, StudentStatement
from . import service

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.get(
    "/students",
    response_model=List[StudentStatement],
    dependencies=[Depends(check_permission("reports", "read"))],
)
async def list_student_statements(
    school_cycle_id: Optional[UUID] = Query(None, description="Defaults to the school's active cycle"),
    as_of: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[StudentStatement]:
    return await service.list_student_statements(
        db, current_user.school_id, school_cycle_id=school_cycle_id, today=as_of
    )


@router.get(
    "/students/{student_id}/statement",
    response_model=StudentStatement,
    dependencies=[Depends(check_permission("reports", "read"))],
)
async def get_student_statement(
    student_id: UUID,
    as_of: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentStatement:
    try:
        return await service.get_student_statement(db, current_user.school_id, student_id, today=as_of)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/configs/{billing_config_id}/collection",
    response_model=ConfigCollectionStats,
    dependencies=[Depends(check_permission("reports", "read"))],
)
async def get_config_collection(
    billing_config_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ConfigCollectionStats:
    try:
        return await service.get_config_collection_stats(db, current_user.school_id, billing_config_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
