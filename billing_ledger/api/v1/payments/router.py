"""Payments router: processor confirmations, manual payments, invoices, history and stats."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from billing_ledger.auth.dependencies import get_current_user
from billing_ledger.auth.rbac import check_permission
from billing_ledger.auth.schemas import CurrentUser
from billing_ledger.core.exceptions import ServiceError
from billing_ledger.db.session import get_db

from .schemas import (
    InvoiceAttach,
    ManualPaymentCreate,
    PaymentConfirm,
    PaymentHistoryItem,
    PaymentResponse,
    PaymentStats,
    SettlementResult,
)
from . import service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post(
    "/confirm",
    response_model=SettlementResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("payments", "create"))],
)
async def confirm_payment(
    payload: PaymentConfirm,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SettlementResult:
    """Apply a confirmed processor payment. A replayed confirmation answers 200 and changes nothing."""
    try:
        result = await service.settle_payment(db, current_user.school_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if result.already_processed:
        response.status_code = status.HTTP_200_OK
    return result


@router.post(
    "/manual/{billing_record_id}",
    response_model=SettlementResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("payments", "create"))],
)
async def create_manual_payment(
    billing_record_id: UUID,
    payload: ManualPaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SettlementResult:
    try:
        return await service.process_manual_payment(
            db, current_user.school_id, billing_record_id, payload, created_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{payment_id}/invoice",
    response_model=PaymentResponse,
    dependencies=[Depends(check_permission("payments", "update"))],
)
async def attach_invoice(
    payment_id: UUID,
    payload: InvoiceAttach,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        return await service.attach_invoice(db, current_user.school_id, payment_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/history",
    response_model=List[PaymentHistoryItem],
    dependencies=[Depends(check_permission("payments", "read"))],
)
async def payment_history(
    school_cycle_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[PaymentHistoryItem]:
    return await service.get_payment_history(db, current_user.school_id, school_cycle_id=school_cycle_id)


@router.get(
    "/stats",
    response_model=PaymentStats,
    dependencies=[Depends(check_permission("payments", "read"))],
)
async def payment_stats(
    school_cycle_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentStats:
    return await service.get_payment_stats(db, current_user.school_id, school_cycle_id=school_cycle_id)


@router.get(
    "/billing/{billing_record_id}",
    response_model=List[PaymentResponse],
    dependencies=[Depends(check_permission("payments", "read"))],
)
async def list_billing_payments(
    billing_record_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[PaymentResponse]:
    try:
        return await service.list_payments_by_billing(db, current_user.school_id, billing_record_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
