"""Payroll router: salary payments for teachers."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import Capability, require_capability
from app.auth.schemas import CurrentUser
from app.core.enums import SalaryPaymentStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import OverdueSweepResult, SalaryPaymentCreate, SalaryPaymentResponse
from . import service

router = APIRouter(prefix="/api/v1/payroll", tags=["payroll"])


@router.post(
    "/salary-payments",
    response_model=SalaryPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Capability.PAYROLL_MANAGE))],
)
async def create_salary_payment(
    payload: SalaryPaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SalaryPaymentResponse:
    try:
        return await service.create_salary_payment(db, current_user.tenant_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/salary-payments",
    response_model=List[SalaryPaymentResponse],
    dependencies=[Depends(require_capability(Capability.PAYROLL_READ))],
)
async def list_salary_payments(
    status_filter: Optional[SalaryPaymentStatus] = Query(None, alias="status"),
    teacher_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[SalaryPaymentResponse]:
    return await service.list_salary_payments(
        db,
        current_user.tenant_id,
        current_user,
        status=status_filter,
        teacher_id=teacher_id,
    )


@router.post(
    "/salary-payments/{salary_payment_id}/pay",
    response_model=SalaryPaymentResponse,
    dependencies=[Depends(require_capability(Capability.PAYROLL_MANAGE))],
)
async def mark_salary_paid(
    salary_payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SalaryPaymentResponse:
    try:
        return await service.mark_salary_paid(db, current_user.tenant_id, salary_payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/salary-payments/{salary_payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_capability(Capability.PAYROLL_MANAGE))],
)
async def delete_salary_payment(
    salary_payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.delete_salary_payment(db, current_user.tenant_id, salary_payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/salary-payments/mark-overdue",
    response_model=OverdueSweepResult,
    dependencies=[Depends(require_capability(Capability.PAYROLL_MANAGE))],
)
async def mark_overdue(
    today: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> OverdueSweepResult:
    count = await service.mark_overdue_salary_payments(
        db, today or date.today(), tenant_id=current_user.tenant_id
    )
    return OverdueSweepResult(marked_overdue=count)
