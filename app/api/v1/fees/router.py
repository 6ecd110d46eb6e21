"""Fees router: fee definitions, eligibility, balances, fee report."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import Capability, require_capability
from app.auth.schemas import CurrentUser
from app.core.enums import FeeStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    EligibilityAddRequest,
    EligibilityAddResponse,
    FeeBalance,
    FeeCreate,
    FeeReportItem,
    FeeResponse,
    FeeUpdate,
    StudentFeeSummary,
    StudentSummary,
)
from . import service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# --- Fee definition ---
@router.post(
    "",
    response_model=FeeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Capability.FEES_MANAGE))],
)
async def create_fee(
    payload: FeeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeResponse:
    try:
        return await service.create_fee(db, current_user.tenant_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[FeeResponse],
    dependencies=[Depends(require_capability(Capability.FEES_READ))],
)
async def list_fees(
    class_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[FeeResponse]:
    return await service.list_fees(db, current_user.tenant_id, class_id=class_id)


@router.get(
    "/students/{student_id}/summary",
    response_model=StudentFeeSummary,
    dependencies=[Depends(require_capability(Capability.FEES_READ))],
)
async def get_student_fee_summary(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentFeeSummary:
    try:
        return await service.get_student_fee_summary(
            db, current_user.tenant_id, student_id, viewer=current_user
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{fee_id}",
    response_model=FeeResponse,
    dependencies=[Depends(require_capability(Capability.FEES_READ))],
)
async def get_fee(
    fee_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeResponse:
    try:
        return await service.get_fee(db, current_user.tenant_id, fee_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{fee_id}",
    response_model=FeeResponse,
    dependencies=[Depends(require_capability(Capability.FEES_MANAGE))],
)
async def update_fee(
    fee_id: UUID,
    payload: FeeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeResponse:
    try:
        return await service.update_fee(
            db, current_user.tenant_id, fee_id, payload, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{fee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_capability(Capability.FEES_MANAGE))],
)
async def delete_fee(
    fee_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.delete_fee(db, current_user.tenant_id, fee_id, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Eligibility ---
@router.get(
    "/{fee_id}/students",
    response_model=List[FeeReportItem],
    dependencies=[Depends(require_capability(Capability.FEES_MANAGE))],
)
async def get_fee_report(
    fee_id: UUID,
    status_filter: Optional[FeeStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[FeeReportItem]:
    try:
        return await service.get_fee_report(
            db,
            current_user.tenant_id,
            fee_id,
            status_filter=status_filter.value if status_filter else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{fee_id}/available-students",
    response_model=List[StudentSummary],
    dependencies=[Depends(require_capability(Capability.FEES_MANAGE))],
)
async def list_available_students(
    fee_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[StudentSummary]:
    try:
        return await service.list_available_students(db, current_user.tenant_id, fee_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{fee_id}/eligibility",
    response_model=EligibilityAddResponse,
    dependencies=[Depends(require_capability(Capability.FEES_MANAGE))],
)
async def add_eligibility(
    fee_id: UUID,
    payload: EligibilityAddRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EligibilityAddResponse:
    try:
        added = await service.add_eligibility(
            db, current_user.tenant_id, fee_id, payload.student_ids, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return EligibilityAddResponse(added=added, message=f"{added} student(s) added to fee")


@router.delete(
    "/{fee_id}/eligibility/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_capability(Capability.FEES_MANAGE))],
)
async def remove_eligibility(
    fee_id: UUID,
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.remove_eligibility(
            db, current_user.tenant_id, fee_id, student_id, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Balance ---
@router.get(
    "/{fee_id}/balance/{student_id}",
    response_model=FeeBalance,
    dependencies=[Depends(require_capability(Capability.FEES_READ))],
)
async def get_balance(
    fee_id: UUID,
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeBalance:
    try:
        return await service.get_balance(
            db, current_user.tenant_id, student_id, fee_id, viewer=current_user
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Optional fees ---
@router.post(
    "/{fee_id}/opt-in/{student_id}",
    response_model=FeeBalance,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Capability.FEES_OPT_IN))],
)
async def opt_in(
    fee_id: UUID,
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeBalance:
    try:
        return await service.opt_in(db, current_user.tenant_id, fee_id, student_id, viewer=current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{fee_id}/opt-in/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_capability(Capability.FEES_OPT_IN))],
)
async def opt_out(
    fee_id: UUID,
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.opt_out(db, current_user.tenant_id, fee_id, student_id, viewer=current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
