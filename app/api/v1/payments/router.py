"""Payments router: manual payments, gateway verification, reversal, history."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import Capability, require_capability
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db
from app.integrations.paystack import PaystackVerifier, get_payment_verifier
from app.integrations.sms import HubtelSmsSender, get_sms_sender

from .schemas import (
    GatewayPaymentVerify,
    PaymentCreate,
    PaymentHistory,
    PaymentReceipt,
    PaymentResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentReceipt,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Capability.PAYMENTS_RECORD))],
)
async def record_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    sms_sender: HubtelSmsSender = Depends(get_sms_sender),
) -> PaymentReceipt:
    try:
        return await service.record_payment(
            db,
            current_user.tenant_id,
            payload.student_id,
            payload.fee_id,
            payload.amount,
            payment_method=payload.payment_method,
            reference=payload.reference,
            paid_at=payload.paid_at,
            recorded_by=current_user.id,
            sms_sender=sms_sender,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/verify",
    response_model=PaymentReceipt,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Capability.PAYMENTS_PAY_ONLINE))],
)
async def verify_gateway_payment(
    payload: GatewayPaymentVerify,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    verifier: PaystackVerifier = Depends(get_payment_verifier),
    sms_sender: HubtelSmsSender = Depends(get_sms_sender),
) -> PaymentReceipt:
    try:
        return await service.verify_gateway_payment(
            db,
            current_user.tenant_id,
            verifier,
            payload.reference,
            payload.student_id,
            payload.fee_id,
            payload.amount,
            viewer=current_user,
            sms_sender=sms_sender,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/students/{student_id}/history",
    response_model=PaymentHistory,
    dependencies=[Depends(require_capability(Capability.FEES_READ))],
)
async def get_payment_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentHistory:
    try:
        return await service.get_payment_history(
            db, current_user.tenant_id, student_id, viewer=current_user
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    dependencies=[Depends(require_capability(Capability.PAYMENTS_RECORD))],
)
async def get_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        payment = await service.get_payment(db, current_user.tenant_id, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return PaymentResponse.model_validate(payment)


@router.delete(
    "/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_capability(Capability.PAYMENTS_REVERSE))],
)
async def reverse_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.reverse_payment(db, current_user.tenant_id, payment_id, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
