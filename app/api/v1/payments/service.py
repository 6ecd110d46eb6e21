"""
Payments service: record, verify online, reverse.

A payment and its ledger mirror are written in one transaction. The eligibility
row of the (student, fee) pair is locked first so concurrent payments for the
same pair are serialized and the sum can never pass fee.amount.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees import service as fees_service
from app.api.v1.fees.audit import log_fee_audit
from app.api.v1.fees.balance import compute_balance, sum_payments, to_money
from app.api.v1.fees.schemas import FeeBalance
from app.api.v1.ledger import service as ledger_service
from app.auth.rbac import ensure_student_access
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import PaymentMethod
from app.core.exceptions import NotFoundError, ValidationError
from app.core.models import Fee, FeeEligibility, FeePayment, FeeType, Student, Tenant
from app.db.session import utcnow
from app.integrations.paystack import PaystackVerifier
from app.integrations.sms import HubtelSmsSender, format_sender_name, payment_confirmation_message

from .schemas import PaymentHistory, PaymentHistoryItem, PaymentReceipt, PaymentResponse

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")
DUPLICATE_WINDOW = timedelta(minutes=10)


def _payment_snapshot(payment: FeePayment) -> dict:
    return {
        "student_id": str(payment.student_id),
        "fee_id": str(payment.fee_id),
        "amount": str(to_money(payment.amount)),
        "payment_method": payment.payment_method,
        "reference": payment.reference,
        "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
    }


async def _lock_eligibility(db: AsyncSession, fee_id: UUID, student_id: UUID) -> FeeEligibility:
    eligibility = (
        await db.execute(
            select(FeeEligibility)
            .where(FeeEligibility.fee_id == fee_id, FeeEligibility.student_id == student_id)
            .with_for_update()
        )
    ).scalar_one_or_none()
    if not eligibility:
        raise NotFoundError("Student is not eligible for this fee")
    return eligibility


async def _send_receipt(
    db: AsyncSession,
    sms_sender: HubtelSmsSender,
    tenant_id: UUID,
    student: Student,
    fee: Fee,
    fee_name: str,
    paid_amount: Decimal,
    remaining: Decimal,
) -> bool:
    """Text the student and guardians. Never fails the payment; returns whether any SMS went out."""
    try:
        numbers = await fees_service.get_contact_numbers(db, student)
        if not numbers:
            logger.info("No phone number on file for student %s; skipping receipt", student.id)
            return False
        tenant = await db.get(Tenant, tenant_id)
        school_name = tenant.name if tenant else "School"
        message = payment_confirmation_message(
            student_name=student.full_name,
            paid_amount=paid_amount,
            fee_name=fee_name,
            school_name=school_name,
            remaining=remaining,
            total=to_money(fee.amount),
            currency=settings.currency,
        )
        sender = format_sender_name(school_name)
        sent = False
        for phone in numbers:
            result = await sms_sender.send(phone, message, sender=sender)
            if result.success:
                sent = True
            else:
                logger.warning("Payment receipt to %s not delivered: %s", phone, result.error)
        return sent
    except Exception:
        logger.exception("Failed to send payment receipt for student %s", student.id)
        return False


async def record_payment(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    fee_id: UUID,
    amount,
    *,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    reference: Optional[str] = None,
    paid_at: Optional[datetime] = None,
    recorded_by: Optional[str] = None,
    sms_sender: Optional[HubtelSmsSender] = None,
) -> PaymentReceipt:
    """
    Accept one payment against a (student, fee) pair.

    The amount must be positive and must not take the pair's total past the fee
    amount; an over-payment is refused outright, never clamped. Identical calls
    record identical payments.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    fee = await fees_service.get_fee_or_404(db, tenant_id, fee_id)
    student = await fees_service.get_student_or_404(db, tenant_id, student_id)
    fee_name = await fees_service.get_fee_type_name(db, fee)
    fee_amount = to_money(fee.amount)

    try:
        await _lock_eligibility(db, fee.id, student.id)
        already_paid = await sum_payments(db, student.id, fee.id)
        remaining = fee_amount - already_paid
        if amount > remaining:
            raise ValidationError(
                f"Payment of {amount} exceeds the outstanding balance of {remaining} for this fee"
            )

        payment = FeePayment(
            tenant_id=tenant_id,
            student_id=student.id,
            fee_id=fee.id,
            amount=amount,
            payment_method=payment_method.value,
            reference=reference,
            paid_at=paid_at or utcnow(),
            recorded_by=recorded_by,
        )
        db.add(payment)
        await db.flush()

        await ledger_service.record_fee_income(db, tenant_id, payment, student.full_name, fee_name)
        await log_fee_audit(
            db, tenant_id, "fee_payments", payment.id,
            "CREATE", None, _payment_snapshot(payment),
            recorded_by,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(payment)
    balance = compute_balance(fee_amount, [already_paid, amount])
    logger.info(
        "Recorded %s payment %s of %s for student %s on fee %s (remaining %s)",
        payment.payment_method, payment.id, amount, student.id, fee.id, balance.remaining,
    )

    sms_sent = False
    if sms_sender is not None:
        sms_sent = await _send_receipt(
            db, sms_sender, tenant_id, student, fee, fee_name, amount, balance.remaining
        )

    return PaymentReceipt(
        payment=PaymentResponse.model_validate(payment),
        balance=FeeBalance(
            student_id=student.id,
            fee_id=fee.id,
            fee_amount=fee_amount,
            total_paid=balance.total_paid,
            remaining=balance.remaining,
            is_paid=balance.is_paid,
            status=balance.status,
        ),
        sms_sent=sms_sent,
    )


async def verify_gateway_payment(
    db: AsyncSession,
    tenant_id: UUID,
    verifier: PaystackVerifier,
    reference: str,
    student_id: UUID,
    fee_id: UUID,
    amount,
    *,
    viewer: Optional[CurrentUser] = None,
    sms_sender: Optional[HubtelSmsSender] = None,
) -> PaymentReceipt:
    """Record a payment the gateway has captured, after confirming it with the gateway."""
    claimed = to_money(amount)
    reference = reference.strip()
    student = await fees_service.get_student_or_404(db, tenant_id, student_id)
    if viewer is not None:
        await ensure_student_access(db, viewer, student)

    verification = await verifier.verify_transaction(reference)
    if not verification.is_successful:
        raise ValidationError(f"Payment was not successful (status: {verification.status})")
    if abs(verification.amount - claimed) > AMOUNT_TOLERANCE:
        logger.warning(
            "Gateway amount mismatch for %s: gateway %s, claimed %s",
            reference, verification.amount, claimed,
        )
        raise ValidationError("Payment amount does not match the amount captured by the gateway")

    same_reference = (
        await db.execute(
            select(FeePayment.id).where(
                FeePayment.tenant_id == tenant_id,
                FeePayment.reference == reference,
                FeePayment.payment_method == PaymentMethod.PAYSTACK.value,
            )
        )
    ).first()
    if same_reference:
        raise ValidationError("Payment already recorded")

    # Heuristic only: a client retrying right after a success is the common double-submit.
    recent = (
        await db.execute(
            select(FeePayment.id).where(
                FeePayment.student_id == student.id,
                FeePayment.fee_id == fee_id,
                FeePayment.amount == claimed,
                FeePayment.paid_at >= utcnow() - DUPLICATE_WINDOW,
            )
        )
    ).first()
    if recent:
        raise ValidationError("Payment already recorded")

    return await record_payment(
        db,
        tenant_id,
        student.id,
        fee_id,
        claimed,
        payment_method=PaymentMethod.PAYSTACK,
        reference=reference,
        recorded_by=viewer.id if viewer else None,
        sms_sender=sms_sender,
    )


async def get_payment(db: AsyncSession, tenant_id: UUID, payment_id: UUID) -> FeePayment:
    payment = (
        await db.execute(
            select(FeePayment).where(FeePayment.id == payment_id, FeePayment.tenant_id == tenant_id)
        )
    ).scalar_one_or_none()
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


async def reverse_payment(
    db: AsyncSession,
    tenant_id: UUID,
    payment_id: UUID,
    changed_by: Optional[str] = None,
) -> None:
    """Remove a payment. Its ledger mirror stays; the audit log keeps the removed values."""
    payment = await get_payment(db, tenant_id, payment_id)
    amount = to_money(payment.amount)
    try:
        await log_fee_audit(
            db, tenant_id, "fee_payments", payment.id,
            "DELETE", _payment_snapshot(payment), None,
            changed_by,
        )
        await db.delete(payment)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Reversed payment %s of %s by %s", payment_id, amount, changed_by)


async def get_payment_history(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    viewer: Optional[CurrentUser] = None,
) -> PaymentHistory:
    student = await fees_service.get_student_or_404(db, tenant_id, student_id)
    if viewer is not None:
        await ensure_student_access(db, viewer, student)
    rows = (
        await db.execute(
            select(FeePayment, FeeType.name)
            .join(Fee, FeePayment.fee_id == Fee.id)
            .join(FeeType, Fee.fee_type_id == FeeType.id)
            .where(FeePayment.tenant_id == tenant_id, FeePayment.student_id == student.id)
            .order_by(FeePayment.paid_at.desc())
        )
    ).all()
    items: List[PaymentHistoryItem] = []
    for payment, fee_type_name in rows:
        item = PaymentHistoryItem.model_validate(payment)
        item.fee_type_name = fee_type_name
        items.append(item)
    return PaymentHistory(
        student_id=student.id,
        payments=items,
        total_paid=sum((to_money(i.amount) for i in items), Decimal("0.00")),
    )
