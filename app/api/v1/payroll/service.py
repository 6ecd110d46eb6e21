"""Payroll service: teacher salary payments and their ledger expense entries."""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.ledger import service as ledger_service
from app.auth.rbac import sees_all_payroll
from app.auth.schemas import CurrentUser
from app.core.enums import SalaryPaymentStatus
from app.core.exceptions import ConflictError, NotFoundError
from app.core.models import SalaryPayment, Teacher
from app.db.session import utcnow

from .schemas import SalaryPaymentCreate, SalaryPaymentResponse

logger = logging.getLogger(__name__)


def _to_response(sp: SalaryPayment, teacher_name: Optional[str]) -> SalaryPaymentResponse:
    resp = SalaryPaymentResponse.model_validate(sp)
    resp.teacher_name = teacher_name
    return resp


async def _get_salary_payment(db: AsyncSession, tenant_id: UUID, salary_payment_id: UUID, lock: bool = False) -> SalaryPayment:
    stmt = select(SalaryPayment).where(
        SalaryPayment.id == salary_payment_id,
        SalaryPayment.tenant_id == tenant_id,
    )
    if lock:
        stmt = stmt.with_for_update()
    sp = (await db.execute(stmt)).scalar_one_or_none()
    if not sp:
        raise NotFoundError("Salary payment not found")
    return sp


async def create_salary_payment(
    db: AsyncSession,
    tenant_id: UUID,
    payload: SalaryPaymentCreate,
) -> SalaryPaymentResponse:
    teacher = await db.get(Teacher, payload.teacher_id)
    if not teacher or teacher.tenant_id != tenant_id:
        raise NotFoundError("Teacher not found")
    sp = SalaryPayment(
        tenant_id=tenant_id,
        teacher_id=teacher.id,
        amount=payload.amount,
        pay_period_start=payload.pay_period_start,
        pay_period_end=payload.pay_period_end,
        due_date=payload.due_date,
        status=SalaryPaymentStatus.PENDING.value,
    )
    db.add(sp)
    await db.commit()
    await db.refresh(sp)
    return _to_response(sp, teacher.full_name)


async def mark_salary_paid(
    db: AsyncSession,
    tenant_id: UUID,
    salary_payment_id: UUID,
) -> SalaryPaymentResponse:
    """Mark as paid and post the expense to the ledger in the same transaction."""
    try:
        sp = await _get_salary_payment(db, tenant_id, salary_payment_id, lock=True)
        if sp.status == SalaryPaymentStatus.PAID.value:
            raise ConflictError("Salary payment is already marked as paid")
        teacher = await db.get(Teacher, sp.teacher_id)
        teacher_name = teacher.full_name if teacher else "Teacher"
        sp.status = SalaryPaymentStatus.PAID.value
        sp.paid_at = utcnow()
        await db.flush()
        await ledger_service.record_salary_expense(db, tenant_id, sp, teacher_name)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(sp)
    logger.info("Salary payment %s marked paid (%s)", sp.id, sp.amount)
    return _to_response(sp, teacher_name)


async def delete_salary_payment(db: AsyncSession, tenant_id: UUID, salary_payment_id: UUID) -> None:
    sp = await _get_salary_payment(db, tenant_id, salary_payment_id)
    if sp.status == SalaryPaymentStatus.PAID.value:
        raise ConflictError("Cannot delete a salary payment that has been paid")
    await db.delete(sp)
    await db.commit()


async def list_salary_payments(
    db: AsyncSession,
    tenant_id: UUID,
    viewer: CurrentUser,
    status: Optional[SalaryPaymentStatus] = None,
    teacher_id: Optional[UUID] = None,
) -> List[SalaryPaymentResponse]:
    stmt = (
        select(SalaryPayment, Teacher)
        .join(Teacher, SalaryPayment.teacher_id == Teacher.id)
        .where(SalaryPayment.tenant_id == tenant_id)
    )
    if not sees_all_payroll(viewer):
        stmt = stmt.where(Teacher.user_id == viewer.id)
    if status is not None:
        stmt = stmt.where(SalaryPayment.status == status.value)
    if teacher_id is not None:
        stmt = stmt.where(SalaryPayment.teacher_id == teacher_id)
    stmt = stmt.order_by(SalaryPayment.due_date.desc())
    result = await db.execute(stmt)
    return [_to_response(sp, t.full_name) for sp, t in result.all()]


async def mark_overdue_salary_payments(
    db: AsyncSession,
    today: date,
    tenant_id: Optional[UUID] = None,
) -> int:
    """Sweep: PENDING salary payments past their due date become OVERDUE."""
    stmt = (
        update(SalaryPayment)
        .where(
            SalaryPayment.status == SalaryPaymentStatus.PENDING.value,
            SalaryPayment.due_date < today,
        )
        .values(status=SalaryPaymentStatus.OVERDUE.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if tenant_id is not None:
        stmt = stmt.where(SalaryPayment.tenant_id == tenant_id)
    result = await db.execute(stmt)
    await db.commit()
    count = result.rowcount or 0
    if count:
        logger.info("Marked %d salary payments overdue", count)
    return count
