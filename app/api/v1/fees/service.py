"""Fees service: fee definitions, eligibility snapshots, balances and fee reports."""

import logging
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import ensure_student_access
from app.auth.schemas import CurrentUser
from app.core.enums import FeeScope
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.models import (
    Fee,
    FeeEligibility,
    FeePayment,
    FeeType,
    Parent,
    ParentStudent,
    SchoolClass,
    Student,
)
from app.integrations.sms import collect_phone_numbers

from .audit import log_fee_audit
from .balance import compute_balance, sum_payments, sum_payments_by_student, to_money
from .schemas import (
    FeeBalance,
    FeeCreate,
    FeeReportItem,
    FeeResponse,
    FeeUpdate,
    StudentFeeSummary,
    StudentFeeSummaryItem,
    StudentSummary,
)

logger = logging.getLogger(__name__)


def _fee_to_response(fee: Fee, fee_type_name: Optional[str], eligible_count: int) -> FeeResponse:
    return FeeResponse(
        id=fee.id,
        tenant_id=fee.tenant_id,
        fee_type_id=fee.fee_type_id,
        fee_type_name=fee_type_name,
        scope=fee.scope,
        class_id=fee.class_id,
        amount=to_money(fee.amount),
        due_date=fee.due_date,
        is_optional=fee.is_optional,
        eligible_count=eligible_count,
        created_at=fee.created_at,
        updated_at=fee.updated_at,
    )


# --- Lookups shared with payments and reminders ---
async def get_fee_or_404(db: AsyncSession, tenant_id: UUID, fee_id: UUID) -> Fee:
    fee = (
        await db.execute(select(Fee).where(Fee.id == fee_id, Fee.tenant_id == tenant_id))
    ).scalar_one_or_none()
    if not fee:
        raise NotFoundError("Fee not found")
    return fee


async def get_student_or_404(db: AsyncSession, tenant_id: UUID, student_id: UUID) -> Student:
    student = (
        await db.execute(
            select(Student).where(Student.id == student_id, Student.tenant_id == tenant_id)
        )
    ).scalar_one_or_none()
    if not student:
        raise NotFoundError("Student not found")
    return student


async def get_fee_type_name(db: AsyncSession, fee: Fee) -> str:
    ft = await db.get(FeeType, fee.fee_type_id)
    return ft.name if ft else "Fee"


async def _eligible_count(db: AsyncSession, fee_id: UUID) -> int:
    return (
        await db.execute(select(func.count(FeeEligibility.id)).where(FeeEligibility.fee_id == fee_id))
    ).scalar() or 0


async def _class_roster(db: AsyncSession, tenant_id: UUID, class_id: UUID) -> List[UUID]:
    """Active students of a class at this instant."""
    result = await db.execute(
        select(Student.id)
        .where(
            Student.tenant_id == tenant_id,
            Student.class_id == class_id,
            Student.is_active.is_(True),
        )
        .order_by(Student.last_name, Student.first_name)
    )
    return list(result.scalars().all())


async def _resolve_tenant_students(db: AsyncSession, tenant_id: UUID, student_ids: Iterable[UUID]) -> List[UUID]:
    """Validate an explicit student list. All ids must belong to the tenant or nothing is accepted."""
    ids = list(dict.fromkeys(student_ids))
    if not ids:
        raise ValidationError("At least one student is required")
    found = set(
        (
            await db.execute(
                select(Student.id).where(Student.id.in_(ids), Student.tenant_id == tenant_id)
            )
        ).scalars().all()
    )
    if len(found) != len(ids):
        raise ValidationError("Some students not found or not in your school")
    return ids


# --- Fee definition ---
async def create_fee(
    db: AsyncSession,
    tenant_id: UUID,
    payload: FeeCreate,
    created_by: Optional[str] = None,
) -> FeeResponse:
    """Create a fee and snapshot who owes it.

    CLASS_WIDE takes the class's active roster as it is now; students who join the
    class later are not made eligible. INDIVIDUAL takes an explicit list and fails
    as a whole if any student is outside the tenant.
    """
    amount = to_money(payload.amount)
    if amount <= 0:
        raise ValidationError("Fee amount must be greater than zero")

    ft = await db.get(FeeType, payload.fee_type_id)
    if not ft or ft.tenant_id != tenant_id or not ft.is_active:
        raise NotFoundError("Fee type not found")

    if payload.class_id is not None:
        cl = await db.get(SchoolClass, payload.class_id)
        if not cl or cl.tenant_id != tenant_id:
            raise NotFoundError("Class not found")

    if payload.scope == FeeScope.CLASS_WIDE:
        if payload.class_id is None:
            raise ValidationError("A class is required for a class-wide fee")
        if payload.student_ids:
            raise ValidationError("student_ids is not allowed for a class-wide fee")
        student_ids = await _class_roster(db, tenant_id, payload.class_id)
    else:
        student_ids = await _resolve_tenant_students(db, tenant_id, payload.student_ids)

    is_optional = ft.is_optional if payload.is_optional is None else payload.is_optional
    try:
        fee = Fee(
            tenant_id=tenant_id,
            fee_type_id=ft.id,
            scope=payload.scope.value,
            class_id=payload.class_id,
            amount=amount,
            due_date=payload.due_date,
            is_optional=is_optional,
            created_by=created_by,
        )
        db.add(fee)
        await db.flush()
        db.add_all(
            [FeeEligibility(tenant_id=tenant_id, fee_id=fee.id, student_id=sid) for sid in student_ids]
        )
        await log_fee_audit(
            db, tenant_id, "fees", fee.id,
            "CREATE", None,
            {
                "amount": str(amount),
                "scope": fee.scope,
                "class_id": str(payload.class_id) if payload.class_id else None,
                "due_date": payload.due_date.isoformat(),
                "eligible_students": [str(s) for s in student_ids],
            },
            created_by,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(fee)
    logger.info("Created %s fee %s with %d eligible students", fee.scope, fee.id, len(student_ids))
    return _fee_to_response(fee, ft.name, len(student_ids))


async def list_fees(
    db: AsyncSession,
    tenant_id: UUID,
    class_id: Optional[UUID] = None,
) -> List[FeeResponse]:
    count_subq = (
        select(FeeEligibility.fee_id, func.count(FeeEligibility.id).label("eligible_count"))
        .group_by(FeeEligibility.fee_id)
    ).subquery()
    stmt = (
        select(Fee, FeeType.name, func.coalesce(count_subq.c.eligible_count, 0))
        .join(FeeType, Fee.fee_type_id == FeeType.id)
        .outerjoin(count_subq, Fee.id == count_subq.c.fee_id)
        .where(Fee.tenant_id == tenant_id)
    )
    if class_id is not None:
        stmt = stmt.where(Fee.class_id == class_id)
    stmt = stmt.order_by(Fee.due_date.desc(), FeeType.name)
    result = await db.execute(stmt)
    return [_fee_to_response(fee, name, count) for fee, name, count in result.all()]


async def get_fee(db: AsyncSession, tenant_id: UUID, fee_id: UUID) -> FeeResponse:
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    return _fee_to_response(fee, await get_fee_type_name(db, fee), await _eligible_count(db, fee.id))


async def update_fee(
    db: AsyncSession,
    tenant_id: UUID,
    fee_id: UUID,
    payload: FeeUpdate,
    changed_by: Optional[str] = None,
) -> FeeResponse:
    """Only amount and due date are editable. The amount may not drop below what any student already paid."""
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    old = {"amount": str(to_money(fee.amount)), "due_date": fee.due_date.isoformat()}

    if payload.amount is not None:
        new_amount = to_money(payload.amount)
        if new_amount <= 0:
            raise ValidationError("Fee amount must be greater than zero")
        paid = await sum_payments_by_student(db, fee.id)
        highest_paid = max(paid.values(), default=Decimal("0.00"))
        if new_amount < highest_paid:
            raise ValidationError(
                f"Fee amount cannot be lower than the {highest_paid} already paid by a student"
            )
        fee.amount = new_amount
    if payload.due_date is not None:
        fee.due_date = payload.due_date

    await log_fee_audit(
        db, tenant_id, "fees", fee.id,
        "UPDATE", old,
        {"amount": str(to_money(fee.amount)), "due_date": fee.due_date.isoformat()},
        changed_by,
    )
    await db.commit()
    await db.refresh(fee)
    return _fee_to_response(fee, await get_fee_type_name(db, fee), await _eligible_count(db, fee.id))


async def delete_fee(
    db: AsyncSession,
    tenant_id: UUID,
    fee_id: UUID,
    changed_by: Optional[str] = None,
) -> None:
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    has_payments = (
        await db.execute(select(FeePayment.id).where(FeePayment.fee_id == fee.id).limit(1))
    ).first()
    if has_payments:
        raise ConflictError("Cannot delete a fee that has payments recorded against it")
    await db.execute(delete(FeeEligibility).where(FeeEligibility.fee_id == fee.id))
    await log_fee_audit(
        db, tenant_id, "fees", fee.id,
        "DELETE",
        {"amount": str(to_money(fee.amount)), "scope": fee.scope, "due_date": fee.due_date.isoformat()},
        None,
        changed_by,
    )
    await db.delete(fee)
    await db.commit()


# --- Eligibility ---
async def add_eligibility(
    db: AsyncSession,
    tenant_id: UUID,
    fee_id: UUID,
    student_ids: List[UUID],
    changed_by: Optional[str] = None,
) -> int:
    """Make more students owe an existing fee. Pairs that already exist are skipped."""
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    ids = await _resolve_tenant_students(db, tenant_id, student_ids)
    existing = set(
        (
            await db.execute(
                select(FeeEligibility.student_id).where(
                    FeeEligibility.fee_id == fee.id,
                    FeeEligibility.student_id.in_(ids),
                )
            )
        ).scalars().all()
    )
    new_ids = [sid for sid in ids if sid not in existing]
    if new_ids:
        db.add_all([FeeEligibility(tenant_id=tenant_id, fee_id=fee.id, student_id=sid) for sid in new_ids])
        await log_fee_audit(
            db, tenant_id, "fee_eligibilities", fee.id,
            "CREATE", None,
            {"student_ids": [str(s) for s in new_ids]},
            changed_by,
        )
        await db.commit()
    return len(new_ids)


async def remove_eligibility(
    db: AsyncSession,
    tenant_id: UUID,
    fee_id: UUID,
    student_id: UUID,
    changed_by: Optional[str] = None,
) -> None:
    """Remove a student from a fee. Refused once the pair has any payment.

    The eligibility row is locked before the payment check, the same row
    record_payment locks, so a removal cannot slip past an uncommitted payment.
    """
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    await get_student_or_404(db, tenant_id, student_id)
    eligibility = (
        await db.execute(
            select(FeeEligibility)
            .where(
                FeeEligibility.fee_id == fee.id,
                FeeEligibility.student_id == student_id,
            )
            .with_for_update()
        )
    ).scalar_one_or_none()
    if not eligibility:
        raise NotFoundError("Student is not eligible for this fee")

    has_payments = (
        await db.execute(
            select(FeePayment.id)
            .where(FeePayment.fee_id == fee.id, FeePayment.student_id == student_id)
            .limit(1)
        )
    ).first()
    if has_payments:
        raise ConflictError("Cannot remove student who has already made payments for this fee")

    await log_fee_audit(
        db, tenant_id, "fee_eligibilities", eligibility.id,
        "DELETE", {"fee_id": str(fee.id), "student_id": str(student_id)}, None,
        changed_by,
    )
    await db.delete(eligibility)
    await db.commit()


# --- Optional fees ---
async def _get_optional_fee(db: AsyncSession, tenant_id: UUID, fee_id: UUID) -> Fee:
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    if not fee.is_optional:
        raise ValidationError("This fee is not optional")
    return fee


async def opt_in(
    db: AsyncSession,
    tenant_id: UUID,
    fee_id: UUID,
    student_id: UUID,
    viewer: Optional[CurrentUser] = None,
) -> FeeBalance:
    """Make a student owe an optional fee. A class-wide fee only accepts students of its class."""
    fee = await _get_optional_fee(db, tenant_id, fee_id)
    student = await get_student_or_404(db, tenant_id, student_id)
    if viewer is not None:
        await ensure_student_access(db, viewer, student)
    if fee.scope == FeeScope.CLASS_WIDE.value and student.class_id != fee.class_id:
        raise ValidationError("Student is not in this fee's class")

    existing = (
        await db.execute(
            select(FeeEligibility.id).where(
                FeeEligibility.fee_id == fee.id,
                FeeEligibility.student_id == student.id,
            )
        )
    ).first()
    if existing:
        raise ConflictError("Student has already opted in to this fee")

    try:
        eligibility = FeeEligibility(tenant_id=tenant_id, fee_id=fee.id, student_id=student.id)
        db.add(eligibility)
        await db.flush()
        await log_fee_audit(
            db, tenant_id, "fee_eligibilities", eligibility.id,
            "CREATE", None,
            {"fee_id": str(fee.id), "student_id": str(student.id), "opt_in": True},
            viewer.id if viewer else None,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Student %s opted in to fee %s", student_id, fee_id)
    return await get_balance(db, tenant_id, student_id, fee_id)


async def opt_out(
    db: AsyncSession,
    tenant_id: UUID,
    fee_id: UUID,
    student_id: UUID,
    viewer: Optional[CurrentUser] = None,
) -> None:
    """Drop an optional fee for a student. Same payment rule as remove_eligibility."""
    await _get_optional_fee(db, tenant_id, fee_id)
    student = await get_student_or_404(db, tenant_id, student_id)
    if viewer is not None:
        await ensure_student_access(db, viewer, student)
    await remove_eligibility(
        db, tenant_id, fee_id, student_id, changed_by=viewer.id if viewer else None
    )
    logger.info("Student %s opted out of fee %s", student_id, fee_id)


async def list_available_students(db: AsyncSession, tenant_id: UUID, fee_id: UUID) -> List[StudentSummary]:
    """Students of the school that do not owe this fee yet."""
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    eligible = select(FeeEligibility.student_id).where(FeeEligibility.fee_id == fee.id)
    result = await db.execute(
        select(Student)
        .where(
            Student.tenant_id == tenant_id,
            Student.is_active.is_(True),
            Student.id.not_in(eligible),
        )
        .order_by(Student.first_name, Student.last_name)
    )
    return [
        StudentSummary(id=s.id, first_name=s.first_name, last_name=s.last_name, class_id=s.class_id)
        for s in result.scalars().all()
    ]


# --- Balances and reports ---
async def get_balance(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    fee_id: UUID,
    viewer: Optional[CurrentUser] = None,
) -> FeeBalance:
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    student = await get_student_or_404(db, tenant_id, student_id)
    if viewer is not None:
        await ensure_student_access(db, viewer, student)
    eligible = (
        await db.execute(
            select(FeeEligibility.id).where(
                FeeEligibility.fee_id == fee.id,
                FeeEligibility.student_id == student.id,
            )
        )
    ).first()
    if not eligible:
        raise NotFoundError("Student is not eligible for this fee")
    balance = compute_balance(fee.amount, [await sum_payments(db, student.id, fee.id)])
    return FeeBalance(
        student_id=student.id,
        fee_id=fee.id,
        fee_amount=to_money(fee.amount),
        total_paid=balance.total_paid,
        remaining=balance.remaining,
        is_paid=balance.is_paid,
        status=balance.status,
    )


async def get_fee_report(
    db: AsyncSession,
    tenant_id: UUID,
    fee_id: UUID,
    status_filter: Optional[str] = None,
) -> List[FeeReportItem]:
    """Every eligible student of a fee with the derived balance."""
    fee = await get_fee_or_404(db, tenant_id, fee_id)
    students = (
        await db.execute(
            select(Student)
            .join(FeeEligibility, FeeEligibility.student_id == Student.id)
            .where(FeeEligibility.fee_id == fee.id)
            .order_by(Student.last_name, Student.first_name)
        )
    ).scalars().all()
    paid = await sum_payments_by_student(db, fee.id)
    items = []
    for s in students:
        balance = compute_balance(fee.amount, [paid.get(s.id, Decimal("0"))])
        if status_filter and balance.status.value != status_filter.strip().upper():
            continue
        items.append(
            FeeReportItem(
                student_id=s.id,
                student_name=s.full_name,
                class_id=s.class_id,
                fee_id=fee.id,
                fee_amount=to_money(fee.amount),
                total_paid=balance.total_paid,
                remaining=balance.remaining,
                is_paid=balance.is_paid,
                status=balance.status,
            )
        )
    return items


async def get_student_fee_summary(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    viewer: Optional[CurrentUser] = None,
) -> StudentFeeSummary:
    """Balances for every fee the student owes, soonest due first.

    Totals are split: outstanding on optional fees is reported separately and
    never counted as money the student owes the school.
    """
    student = await get_student_or_404(db, tenant_id, student_id)
    if viewer is not None:
        await ensure_student_access(db, viewer, student)
    paid_subq = (
        select(FeePayment.fee_id, func.coalesce(func.sum(FeePayment.amount), 0).label("total_paid"))
        .where(FeePayment.student_id == student.id)
        .group_by(FeePayment.fee_id)
    ).subquery()
    rows = (
        await db.execute(
            select(Fee, FeeType.name, func.coalesce(paid_subq.c.total_paid, 0))
            .join(FeeEligibility, FeeEligibility.fee_id == Fee.id)
            .join(FeeType, Fee.fee_type_id == FeeType.id)
            .outerjoin(paid_subq, paid_subq.c.fee_id == Fee.id)
            .where(FeeEligibility.student_id == student.id, Fee.tenant_id == tenant_id)
            .order_by(Fee.due_date)
        )
    ).all()
    out = []
    for fee, fee_type_name, total_paid in rows:
        balance = compute_balance(fee.amount, [total_paid])
        out.append(
            StudentFeeSummaryItem(
                student_id=student.id,
                fee_id=fee.id,
                fee_type_name=fee_type_name,
                due_date=fee.due_date,
                is_optional=fee.is_optional,
                fee_amount=to_money(fee.amount),
                total_paid=balance.total_paid,
                remaining=balance.remaining,
                is_paid=balance.is_paid,
                status=balance.status,
            )
        )

    mandatory = [i for i in out if not i.is_optional]
    optional = [i for i in out if i.is_optional]
    return StudentFeeSummary(
        student_id=student.id,
        fees=out,
        mandatory_total=to_money(sum((i.fee_amount for i in mandatory), Decimal("0"))),
        mandatory_paid=to_money(sum((i.total_paid for i in mandatory), Decimal("0"))),
        mandatory_outstanding=to_money(sum((i.remaining for i in mandatory), Decimal("0"))),
        optional_total=to_money(sum((i.fee_amount for i in optional), Decimal("0"))),
        optional_paid=to_money(sum((i.total_paid for i in optional), Decimal("0"))),
        optional_outstanding=to_money(sum((i.remaining for i in optional), Decimal("0"))),
    )


async def get_contact_numbers(db: AsyncSession, student: Student) -> List[str]:
    """Distinct phone numbers for a student: their own first, then linked guardians."""
    guardian_phones = (
        await db.execute(
            select(Parent.phone)
            .join(ParentStudent, ParentStudent.parent_id == Parent.id)
            .where(ParentStudent.student_id == student.id)
            .order_by(Parent.created_at)
        )
    ).scalars().all()
    return collect_phone_numbers(student.phone, guardian_phones)
