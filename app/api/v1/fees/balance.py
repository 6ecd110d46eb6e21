"""
Balance calculation.

The balance of a (student, fee) pair is never stored: it is fee.amount minus the
sum of that pair's payments, recomputed on every read. Correctness depends on the
payment recorder refusing any payment that would push the sum past fee.amount.
"""

from decimal import Decimal
from typing import Dict, Iterable, NamedTuple, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import FeeStatus
from app.core.models import FeePayment

CENT = Decimal("0.01")


def to_money(val) -> Decimal:
    if val is None:
        return Decimal("0.00")
    return (val if isinstance(val, Decimal) else Decimal(str(val))).quantize(CENT)


class Balance(NamedTuple):
    total_paid: Decimal
    remaining: Decimal
    is_paid: bool
    status: FeeStatus


def compute_balance(fee_amount, payment_amounts: Iterable) -> Balance:
    """Derive the balance from a fee amount and the amounts paid against it."""
    total_paid = sum((to_money(a) for a in payment_amounts), Decimal("0.00"))
    remaining = to_money(fee_amount) - total_paid
    if total_paid <= 0:
        status = FeeStatus.UNPAID
    elif remaining <= 0:
        status = FeeStatus.PAID
    else:
        status = FeeStatus.PARTIALLY_PAID
    return Balance(
        total_paid=total_paid,
        remaining=remaining,
        is_paid=remaining <= 0,
        status=status,
    )


async def sum_payments(db: AsyncSession, student_id: UUID, fee_id: UUID) -> Decimal:
    total = (
        await db.execute(
            select(func.coalesce(func.sum(FeePayment.amount), 0)).where(
                FeePayment.student_id == student_id,
                FeePayment.fee_id == fee_id,
            )
        )
    ).scalar()
    return to_money(total)


async def sum_payments_by_student(
    db: AsyncSession,
    fee_id: UUID,
    student_ids: Optional[Iterable[UUID]] = None,
) -> Dict[UUID, Decimal]:
    stmt = (
        select(FeePayment.student_id, func.coalesce(func.sum(FeePayment.amount), 0))
        .where(FeePayment.fee_id == fee_id)
        .group_by(FeePayment.student_id)
    )
    if student_ids is not None:
        stmt = stmt.where(FeePayment.student_id.in_(list(student_ids)))
    return {sid: to_money(total) for sid, total in (await db.execute(stmt)).all()}
