"""
Fee reminders by SMS.

UPCOMING reminders go out 1, 3 and 7 days before a fee's due date, OVERDUE ones
1, 3, 7, 14 and 30 days after. Only students with something left to pay and a
phone number on file are texted. Every attempt is logged in fee_reminders and a
(fee, student, kind, day) that is already logged is not sent again.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees import service as fees_service
from app.api.v1.fees.balance import compute_balance, sum_payments_by_student
from app.api.v1.payroll import service as payroll_service
from app.core.config import settings
from app.core.enums import ReminderType
from app.core.models import Fee, FeeEligibility, FeeReminder, Student, Tenant
from app.integrations.sms import (
    HubtelSmsSender,
    format_sender_name,
    overdue_fee_message,
    upcoming_fee_message,
)

from .schemas import CronRunResult, ReminderRunResult

logger = logging.getLogger(__name__)

UPCOMING_DAYS = (1, 3, 7)
OVERDUE_DAYS = (1, 3, 7, 14, 30)


def reminder_due_dates(kind: ReminderType, today: date):
    """Due dates that trigger a reminder of this kind today."""
    if kind == ReminderType.UPCOMING:
        return [today + timedelta(days=d) for d in UPCOMING_DAYS]
    return [today - timedelta(days=d) for d in OVERDUE_DAYS]


async def _already_sent(db: AsyncSession, fee_id, student_id, kind: ReminderType, today: date) -> bool:
    row = (
        await db.execute(
            select(FeeReminder.id).where(
                FeeReminder.fee_id == fee_id,
                FeeReminder.student_id == student_id,
                FeeReminder.reminder_type == kind.value,
                FeeReminder.sent_on == today,
            )
        )
    ).first()
    return row is not None


async def send_fee_reminders(
    db: AsyncSession,
    tenant_id,
    kind: ReminderType,
    today: date,
    sms_sender: HubtelSmsSender,
) -> ReminderRunResult:
    result = ReminderRunResult(kind=kind)
    tenant = await db.get(Tenant, tenant_id)
    school_name = tenant.name if tenant else "School"
    sender_name = format_sender_name(school_name)
    build_message = upcoming_fee_message if kind == ReminderType.UPCOMING else overdue_fee_message

    fees = (
        await db.execute(
            select(Fee).where(
                Fee.tenant_id == tenant_id,
                Fee.due_date.in_(reminder_due_dates(kind, today)),
            )
        )
    ).scalars().all()

    for fee in fees:
        fee_name = await fees_service.get_fee_type_name(db, fee)
        students = (
            await db.execute(
                select(Student)
                .join(FeeEligibility, FeeEligibility.student_id == Student.id)
                .where(FeeEligibility.fee_id == fee.id, Student.is_active.is_(True))
            )
        ).scalars().all()
        paid = await sum_payments_by_student(db, fee.id, [s.id for s in students])

        for student in students:
            balance = compute_balance(fee.amount, [paid.get(student.id, Decimal("0"))])
            if balance.remaining <= 0:
                continue
            numbers = await fees_service.get_contact_numbers(db, student)
            if not numbers or await _already_sent(db, fee.id, student.id, kind, today):
                result.skipped += 1
                continue

            message = build_message(
                student_name=student.full_name,
                fee_name=fee_name,
                school_name=school_name,
                remaining=balance.remaining,
                due_date=fee.due_date,
                currency=settings.currency,
            )
            errors = []
            delivered = False
            for phone in numbers:
                sms = await sms_sender.send(phone, message, sender=sender_name)
                if sms.success:
                    delivered = True
                else:
                    errors.append(f"{phone}: {sms.error}")

            db.add(
                FeeReminder(
                    tenant_id=tenant_id,
                    fee_id=fee.id,
                    student_id=student.id,
                    reminder_type=kind.value,
                    sent_on=today,
                    successful=delivered,
                    error="; ".join(errors) or None,
                )
            )
            if delivered:
                result.sent += 1
            else:
                result.failed += 1
        await db.commit()

    logger.info(
        "%s reminders for tenant %s: %d sent, %d failed, %d skipped",
        kind.value, tenant_id, result.sent, result.failed, result.skipped,
    )
    return result


async def run_scheduled_reminders(db: AsyncSession, today: date, sms_sender: HubtelSmsSender) -> CronRunResult:
    """Both reminder kinds for every active school, then the salary overdue sweep."""
    tenant_ids = (
        await db.execute(select(Tenant.id).where(Tenant.status == "ACTIVE"))
    ).scalars().all()
    upcoming = overdue = failed = 0
    for tenant_id in tenant_ids:
        for kind in (ReminderType.UPCOMING, ReminderType.OVERDUE):
            try:
                run = await send_fee_reminders(db, tenant_id, kind, today, sms_sender)
            except Exception:
                await db.rollback()
                logger.exception("%s reminders failed for tenant %s", kind.value, tenant_id)
                continue
            if kind == ReminderType.UPCOMING:
                upcoming += run.sent
            else:
                overdue += run.sent
            failed += run.failed

    marked = await payroll_service.mark_overdue_salary_payments(db, today)
    return CronRunResult(
        tenants=len(tenant_ids),
        upcoming_sent=upcoming,
        overdue_sent=overdue,
        failed=failed,
        salary_payments_marked_overdue=marked,
    )
