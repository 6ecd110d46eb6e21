"""Reminders schemas."""

from datetime import date
from typing import Optional

from pydantic import BaseModel

from app.core.enums import ReminderType


class ReminderRunRequest(BaseModel):
    kind: ReminderType
    today: Optional[date] = None


class ReminderRunResult(BaseModel):
    kind: ReminderType
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class CronRunResult(BaseModel):
    tenants: int
    upcoming_sent: int
    overdue_sent: int
    failed: int
    salary_payments_marked_overdue: int
