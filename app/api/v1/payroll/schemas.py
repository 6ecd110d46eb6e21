"""Payroll schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import SalaryPaymentStatus


class SalaryPaymentCreate(BaseModel):
    teacher_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    pay_period_start: date
    pay_period_end: date
    due_date: date

    @model_validator(mode="after")
    def check_period(self):
        if self.pay_period_end < self.pay_period_start:
            raise ValueError("pay_period_end must not be before pay_period_start")
        return self


class SalaryPaymentResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    teacher_id: UUID
    teacher_name: Optional[str] = None
    amount: Decimal
    pay_period_start: date
    pay_period_end: date
    due_date: date
    status: SalaryPaymentStatus
    paid_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OverdueSweepResult(BaseModel):
    marked_overdue: int
