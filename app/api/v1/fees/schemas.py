"""Fees schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import FeeScope, FeeStatus


# --- Fee definition ---
class FeeCreate(BaseModel):
    fee_type_id: UUID
    scope: FeeScope = FeeScope.CLASS_WIDE
    class_id: Optional[UUID] = Field(None, description="Required for CLASS_WIDE fees")
    student_ids: List[UUID] = Field(default_factory=list, description="Required for INDIVIDUAL fees")
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    due_date: date
    is_optional: Optional[bool] = Field(None, description="Defaults to the fee type's setting")


class FeeUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    due_date: Optional[date] = None


class FeeResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    fee_type_id: UUID
    fee_type_name: Optional[str] = None
    scope: FeeScope
    class_id: Optional[UUID] = None
    amount: Decimal
    due_date: date
    is_optional: bool
    eligible_count: int = 0
    created_at: datetime
    updated_at: datetime


# --- Eligibility ---
class EligibilityAddRequest(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)


class EligibilityAddResponse(BaseModel):
    added: int
    message: str


class StudentSummary(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    class_id: Optional[UUID] = None


# --- Balance ---
class FeeBalance(BaseModel):
    student_id: UUID
    fee_id: UUID
    fee_amount: Decimal
    total_paid: Decimal
    remaining: Decimal
    is_paid: bool
    status: FeeStatus


class FeeReportItem(FeeBalance):
    student_name: str
    class_id: Optional[UUID] = None


class StudentFeeSummaryItem(FeeBalance):
    fee_type_name: Optional[str] = None
    due_date: date
    is_optional: bool


class StudentFeeSummary(BaseModel):
    student_id: UUID
    fees: List[StudentFeeSummaryItem]
    mandatory_total: Decimal
    mandatory_paid: Decimal
    mandatory_outstanding: Decimal
    optional_total: Decimal
    optional_paid: Decimal
    optional_outstanding: Decimal
