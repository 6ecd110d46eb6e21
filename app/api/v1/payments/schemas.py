"""Payments schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.v1.fees.schemas import FeeBalance
from app.core.enums import PaymentMethod


class PaymentCreate(BaseModel):
    student_id: UUID
    fee_id: UUID
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = Field(None, max_length=100)
    paid_at: Optional[datetime] = None


class GatewayPaymentVerify(BaseModel):
    """Sent by the client after the gateway checkout completes."""

    reference: str = Field(..., min_length=1, max_length=100)
    student_id: UUID
    fee_id: UUID
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)


class PaymentResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    student_id: UUID
    fee_id: UUID
    amount: Decimal
    payment_method: str
    reference: Optional[str] = None
    paid_at: datetime
    recorded_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentReceipt(BaseModel):
    payment: PaymentResponse
    balance: FeeBalance
    sms_sent: bool = False


class PaymentHistoryItem(PaymentResponse):
    fee_type_name: Optional[str] = None


class PaymentHistory(BaseModel):
    student_id: UUID
    payments: List[PaymentHistoryItem]
    total_paid: Decimal
