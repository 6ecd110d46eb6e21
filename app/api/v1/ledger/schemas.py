"""Ledger schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import AccountType, LedgerEntryType, LedgerSource, PaymentMethod


class AccountCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=100)
    account_type: AccountType
    description: Optional[str] = None


class AccountResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    code: str
    name: str
    account_type: AccountType
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ManualTransactionCreate(BaseModel):
    account_code: str = Field(..., max_length=20)
    transaction_type: LedgerEntryType
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=255)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    transaction_date: Optional[date] = None


class LedgerTransactionResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    account_id: UUID
    account_code: Optional[str] = None
    reference: str
    transaction_type: LedgerEntryType
    amount: Decimal
    payment_method: Optional[str] = None
    description: str
    notes: Optional[str] = None
    transaction_date: date
    source_type: LedgerSource
    source_id: Optional[UUID] = None
    created_at: datetime


class LedgerSummary(BaseModel):
    """Income statement over an optional date range."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_income: Decimal
    total_expense: Decimal
    net_income: Decimal
