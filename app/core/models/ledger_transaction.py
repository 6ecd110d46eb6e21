"""Ledger transaction: accounting entry mirrored from fee and salary payments, or entered manually."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class LedgerTransaction(Base):
    """
    source_type/source_id point at the originating event but are not a foreign key:
    reversing a fee payment deletes the payment and leaves this row in place.
    """

    __tablename__ = "ledger_transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(Uuid, ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False)
    reference = Column(String(30), nullable=False)  # FEE-2025-0001, SAL-2025-0001, TXN-2025-0001
    transaction_type = Column(String(20), nullable=False)  # INCOME, EXPENSE
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(30), nullable=True)
    description = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)
    transaction_date = Column(Date, nullable=False)
    source_type = Column(String(30), nullable=False)  # FEE_PAYMENT, SALARY_PAYMENT, MANUAL
    source_id = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    account = relationship("Account")
