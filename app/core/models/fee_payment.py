"""Fee payment: one accepted payment against a (student, fee) pair."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class FeePayment(Base):
    """Partial payments allowed; the sum per (student, fee) never exceeds fee.amount."""

    __tablename__ = "fee_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_fee_payment_amount_positive"),
        Index("ix_fee_payment_student_fee", "student_id", "fee_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False)
    fee_id = Column(Uuid, ForeignKey("fees.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(30), nullable=False)  # CASH, BANK_TRANSFER, MOBILE_MONEY, CARD, PAYSTACK
    reference = Column(String(100), nullable=True)  # gateway reference when paid online
    paid_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    recorded_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    student = relationship("Student")
    fee = relationship("Fee")
