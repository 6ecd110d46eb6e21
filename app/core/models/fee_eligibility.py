import uuid

from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class FeeEligibility(Base):
    """Marks that a student owes a fee. Cannot be removed once a payment exists for the pair."""

    __tablename__ = "fee_eligibilities"
    __table_args__ = (
        UniqueConstraint("fee_id", "student_id", name="uq_fee_eligibility_fee_student"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_id = Column(Uuid, ForeignKey("fees.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    fee = relationship("Fee")
    student = relationship("Student")
