import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, Text, Uuid

from app.db.session import Base, utcnow


class FeeReminder(Base):
    """One reminder attempt for a (fee, student) pair."""

    __tablename__ = "fee_reminders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_id = Column(Uuid, ForeignKey("fees.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    reminder_type = Column(String(20), nullable=False)  # UPCOMING, OVERDUE
    sent_on = Column(Date, nullable=False)
    successful = Column(Boolean, nullable=False, default=False)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
