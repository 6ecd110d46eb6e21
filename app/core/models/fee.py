"""Fee definition: an amount owed by a class roster snapshot or an explicit list of students."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import FeeScope
from app.db.session import Base, utcnow


class Fee(Base):
    """
    Billable amount. Only amount and due_date may change after creation.
    Who owes it is recorded in fee_eligibilities, captured once at creation.
    """

    __tablename__ = "fees"
    __table_args__ = (
        CheckConstraint("scope IN ('CLASS_WIDE','INDIVIDUAL')", name="chk_fee_scope"),
        CheckConstraint("amount > 0", name="chk_fee_amount_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_type_id = Column(Uuid, ForeignKey("fee_types.id", ondelete="RESTRICT"), nullable=False)
    scope = Column(String(20), nullable=False, default=FeeScope.CLASS_WIDE.value)
    # Required for CLASS_WIDE; informational for INDIVIDUAL
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    is_optional = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    fee_type = relationship("FeeType")
    school_class = relationship("SchoolClass", foreign_keys=[class_id])
