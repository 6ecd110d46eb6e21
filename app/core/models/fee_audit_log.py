"""Fee audit log: append-only financial change tracking."""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid

from app.db.session import Base, utcnow


class FeeAuditLog(Base):
    """Audit trail for fee, eligibility and payment mutations. Rows are never updated."""

    __tablename__ = "fee_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    reference_table = Column(String(50), nullable=False)
    reference_id = Column(Uuid, nullable=False)
    action_type = Column(String(30), nullable=False)  # CREATE, UPDATE, DELETE
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    changed_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
