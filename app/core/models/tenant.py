import uuid

from sqlalchemy import Column, DateTime, String, Uuid

from app.db.session import Base, utcnow


class Tenant(Base):
    """
    A school in the multi-school deployment.

    Every other table carries tenant_id and every query is scoped by it.
    """

    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")  # ACTIVE | SUSPENDED
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
