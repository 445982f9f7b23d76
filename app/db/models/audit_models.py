# /app/db/models/audit_models.py

from sqlalchemy import Column, DateTime, JSON, String

from app.core.clock import utcnow
from ..base_class import Base


class AuditLog(Base):
    """Append-only trail of mutating actions. Rows are never updated."""
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, nullable=True, index=True)
    actor_id = Column(String, nullable=True, index=True)
    actor_email = Column(String, nullable=True)
    actor_role = Column(String, nullable=True)
    action = Column(String, nullable=False, index=True)
    resource_type = Column(String, nullable=False)
    resource_id = Column(String, nullable=True, index=True)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    outcome = Column(String, nullable=False, default="success")
    error_message = Column(String, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
