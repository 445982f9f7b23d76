# /app/db/models/school_models.py

"""
ORM models for the tenant (`School`) and the workspace hierarchy that gives
schools and classes a stable identifier independent of their display names.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from ..base_class import Base


def default_school_settings():
    return {
        "academicYearStart": 9,
        "semestersPerYear": 2,
        "gradesOffered": [10, 11, 12],
        "currency": "VND",
        "timezone": "Asia/Ho_Chi_Minh",
    }


class School(Base):
    """
    A tenant. Every other row in the system carries a `school_id` pointing
    here. Schools are deactivated, never hard-deleted.
    """
    __tablename__ = "schools"

    id = Column(String, primary_key=True, index=True)
    school_name = Column(String, nullable=False, unique=True, index=True)
    # Lower-cased copy of the name; the case-insensitive uniqueness key.
    school_name_key = Column(String, nullable=False, unique=True, index=True)
    school_code = Column(String, nullable=False, unique=True, index=True)

    address = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    principal_name = Column(String, nullable=True)

    total_students = Column(Integer, nullable=False, default=0)
    total_teachers = Column(Integer, nullable=False, default=0)
    total_classes = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    subscription_plan = Column(String, nullable=False, default="free")
    subscription_expires_at = Column(DateTime(timezone=True), nullable=False)
    settings = Column(JSON, nullable=False, default=default_school_settings)

    # --- Denormalised workspace reference ---
    workspace_id = Column(String, nullable=True)
    workspace_code = Column(String, nullable=True)
    workspace_path = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    users = relationship("User", back_populates="school")


class Workspace(Base):
    """
    A node in the school -> class hierarchy. Exactly one workspace exists per
    (school, type, linked entity); `path` always encodes the ancestor chain.
    """
    __tablename__ = "workspaces"
    __table_args__ = (
        UniqueConstraint("school_id", "type", "linked_entity_id", name="uq_workspace_entity"),
        UniqueConstraint("school_id", "code", name="uq_workspace_school_code"),
    )

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    parent_workspace_id = Column(String, ForeignKey("workspaces.id"), nullable=True)
    linked_entity_id = Column(String, nullable=False, index=True)

    name = Column(String, nullable=False)
    code = Column(String, nullable=False)
    path = Column(String, nullable=False, unique=True)
    description = Column(String, nullable=True)
    # `metadata` is reserved by the declarative base, hence the attribute name.
    meta = Column("metadata", JSON, nullable=False, default=dict)
    status = Column(String, nullable=False, default="active")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    parent = relationship("Workspace", remote_side=[id])
