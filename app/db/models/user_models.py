# /app/db/models/user_models.py

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from ..base_class import Base

CAPABILITY_COLUMNS = (
    "can_create",
    "can_update",
    "can_delete",
    "can_view_all",
    "can_manage_users",
    "can_manage_school",
)


class User(Base):
    """
    An account inside exactly one school.

    The six `can_*` columns are the user's capability set. They normally
    mirror the role preset; `permissions_overridden` is set when an admin
    granted a custom set, so the two cases can always be told apart.
    """
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("school_id", "username", name="uq_users_school_username"),
        UniqueConstraint("school_id", "email", name="uq_users_school_email"),
    )

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False, index=True)

    username = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=False)
    phone = Column(String, nullable=True)

    role = Column(String, nullable=False, default="user")
    requested_role = Column(String, nullable=True)

    # --- Capability set ---
    can_create = Column(Boolean, nullable=False, default=False)
    can_update = Column(Boolean, nullable=False, default=False)
    can_delete = Column(Boolean, nullable=False, default=False)
    can_view_all = Column(Boolean, nullable=False, default=False)
    can_manage_users = Column(Boolean, nullable=False, default=False)
    can_manage_school = Column(Boolean, nullable=False, default=False)
    permissions_overridden = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)
    # Only the most recently issued refresh token is honoured.
    refresh_token = Column(String, nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    last_logout = Column(DateTime(timezone=True), nullable=True)

    # Set for accounts belonging to a student record.
    student_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    school = relationship("School", back_populates="users")

    @property
    def permissions(self) -> dict:
        return {cap: bool(getattr(self, cap)) for cap in CAPABILITY_COLUMNS}
