# /app/models/user_model.py

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from .common_model import CamelModel


class Permissions(CamelModel):
    can_create: bool = False
    can_update: bool = False
    can_delete: bool = False
    can_view_all: bool = False
    can_manage_users: bool = False
    can_manage_school: bool = False


class PermissionsPatch(CamelModel):
    """Partial capability update; omitted capabilities keep their current value."""
    can_create: Optional[bool] = None
    can_update: Optional[bool] = None
    can_delete: Optional[bool] = None
    can_view_all: Optional[bool] = None
    can_manage_users: Optional[bool] = None
    can_manage_school: Optional[bool] = None


class UserRead(CamelModel):
    id: str
    school_id: str
    username: str
    email: str
    full_name: str
    phone: Optional[str] = None
    role: str
    requested_role: Optional[str] = None
    is_active: bool
    permissions: Permissions
    permissions_overridden: bool = False
    student_id: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PermissionUpdateRequest(CamelModel):
    permissions: PermissionsPatch


class ApplyRoleRequest(CamelModel):
    role: str = Field(..., description="One of the role presets.")


class BulkPermissionRequest(CamelModel):
    user_ids: List[str] = Field(..., min_length=1)
    permissions: PermissionsPatch


class BulkPermissionResult(CamelModel):
    updated: List[str]
    skipped: List[Dict[str, str]]


class ApproveUserRequest(CamelModel):
    make_admin: bool = False


class RolePresetRead(CamelModel):
    role: str
    display_name: str
    description: str
    permissions: Permissions


class AuditLogRead(CamelModel):
    id: str
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    before: Optional[dict] = None
    after: Optional[dict] = None
    outcome: str
    error_message: Optional[str] = None
    meta: Optional[dict] = Field(default=None, serialization_alias="metadata")
    created_at: datetime
