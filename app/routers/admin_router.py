# /app/routers/admin_router.py

"""
School administration: user approval, capability management, role presets,
audit history and school settings.

User management needs `can_manage_users`; school settings need
`can_manage_school`. Both are granted by the admin preset, and the first
also by the subadmin preset.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.cache import CacheService, get_cache
from app.core.deps import page_params, require_permission
from app.db.models.user_models import User
from ..models import school_model, user_model
from ..models.common_model import Page, PageParams
from ..models.dashboard_model import DashboardStats
from ..services import admin_service, audit_service, dashboard_service, tenant_service
from ..services.database_service import DatabaseService, get_db_service

router = APIRouter()

manage_users = require_permission("can_manage_users")
manage_school = require_permission("can_manage_school")


@router.get("/dashboard", response_model=DashboardStats, summary="School Statistics")
def admin_dashboard(
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return dashboard_service.get_dashboard_stats(db, cache, current_user.school_id)

# --- Users ---

@router.get("/users", response_model=Page[user_model.UserRead], summary="List Users")
def list_users(
    role: Optional[str] = None,
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    search: Optional[str] = None,
    params: PageParams = Depends(page_params()),
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
):
    return admin_service.page_users(db, current_user.school_id, params, role=role, is_active=is_active, search=search)


@router.get("/users/pending", response_model=List[user_model.UserRead], summary="Users Awaiting Approval")
def list_pending_users(
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
):
    return admin_service.list_pending_users(db, current_user.school_id)


@router.post("/users/bulk-permissions", response_model=user_model.BulkPermissionResult, summary="Update Many Users' Permissions")
def bulk_update_permissions(
    request: user_model.BulkPermissionRequest,
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return admin_service.bulk_update_permissions(request, db, current_user, cache)


@router.get("/users/{user_id}", response_model=user_model.UserRead, summary="Get a Single User")
def get_user(
    user_id: str,
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
):
    return admin_service.get_user(db, current_user.school_id, user_id)


@router.put("/users/{user_id}/permissions", response_model=user_model.UserRead, summary="Override a User's Permissions")
def update_user_permissions(
    user_id: str,
    request: user_model.PermissionUpdateRequest,
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return admin_service.update_user_permissions(user_id, request.permissions, db, current_user, cache)


@router.post("/users/{user_id}/apply-role", response_model=user_model.UserRead, summary="Apply a Role Preset")
def apply_role(
    user_id: str,
    request: user_model.ApplyRoleRequest,
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return admin_service.apply_role(user_id, request.role, db, current_user, cache)


@router.post("/users/{user_id}/approve", response_model=user_model.UserRead, summary="Approve a Pending User")
def approve_user(
    user_id: str,
    request: user_model.ApproveUserRequest = user_model.ApproveUserRequest(),
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return admin_service.approve_user(user_id, request, db, current_user, cache)


@router.post("/users/{user_id}/reject", status_code=status.HTTP_204_NO_CONTENT, summary="Reject a Pending User")
def reject_user(
    user_id: str,
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    admin_service.reject_user(user_id, db, current_user, cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a User")
def delete_user(
    user_id: str,
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    admin_service.delete_user(user_id, db, current_user, cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/role-presets", response_model=List[user_model.RolePresetRead], summary="Available Role Presets")
def role_presets(current_user: User = Depends(manage_users)):
    return admin_service.role_presets()

# --- Audit history ---

@router.get("/users/{user_id}/audit-logs", response_model=List[user_model.AuditLogRead], summary="Audit History of a User")
def user_audit_logs(
    user_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
):
    admin_service.get_user(db, current_user.school_id, user_id)
    return audit_service.list_audit_logs(db, current_user.school_id, resource_id=user_id, limit=limit)


@router.get("/audit-logs/permissions", response_model=List[user_model.AuditLogRead], summary="Permission Changes")
def permission_audit_logs(
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(manage_users),
    db: DatabaseService = Depends(get_db_service),
):
    return audit_service.list_audit_logs(db, current_user.school_id, action_prefix="PERMISSION_", limit=limit)

# --- School settings ---

def _school_read(db: DatabaseService, school) -> school_model.SchoolRead:
    read = school_model.SchoolRead.model_validate(school)
    read.settings = school_model.SchoolSettings(**tenant_service.get_school_settings(db, school.id))
    read.remaining_days = tenant_service.remaining_subscription_days(school)
    return read


@router.get("/school-settings", response_model=school_model.SchoolRead, summary="School Profile and Settings")
def get_school_settings(
    current_user: User = Depends(manage_school),
    db: DatabaseService = Depends(get_db_service),
):
    return _school_read(db, tenant_service.get_school(db, current_user.school_id))


@router.put("/school-settings", response_model=school_model.SchoolRead, summary="Update School Profile and Settings")
def update_school_settings(
    update: school_model.SchoolUpdate,
    current_user: User = Depends(manage_school),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    updates = update.model_dump(exclude_unset=True, exclude={"settings"})
    if update.settings is not None:
        updates["settings"] = update.settings.model_dump(exclude_unset=True, by_alias=True)
    school = tenant_service.update_school_settings(db, current_user, updates, cache)
    return _school_read(db, school)
