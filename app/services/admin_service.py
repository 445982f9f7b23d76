# /app/services/admin_service.py

"""
User administration inside one school: approving registrants, editing
capability sets, applying role presets and removing accounts.

An admin can never lock themselves out: removing their own
`can_manage_users` and deleting their own account are refused, and bulk
updates silently skip the caller.
"""

from typing import Dict, List, Optional

from app.core.cache import CacheService, invalidate_school_metrics, invalidate_user_overview
from app.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.user_models import User
from ..models import user_model
from ..models.common_model import Page, PageParams
from . import permission_service
from .audit_service import audit_trail, snapshot
from .database_service import DatabaseService

logger = get_logger("admin_service")

SNAPSHOT_FIELDS = ("role", "is_active", "permissions", "permissions_overridden")
# Roles counted in the school's teacher total.
STAFF_ROLES = ("admin", "subadmin", "teacher")


def get_user(db: DatabaseService, school_id: str, user_id: str) -> User:
    user = db.get_user_by_id(user_id, school_id)
    if user is None:
        raise NotFoundError("USER_NOT_FOUND", f"User with ID {user_id} not found")
    return user


def page_users(db: DatabaseService, school_id: str, params: PageParams, **filters) -> Page[user_model.UserRead]:
    users, total = db.page_users(school_id, params.offset, params.limit, **filters)
    return Page[user_model.UserRead].build([user_model.UserRead.model_validate(u) for u in users], total, params)


def list_pending_users(db: DatabaseService, school_id: str) -> List[User]:
    return db.list_users(school_id, is_active=False)


def _patch_values(patch: user_model.PermissionsPatch) -> Dict[str, bool]:
    return {key: value for key, value in patch.model_dump(exclude_unset=True).items() if value is not None}


def _adjust_teacher_total(tx: DatabaseService, school_id: str, old_role: Optional[str], new_role: str, was_active: bool, is_active: bool) -> None:
    counted_before = was_active and old_role in STAFF_ROLES
    counted_after = is_active and new_role in STAFF_ROLES
    if counted_before == counted_after:
        return
    tx.adjust_school_counters(school_id, total_teachers=1 if counted_after else -1)


# --- Approval ---

def approve_user(
    user_id: str,
    request: user_model.ApproveUserRequest,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> User:
    """Activates a pending account, optionally promoting it to admin."""
    school_id = actor.school_id

    def work(tx: DatabaseService):
        user = get_user(tx, school_id, user_id)
        if user.is_active:
            raise ConflictError("USER_ALREADY_ACTIVE", "This account is already active.")
        before = snapshot(user, SNAPSHOT_FIELDS)
        old_role = user.role
        role = "admin" if request.make_admin else user.role
        permission_service.assign_role(user, role)
        user.is_active = True
        _adjust_teacher_total(tx, school_id, old_role, role, False, True)
        tx.session.flush()
        return user, before

    with audit_trail(db, actor, "USER_APPROVE", "User", resource_id=user_id) as trail:
        user, before = db.run_in_transaction(work, label="approve_user")
        trail.before = before
        trail.after = snapshot(user, SNAPSHOT_FIELDS)
        trail.metadata = {"makeAdmin": request.make_admin}

    logger.info("User %s approved as %s by %s", user.id, user.role, actor.id)
    invalidate_school_metrics(cache, school_id)
    return user


def reject_user(user_id: str, db: DatabaseService, actor, cache: Optional[CacheService] = None) -> None:
    """Deletes a registrant that was never approved."""
    school_id = actor.school_id

    def work(tx: DatabaseService) -> dict:
        user = get_user(tx, school_id, user_id)
        if user.is_active:
            raise ConflictError("USER_ALREADY_ACTIVE", "Only pending accounts can be rejected.")
        before = snapshot(user, ("email", "role", "requested_role"))
        tx.delete_user(user)
        return before

    with audit_trail(db, actor, "USER_REJECT", "User", resource_id=user_id) as trail:
        trail.before = db.run_in_transaction(work, label="reject_user")

    invalidate_school_metrics(cache, school_id)


# --- Permissions ---

def update_user_permissions(
    user_id: str,
    patch: user_model.PermissionsPatch,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> User:
    """Applies an explicit capability set on top of the user's current one and flags it as overridden."""
    school_id = actor.school_id
    changes = _patch_values(patch)
    if not changes:
        raise ValidationError("NO_CHANGES", "No permission changes were supplied.")
    if user_id == actor.id and changes.get("can_manage_users") is False:
        raise PermissionDeniedError("CANNOT_MODIFY_SELF", "You cannot remove your own user management permission.")

    def work(tx: DatabaseService):
        user = get_user(tx, school_id, user_id)
        before = snapshot(user, SNAPSHOT_FIELDS)
        capabilities = permission_service.capabilities_of(user).replace(**changes)
        permission_service.assign_role(user, user.role, capabilities)
        tx.session.flush()
        return user, before

    with audit_trail(db, actor, "PERMISSION_UPDATE", "User", resource_id=user_id) as trail:
        user, before = db.run_in_transaction(work, label="update_user_permissions")
        trail.before = before
        trail.after = snapshot(user, SNAPSHOT_FIELDS)

    invalidate_user_overview(cache, user_id)
    return user


def apply_role(
    user_id: str,
    role: str,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> User:
    """Sets the role and resets the capability set to its preset, clearing any override."""
    school_id = actor.school_id
    if not permission_service.is_valid_role(role):
        raise ValidationError("INVALID_ROLE", f"Unknown role '{role}'.")
    if user_id == actor.id and not permission_service.derive_permissions(role).can_manage_users:
        raise PermissionDeniedError("CANNOT_MODIFY_SELF", "You cannot remove your own user management permission.")

    def work(tx: DatabaseService):
        user = get_user(tx, school_id, user_id)
        before = snapshot(user, SNAPSHOT_FIELDS)
        old_role = user.role
        permission_service.assign_role(user, role)
        _adjust_teacher_total(tx, school_id, old_role, role, user.is_active, user.is_active)
        tx.session.flush()
        return user, before

    with audit_trail(db, actor, "PERMISSION_APPLY_ROLE", "User", resource_id=user_id) as trail:
        user, before = db.run_in_transaction(work, label="apply_role")
        trail.before = before
        trail.after = snapshot(user, SNAPSHOT_FIELDS)

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, user_id)
    return user


def bulk_update_permissions(
    request: user_model.BulkPermissionRequest,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> user_model.BulkPermissionResult:
    school_id = actor.school_id
    changes = _patch_values(request.permissions)
    if not changes:
        raise ValidationError("NO_CHANGES", "No permission changes were supplied.")
    requested = list(dict.fromkeys(request.user_ids))

    def work(tx: DatabaseService) -> user_model.BulkPermissionResult:
        found = {user.id: user for user in tx.get_users_by_ids(school_id, requested)}
        updated, skipped = [], []
        for user_id in requested:
            if user_id == actor.id:
                skipped.append({"userId": user_id, "reason": "SELF"})
                continue
            user = found.get(user_id)
            if user is None:
                skipped.append({"userId": user_id, "reason": "NOT_FOUND"})
                continue
            capabilities = permission_service.capabilities_of(user).replace(**changes)
            permission_service.assign_role(user, user.role, capabilities)
            updated.append(user_id)
        tx.session.flush()
        return user_model.BulkPermissionResult(updated=updated, skipped=skipped)

    with audit_trail(db, actor, "PERMISSION_BULK_UPDATE", "User") as trail:
        result = db.run_in_transaction(work, label="bulk_update_permissions")
        trail.after = {"updated": result.updated, "permissions": changes}
        trail.metadata = {"skipped": result.skipped}

    invalidate_user_overview(cache, *result.updated)
    return result


# --- Removal ---

def delete_user(user_id: str, db: DatabaseService, actor, cache: Optional[CacheService] = None) -> None:
    school_id = actor.school_id
    if user_id == actor.id:
        raise PermissionDeniedError("CANNOT_DELETE_SELF", "You cannot delete your own account.")

    def work(tx: DatabaseService) -> dict:
        user = get_user(tx, school_id, user_id)
        if tx.count_classes_for_teacher(school_id, user_id):
            raise ConflictError("USER_HAS_CLASSES", "Reassign this user's homeroom classes before deleting them.")
        before = snapshot(user, ("email", "role", "is_active"))
        _adjust_teacher_total(tx, school_id, user.role, user.role, user.is_active, False)
        tx.delete_user(user)
        return before

    with audit_trail(db, actor, "USER_DELETE", "User", resource_id=user_id) as trail:
        trail.before = db.run_in_transaction(work, label="delete_user")

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, user_id)


def role_presets() -> List[user_model.RolePresetRead]:
    return [
        user_model.RolePresetRead(
            role=preset.role,
            display_name=preset.display_name,
            description=preset.description,
            permissions=user_model.Permissions(**preset.capabilities.to_dict()),
        )
        for preset in permission_service.list_role_presets()
    ]
