# /app/core/deps.py

"""
Authentication and authorization dependencies.

`get_current_active_user` turns the bearer token into an active user of a
school whose subscription is valid. The `require_*` factories build
dependencies that reject the request with a PermissionDeniedError before the
endpoint (and therefore any transaction) runs.
"""

from typing import Optional

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.exceptions import AuthenticationError, PermissionDeniedError
from app.db.models.user_models import User
from app.models.common_model import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, PageParams
from app.services import auth_service, permission_service, tenant_service
from app.services.database_service import DatabaseService, get_db_service

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_active_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: DatabaseService = Depends(get_db_service),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("NO_TOKEN", "Authentication token is missing.")
    user = auth_service.get_user_from_access_token(db, credentials.credentials)
    tenant_service.check_subscription(tenant_service.get_school(db, user.school_id))
    return user


def _deny(message: str, required) -> PermissionDeniedError:
    return PermissionDeniedError("INSUFFICIENT_PERMISSIONS", message, {"required": list(required)})


def require_permission(capability: str):
    if capability not in permission_service.CAPABILITIES:
        raise ValueError(f"Unknown capability '{capability}'")

    def dependency(current_user: User = Depends(get_current_active_user)) -> User:
        if not permission_service.has_permission(current_user, capability):
            raise _deny("You do not have permission to perform this action.", [capability])
        return current_user

    return dependency


def require_any_permission(*capabilities: str):
    def dependency(current_user: User = Depends(get_current_active_user)) -> User:
        if not any(permission_service.has_permission(current_user, cap) for cap in capabilities):
            raise _deny("You need at least one of the required permissions.", capabilities)
        return current_user

    return dependency


def require_all_permissions(*capabilities: str):
    def dependency(current_user: User = Depends(get_current_active_user)) -> User:
        missing = [cap for cap in capabilities if not permission_service.has_permission(current_user, cap)]
        if missing:
            raise _deny("You are missing some of the required permissions.", missing)
        return current_user

    return dependency


def require_roles(*roles: str):
    def dependency(current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in roles:
            raise PermissionDeniedError(
                "INSUFFICIENT_ROLE",
                f"This action requires one of the roles: {', '.join(roles)}.",
                {"required": list(roles)},
            )
        return current_user

    return dependency


require_admin = require_roles("admin")


def page_params(default_limit: int = DEFAULT_PAGE_LIMIT):
    """`?page=&limit=` for list endpoints; `limit` is capped at MAX_PAGE_LIMIT."""

    def dependency(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=default_limit, ge=1, le=MAX_PAGE_LIMIT),
    ) -> PageParams:
        return PageParams(page=page, limit=limit)

    return dependency
