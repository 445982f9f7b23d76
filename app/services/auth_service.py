# /app/services/auth_service.py

"""
Registration, login and session management.

Registration is one unit of work: resolving or creating the school, checking
its subscription, ensuring its workspace, the duplicate checks, the role
decision, the user insert and the school counter all commit together. A
duplicate found after a brand-new school was created rolls the school back
too, so no school without users is ever left behind.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

from app.core import security
from app.core.cache import CacheService, invalidate_school_metrics, invalidate_user_overview
from app.core.clock import utcnow
from app.core.exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.school_models import School
from app.db.models.user_models import User
from . import permission_service, tenant_service, workspace_service
from .audit_service import audit_trail, record_audit, snapshot
from .database_service import DatabaseService

logger = get_logger("auth_service")

PROFILE_FIELDS = ("full_name", "email", "phone")


@dataclass
class RegistrationResult:
    user: User
    school: School
    is_new_school: bool
    requires_approval: bool


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


def decide_registration_role(is_new_school: bool, existing_users: int, requested_role: Optional[str]) -> Tuple[str, bool]:
    """
    Returns `(role, is_active)` for a new registrant.

    The first user of a school becomes its active admin. Later registrants
    asking for admin are demoted to `user` pending approval; teacher,
    student and parent requests keep the role but wait for approval; anything
    else becomes an active `user`.
    """
    if is_new_school or existing_users == 0:
        return "admin", True
    if requested_role == "admin":
        return "user", False
    if requested_role in ("teacher", "student", "parent"):
        return requested_role, False
    return "user", True


def _token_claims(user: User) -> dict:
    return {
        "userId": user.id,
        "schoolId": user.school_id,
        "role": user.role,
        "permissions": permission_service.capabilities_of(user).to_dict(),
    }


def issue_tokens(user: User) -> TokenPair:
    """Creates a new token pair and stores the refresh token on the user (caller commits)."""
    access = security.create_access_token(_token_claims(user))
    refresh = security.create_refresh_token({"userId": user.id, "schoolId": user.school_id})
    user.refresh_token = refresh
    return TokenPair(access_token=access, refresh_token=refresh)


# --- Registration ---

def register(db: DatabaseService, payload: dict, cache: Optional[CacheService] = None) -> Tuple[RegistrationResult, Optional[TokenPair]]:
    username = payload["username"].strip()
    email = payload["email"].strip().lower()
    requested_role = payload.get("requested_role") or "user"
    if requested_role not in permission_service.REGISTRATION_ROLES:
        raise ValidationError("INVALID_ROLE", f"Role '{requested_role}' cannot be requested at registration.")
    # Hash outside the transaction; bcrypt is slow and a retry must not redo it.
    password_hash = security.get_password_hash(payload["password"])

    def work(tx: DatabaseService) -> Tuple[RegistrationResult, Optional[TokenPair]]:
        school, is_new_school = tenant_service.find_or_create_school(tx, payload["school_name"])
        tenant_service.check_subscription(school)
        workspace_service.ensure_school_workspace(tx, school)

        if tx.email_taken(school.id, email):
            raise ConflictError("EMAIL_EXISTS", "This email is already registered in the school.")
        if tx.username_taken(school.id, username):
            raise ConflictError("USERNAME_EXISTS", "This username is already taken in the school.")

        existing_users = tx.count_users_in_school(school.id)
        role, is_active = decide_registration_role(is_new_school, existing_users, requested_role)

        user = User(
            id=f"usr_{uuid.uuid4().hex[:12]}",
            school_id=school.id,
            username=username,
            email=email,
            password_hash=password_hash,
            full_name=payload["full_name"].strip(),
            phone=payload.get("phone"),
            requested_role=requested_role,
            is_active=is_active,
        )
        permission_service.assign_role(user, role)
        tokens = None
        if is_active:
            tokens = issue_tokens(user)
            user.last_login = utcnow()
        tx.add_user(user)

        if role == "admin":
            tx.adjust_school_counters(school.id, total_teachers=1)

        result = RegistrationResult(user=user, school=school, is_new_school=is_new_school, requires_approval=not is_active)
        return result, tokens

    result, tokens = db.run_in_transaction(work, label="register")
    invalidate_school_metrics(cache, result.school.id)
    logger.info(
        "Registered %s as %s in school %s (new school: %s, approval needed: %s)",
        result.user.id, result.user.role, result.school.id, result.is_new_school, result.requires_approval,
    )
    record_audit(
        db, result.user, "USER_REGISTER", "User",
        resource_id=result.user.id,
        after={"role": result.user.role, "isActive": result.user.is_active, "requestedRole": requested_role},
    )
    return result, tokens


# --- Sessions ---

def login(db: DatabaseService, school_name: str, identifier: str, password: str) -> Tuple[User, TokenPair]:
    school = db.get_school_by_name(tenant_service.normalize_school_name(school_name))
    if school is None:
        raise NotFoundError("SCHOOL_NOT_FOUND", "The school does not exist.")
    tenant_service.check_subscription(school)

    user = db.find_user_by_login(school.id, identifier)
    if user is None or not security.verify_password(password, user.password_hash):
        raise AuthenticationError("INVALID_CREDENTIALS", "Incorrect username or password.")
    if not user.is_active:
        raise AuthenticationError("ACCOUNT_DISABLED", "This account is not active. Contact the administrator.")

    user_id = user.id

    def work(tx: DatabaseService) -> Tuple[User, TokenPair]:
        fresh = tx.get_user_by_id(user_id, school.id)
        tokens = issue_tokens(fresh)
        fresh.last_login = utcnow()
        tx.session.flush()
        return fresh, tokens

    user, tokens = db.run_in_transaction(work, label="login")
    record_audit(db, user, "USER_LOGIN", "User", resource_id=user.id)
    return user, tokens


def refresh(db: DatabaseService, refresh_token: str) -> TokenPair:
    """Rotates the token pair. Only the most recently issued refresh token is accepted."""
    payload = security.decode_refresh_token(refresh_token)
    if payload is None:
        raise AuthenticationError("INVALID_REFRESH_TOKEN", "Refresh token is invalid or expired.")

    def work(tx: DatabaseService) -> TokenPair:
        user = tx.get_user_by_id(payload.get("userId"), payload.get("schoolId"))
        if user is None or not user.is_active or user.refresh_token != refresh_token:
            raise AuthenticationError("INVALID_REFRESH_TOKEN", "Refresh token is invalid or expired.")
        tokens = issue_tokens(user)
        tx.session.flush()
        return tokens

    return db.run_in_transaction(work, label="refresh")


def logout(db: DatabaseService, user: User, cache: Optional[CacheService] = None) -> None:
    user_id, school_id = user.id, user.school_id

    def work(tx: DatabaseService) -> None:
        fresh = tx.get_user_by_id(user_id, school_id)
        fresh.refresh_token = None
        fresh.last_logout = utcnow()
        tx.session.flush()

    db.run_in_transaction(work, label="logout")
    invalidate_user_overview(cache, user_id)
    record_audit(db, user, "USER_LOGOUT", "User", resource_id=user_id)


def change_password(db: DatabaseService, user: User, current_password: str, new_password: str) -> None:
    if not security.verify_password(current_password, user.password_hash):
        raise AuthenticationError("INVALID_PASSWORD", "Current password is incorrect.")
    if current_password == new_password:
        raise ValidationError("SAME_PASSWORD", "The new password must differ from the current one.")
    new_hash = security.get_password_hash(new_password)
    user_id, school_id = user.id, user.school_id

    def work(tx: DatabaseService) -> None:
        fresh = tx.get_user_by_id(user_id, school_id)
        fresh.password_hash = new_hash
        # Every outstanding session has to log in again.
        fresh.refresh_token = None
        tx.session.flush()

    db.run_in_transaction(work, label="change_password")
    record_audit(db, user, "PASSWORD_CHANGE", "User", resource_id=user_id)


def update_profile(db: DatabaseService, user: User, changes: dict, cache: Optional[CacheService] = None) -> User:
    """Applies the caller's own profile edits. An email has to stay unique inside the school."""
    changes = {k: v for k, v in changes.items() if k in PROFILE_FIELDS and (v is not None or k == "phone")}
    if changes.get("email"):
        changes["email"] = changes["email"].strip().lower()
    user_id, school_id = user.id, user.school_id

    def work(tx: DatabaseService):
        fresh = tx.get_user_by_id(user_id, school_id)
        before = snapshot(fresh, PROFILE_FIELDS)
        email = changes.get("email")
        if email and email != fresh.email and tx.email_taken(school_id, email, exclude_user_id=user_id):
            raise ConflictError("EMAIL_EXISTS", "This email is already used in this school.")
        for field, value in changes.items():
            setattr(fresh, field, value)
        tx.session.flush()
        return fresh, before

    with audit_trail(db, user, "PROFILE_UPDATE", "User", resource_id=user_id) as trail:
        fresh, before = db.run_in_transaction(work, label="update_profile")
        trail.before = before
        trail.after = snapshot(fresh, PROFILE_FIELDS)
    invalidate_user_overview(cache, user_id)
    return fresh


def get_user_from_access_token(db: DatabaseService, token: str) -> User:
    payload = security.decode_access_token(token)
    if payload is None:
        raise AuthenticationError("INVALID_TOKEN", "Could not validate credentials.")
    user = db.get_user_by_id(payload.get("userId"), payload.get("schoolId"))
    if user is None:
        raise AuthenticationError("INVALID_TOKEN", "Could not validate credentials.")
    if not user.is_active:
        raise AuthenticationError("ACCOUNT_DISABLED", "This account is not active.")
    return user
