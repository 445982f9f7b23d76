# /app/routers/auth_router.py

"""
This module defines the public-facing API for authentication.

It includes endpoints for:
- Registration into a new or existing school (`/register`)
- Login with school name, username or email and password (`/login`)
- Token rotation (`/refresh`) and logout (`/logout`)
- Password change (`/change-password`) and the caller's profile (`/me`, `/profile`)

The router only translates HTTP into calls on `auth_service`; every rule
(role decision, subscription check, token rotation) lives there.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from app.core.cache import CacheService, get_cache
from app.core.deps import get_current_active_user
from app.db.models.user_models import User
from app.models.auth_model import (
    AuthResponse, ChangePasswordRequest, LoginRequest, ProfileUpdate, RefreshRequest, RegisterRequest, TokenResponse,
)
from app.models.common_model import MessageResponse
from app.models.user_model import UserRead
from app.services import auth_service
from app.services.database_service import DatabaseService, get_db_service

router = APIRouter()


def _auth_response(user, school, tokens: Optional[auth_service.TokenPair], is_new_school=False, requires_approval=False) -> AuthResponse:
    return AuthResponse(
        user=UserRead.model_validate(user),
        school_id=school.id,
        school_name=school.school_name,
        school_code=school.school_code,
        is_new_school=is_new_school,
        requires_approval=requires_approval,
        tokens=TokenResponse(**vars(tokens)) if tokens else None,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register_user(
    user_in: RegisterRequest,
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    """
    Registers a user, creating the school on first use. The first user of a
    school becomes its admin; later registrants may need approval, in which
    case no tokens are returned.
    """
    result, tokens = auth_service.register(db, user_in.model_dump(), cache=cache)
    return _auth_response(result.user, result.school, tokens, result.is_new_school, result.requires_approval)


@router.post("/login", response_model=AuthResponse)
def login(credentials: LoginRequest, db: DatabaseService = Depends(get_db_service)):
    user, tokens = auth_service.login(db, credentials.school_name, credentials.username, credentials.password)
    return _auth_response(user, user.school, tokens)


@router.post("/refresh", response_model=TokenResponse)
def refresh_tokens(body: RefreshRequest, db: DatabaseService = Depends(get_db_service)):
    tokens = auth_service.refresh(db, body.refresh_token)
    return TokenResponse(**vars(tokens))


@router.post("/logout", response_model=MessageResponse)
def logout(
    current_user: User = Depends(get_current_active_user),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    auth_service.logout(db, current_user, cache=cache)
    return MessageResponse(message="Logged out")


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_active_user),
    db: DatabaseService = Depends(get_db_service),
):
    auth_service.change_password(db, current_user, body.current_password, body.new_password)
    return MessageResponse(message="Password changed. Please log in again.")


@router.get("/me", response_model=UserRead)
def read_current_user(current_user: User = Depends(get_current_active_user)):
    return UserRead.model_validate(current_user)


@router.get("/profile", response_model=UserRead)
def read_profile(current_user: User = Depends(get_current_active_user)):
    return UserRead.model_validate(current_user)


@router.put("/profile", response_model=UserRead)
def update_profile(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_active_user),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    user = auth_service.update_profile(db, current_user, body.model_dump(exclude_unset=True), cache)
    return UserRead.model_validate(user)
