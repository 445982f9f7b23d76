# /app/core/security.py

"""
Password hashing and token issuance.

Passwords are hashed with `bcrypt` directly. Tokens are HS256 JWTs produced
with python-jose; access and refresh tokens use separate secrets so a leaked
refresh secret cannot mint access tokens. The decode helpers return `None`
on any failure, leaving the caller to decide which error to raise.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from .config import settings

# bcrypt only looks at the first 72 bytes and newer releases refuse longer input.
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


# --- Tokens ---

def _encode(payload: Dict[str, Any], secret: str, expires_delta: timedelta, token_type: str) -> str:
    now = datetime.now(timezone.utc)
    to_encode = dict(payload)
    to_encode.update({"iat": now, "exp": now + expires_delta, "type": token_type})
    return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, secret: str, token_type: str) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def create_access_token(payload: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Signs the identity claims used on every request: `userId`, `schoolId`,
    `role` and the capability map.
    """
    delta = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(payload, settings.JWT_ACCESS_SECRET, delta, "access")


def create_refresh_token(payload: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    delta = expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    # jti makes two refresh tokens issued in the same second distinct.
    claims = dict(payload)
    claims.setdefault("jti", uuid.uuid4().hex)
    return _encode(claims, settings.JWT_REFRESH_SECRET, delta, "refresh")


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    return _decode(token, settings.JWT_ACCESS_SECRET, "access")


def decode_refresh_token(token: str) -> Optional[Dict[str, Any]]:
    return _decode(token, settings.JWT_REFRESH_SECRET, "refresh")
