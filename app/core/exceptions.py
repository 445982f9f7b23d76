# /app/core/exceptions.py

"""
The application's error taxonomy.

Every business failure is raised as an `AppError` subclass carrying a stable,
machine-readable `code`, a human message and an `ErrorKind`. The kind is what
the consistency layer looks at when deciding whether a failure is worth a
retry; the HTTP status is what the exception handlers render.
"""

import enum
from typing import Any, Dict, Optional


class ErrorKind(str, enum.Enum):
    TRANSIENT = "transient"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class AppError(Exception):
    status_code = 500
    kind = ErrorKind.UNKNOWN
    default_code = "INTERNAL_ERROR"

    def __init__(self, code: Optional[str] = None, message: str = "", details: Optional[Dict[str, Any]] = None):
        self.code = code or self.default_code
        self.message = message or self.code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(AppError):
    """Malformed or out-of-range input, caught before any write."""
    status_code = 400
    kind = ErrorKind.VALIDATION
    default_code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    kind = ErrorKind.VALIDATION
    default_code = "UNAUTHORIZED"


class PermissionDeniedError(AppError):
    """A capability or tenant check failed. Raised before any transaction starts."""
    status_code = 403
    kind = ErrorKind.VALIDATION
    default_code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    kind = ErrorKind.NOT_FOUND
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    """A business rule rejected the write (class full, score locked, duplicate key)."""
    status_code = 409
    kind = ErrorKind.CONFLICT
    default_code = "CONFLICT"


class TransientStoreError(AppError):
    """The store kept reporting write conflicts after every retry was spent."""
    status_code = 503
    kind = ErrorKind.TRANSIENT
    default_code = "TRANSACTION_RETRY_EXHAUSTED"
