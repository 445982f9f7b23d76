# /app/models/auth_model.py

from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from .common_model import CamelModel
from .user_model import UserRead


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=20, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=6)
    confirm_password: Optional[str] = None
    full_name: str = Field(..., min_length=2)
    school_name: str = Field(..., min_length=3, max_length=200)
    phone: Optional[str] = None
    requested_role: Literal["admin", "teacher", "student", "parent", "user"] = "user"

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(CamelModel):
    username: str = Field(..., description="Username or email inside the school.")
    password: str
    school_name: str = Field(..., min_length=3, max_length=200)


class RefreshRequest(CamelModel):
    refresh_token: str


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6)

    @field_validator("new_password")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Password cannot be blank")
        return value


class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(CamelModel):
    """Returned by register and login. Tokens are absent while approval is pending."""
    user: UserRead
    school_id: str
    school_name: str
    school_code: str
    is_new_school: bool = False
    requires_approval: bool = False
    tokens: Optional[TokenResponse] = None


class ProfileUpdate(CamelModel):
    """What a user may change about themselves; role and permissions stay with the admins."""
    full_name: Optional[str] = Field(default=None, min_length=2)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
