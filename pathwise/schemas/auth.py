"""
Pydantic schemas for authentication endpoints.
"""
from datetime import datetime
from typing import Optional
from pydantic import EmailStr, Field, field_validator, model_validator

from pathwise.schemas.base import CamelModel


def _check_password_bytes(v: str) -> str:
    """Validate password length in bytes (bcrypt limit is 72 bytes)."""
    password_bytes = v.encode("utf-8")
    if len(password_bytes) > 72:
        raise ValueError("Password too long (bcrypt limit 72 bytes)")
    if len(v) < 6:
        raise ValueError("Password must be at least 6 characters")
    return v


class RegisterRequest(CamelModel):
    """Request schema for user registration."""
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., description="User's password (min 6 characters)")
    confirm_password: Optional[str] = Field(None, description="Must match password when provided")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    school: Optional[str] = Field(None, max_length=200)
    major: Optional[str] = Field(None, max_length=200)
    grad_year: Optional[int] = Field(None, ge=1950, le=2100)
    invitation_token: Optional[str] = Field(None, description="Token from an institution invitation")
    selected_plan: Optional[str] = Field(None, pattern="^(free|paid)$")
    promo_code: Optional[str] = Field(None, max_length=64, description="free_paid_tier promo code")

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        return _check_password_bytes(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords don't match")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "email": "jordan@example.edu",
                "password": "SecurePass123",
                "confirmPassword": "SecurePass123",
                "firstName": "Jordan",
                "lastName": "Lee",
                "selectedPlan": "free"
            }
        }


class LoginRequest(CamelModel):
    """Request schema for user login."""
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., description="User's password")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "jordan@example.edu",
                "password": "SecurePass123"
            }
        }


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        return _check_password_bytes(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password != self.password:
            raise ValueError("Passwords don't match")
        return self


class UserResponse(CamelModel):
    """Public view of a user; never includes the password hash."""
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    institution_id: Optional[int] = None
    subscription_tier: str
    subscription_status: Optional[str] = None
    is_verified: bool
    is_active: bool
    school: Optional[str] = None
    major: Optional[str] = None
    grad_year: Optional[int] = None
    last_active_at: Optional[datetime] = None
    created_at: datetime


class AuthResponse(CamelModel):
    message: Optional[str] = None
    user: UserResponse
    token: Optional[str] = None
    requires_payment: bool = False
    checkout_url: Optional[str] = None


class MessageResponse(CamelModel):
    message: str
    success: bool = True
