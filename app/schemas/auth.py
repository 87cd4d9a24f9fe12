"""
Commission Tracker - Authentication Schemas

Pydantic schemas for authentication requests and responses.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.user import UserRole


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class LoginRequest(BaseModel):
    """Schema for login request."""
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)


class PasswordResetRequest(BaseModel):
    """Schema for password reset request."""
    username: str = Field(..., min_length=1, max_length=255)


class PasswordResetConfirm(BaseModel):
    """Schema for password reset confirmation."""
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class UserCreateRequest(BaseModel):
    """Schema for an administrator creating an account."""
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    full_name: Optional[str] = Field(None, max_length=150)
    email: Optional[EmailStr] = None
    role: UserRole = UserRole.ADVISOR
    advisor_id: Optional[int] = None


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class UserResponse(BaseModel):
    """Schema for user response."""
    id: UUID
    username: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: UserRole
    advisor_id: Optional[int] = None
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    """User plus the session token also set as a cookie."""
    user: UserResponse
    token: str


class CurrentUserResponse(BaseModel):
    user: UserResponse
