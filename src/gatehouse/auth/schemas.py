"""
Pydantic schemas for authentication and user management.

Wire format is camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class LoginRequest(CamelModel):
    """User login request."""
    email: EmailStr
    password: str = Field(min_length=1)


class Token(CamelModel):
    """JWT access token response. The refresh token travels in a cookie."""
    token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Token lifetime in seconds")


class UserRegister(CamelModel):
    """User registration request. Password rules are enforced by PasswordPolicy."""
    email: EmailStr
    password: str | None = None
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    username: str | None = Field(default=None, min_length=1, max_length=100)


class UserUpdate(CamelModel):
    """Partial update; only fields present in the request body are applied."""
    email: EmailStr | None = None
    username: str | None = Field(default=None, max_length=100)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    enabled: bool | None = None


class ChangePasswordRequest(CamelModel):
    old_password: str
    new_password: str | None = None
    confirm_password: str | None = None


class RoleRequest(CamelModel):
    role: str = Field(min_length=1, max_length=50)

    @field_validator("role")
    @classmethod
    def upper_role(cls, v: str) -> str:
        return v.strip().upper()


class UserResponse(CamelModel):
    """User response (no sensitive data)."""
    id: UUID
    email: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    roles: list[str]
    enabled: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login_at: datetime | None = None
    deleted_at: datetime | None = None

    @field_validator("roles", mode="before")
    @classmethod
    def sorted_roles(cls, v: Any) -> list[str]:
        return sorted(v)


class RoleChangeResponse(CamelModel):
    id: UUID
    target_user_id: UUID
    acting_user_id: UUID
    role: str
    action: str
    timestamp: datetime


class FieldErrorItem(CamelModel):
    field: str
    message: str
    rejected_value: Any = None


class ErrorResponse(CamelModel):
    """Uniform error body returned for every failure."""
    timestamp: datetime
    status: int
    error: str
    message: str
    path: str
    errors: list[FieldErrorItem] | None = None
