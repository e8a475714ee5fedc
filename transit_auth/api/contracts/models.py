"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FieldErrorResponse(BaseModel):
    """Single field-level validation message."""

    field: str
    message: str


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    fields: list[FieldErrorResponse] | None = Field(
        default=None, description="Per-field validation messages"
    )


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IdentityResponse(_CamelResponse):
    """Identity fields safe to return to clients."""

    id: str
    email: str
    first_name: str
    last_name: str
    type: Literal["user", "admin"]
    role: Literal["ADMIN", "SUPER_ADMIN"] | None = None
    phone: str | None = None
    address: str | None = None
    is_active: bool
    email_verified: bool | None = None
    last_login_at: int | None = None
    created_at: int
    updated_at: int | None = None


class AuthSessionResponse(_CamelResponse):
    """Tokens issued by register, login and refresh."""

    user: IdentityResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    type: Literal["user", "admin"]


class ProfileResponse(_CamelResponse):
    """Current identity payload."""

    user: IdentityResponse


class AdminCreatedResponse(_CamelResponse):
    """Newly created admin payload."""

    admin: IdentityResponse


class MessageResponse(BaseModel):
    """Plain acknowledgement payload."""

    message: str
