"""Public API response contracts."""

from transit_auth.api.contracts.models import (
    AdminCreatedResponse,
    ApiErrorResponse,
    AuthSessionResponse,
    FieldErrorResponse,
    HealthResponse,
    IdentityResponse,
    MessageResponse,
    ProfileResponse,
)

__all__ = [
    "AdminCreatedResponse",
    "ApiErrorResponse",
    "AuthSessionResponse",
    "FieldErrorResponse",
    "HealthResponse",
    "IdentityResponse",
    "MessageResponse",
    "ProfileResponse",
]
