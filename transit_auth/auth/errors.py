"""Authentication error taxonomy.

Every error here is an ``ApiError`` so the registered exception handlers can
serialize it. Unauthorized-family errors share one public message; the
``reason`` attribute is for logs only.
"""

from __future__ import annotations

from transit_auth.api.errors import ApiError, ApiErrorCode

GENERIC_UNAUTHORIZED_MESSAGE = "Invalid credentials"


class ValidationError(ApiError):
    """Malformed input rejected before touching any store."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(
            status_code=400,
            error_code=ApiErrorCode.VALIDATION_ERROR,
            message=message,
            fields=[{"field": field, "message": message}],
        )
        self.field = field


class ConflictError(ApiError):
    """An identity with the same email already exists."""

    def __init__(self, message: str = "An account with this email already exists") -> None:
        super().__init__(
            status_code=409,
            error_code=ApiErrorCode.AUTH_EMAIL_CONFLICT,
            message=message,
        )


class UnauthorizedError(ApiError):
    """Credentials, token, account state or role did not permit the request."""

    def __init__(self, reason: str = "invalid_credentials") -> None:
        super().__init__(
            status_code=401,
            error_code=ApiErrorCode.AUTH_UNAUTHORIZED,
            message=GENERIC_UNAUTHORIZED_MESSAGE,
            headers={"WWW-Authenticate": "Bearer"},
        )
        self.reason = reason


class InvalidTokenError(UnauthorizedError):
    """Token is expired, malformed, forged, or of the wrong kind."""

    def __init__(self, reason: str = "invalid_token") -> None:
        super().__init__(reason=f"token_{reason}")


class NotFoundError(UnauthorizedError):
    """Token subject no longer exists; surfaced as unauthorized."""

    def __init__(self, reason: str = "subject_not_found") -> None:
        super().__init__(reason=reason)


class StoreUnavailableError(ApiError):
    """Credential or refresh-token store could not complete the call."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            status_code=503,
            error_code=ApiErrorCode.STORE_UNAVAILABLE,
            message="Authentication store is temporarily unavailable",
        )
        self.operation = operation
