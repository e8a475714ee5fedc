"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_UNAUTHORIZED = "AUTH_UNAUTHORIZED"
    AUTH_EMAIL_CONFLICT = "AUTH_EMAIL_CONFLICT"
    AUTH_RATE_LIMITED = "AUTH_RATE_LIMITED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self,
        *,
        status_code: int,
        error_code: ApiErrorCode,
        message: str,
        fields: list[dict[str, str]] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        detail: dict[str, Any] = {"error_code": str(error_code), "message": message}
        if fields:
            detail["fields"] = fields
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


def to_error_payload(detail: Any, status_code: int) -> dict[str, Any]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        payload: dict[str, Any] = {
            "error_code": str(detail.get("error_code") or f"HTTP_{status_code}"),
            "message": str(
                detail.get("message") or detail.get("detail") or "HTTP error"
            ),
        }
        fields = detail.get("fields")
        if isinstance(fields, list) and fields:
            payload["fields"] = fields
        return payload
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }
