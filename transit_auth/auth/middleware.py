"""HTTP middleware that enforces auth on protected API routes."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from transit_auth.api.contracts import ApiErrorResponse
from transit_auth.api.errors import ApiErrorCode, to_error_payload
from transit_auth.auth.guards import TokenValidator, extract_bearer_token
from transit_auth.core.logging import log_auth_event

LOGGER = logging.getLogger(__name__)

AUTH_PREFIX = "/api/v1/auth"

PUBLIC_PATHS = frozenset(
    {
        "/api/health",
        f"{AUTH_PREFIX}/register",
        f"{AUTH_PREFIX}/login",
        f"{AUTH_PREFIX}/admin/login",
        f"{AUTH_PREFIX}/refresh",
        f"{AUTH_PREFIX}/logout",
    }
)


def create_auth_middleware(
    validator: TokenValidator,
    *,
    public_paths: frozenset[str] = PUBLIC_PATHS,
) -> Callable:
    """Create middleware that resolves the caller on every protected request."""

    async def auth_middleware(request: Request, call_next: Callable):
        """Validate auth for protected API paths and attach identity to request state."""
        path = request.url.path
        if not path.startswith("/api/") or path in public_paths:
            return await call_next(request)
        if request.method == "OPTIONS":
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization"))
        if not token:
            return JSONResponse(
                status_code=401,
                content=ApiErrorResponse(
                    error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
                    message="Missing bearer token",
                ).model_dump(exclude_none=True),
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            context = await run_in_threadpool(validator.authenticate, token)
        except HTTPException as exc:
            log_auth_event(
                LOGGER,
                "token_rejected",
                level=logging.WARNING,
                reason=getattr(exc, "reason", None),
                path=path,
                status_code=exc.status_code,
            )
            return JSONResponse(
                status_code=exc.status_code,
                content=to_error_payload(exc.detail, exc.status_code),
                headers=exc.headers,
            )

        request.state.identity = context
        return await call_next(request)

    return auth_middleware
