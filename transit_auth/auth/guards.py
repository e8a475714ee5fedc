"""Per-request token validation and role checks."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Depends, Request

from transit_auth.auth.errors import UnauthorizedError
from transit_auth.auth.models import (
    AdminRole,
    Audience,
    AuthenticatedContext,
    TokenType,
)
from transit_auth.auth.service import AuthService
from transit_auth.core.logging import log_auth_event

LOGGER = logging.getLogger(__name__)


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from an Authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


class TokenValidator:
    """Turn a bearer token into a freshly resolved ``AuthenticatedContext``.

    Nothing is cached between calls: every request re-reads the identity, so a
    deactivated account fails on its next request even with an unexpired token.
    """

    def __init__(self, service: AuthService) -> None:
        self._service = service

    def authenticate(self, token: str) -> AuthenticatedContext:
        """Verify ``token`` and resolve its subject against the live store."""
        payload = self._service.tokens.verify_access(token)
        audience = Audience.ADMIN if payload.type == TokenType.ADMIN else Audience.USER
        identity = self._service.resolve_identity(audience, payload.sub)
        return AuthenticatedContext(
            id=identity.id,
            email=identity.email,
            audience=audience,
            role=identity.role,
        )


def authorize(
    context: AuthenticatedContext, allowed_roles: tuple[AdminRole, ...]
) -> AuthenticatedContext:
    """Require an admin context whose role is one of ``allowed_roles``."""
    if not context.is_admin or context.role not in allowed_roles:
        log_auth_event(
            LOGGER,
            "authorization_denied",
            level=logging.WARNING,
            reason="insufficient_role",
            audience=context.audience,
            subject_id=context.id,
        )
        raise UnauthorizedError("insufficient_role")
    return context


def get_current_identity(request: Request) -> AuthenticatedContext:
    """Return the context the auth middleware attached to this request."""
    context = getattr(request.state, "identity", None)
    if not isinstance(context, AuthenticatedContext):
        raise UnauthorizedError("no_request_context")
    return context


def require_roles(*roles: AdminRole) -> Callable[..., AuthenticatedContext]:
    """Build a FastAPI dependency enforcing one of ``roles``."""
    allowed = tuple(roles)

    def dependency(
        context: AuthenticatedContext = Depends(get_current_identity),
    ) -> AuthenticatedContext:
        return authorize(context, allowed)

    return dependency
