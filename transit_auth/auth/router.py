"""Authentication API router."""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, Request

from transit_auth.api.contracts import (
    AdminCreatedResponse,
    ApiErrorResponse,
    AuthSessionResponse,
    IdentityResponse,
    MessageResponse,
    ProfileResponse,
)
from transit_auth.auth.errors import UnauthorizedError
from transit_auth.auth.guards import get_current_identity, require_roles
from transit_auth.auth.middleware import AUTH_PREFIX
from transit_auth.auth.models import (
    AdminRole,
    AuthenticatedContext,
    AuthSession,
    CreateAdminRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    public_identity,
)
from transit_auth.auth.rate_limiter import LoginRateLimiter
from transit_auth.auth.service import AuthService

_UNAUTHORIZED = {401: {"model": ApiErrorResponse}}
_THROTTLED = {401: {"model": ApiErrorResponse}, 429: {"model": ApiErrorResponse}}


def _client_ip(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


def _session_response(session: AuthSession) -> AuthSessionResponse:
    return AuthSessionResponse(
        user=IdentityResponse.model_validate(session.identity),
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        token_type=session.token_type,
        expires_in=session.expires_in,
        type=session.audience.value,
    )


def create_auth_router(
    service: AuthService, rate_limiter: LoginRateLimiter
) -> APIRouter:
    """Build authentication router with register/login/refresh/logout/profile endpoints."""
    router = APIRouter(prefix=AUTH_PREFIX, tags=["auth"])

    def throttled_login(
        req: LoginRequest,
        request: Request,
        authenticate: Callable[[str, str], AuthSession],
    ) -> AuthSessionResponse:
        client_ip = _client_ip(request)
        rate_limiter.assert_allowed(email=req.email, client_ip=client_ip)
        try:
            session = authenticate(req.email, req.password)
        except UnauthorizedError:
            rate_limiter.record_failure(email=req.email, client_ip=client_ip)
            raise
        rate_limiter.record_success(email=req.email, client_ip=client_ip)
        return _session_response(session)

    @router.post(
        "/register",
        status_code=201,
        response_model=AuthSessionResponse,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def register(req: RegisterRequest) -> AuthSessionResponse:
        """Create a customer account and sign it in."""
        return _session_response(service.register(req))

    @router.post("/login", response_model=AuthSessionResponse, responses=_THROTTLED)
    def login(req: LoginRequest, request: Request) -> AuthSessionResponse:
        """Authenticate an admin or customer and return a token pair."""
        return throttled_login(req, request, service.login)

    @router.post(
        "/admin/login", response_model=AuthSessionResponse, responses=_THROTTLED
    )
    def admin_login(req: LoginRequest, request: Request) -> AuthSessionResponse:
        """Authenticate against admin accounts only."""
        return throttled_login(req, request, service.admin_login)

    @router.post(
        "/admin/create",
        status_code=201,
        response_model=AdminCreatedResponse,
        responses={**_UNAUTHORIZED, 409: {"model": ApiErrorResponse}},
    )
    def create_admin(
        req: CreateAdminRequest,
        requester: AuthenticatedContext = Depends(
            require_roles(AdminRole.SUPER_ADMIN)
        ),
    ) -> AdminCreatedResponse:
        """Create an admin account (SUPER_ADMIN only)."""
        admin = service.create_admin(requester, req)
        return AdminCreatedResponse(
            admin=IdentityResponse.model_validate(public_identity(admin))
        )

    @router.post("/refresh", response_model=AuthSessionResponse, responses=_UNAUTHORIZED)
    def refresh(req: RefreshRequest) -> AuthSessionResponse:
        """Exchange a refresh token for a new access token."""
        return _session_response(service.refresh(req.refresh_token))

    @router.post("/logout", response_model=MessageResponse)
    def logout(req: LogoutRequest) -> MessageResponse:
        """Revoke the supplied refresh token."""
        service.logout(req.refresh_token)
        return MessageResponse(message="Logout successful")

    @router.api_route(
        "/profile",
        methods=["GET", "POST"],
        response_model=ProfileResponse,
        responses=_UNAUTHORIZED,
    )
    def profile(
        context: AuthenticatedContext = Depends(get_current_identity),
    ) -> ProfileResponse:
        """Return the caller's identity."""
        return ProfileResponse(
            user=IdentityResponse.model_validate(service.get_profile(context))
        )

    return router
