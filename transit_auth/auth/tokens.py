"""Access and refresh token issuance and verification."""

from __future__ import annotations

import time
import uuid
from typing import Any

from pydantic import BaseModel, ValidationError as PydanticValidationError

from transit_auth.auth.errors import InvalidTokenError
from transit_auth.auth.models import (
    AdminRole,
    Audience,
    Identity,
    TokenType,
)
from transit_auth.core.config import AuthConfig
from transit_auth.core.security import (
    TokenDecodeError,
    build_signed_token,
    decode_signed_token,
)


class TokenPayload(BaseModel):
    """Claims carried inside a signed token."""

    iss: str
    sub: str
    email: str
    type: TokenType
    audience: Audience
    role: AdminRole | None = None
    iat: int
    exp: int
    jti: str


class IssuedToken(BaseModel):
    """A signed token together with its decoded claims."""

    token: str
    payload: TokenPayload


class TokenIssuer:
    """Mint and verify HS256 tokens with separate access/refresh secrets."""

    def __init__(self, config: AuthConfig) -> None:
        self._config = config

    @property
    def access_ttl_seconds(self) -> int:
        return self._config.access_token_ttl_seconds

    def _claims(
        self, identity: Identity, token_type: TokenType, ttl_seconds: int, now: int
    ) -> dict[str, Any]:
        claims: dict[str, Any] = {
            "iss": self._config.issuer,
            "sub": identity.id,
            "email": identity.email,
            "type": str(token_type),
            "audience": str(identity.audience),
            "iat": now,
            "exp": now + ttl_seconds,
            "jti": uuid.uuid4().hex,
        }
        if identity.role is not None:
            claims["role"] = str(identity.role)
        return claims

    def issue_access(self, identity: Identity, *, now: int | None = None) -> IssuedToken:
        """Mint an access token; admin identities get the admin-context type."""
        current = int(time.time()) if now is None else now
        token_type = (
            TokenType.ADMIN if identity.audience == Audience.ADMIN else TokenType.ACCESS
        )
        claims = self._claims(
            identity, token_type, self._config.access_token_ttl_seconds, current
        )
        return IssuedToken(
            token=build_signed_token(claims, self._config.access_secret),
            payload=TokenPayload.model_validate(claims),
        )

    def issue_refresh(self, identity: Identity, *, now: int | None = None) -> IssuedToken:
        """Mint a refresh token signed with the refresh secret."""
        current = int(time.time()) if now is None else now
        claims = self._claims(
            identity, TokenType.REFRESH, self._config.refresh_token_ttl_seconds, current
        )
        return IssuedToken(
            token=build_signed_token(claims, self._config.effective_refresh_secret),
            payload=TokenPayload.model_validate(claims),
        )

    def verify_access(self, token: str, *, now: int | None = None) -> TokenPayload:
        """Verify an access or admin-context token."""
        payload = self._verify(token, self._config.access_secret, now=now)
        if payload.type not in {TokenType.ACCESS, TokenType.ADMIN}:
            raise InvalidTokenError("wrong_type")
        expected = (
            Audience.ADMIN if payload.type == TokenType.ADMIN else Audience.USER
        )
        if payload.audience != expected:
            raise InvalidTokenError("audience_mismatch")
        return payload

    def verify_refresh(self, token: str, *, now: int | None = None) -> TokenPayload:
        """Verify a refresh token."""
        payload = self._verify(token, self._config.effective_refresh_secret, now=now)
        if payload.type != TokenType.REFRESH:
            raise InvalidTokenError("wrong_type")
        return payload

    def _verify(self, token: str, secret: str, *, now: int | None) -> TokenPayload:
        try:
            raw = decode_signed_token(token, secret, now=now)
        except TokenDecodeError as exc:
            raise InvalidTokenError(str(exc)) from exc
        try:
            payload = TokenPayload.model_validate(raw)
        except PydanticValidationError as exc:
            raise InvalidTokenError("bad_claims") from exc
        if payload.iss != self._config.issuer:
            raise InvalidTokenError("wrong_issuer")
        return payload
