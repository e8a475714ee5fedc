"""Authentication service for registration, login, refresh and logout."""

from __future__ import annotations

import logging
import time
from typing import Protocol, cast

from transit_auth.auth.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from transit_auth.auth.identities import IdentityLookup, ordered_lookups
from transit_auth.auth.models import (
    Admin,
    AdminRole,
    Audience,
    AuthenticatedContext,
    AuthSession,
    CreateAdminRequest,
    Identity,
    RefreshTokenRecord,
    RegisterRequest,
    normalize_email,
    public_identity,
)
from transit_auth.auth.repository import CredentialStore, RefreshTokenStore
from transit_auth.auth.tokens import IssuedToken, TokenIssuer, TokenPayload
from transit_auth.core.config import AuthConfig
from transit_auth.core.logging import log_auth_event
from transit_auth.core.passwords import PasswordHasher
from transit_auth.core.security import fingerprint_token

LOGGER = logging.getLogger(__name__)


class AuthStore(CredentialStore, RefreshTokenStore, Protocol):
    """Combined store the service persists identities and refresh tokens in."""


class AuthService:
    """Authentication domain service shared by customer and admin audiences."""

    def __init__(
        self,
        repo: AuthStore,
        config: AuthConfig,
        *,
        hasher: PasswordHasher | None = None,
        token_issuer: TokenIssuer | None = None,
    ) -> None:
        """Initialize service dependencies."""
        self._repo = repo
        self._config = config
        self._hasher = hasher or PasswordHasher(rounds=config.bcrypt_rounds)
        self._tokens = token_issuer or TokenIssuer(config)
        self._lookups = ordered_lookups(repo)
        self._lookup_by_audience: dict[Audience, IdentityLookup] = {
            lookup.audience: lookup for lookup in self._lookups
        }

    @property
    def tokens(self) -> TokenIssuer:
        return self._tokens

    def register(self, req: RegisterRequest) -> AuthSession:
        """Create a customer account and issue its first session."""
        self._check_password(req.password)
        email = normalize_email(req.email)
        if self._repo.find_by_email(Audience.USER, email) is not None:
            log_auth_event(
                LOGGER,
                "register_rejected",
                level=logging.INFO,
                audience=Audience.USER,
                reason="email_taken",
            )
            raise ConflictError()

        user = self._repo.create_identity(
            Audience.USER,
            {
                "email": email,
                "password_hash": self._hasher.hash(req.password),
                "first_name": req.first_name.strip(),
                "last_name": req.last_name.strip(),
                "phone": req.phone.strip(),
                "address": (req.address or "").strip() or None,
                "is_active": True,
                "email_verified": False,
            },
        )
        session = self._issue_session(user)
        log_auth_event(
            LOGGER, "user_registered", audience=Audience.USER, subject_id=user.id
        )
        return session

    def login(self, email: str, password: str) -> AuthSession:
        """Authenticate against admins first, then customers."""
        return self._authenticate(email, password, self._lookups)

    def admin_login(self, email: str, password: str) -> AuthSession:
        """Authenticate against the admin table only."""
        return self._authenticate(
            email, password, (self._lookup_by_audience[Audience.ADMIN],)
        )

    def _authenticate(
        self,
        email: str,
        password: str,
        lookups: tuple[IdentityLookup, ...],
    ) -> AuthSession:
        try:
            key = normalize_email(email)
        except ValueError:
            key = ""

        for lookup in lookups:
            identity = lookup.find_by_email(key) if key else None
            if identity is None:
                continue
            if not self._hasher.verify(password, identity.password_hash):
                raise self._login_failure("wrong_password", identity)
            if not identity.is_active:
                raise self._login_failure("inactive", identity)

            now = int(time.time())
            session = self._issue_session(identity, now=now)
            lookup.touch_last_login(identity.id, now)
            log_auth_event(
                LOGGER,
                "login_succeeded",
                audience=identity.audience,
                subject_id=identity.id,
            )
            return session

        # Unknown account still pays for one bcrypt comparison.
        self._hasher.dummy_verify(password)
        raise self._login_failure("unknown_email", None)

    def _login_failure(
        self, reason: str, identity: Identity | None
    ) -> UnauthorizedError:
        log_auth_event(
            LOGGER,
            "login_rejected",
            level=logging.WARNING,
            reason=reason,
            audience=identity.audience if identity else None,
            subject_id=identity.id if identity else None,
        )
        return UnauthorizedError(reason)

    def refresh(self, refresh_token: str) -> AuthSession:
        """Issue a new access token from a persisted refresh token.

        With rotation enabled the presented refresh token is consumed and a new
        one is returned; a token that was already consumed is rejected.
        """
        payload = self._tokens.verify_refresh(refresh_token)
        now = int(time.time())
        token_hash = fingerprint_token(refresh_token)

        record = self._repo.find_refresh_token(token_hash, payload.sub, now)
        if record is None:
            raise self._refresh_failure("not_persisted", payload)
        if record.audience != payload.audience:
            raise self._refresh_failure("audience_mismatch", payload)

        identity = self.resolve_identity(payload.audience, payload.sub)
        access = self._tokens.issue_access(identity, now=now)

        if not self._config.rotate_refresh_tokens:
            return self._session(identity, access, refresh_token)

        # The replacement row exists before the presented one is consumed.
        rotated = self._persist_refresh(identity, now)
        if self._repo.delete_refresh_tokens(token_hash) != 1:
            self._repo.delete_refresh_tokens(fingerprint_token(rotated.token))
            raise self._refresh_failure("already_rotated", payload)
        log_auth_event(
            LOGGER,
            "refresh_rotated",
            audience=identity.audience,
            subject_id=identity.id,
        )
        return self._session(identity, access, rotated.token)

    def _refresh_failure(
        self, reason: str, payload: TokenPayload
    ) -> UnauthorizedError:
        log_auth_event(
            LOGGER,
            "refresh_rejected",
            level=logging.WARNING,
            reason=reason,
            audience=payload.audience,
            subject_id=payload.sub,
        )
        return UnauthorizedError(f"refresh_{reason}")

    def logout(self, refresh_token: str | None) -> None:
        """Revoke the supplied refresh token; unknown tokens are ignored."""
        if not refresh_token:
            return
        removed = self._repo.delete_refresh_tokens(fingerprint_token(refresh_token))
        log_auth_event(LOGGER, "logout_completed", reason=f"removed={removed}")

    def create_admin(
        self, requester: AuthenticatedContext, req: CreateAdminRequest
    ) -> Admin:
        """Create an admin account.

        Callers must have passed the SUPER_ADMIN guard; this method does not
        re-check the requester's role.
        """
        self._check_password(req.password)
        email = normalize_email(req.email)
        if self._repo.find_by_email(Audience.ADMIN, email) is not None:
            raise ConflictError("An admin with this email already exists")

        created = self._repo.create_identity(
            Audience.ADMIN,
            {
                "email": email,
                "password_hash": self._hasher.hash(req.password),
                "first_name": req.first_name.strip(),
                "last_name": req.last_name.strip(),
                "role": req.role,
                "is_active": True,
            },
        )
        admin = cast(Admin, created)
        log_auth_event(
            LOGGER,
            "admin_created",
            audience=Audience.ADMIN,
            subject_id=admin.id,
            actor_id=requester.id,
        )
        return admin

    def bootstrap_super_admin(self, email: str, password: str) -> Admin | None:
        """Create the first SUPER_ADMIN unless that email already exists."""
        self._check_password(password)
        key = normalize_email(email)
        if self._repo.find_by_email(Audience.ADMIN, key) is not None:
            return None
        created = self._repo.create_identity(
            Audience.ADMIN,
            {
                "email": key,
                "password_hash": self._hasher.hash(password),
                "first_name": "Super",
                "last_name": "Admin",
                "role": AdminRole.SUPER_ADMIN,
                "is_active": True,
            },
        )
        log_auth_event(
            LOGGER,
            "super_admin_bootstrapped",
            audience=Audience.ADMIN,
            subject_id=created.id,
        )
        return cast(Admin, created)

    def resolve_identity(self, audience: Audience, identity_id: str) -> Identity:
        """Re-read an identity from the store and require it to be active."""
        identity = self._lookup_by_audience[audience].find_by_id(identity_id)
        if identity is None:
            raise NotFoundError()
        if not identity.is_active:
            raise UnauthorizedError("inactive")
        return identity

    def get_profile(self, context: AuthenticatedContext) -> dict[str, object]:
        """Return the caller's current identity without secrets."""
        return public_identity(self.resolve_identity(context.audience, context.id))

    def _check_password(self, password: str) -> None:
        minimum = self._config.password_min_length
        if len(password or "") < minimum:
            raise ValidationError(
                "password", f"Password must be at least {minimum} characters long"
            )

    def _persist_refresh(self, identity: Identity, now: int) -> IssuedToken:
        refresh = self._tokens.issue_refresh(identity, now=now)
        self._repo.save_refresh_token(
            RefreshTokenRecord(
                token_hash=fingerprint_token(refresh.token),
                subject_id=identity.id,
                audience=identity.audience,
                expires_at=refresh.payload.exp,
                created_at=now,
            )
        )
        return refresh

    def _issue_session(self, identity: Identity, *, now: int | None = None) -> AuthSession:
        """Mint access + refresh tokens; nothing is returned unless the refresh row is stored."""
        current = int(time.time()) if now is None else now
        access = self._tokens.issue_access(identity, now=current)
        refresh = self._persist_refresh(identity, current)
        return self._session(identity, access, refresh.token)

    def _session(
        self, identity: Identity, access: IssuedToken, refresh_token: str
    ) -> AuthSession:
        return AuthSession(
            access_token=access.token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self._tokens.access_ttl_seconds,
            audience=identity.audience,
            identity=public_identity(identity),
        )
