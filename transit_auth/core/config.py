"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

MIN_BCRYPT_ROUNDS = 10


def _access_secret_from_env() -> str:
    """Return the configured signing secret, or a random one for this process only."""
    secret = os.getenv("AUTH_ACCESS_SECRET", "").strip()
    if secret:
        return secret
    LOGGER.warning(
        "auth_access_secret_missing",
        extra={"reason": "AUTH_ACCESS_SECRET unset; tokens are signed with a per-process random secret"},
    )
    return secrets.token_urlsafe(48)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AuthConfig:
    """Authentication-related configuration."""

    access_secret: str
    refresh_secret: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str
    bcrypt_rounds: int
    password_min_length: int
    rotate_refresh_tokens: bool

    @property
    def effective_refresh_secret(self) -> str:
        """Return refresh signing secret, falling back to the access secret."""
        return self.refresh_secret or self.access_secret


@dataclass(frozen=True)
class StoreConfig:
    """Credential and refresh-token store configuration."""

    sqlite_path: str
    mongo_uri: str
    mongo_db: str
    timeout_seconds: float


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    login_rate_limit_max_attempts: int
    login_rate_limit_window_seconds: int
    login_rate_limit_lock_seconds: int
    login_rate_limit_max_lock_seconds: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    store: StoreConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        access_secret = _access_secret_from_env()
        refresh_secret = os.getenv("AUTH_REFRESH_SECRET", "").strip()
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        issuer = os.getenv("AUTH_ISSUER", "transit-auth").strip() or "transit-auth"
        bcrypt_rounds = int(os.getenv("AUTH_BCRYPT_ROUNDS", "12"))
        password_min_length = int(os.getenv("AUTH_PASSWORD_MIN_LENGTH", "8"))
        rotate_refresh_tokens = _env_flag("AUTH_ROTATE_REFRESH_TOKENS", "1")

        sqlite_path = (
            os.getenv("AUTH_SQLITE_PATH", "runtime/auth_state.db").strip()
            or "runtime/auth_state.db"
        )
        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "transit_auth").strip() or "transit_auth"
        store_timeout = float(os.getenv("AUTH_STORE_TIMEOUT_SECONDS", "5"))

        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://localhost:3001",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024)))
        login_rate_limit_max_attempts = int(
            os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "5")
        )
        login_rate_limit_window_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "900")
        )
        login_rate_limit_lock_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_LOCK_SECONDS", "60")
        )
        login_rate_limit_max_lock_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_MAX_LOCK_SECONDS", "3600")
        )

        return AppConfig(
            auth=AuthConfig(
                access_secret=access_secret,
                refresh_secret=refresh_secret,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
                bcrypt_rounds=max(MIN_BCRYPT_ROUNDS, bcrypt_rounds),
                password_min_length=max(6, password_min_length),
                rotate_refresh_tokens=rotate_refresh_tokens,
            ),
            store=StoreConfig(
                sqlite_path=sqlite_path,
                mongo_uri=mongo_uri,
                mongo_db=mongo_db,
                timeout_seconds=max(0.1, store_timeout),
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                login_rate_limit_max_attempts=login_rate_limit_max_attempts,
                login_rate_limit_window_seconds=login_rate_limit_window_seconds,
                login_rate_limit_lock_seconds=login_rate_limit_lock_seconds,
                login_rate_limit_max_lock_seconds=login_rate_limit_max_lock_seconds,
            ),
        )
