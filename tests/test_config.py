from __future__ import annotations

import logging

import pytest

from transit_auth.auth.errors import InvalidTokenError
from transit_auth.auth.models import Admin, AdminRole
from transit_auth.auth.tokens import TokenIssuer
from transit_auth.core.config import AppConfig
from transit_auth.core.security import build_signed_token

_ENV_KEYS = (
    "AUTH_ACCESS_SECRET",
    "AUTH_REFRESH_SECRET",
    "AUTH_ACCESS_TOKEN_TTL_SECONDS",
    "AUTH_REFRESH_TOKEN_TTL_SECONDS",
    "AUTH_BCRYPT_ROUNDS",
    "AUTH_PASSWORD_MIN_LENGTH",
    "AUTH_ROTATE_REFRESH_TOKENS",
    "AUTH_SQLITE_PATH",
    "AUTH_STORE_TIMEOUT_SECONDS",
    "MONGODB_URI",
    "CORS_ALLOWED_ORIGINS",
    "LOGIN_RATE_LIMIT_MAX_ATTEMPTS",
    "LOGIN_RATE_LIMIT_WINDOW_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_from_env_defaults(clean_env) -> None:
    config = AppConfig.from_env()

    assert len(config.auth.access_secret) >= 32
    assert config.auth.effective_refresh_secret == config.auth.access_secret
    assert config.auth.access_token_ttl_seconds == 900
    assert config.auth.refresh_token_ttl_seconds == 604800
    assert config.auth.bcrypt_rounds == 12
    assert config.auth.rotate_refresh_tokens is True
    assert config.store.mongo_uri == ""
    assert config.store.sqlite_path == "runtime/auth_state.db"
    assert config.security.login_rate_limit_max_attempts == 5
    assert config.security.login_rate_limit_window_seconds == 900


def test_from_env_overrides(clean_env) -> None:
    clean_env.setenv("AUTH_ACCESS_SECRET", "a-secret")
    clean_env.setenv("AUTH_REFRESH_SECRET", "r-secret")
    clean_env.setenv("AUTH_ROTATE_REFRESH_TOKENS", "off")
    clean_env.setenv("AUTH_STORE_TIMEOUT_SECONDS", "2.5")
    clean_env.setenv("CORS_ALLOWED_ORIGINS", "https://a.example, ,https://b.example")

    config = AppConfig.from_env()

    assert config.auth.effective_refresh_secret == "r-secret"
    assert config.auth.rotate_refresh_tokens is False
    assert config.store.timeout_seconds == 2.5
    assert config.security.cors_allowed_origins == [
        "https://a.example",
        "https://b.example",
    ]


def test_from_env_enforces_minimum_cost_and_password_length(clean_env) -> None:
    clean_env.setenv("AUTH_BCRYPT_ROUNDS", "4")
    clean_env.setenv("AUTH_PASSWORD_MIN_LENGTH", "3")

    config = AppConfig.from_env()

    assert config.auth.bcrypt_rounds == 10
    assert config.auth.password_min_length == 6


def test_missing_access_secret_is_random_per_process_and_logged(clean_env, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="transit_auth.core.config"):
        first = AppConfig.from_env()
    second = AppConfig.from_env()

    assert first.auth.access_secret != second.auth.access_secret
    assert any(
        record.getMessage() == "auth_access_secret_missing" for record in caplog.records
    )


def test_missing_access_secret_does_not_accept_well_known_keys(clean_env) -> None:
    config = AppConfig.from_env()
    issuer = TokenIssuer(config.auth)
    root = Admin(
        id="root-id",
        email="root@x.io",
        password_hash="$2b$10$hash",
        first_name="Root",
        last_name="Admin",
        role=AdminRole.SUPER_ADMIN,
        created_at=1,
        updated_at=1,
    )
    claims = issuer.issue_access(root).payload.model_dump(mode="json")

    for guessed in ("dev-insecure-secret-change-me", "change-this-in-production", "secret"):
        with pytest.raises(InvalidTokenError):
            issuer.verify_access(build_signed_token(claims, guessed))


def test_configured_access_secret_is_used_verbatim(clean_env) -> None:
    clean_env.setenv("AUTH_ACCESS_SECRET", "  configured-secret  ")

    assert AppConfig.from_env().auth.access_secret == "configured-secret"
