from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from transit_auth.api.contracts import HealthResponse
from transit_auth.api.http_setup import (
    register_exception_handlers,
    register_http_middleware,
)
from transit_auth.auth.guards import TokenValidator
from transit_auth.auth.middleware import create_auth_middleware
from transit_auth.auth.rate_limiter import LoginRateLimiter
from transit_auth.auth.repository import AuthRepository, create_auth_repository
from transit_auth.auth.router import create_auth_router
from transit_auth.auth.service import AuthService
from transit_auth.core.config import AppConfig
from transit_auth.core.logging import setup_logging
from transit_auth.core.passwords import PasswordHasher

LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def _resolve_path(raw: str, app_root: Path) -> Path:
    path = Path(raw)
    return path if path.is_absolute() else (app_root / path).resolve()


def create_app(
    config: AppConfig | None = None,
    *,
    app_root: Path = APP_ROOT,
    repository: AuthRepository | None = None,
    hasher: PasswordHasher | None = None,
) -> FastAPI:
    """Build the auth API.

    With no ``config`` the environment (and a ``.env`` file) is read once here;
    every component receives its settings through its constructor.
    """
    if config is None:
        load_dotenv()
        config = AppConfig.from_env()
        setup_logging(config.logging.level)

    repo = repository or create_auth_repository(config.store, app_root)
    auth_service = AuthService(repo, config.auth, hasher=hasher)
    login_rate_limiter = LoginRateLimiter(
        database_path=_resolve_path(config.store.sqlite_path, app_root),
        max_attempts=config.security.login_rate_limit_max_attempts,
        window_seconds=config.security.login_rate_limit_window_seconds,
        lock_seconds=config.security.login_rate_limit_lock_seconds,
        max_lock_seconds=config.security.login_rate_limit_max_lock_seconds,
        timeout_seconds=config.store.timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        purged = repo.purge_expired_refresh_tokens(int(time.time()))
        LOGGER.info(
            "auth_api_started",
            extra={"reason": f"backend={repo.backend} purged_refresh_tokens={purged}"},
        )
        try:
            yield
        finally:
            login_rate_limiter.close()
            repo.close()

    app = FastAPI(title="Transit Auth API", version="1.0.0", lifespan=lifespan)
    app.state.auth_service = auth_service
    app.state.auth_repository = repo

    # Last registered middleware runs first: CORS, then logging/limits, then auth.
    app.middleware("http")(create_auth_middleware(TokenValidator(auth_service)))
    register_http_middleware(app, config=config, logger=LOGGER)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    register_exception_handlers(app, logger=LOGGER)

    app.include_router(create_auth_router(auth_service, login_rate_limiter))

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    return app
