from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Coroutine, cast

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from transit_auth.api.http_setup import (
    register_exception_handlers,
    register_http_middleware,
)
from transit_auth.auth.errors import StoreUnavailableError, UnauthorizedError
from transit_auth.core.config import (
    AppConfig,
    AuthConfig,
    LoggingConfig,
    SecurityConfig,
    StoreConfig,
)

LOGGER = logging.getLogger(__name__)


def _config() -> AppConfig:
    return AppConfig(
        auth=AuthConfig(
            access_secret="secret",
            refresh_secret="",
            access_token_ttl_seconds=900,
            refresh_token_ttl_seconds=3600,
            issuer="test",
            bcrypt_rounds=10,
            password_min_length=8,
            rotate_refresh_tokens=True,
        ),
        store=StoreConfig(
            sqlite_path="runtime/test.db",
            mongo_uri="",
            mongo_db="test",
            timeout_seconds=1.0,
        ),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:3000"],
            request_max_bytes=8,
            login_rate_limit_max_attempts=5,
            login_rate_limit_window_seconds=300,
            login_rate_limit_lock_seconds=60,
            login_rate_limit_max_lock_seconds=600,
        ),
    )


def _request(path: str, method: str = "GET", headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _dispatch_by_name(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


def _resolve_response(result: Response | Awaitable[Response]) -> Response:
    if inspect.iscoroutine(result):
        return asyncio.run(cast(Coroutine[Any, Any, Response], result))
    return cast(Response, result)


def _app() -> FastAPI:
    app = FastAPI()
    register_http_middleware(app, config=_config(), logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    return app


def test_http_setup_adds_security_headers_and_request_id() -> None:
    dispatch = _dispatch_by_name(_app(), "request_logging_middleware")
    request = _request("/ok", headers=[(b"x-request-id", b"req-123")])

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(request, call_next))
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"] == "no-store"


def test_http_setup_rejects_large_request_before_handler() -> None:
    dispatch = _dispatch_by_name(_app(), "request_size_limit_middleware")
    request = _request("/echo", method="POST", headers=[(b"content-length", b"20")])

    async def call_next(_request: Request) -> Response:
        raise AssertionError("handler must not run")

    response = asyncio.run(dispatch(request, call_next))
    assert response.status_code == 413
    assert b"REQUEST_TOO_LARGE" in response.body


def test_http_setup_serializes_http_exception_payload() -> None:
    handler = _app().exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(
            _request("/not-found"),
            HTTPException(
                status_code=404,
                detail={"error_code": "ROUTE_NOT_FOUND", "message": "missing"},
            ),
        )
    )
    assert response.status_code == 404
    assert json.loads(response.body) == {
        "error_code": "ROUTE_NOT_FOUND",
        "message": "missing",
    }


def test_http_setup_hides_unauthorized_reason_and_keeps_challenge_header() -> None:
    handler = _app().exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(_request("/api/v1/auth/login"), UnauthorizedError("wrong_password"))
    )

    body = json.loads(response.body)
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert body == {"error_code": "AUTH_UNAUTHORIZED", "message": "Invalid credentials"}
    assert b"wrong_password" not in response.body


def test_http_setup_maps_store_outage_to_503() -> None:
    handler = _app().exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(_request("/api/v1/auth/login"), StoreUnavailableError("find_by_email"))
    )

    assert response.status_code == 503
    assert b"STORE_UNAVAILABLE" in response.body
    assert b"find_by_email" not in response.body


def test_http_setup_handles_unexpected_exceptions() -> None:
    handler = _app().exception_handlers[Exception]
    response: Response = _resolve_response(handler(_request("/boom"), RuntimeError("boom")))
    assert response.status_code == 500
    assert b"INTERNAL_SERVER_ERROR" in response.body
    assert b"boom" not in response.body


def test_http_setup_handles_validation_exception_with_field_messages() -> None:
    handler = _app().exception_handlers[RequestValidationError]
    error = RequestValidationError(
        [
            {
                "type": "string_too_short",
                "loc": ("body", "password"),
                "msg": "String should have at least 8 characters",
                "input": "short",
            }
        ]
    )
    response: Response = _resolve_response(handler(_request("/validation"), error))

    body = json.loads(response.body)
    assert response.status_code == 400
    assert body["error_code"] == "VALIDATION_ERROR"
    assert body["fields"] == [
        {"field": "password", "message": "String should have at least 8 characters"}
    ]
