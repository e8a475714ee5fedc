"""Login throttling with exponential lockout, backed by SQLite."""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator

from transit_auth.api.errors import ApiError, ApiErrorCode
from transit_auth.auth.errors import StoreUnavailableError
from transit_auth.core.logging import log_auth_event
from transit_auth.core.migrations import apply_migrations

LOGGER = logging.getLogger(__name__)


class LoginRateLimiter:
    """Throttle failed logins per (email, client ip).

    After ``max_attempts`` failures inside ``window_seconds`` the principal is
    locked. Each consecutive lockout doubles the lock duration up to
    ``max_lock_seconds``; a successful login clears the history.
    """

    def __init__(
        self,
        *,
        database_path: Path,
        max_attempts: int,
        window_seconds: int,
        lock_seconds: int,
        max_lock_seconds: int,
        timeout_seconds: float = 5.0,
    ) -> None:
        """Initialize limiter storage and policy parameters."""
        apply_migrations(database_path, timeout_seconds=timeout_seconds)
        self._connection = sqlite3.connect(
            str(database_path), timeout=timeout_seconds, check_same_thread=False
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = Lock()
        self._max_attempts = max(1, int(max_attempts))
        self._window_seconds = max(1, int(window_seconds))
        self._lock_seconds = max(1, int(lock_seconds))
        self._max_lock_seconds = max(self._lock_seconds, int(max_lock_seconds))

    @staticmethod
    def _key(email: str, client_ip: str) -> tuple[str, str]:
        return email.strip().lower(), client_ip.strip() or "unknown"

    @contextmanager
    def _guarded(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._connection
            except sqlite3.Error as exc:
                LOGGER.error("rate_limiter_store_error", extra={"reason": str(exc)})
                raise StoreUnavailableError(operation) from exc

    def lock_duration(self, lockout_count: int) -> int:
        """Return the lock length for the ``lockout_count``-th consecutive lockout."""
        exponent = max(0, lockout_count - 1)
        return min(self._lock_seconds * (2**exponent), self._max_lock_seconds)

    def assert_allowed(
        self, *, email: str, client_ip: str, now: int | None = None
    ) -> None:
        """Raise 429 when login attempts are currently locked for the principal."""
        current = int(time.time()) if now is None else now
        key_email, key_ip = self._key(email, client_ip)
        with self._guarded("rate_limit_check") as connection:
            row = connection.execute(
                """
                SELECT locked_until
                FROM auth_login_attempts
                WHERE email = ? AND client_ip = ?
                """,
                (key_email, key_ip),
            ).fetchone()
        if row is None:
            return

        locked_until = int(row["locked_until"] or 0)
        if locked_until > current:
            retry_after = locked_until - current
            log_auth_event(
                LOGGER,
                "login_throttled",
                level=logging.WARNING,
                client_ip=key_ip,
                reason=f"retry_after={retry_after}",
            )
            raise ApiError(
                status_code=429,
                error_code=ApiErrorCode.AUTH_RATE_LIMITED,
                message=(
                    "Too many login attempts. "
                    f"Retry after {retry_after} seconds."
                ),
                headers={"Retry-After": str(retry_after)},
            )

    def record_success(self, *, email: str, client_ip: str) -> None:
        """Reset limiter state after successful login."""
        key_email, key_ip = self._key(email, client_ip)
        with self._guarded("rate_limit_reset") as connection:
            connection.execute(
                "DELETE FROM auth_login_attempts WHERE email = ? AND client_ip = ?",
                (key_email, key_ip),
            )
            connection.commit()

    def record_failure(
        self, *, email: str, client_ip: str, now: int | None = None
    ) -> int:
        """Record a failed login; return the lock length applied (0 if none)."""
        current = int(time.time()) if now is None else now
        key_email, key_ip = self._key(email, client_ip)
        with self._guarded("rate_limit_record") as connection:
            row = connection.execute(
                """
                SELECT failed_attempts, last_failed_at, lockout_count
                FROM auth_login_attempts
                WHERE email = ? AND client_ip = ?
                """,
                (key_email, key_ip),
            ).fetchone()

            failed_attempts = 1
            first_failed_at = current
            lockout_count = 0
            if row is not None:
                last_failed_at = int(row["last_failed_at"] or 0)
                if last_failed_at and (current - last_failed_at) <= self._window_seconds:
                    failed_attempts = int(row["failed_attempts"] or 0) + 1
                    lockout_count = int(row["lockout_count"] or 0)

            locked_until = 0
            applied_lock = 0
            if failed_attempts >= self._max_attempts:
                lockout_count += 1
                applied_lock = self.lock_duration(lockout_count)
                locked_until = current + applied_lock
                failed_attempts = 0

            connection.execute(
                """
                INSERT INTO auth_login_attempts(
                  email, client_ip, failed_attempts, first_failed_at,
                  last_failed_at, locked_until, lockout_count
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(email, client_ip) DO UPDATE SET
                  failed_attempts = excluded.failed_attempts,
                  first_failed_at = CASE
                    WHEN excluded.failed_attempts = 1 THEN excluded.first_failed_at
                    ELSE auth_login_attempts.first_failed_at
                  END,
                  last_failed_at = excluded.last_failed_at,
                  locked_until = excluded.locked_until,
                  lockout_count = excluded.lockout_count
                """,
                (
                    key_email,
                    key_ip,
                    failed_attempts,
                    first_failed_at,
                    current,
                    locked_until,
                    lockout_count,
                ),
            )
            connection.commit()
        return applied_lock

    def close(self) -> None:
        """Close SQLite resources."""
        with self._lock:
            self._connection.close()
