"""Repository for user/admin identities and refresh token persistence."""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Iterator, Protocol

from pymongo.errors import DuplicateKeyError, PyMongoError

from transit_auth.auth.errors import ConflictError, StoreUnavailableError
from transit_auth.auth.models import (
    Admin,
    Audience,
    Identity,
    RefreshTokenRecord,
    User,
)
from transit_auth.core.config import StoreConfig
from transit_auth.core.migrations import apply_migrations
from transit_auth.core.mongo_migrations import connect_mongo

LOGGER = logging.getLogger(__name__)

_TABLES: dict[Audience, str] = {Audience.USER: "users", Audience.ADMIN: "admins"}
_MODELS: dict[Audience, type[User] | type[Admin]] = {
    Audience.USER: User,
    Audience.ADMIN: Admin,
}


class CredentialStore(Protocol):
    """Identity lookups and writes the auth service depends on."""

    def find_by_email(self, audience: Audience, email: str) -> Identity | None: ...

    def find_by_id(self, audience: Audience, identity_id: str) -> Identity | None: ...

    def create_identity(self, audience: Audience, fields: dict[str, Any]) -> Identity: ...

    def touch_last_login(
        self, audience: Audience, identity_id: str, timestamp: int
    ) -> None: ...

    def set_active(
        self, audience: Audience, identity_id: str, is_active: bool
    ) -> bool: ...


class RefreshTokenStore(Protocol):
    """Persistence for issued refresh tokens."""

    def save_refresh_token(self, record: RefreshTokenRecord) -> None: ...

    def find_refresh_token(
        self, token_hash: str, subject_id: str, now: int
    ) -> RefreshTokenRecord | None: ...

    def delete_refresh_tokens(self, token_hash: str) -> int: ...


class AuthRepository:
    """Auth repository with MongoDB primary and SQLite fallback."""

    def __init__(
        self,
        database_path: Path,
        *,
        timeout_seconds: float = 5.0,
        mongo_db: Any | None = None,
    ) -> None:
        """Initialize repository storage backends."""
        self._lock = Lock()
        self._mongo = mongo_db
        self._connection: sqlite3.Connection | None = None
        if self._mongo is None:
            apply_migrations(database_path, timeout_seconds=timeout_seconds)
            self._connection = sqlite3.connect(
                str(database_path),
                timeout=timeout_seconds,
                check_same_thread=False,
            )
            self._connection.row_factory = sqlite3.Row

    @property
    def backend(self) -> str:
        return "mongodb" if self._mongo is not None else "sqlite"

    @contextmanager
    def _store_call(self, operation: str) -> Iterator[None]:
        """Translate backend failures into the auth error taxonomy."""
        try:
            yield
        except (sqlite3.IntegrityError, DuplicateKeyError) as exc:
            LOGGER.info("store_conflict", extra={"reason": operation})
            raise ConflictError() from exc
        except (sqlite3.Error, PyMongoError) as exc:
            LOGGER.error(
                "store_unavailable",
                extra={"reason": f"{operation}: {exc}"},
            )
            raise StoreUnavailableError(operation) from exc

    def _sql(self) -> sqlite3.Connection:
        if self._connection is None:
            raise StoreUnavailableError("sqlite_closed")
        return self._connection

    @staticmethod
    def _to_identity(audience: Audience, row: Any) -> Identity | None:
        if not row:
            return None
        return _MODELS[audience].model_validate(dict(row))

    def find_by_email(self, audience: Audience, email: str) -> Identity | None:
        """Get identity by normalized email."""
        key = email.strip().lower()
        table = _TABLES[audience]
        with self._store_call("find_by_email"):
            if self._mongo is not None:
                doc = self._mongo[table].find_one({"email": key}, {"_id": 0})
                return self._to_identity(audience, doc)
            with self._lock:
                row = self._sql().execute(
                    f"SELECT * FROM {table} WHERE email = ?", (key,)
                ).fetchone()
        return self._to_identity(audience, row)

    def find_by_id(self, audience: Audience, identity_id: str) -> Identity | None:
        """Get identity by primary id."""
        table = _TABLES[audience]
        with self._store_call("find_by_id"):
            if self._mongo is not None:
                doc = self._mongo[table].find_one({"id": identity_id}, {"_id": 0})
                return self._to_identity(audience, doc)
            with self._lock:
                row = self._sql().execute(
                    f"SELECT * FROM {table} WHERE id = ?", (identity_id,)
                ).fetchone()
        return self._to_identity(audience, row)

    def create_identity(self, audience: Audience, fields: dict[str, Any]) -> Identity:
        """Insert a new identity; duplicate email raises ``ConflictError``."""
        if not fields.get("password_hash"):
            raise ValueError("Identity requires a password hash")
        now = int(time.time())
        data = {**fields, "id": uuid.uuid4().hex, "created_at": now}
        data["email"] = str(data.get("email") or "").strip().lower()
        if audience == Audience.ADMIN:
            data["updated_at"] = now
        identity = _MODELS[audience].model_validate(data)
        doc = identity.model_dump(mode="json")
        table = _TABLES[audience]

        with self._store_call("create_identity"):
            if self._mongo is not None:
                self._mongo[table].insert_one(dict(doc))
                return identity
            columns = ", ".join(doc)
            placeholders = ", ".join("?" for _ in doc)
            with self._lock:
                connection = self._sql()
                try:
                    connection.execute(
                        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                        tuple(doc.values()),
                    )
                    connection.commit()
                except sqlite3.Error:
                    connection.rollback()
                    raise
        return identity

    def touch_last_login(
        self, audience: Audience, identity_id: str, timestamp: int
    ) -> None:
        """Record a successful login time."""
        table = _TABLES[audience]
        updates: dict[str, Any] = {"last_login_at": timestamp}
        if audience == Audience.ADMIN:
            updates["updated_at"] = timestamp
        self._update(table, identity_id, updates, operation="touch_last_login")

    def set_active(self, audience: Audience, identity_id: str, is_active: bool) -> bool:
        """Activate or deactivate an identity; return False when it does not exist."""
        table = _TABLES[audience]
        updates: dict[str, Any] = {"is_active": bool(is_active)}
        if audience == Audience.ADMIN:
            updates["updated_at"] = int(time.time())
        return self._update(table, identity_id, updates, operation="set_active") > 0

    def _update(
        self, table: str, identity_id: str, updates: dict[str, Any], *, operation: str
    ) -> int:
        with self._store_call(operation):
            if self._mongo is not None:
                result = self._mongo[table].update_one(
                    {"id": identity_id}, {"$set": updates}
                )
                return int(result.matched_count)
            assignments = ", ".join(f"{column} = ?" for column in updates)
            with self._lock:
                connection = self._sql()
                cursor = connection.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ?",
                    (*updates.values(), identity_id),
                )
                connection.commit()
                return cursor.rowcount

    def save_refresh_token(self, record: RefreshTokenRecord) -> None:
        """Persist an issued refresh token."""
        doc = record.model_dump(mode="json")
        with self._store_call("save_refresh_token"):
            if self._mongo is not None:
                self._mongo["refresh_tokens"].insert_one(
                    {
                        **doc,
                        "expires_at_dt": datetime.fromtimestamp(
                            record.expires_at, tz=timezone.utc
                        ),
                    }
                )
                return
            with self._lock:
                connection = self._sql()
                connection.execute(
                    """
                    INSERT INTO refresh_tokens(
                      token_hash, subject_id, audience, expires_at, created_at
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        doc["token_hash"],
                        doc["subject_id"],
                        doc["audience"],
                        doc["expires_at"],
                        doc["created_at"],
                    ),
                )
                connection.commit()

    def find_refresh_token(
        self, token_hash: str, subject_id: str, now: int
    ) -> RefreshTokenRecord | None:
        """Get an unexpired refresh token owned by ``subject_id``."""
        with self._store_call("find_refresh_token"):
            if self._mongo is not None:
                doc = self._mongo["refresh_tokens"].find_one(
                    {
                        "token_hash": token_hash,
                        "subject_id": subject_id,
                        "expires_at": {"$gt": now},
                    },
                    {"_id": 0, "expires_at_dt": 0},
                )
            else:
                with self._lock:
                    doc = self._sql().execute(
                        """
                        SELECT token_hash, subject_id, audience, expires_at, created_at
                        FROM refresh_tokens
                        WHERE token_hash = ? AND subject_id = ? AND expires_at > ?
                        """,
                        (token_hash, subject_id, now),
                    ).fetchone()
        return RefreshTokenRecord.model_validate(dict(doc)) if doc else None

    def delete_refresh_tokens(self, token_hash: str) -> int:
        """Delete every row for ``token_hash``; return how many were removed."""
        with self._store_call("delete_refresh_tokens"):
            if self._mongo is not None:
                result = self._mongo["refresh_tokens"].delete_many(
                    {"token_hash": token_hash}
                )
                return int(result.deleted_count)
            with self._lock:
                connection = self._sql()
                cursor = connection.execute(
                    "DELETE FROM refresh_tokens WHERE token_hash = ?", (token_hash,)
                )
                connection.commit()
                return cursor.rowcount

    def purge_expired_refresh_tokens(self, now: int) -> int:
        """Remove refresh tokens whose expiry has passed."""
        with self._store_call("purge_expired_refresh_tokens"):
            if self._mongo is not None:
                result = self._mongo["refresh_tokens"].delete_many(
                    {"expires_at": {"$lte": now}}
                )
                return int(result.deleted_count)
            with self._lock:
                connection = self._sql()
                cursor = connection.execute(
                    "DELETE FROM refresh_tokens WHERE expires_at <= ?", (now,)
                )
                connection.commit()
                return cursor.rowcount

    def close(self) -> None:
        """Close the SQLite connection or the MongoDB client."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
            if self._mongo is not None:
                self._mongo.client.close()


def create_auth_repository(config: StoreConfig, app_root: Path) -> AuthRepository:
    """Build repository from store config, preferring MongoDB when reachable."""
    mongo_db = None
    if config.mongo_uri:
        mongo_db = connect_mongo(
            config.mongo_uri, config.mongo_db, timeout_seconds=config.timeout_seconds
        )
    database_path = Path(config.sqlite_path)
    if not database_path.is_absolute():
        database_path = (app_root / database_path).resolve()
    return AuthRepository(
        database_path,
        timeout_seconds=config.timeout_seconds,
        mongo_db=mongo_db,
    )
