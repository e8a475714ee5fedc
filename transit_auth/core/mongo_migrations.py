"""Versioned MongoDB index migrations for auth collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo
from pymongo.errors import PyMongoError

from transit_auth.core.logging import get_correlation_id

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_01_identity_indexes(db: Any) -> None:
    db["users"].create_index("email", unique=True)
    db["users"].create_index("id", unique=True)
    db["admins"].create_index("email", unique=True)
    db["admins"].create_index("id", unique=True)


def _migration_02_refresh_tokens(db: Any) -> None:
    db["refresh_tokens"].create_index("token_hash", unique=True)
    db["refresh_tokens"].create_index("subject_id")
    db["refresh_tokens"].create_index(
        "expires_at_dt",
        expireAfterSeconds=0,
        name="idx_refresh_tokens_expires_at_ttl",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("01_identity_indexes", _migration_01_identity_indexes),
    ("02_refresh_tokens", _migration_02_refresh_tokens),
]


def apply_mongo_migrations(db: Any) -> list[str]:
    """Apply pending migrations to ``db`` and return the ids applied."""
    migration_collection = db["schema_migrations"]
    migration_collection.create_index("migration_id", unique=True)

    applied: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if migration_collection.find_one({"migration_id": migration_id}):
            continue
        migration_fn(db)
        migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": get_correlation_id(),
            }
        )
        applied.append(migration_id)
    return applied


def connect_mongo(uri: str, db_name: str, *, timeout_seconds: float) -> Any | None:
    """Connect and migrate; return ``None`` when the URI is unusable or the server unreachable.

    The returned database keeps its client reachable as ``db.client`` so the
    owner can close it.
    """
    timeout_ms = int(timeout_seconds * 1000)
    client: Any = None
    try:
        client = pymongo.MongoClient(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
        )
        client.admin.command("ping")
        db = client[db_name]
        apply_mongo_migrations(db)
    except (PyMongoError, ValueError) as exc:
        LOGGER.warning("mongo_unavailable_using_sqlite", extra={"reason": str(exc)})
        if client is not None:
            client.close()
        return None
    return db
