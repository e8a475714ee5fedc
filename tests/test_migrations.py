from __future__ import annotations

import sqlite3
from pathlib import Path

import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from transit_auth.auth.repository import create_auth_repository
from transit_auth.core import mongo_migrations
from transit_auth.core.config import StoreConfig
from transit_auth.core.migrations import apply_migrations
from transit_auth.core.mongo_migrations import apply_mongo_migrations, connect_mongo


def test_apply_migrations_creates_auth_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "state.db"

    applied = apply_migrations(db_path)

    connection = sqlite3.connect(str(db_path))
    try:
        cursor = connection.cursor()
        tables = {
            row[0]
            for row in cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }

        assert {"schema_migrations", "users", "admins", "refresh_tokens"} <= tables
        assert "auth_login_attempts" in tables

        migration_ids = {
            row[0]
            for row in cursor.execute(
                "SELECT migration_id FROM schema_migrations"
            ).fetchall()
        }
        assert migration_ids == set(applied)
        assert "001_identities.sql" in migration_ids
        assert "002_refresh_tokens.sql" in migration_ids
        assert "003_login_attempts.sql" in migration_ids
    finally:
        connection.close()


def test_apply_migrations_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    first = apply_migrations(db_path)
    second = apply_migrations(db_path)

    assert len(first) == 3
    assert second == []


def test_identity_schema_rejects_empty_password_hash(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"
    apply_migrations(db_path)

    connection = sqlite3.connect(str(db_path))
    try:
        with pytest.raises(sqlite3.IntegrityError):
            connection.execute(
                "INSERT INTO users(id, email, password_hash, first_name, last_name, created_at) "
                "VALUES ('u1', 'a@b.co', '', 'Al', 'Ice', 1)"
            )
    finally:
        connection.close()


def test_apply_mongo_migrations_creates_indexes_once() -> None:
    db = mongomock.MongoClient()["transit_auth_test"]

    first = apply_mongo_migrations(db)
    second = apply_mongo_migrations(db)

    assert first == ["01_identity_indexes", "02_refresh_tokens"]
    assert second == []
    assert db["schema_migrations"].count_documents({}) == 2

    user_indexes = db["users"].index_information()
    assert user_indexes["email_1"]["unique"] is True
    assert user_indexes["id_1"]["unique"] is True
    assert db["admins"].index_information()["email_1"]["unique"] is True

    token_indexes = db["refresh_tokens"].index_information()
    assert token_indexes["token_hash_1"]["unique"] is True
    assert "subject_id_1" in token_indexes
    assert token_indexes["idx_refresh_tokens_expires_at_ttl"]["expireAfterSeconds"] == 0


def test_connect_mongo_returns_migrated_database(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(mongo_migrations.pymongo, "MongoClient", mongomock.MongoClient)

    db = connect_mongo("mongodb://localhost:27017", "transit_auth", timeout_seconds=0.1)

    assert db is not None
    assert db.name == "transit_auth"
    assert db["schema_migrations"].count_documents({}) == 2


class _DownAdmin:
    def command(self, name: str) -> None:
        raise ServerSelectionTimeoutError("no servers")


class _DownClient:
    instances: list["_DownClient"] = []

    def __init__(self, uri: str, **kwargs) -> None:
        self.admin = _DownAdmin()
        self.closed = False
        _DownClient.instances.append(self)

    def close(self) -> None:
        self.closed = True


def test_connect_mongo_unreachable_server_closes_client(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _DownClient.instances.clear()
    monkeypatch.setattr(mongo_migrations.pymongo, "MongoClient", _DownClient)

    assert connect_mongo("mongodb://db:27017", "transit_auth", timeout_seconds=0.1) is None
    assert [client.closed for client in _DownClient.instances] == [True]


def test_connect_mongo_invalid_uri_falls_back() -> None:
    assert connect_mongo("http://example.invalid", "transit_auth", timeout_seconds=0.1) is None


def test_create_auth_repository_falls_back_to_sqlite_on_invalid_uri(tmp_path: Path) -> None:
    config = StoreConfig(
        mongo_uri="not-a-mongo-uri",
        mongo_db="transit_auth",
        sqlite_path=str(tmp_path / "auth.db"),
        timeout_seconds=0.1,
    )

    repo = create_auth_repository(config, tmp_path)
    try:
        assert repo.backend == "sqlite"
        assert (tmp_path / "auth.db").exists()
    finally:
        repo.close()
