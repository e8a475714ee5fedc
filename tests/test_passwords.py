from __future__ import annotations

import pytest

from transit_auth.core.passwords import PasswordHasher


@pytest.fixture(scope="module")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=10)


def test_hash_is_salted_and_verifies(hasher: PasswordHasher) -> None:
    first = hasher.hash("secret123")
    second = hasher.hash("secret123")

    assert first != second
    assert first.startswith("$2b$10$")
    assert hasher.verify("secret123", first)
    assert hasher.verify("secret123", second)
    assert not hasher.verify("secret124", first)


def test_verify_handles_empty_and_unreadable_hashes(hasher: PasswordHasher) -> None:
    assert not hasher.verify("secret123", "")
    assert not hasher.verify("", hasher.hash("secret123"))
    assert not hasher.verify("secret123", "not-a-bcrypt-hash")


def test_hash_rejects_empty_password(hasher: PasswordHasher) -> None:
    with pytest.raises(ValueError):
        hasher.hash("")


def test_low_cost_factor_is_rejected() -> None:
    with pytest.raises(ValueError):
        PasswordHasher(rounds=4)


def test_long_passwords_hash_without_error(hasher: PasswordHasher) -> None:
    password = "x" * 100

    assert hasher.verify(password, hasher.hash(password))


def test_dummy_verify_never_succeeds(hasher: PasswordHasher) -> None:
    assert hasher.dummy_verify("anything") is False
    assert hasher.dummy_verify("") is False
