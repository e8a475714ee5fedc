"""Password hashing utilities using bcrypt.

Hashes embed their own salt and cost factor, so verification never needs the
configured rounds. ``dummy_verify`` exists for callers that must spend the same
time whether or not an account exists.

Example:
    >>> hasher = PasswordHasher(rounds=12)
    >>> hashed = hasher.hash("Secret123")
    >>> hasher.verify("Secret123", hashed)
    True
"""

from __future__ import annotations

import logging
import secrets

import bcrypt

from transit_auth.core.config import MIN_BCRYPT_ROUNDS

LOGGER = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes; newer releases raise instead of truncating.
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Salted bcrypt hashing with a fixed cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        """Initialize the hasher.

        Args:
            rounds: bcrypt cost factor. Values below 10 are rejected.
        """
        if rounds < MIN_BCRYPT_ROUNDS:
            raise ValueError(f"bcrypt rounds must be >= {MIN_BCRYPT_ROUNDS}")
        self._rounds = rounds
        # Same cost as real hashes so a dummy comparison takes as long as a real one.
        self._dummy_hash = self.hash(secrets.token_urlsafe(24))

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, password: str) -> str:
        """Hash a password.

        Raises:
            ValueError: If password is empty.
        """
        if not password:
            raise ValueError("Password cannot be empty")
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(_encode(password), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True when ``password`` matches ``password_hash``."""
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(
                _encode(password),
                password_hash.encode("utf-8"),
            )
        except ValueError as exc:
            LOGGER.warning("password_hash_unreadable", extra={"reason": str(exc)})
            return False

    def dummy_verify(self, password: str) -> bool:
        """Run a full-cost comparison that never succeeds."""
        self.verify(password or "x", self._dummy_hash)
        return False
