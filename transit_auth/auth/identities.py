"""Per-audience identity lookups used by login and token resolution."""

from __future__ import annotations

from typing import Protocol

from transit_auth.auth.models import Audience, Identity
from transit_auth.auth.repository import CredentialStore


class IdentityLookup(Protocol):
    """Resolve identities of a single audience."""

    audience: Audience

    def find_by_email(self, email: str) -> Identity | None: ...

    def find_by_id(self, identity_id: str) -> Identity | None: ...

    def touch_last_login(self, identity_id: str, timestamp: int) -> None: ...


class StoreIdentityLookup:
    """``IdentityLookup`` bound to one table of a credential store."""

    def __init__(self, store: CredentialStore, audience: Audience) -> None:
        self._store = store
        self.audience = audience

    def find_by_email(self, email: str) -> Identity | None:
        return self._store.find_by_email(self.audience, email)

    def find_by_id(self, identity_id: str) -> Identity | None:
        return self._store.find_by_id(self.audience, identity_id)

    def touch_last_login(self, identity_id: str, timestamp: int) -> None:
        self._store.touch_last_login(self.audience, identity_id, timestamp)

    def __repr__(self) -> str:
        return f"StoreIdentityLookup(audience={self.audience!s})"


def ordered_lookups(store: CredentialStore) -> tuple[IdentityLookup, ...]:
    """Lookups in login order; admins win an email collision across tables."""
    return (
        StoreIdentityLookup(store, Audience.ADMIN),
        StoreIdentityLookup(store, Audience.USER),
    )
