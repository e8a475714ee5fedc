"""Pydantic models for the authentication domain."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class Audience(StrEnum):
    """Identity table a token or request belongs to."""

    USER = "user"
    ADMIN = "admin"


class AdminRole(StrEnum):
    """Privilege tier within the admin audience."""

    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class TokenType(StrEnum):
    """Value of the ``type`` claim."""

    ACCESS = "access"
    ADMIN = "admin"
    REFRESH = "refresh"


def normalize_email(value: str) -> str:
    """Lower-case and trim an email, raising ``ValueError`` when malformed."""
    email = (value or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValueError("Please provide a valid email address")
    return email


class User(BaseModel):
    """Persisted customer identity."""

    audience: ClassVar[Audience] = Audience.USER

    id: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    phone: str = ""
    address: str | None = None
    is_active: bool = True
    email_verified: bool = False
    last_login_at: int | None = None
    created_at: int

    @property
    def role(self) -> AdminRole | None:
        return None


class Admin(BaseModel):
    """Persisted back-office identity."""

    audience: ClassVar[Audience] = Audience.ADMIN

    id: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: AdminRole = AdminRole.ADMIN
    is_active: bool = True
    last_login_at: int | None = None
    created_at: int
    updated_at: int


Identity = Union[User, Admin]


def public_identity(identity: Identity) -> dict[str, Any]:
    """Return identity fields safe to send to clients."""
    payload = identity.model_dump(exclude={"password_hash"})
    payload["type"] = str(identity.audience)
    if isinstance(identity, Admin):
        payload["role"] = str(identity.role)
    return payload


class RefreshTokenRecord(BaseModel):
    """Refresh token persistence record."""

    token_hash: str
    subject_id: str
    audience: Audience
    expires_at: int
    created_at: int


@dataclass(frozen=True)
class AuthenticatedContext:
    """Identity resolved for a single request."""

    id: str
    email: str
    audience: Audience
    role: AdminRole | None = None

    @property
    def is_admin(self) -> bool:
        return self.audience == Audience.ADMIN


class AuthSession(BaseModel):
    """Tokens issued for an identity."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    audience: Audience
    identity: dict[str, Any]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _EmailModel(_CamelModel):
    email: str = Field(min_length=3, max_length=254)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


class RegisterRequest(_EmailModel):
    """Customer registration payload."""

    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    phone: str = Field(min_length=10, max_length=15)
    address: str | None = Field(default=None, max_length=255)


class LoginRequest(_EmailModel):
    """Login request payload."""

    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(_CamelModel):
    """Refresh request payload."""

    refresh_token: str = Field(min_length=1)


class LogoutRequest(_CamelModel):
    """Logout request payload."""

    refresh_token: str | None = None


class CreateAdminRequest(_EmailModel):
    """Admin creation payload."""

    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    role: AdminRole = AdminRole.ADMIN
