"""Compact HS256 token signing and token fingerprinting."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any

_HEADER = {"alg": "HS256", "typ": "JWT"}


class TokenDecodeError(ValueError):
    """Raised when a compact token cannot be trusted."""


def _b64url_encode(raw: bytes) -> str:
    """Return URL-safe base64 string without padding."""
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    """Decode unpadded URL-safe base64, rejecting any non-canonical spelling."""
    padding = "=" * (-len(value) % 4)
    raw = base64.b64decode(
        (value + padding).encode("ascii"), altchars=b"-_", validate=True
    )
    # One token string per byte sequence: no stray characters or unused bits.
    if _b64url_encode(raw) != value:
        raise ValueError("non-canonical base64 segment")
    return raw


def _signature(signing_input: bytes, secret_key: str) -> bytes:
    return hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Create compact signed token using JWT 3-part structure."""
    if not secret_key:
        raise ValueError("Signing secret must not be empty")
    header_part = _b64url_encode(
        json.dumps(_HEADER, separators=(",", ":")).encode("utf-8")
    )
    payload_part = _b64url_encode(
        json.dumps(payload, separators=(",", ":")).encode("utf-8")
    )
    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    signature_part = _b64url_encode(_signature(signing_input, secret_key))
    return f"{header_part}.{payload_part}.{signature_part}"


def decode_signed_token(
    token: str, secret_key: str, *, now: int | None = None
) -> dict[str, Any]:
    """Verify signature and expiry, raising ``TokenDecodeError`` on failure.

    The ``exp`` claim is mandatory; a token without one is rejected rather than
    treated as non-expiring.
    """
    parts = (token or "").split(".")
    if len(parts) != 3 or not all(parts):
        raise TokenDecodeError("malformed")
    header_part, payload_part, signature_part = parts

    try:
        header = json.loads(_b64url_decode(header_part).decode("utf-8"))
        got_sig = _b64url_decode(signature_part)
    except (ValueError, UnicodeDecodeError) as exc:
        raise TokenDecodeError("malformed") from exc
    if not isinstance(header, dict) or header.get("alg") != _HEADER["alg"]:
        raise TokenDecodeError("unsupported_algorithm")

    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    if not hmac.compare_digest(_signature(signing_input, secret_key), got_sig):
        raise TokenDecodeError("bad_signature")

    try:
        payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise TokenDecodeError("malformed") from exc
    if not isinstance(payload, dict):
        raise TokenDecodeError("malformed")

    try:
        exp = int(payload.get("exp") or 0)
    except (TypeError, ValueError) as exc:
        raise TokenDecodeError("malformed") from exc
    current = int(time.time()) if now is None else now
    if exp <= current:
        raise TokenDecodeError("expired")

    return payload


def fingerprint_token(token: str) -> str:
    """Hash a raw token for storage and lookup; raw tokens are never persisted."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
