"""Security utilities: signed opaque tokens, identifier validation."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
from typing import Any

# Opaque ids: uuid hex or any url-safe token
ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def validate_id(value: str) -> bool:
    """Validate an opaque identifier: url-safe characters, 1-128 chars."""
    return bool(ID_PATTERN.match(value))


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _signature(body: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), body.encode("ascii"), hashlib.sha256).digest()
    return _b64encode(digest[:16])


def sign_token(payload: dict[str, Any], secret: str) -> str:
    """Encode a JSON payload as ``<body>.<signature>``."""
    body = _b64encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode())
    return f"{body}.{_signature(body, secret)}"


def verify_token(token: str, secret: str) -> dict[str, Any] | None:
    """Decode a token minted by sign_token. Returns None if it is not genuine."""
    body, sep, signature = token.partition(".")
    if not sep or not body:
        return None
    try:
        body.encode("ascii")
    except UnicodeEncodeError:
        return None
    if not hmac.compare_digest(signature.encode(), _signature(body, secret).encode()):
        return None
    try:
        payload = json.loads(_b64decode(body))
    except (binascii.Error, ValueError):
        return None
    return payload if isinstance(payload, dict) else None
