"""
Passkey Utilities

Encoding and validation helpers shared by the ceremonies, stores and the
HTTP adapter.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
from typing import Any, Optional

from passkey.errors import InvalidRequestError


def b64url_encode(data: bytes) -> str:
    """Base64url encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    """Base64url decode, restoring padding."""
    try:
        return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
    except (binascii.Error, ValueError) as e:
        raise InvalidRequestError(f"Invalid base64url value: {e}") from e


def fingerprint(data: bytes) -> str:
    """Short, non-reversible identifier for logging secrets such as challenges."""
    return hashlib.sha256(data).hexdigest()[:16]


def require_username(username: Any) -> str:
    """Validate a username for ceremonies that require one."""
    if not isinstance(username, str) or not username.strip():
        raise InvalidRequestError("username is required")
    return username


def extract_raw_id(response: dict[str, Any]) -> bytes:
    """Pull the raw credential id out of a PublicKeyCredential JSON object."""
    raw_id = response.get("rawId") or response.get("id")
    if not isinstance(raw_id, str) or not raw_id:
        raise InvalidRequestError("Response is missing rawId")
    return b64url_decode(raw_id)


def extract_user_handle(response: dict[str, Any]) -> Optional[bytes]:
    """Pull the optional userHandle out of an assertion response."""
    inner = response.get("response")
    if not isinstance(inner, dict):
        raise InvalidRequestError("Response is missing the authenticator response")
    user_handle = inner.get("userHandle")
    if not user_handle:
        return None
    return b64url_decode(user_handle)
