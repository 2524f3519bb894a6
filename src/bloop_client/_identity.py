from __future__ import annotations

import hashlib


def hash_user_id(raw: str) -> str:
    """SHA-256 hash truncated to 12 hex chars, prefixed with 'hash_'."""
    digest = hashlib.sha256(raw.encode()).hexdigest()[:12]
    return f"hash_{digest}"


def default_identify_user(headers: dict[str, str]) -> str | None:
    """Derive a user id hash from request headers.

    Priority:
      1. x-user-id
      2. Authorization (contains credentials)

    Both are hashed; raw identifiers are never reported.
    """
    user_id = headers.get("x-user-id")
    if user_id:
        return hash_user_id(user_id)

    auth = headers.get("authorization")
    if auth:
        return hash_user_id(auth)

    return None
