from __future__ import annotations

import hashlib
import hmac


def sign(key: str, body: bytes) -> str:
    """HMAC-SHA256 of the exact request body, keyed by the project key.

    Returns 64 lowercase hex chars.  Must be computed over the bytes that
    go on the wire, not over a re-serialization of the payload.
    """
    return hmac.new(key.encode(), body, hashlib.sha256).hexdigest()
