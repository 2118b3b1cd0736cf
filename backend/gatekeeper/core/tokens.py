"""Opaque bearer tokens.

A raw token is 128 URL-safe characters drawn from the OS CSPRNG. Only its
SHA-256 hex digest is ever stored; the digest doubles as the lookup key.
The raw value leaves the process exactly once, in a login response or an
email link.
"""

import hashlib
import secrets

from gatekeeper.core.errors import InternalError

# 96 random bytes encode to exactly 128 base64url characters (no padding)
_TOKEN_BYTES = 96
TOKEN_LENGTH = 128
DIGEST_LENGTH = 64


def new_token() -> str:
    """Generate a fresh raw token.

    Returns:
        128-character URL-safe string.

    Raises:
        InternalError: If the randomness source is unavailable.
    """
    try:
        return secrets.token_urlsafe(_TOKEN_BYTES)
    except OSError as exc:
        raise InternalError(
            "Randomness source unavailable", operation="token.generate"
        ) from exc


def digest(raw: str) -> str:
    """Derive the storage and lookup key for a raw token.

    Args:
        raw: Raw token as issued.

    Returns:
        64-character lowercase hex SHA-256 digest.
    """
    return hashlib.sha256(raw.encode()).hexdigest()
