"""Password hashing and verification with Argon2id.

Wraps argon2-cffi using its default (RFC 9106 low-memory) cost parameters.
Hashing and verification are CPU- and memory-bound, so both run in a worker
thread to keep the event loop responsive.

Security: raw passwords are never logged and never placed in error context.
"""

import asyncio

import argon2
from argon2.exceptions import (
    HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)

from gatekeeper.core.errors import InternalError

# Fixed input for the dummy digest used when an account does not exist.
_DUMMY_PASSWORD = "gatekeeper-dummy-password"  # nosec B105


class PasswordHasher:
    """Memory-hard password hashing.

    Args:
        hasher: argon2-cffi hasher. Tests pass one with reduced cost.
    """

    def __init__(self, hasher: argon2.PasswordHasher | None = None) -> None:
        self._hasher = hasher or argon2.PasswordHasher()
        self._dummy_digest: str | None = None

    async def hash(self, password: str) -> str:
        """Compute a salted Argon2id digest.

        Args:
            password: Plain password.

        Returns:
            Encoded digest (PHC string format).

        Raises:
            InternalError: If the hashing primitive fails.
        """
        try:
            return await asyncio.to_thread(self._hasher.hash, password)
        except HashingError as exc:
            raise InternalError(
                "Password hashing failed", operation="password.hash"
            ) from exc

    async def verify(self, password: str, digest: str) -> bool:
        """Check a password against a stored digest.

        Args:
            password: Plain password supplied by the caller.
            digest: Stored Argon2 digest.

        Returns:
            True if the password matches, False otherwise.

        Raises:
            InternalError: If the stored digest is malformed.
        """
        try:
            return await asyncio.to_thread(self._hasher.verify, digest, password)
        except VerifyMismatchError:
            return False
        except InvalidHashError as exc:
            raise InternalError(
                "Stored password digest is malformed", operation="password.verify"
            ) from exc
        except VerificationError:
            # Raised for digests of a different Argon2 variant or corrupted
            # parameters; treated as a non-match.
            return False

    def needs_rehash(self, digest: str) -> bool:
        """Whether a digest was produced with weaker than current parameters."""
        try:
            return self._hasher.check_needs_rehash(digest)
        except InvalidHashError:
            return False

    async def verify_dummy(self, password: str) -> None:
        """Burn one verification for an account that does not exist.

        Security: keeps login latency independent of account existence.
        The dummy digest is computed on first use, off the event loop.
        """
        if self._dummy_digest is None:
            self._dummy_digest = await self.hash(_DUMMY_PASSWORD)
        await self.verify(password, self._dummy_digest)
