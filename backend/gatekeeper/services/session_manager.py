"""Login sessions with sliding expiry.

A session is an opaque bearer token whose digest is stored with a
``last_used_at`` timestamp. It stays valid as long as consecutive uses are
no more than ``session_idle_days`` apart; every successful validation
restarts the window. Expired and unknown tokens are indistinguishable to
the caller.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import tokens
from gatekeeper.core.clock import Clock, utcnow
from gatekeeper.core.config import Settings
from gatekeeper.core.errors import InternalError, UnauthorizedError, store_errors
from gatekeeper.core.ids import IdGenerator, IdGeneratorError, get_id_generator
from gatekeeper.repositories.session_repository import SessionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    """A newly created session.

    Attributes:
        session_id: Generator-assigned id.
        token: Raw bearer token. Returned to the client once, never stored.
    """

    session_id: int
    token: str


class SessionManager:
    """Issue, validate and revoke login sessions.

    Args:
        settings: Application settings (idle window).
        ids: Identifier generator. Defaults to the process-wide one.
        clock: Time source.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        ids: IdGenerator | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._idle_window = settings.session_idle_window
        self._ids = ids or get_id_generator()
        self._clock = clock

    async def create(self, db: AsyncSession, user_id: int) -> IssuedSession:
        """Open a session for an authenticated account.

        Args:
            db: Async database session.
            user_id: Account that logged in.

        Returns:
            IssuedSession with the raw token.

        Raises:
            InternalError: If id generation or the insert fails.
        """
        try:
            session_id = self._ids.next_id()
        except IdGeneratorError as exc:
            raise InternalError(
                "Could not allocate session id",
                operation="session.create",
                user_id=user_id,
            ) from exc

        raw = tokens.new_token()
        with store_errors("session.create", user_id=user_id):
            await SessionRepository.create(
                db,
                session_id=session_id,
                user_id=user_id,
                token_hash=tokens.digest(raw),
                now=self._clock(),
            )
        return IssuedSession(session_id=session_id, token=raw)

    async def validate(self, db: AsyncSession, raw: str) -> int:
        """Authenticate a bearer token and extend its window.

        Args:
            db: Async database session.
            raw: Raw bearer token from the Authorization header.

        Returns:
            Owning account id.

        Raises:
            UnauthorizedError: If no live session matches.
            InternalError: If the store fails.
        """
        if not raw:
            raise UnauthorizedError()

        with store_errors("session.validate"):
            user_id = await SessionRepository.touch(
                db,
                token_hash=tokens.digest(raw),
                now=self._clock(),
                idle_window=self._idle_window,
            )
        if user_id is None:
            raise UnauthorizedError()
        return user_id

    async def revoke(self, db: AsyncSession, raw: str) -> None:
        """Delete one session. Succeeds whether or not it existed.

        Args:
            db: Async database session.
            raw: Raw bearer token.

        Raises:
            InternalError: If the store fails.
        """
        with store_errors("session.revoke"):
            await SessionRepository.delete_by_hash(db, tokens.digest(raw))

    async def revoke_all(self, db: AsyncSession, user_id: int) -> int:
        """Delete every session of an account.

        Args:
            db: Async database session.
            user_id: Account whose sessions are revoked.

        Returns:
            Number of sessions removed.

        Raises:
            InternalError: If the store fails.
        """
        with store_errors("session.revoke_all", user_id=user_id):
            count = await SessionRepository.delete_for_user(db, user_id)
        logger.info("Revoked %d session(s) for user %d", count, user_id)
        return count
