"""Repository for Session operations.

Sessions expire by inactivity. The window check and the refresh of
``last_used_at`` happen in one UPDATE ... RETURNING statement, so two
concurrent requests can never both revive a session that has lapsed.
"""

from datetime import datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.models.session import Session


class SessionRepository:
    """Stateless repository for Session table operations.

    All methods are static; there is no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        session_id: int,
        user_id: int,
        token_hash: str,
        now: datetime,
    ) -> Session:
        """Store a new session.

        Args:
            db: Async database session.
            session_id: Generator-assigned id.
            user_id: Owning account.
            token_hash: SHA-256 hex digest of the raw token.
            now: Creation time, also the initial last-used time.

        Returns:
            Created Session.
        """
        session = Session(
            id=session_id,
            user_id=user_id,
            token_hash=token_hash,
            created_at=now,
            last_used_at=now,
        )
        db.add(session)
        await db.flush()
        return session

    @staticmethod
    async def touch(
        db: AsyncSession,
        *,
        token_hash: str,
        now: datetime,
        idle_window: timedelta,
    ) -> int | None:
        """Refresh a live session and return its owner.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the presented token.
            now: Current time.
            idle_window: Longest permitted gap since the last use.

        Returns:
            Owning account id, or None if no live session matched.
        """
        stmt = (
            update(Session)
            .where(
                Session.token_hash == token_hash,
                Session.last_used_at >= now - idle_window,
            )
            .values(last_used_at=now)
            .returning(Session.user_id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_by_hash(db: AsyncSession, token_hash: str) -> int:
        """Delete the session with a given token digest.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest.

        Returns:
            Number of rows deleted (0 or 1).
        """
        stmt = (
            delete(Session)
            .where(Session.token_hash == token_hash)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount

    @staticmethod
    async def delete_for_user(db: AsyncSession, user_id: int) -> int:
        """Delete every session of an account.

        Args:
            db: Async database session.
            user_id: Account whose sessions are revoked.

        Returns:
            Number of rows deleted.
        """
        stmt = (
            delete(Session)
            .where(Session.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount

    @staticmethod
    async def delete_idle(db: AsyncSession, cutoff: datetime) -> int:
        """Delete sessions last used before ``cutoff``.

        Args:
            db: Async database session.
            cutoff: Sessions idle since before this instant are removed.

        Returns:
            Number of rows deleted.
        """
        stmt = (
            delete(Session)
            .where(Session.last_used_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount
