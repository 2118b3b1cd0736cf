"""Repository for one-time token operations.

Works on any of the three token tables (VerificationToken,
PasswordResetToken, EmailChangeToken); the model class is passed in.

Both state changes are single statements:

- Issue: ``INSERT ... ON CONFLICT (user_id) DO UPDATE ... WHERE created_at
  <= cooldown_start RETURNING user_id``. A fresh row or a stale row yields
  the new token; a row still inside the cooldown is left untouched and
  nothing is returned.
- Consume: ``DELETE ... WHERE token_hash = :h RETURNING ...``. Exactly one
  of several concurrent redemptions sees the row.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, exists, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.models.base import PurposeTokenMixin
from gatekeeper.models.purpose_token import EmailChangeToken


@dataclass(frozen=True)
class ConsumedRow:
    """Columns returned by a successful delete.

    Attributes:
        user_id: Account the token belonged to.
        created_at: When the token was issued.
        new_email: Pending address (email-change tokens only).
    """

    user_id: int
    created_at: datetime
    new_email: str | None = None


class PurposeTokenRepository:
    """Stateless repository for the one-time token tables.

    All methods are static; there is no instance state.
    """

    @staticmethod
    async def issue(
        db: AsyncSession,
        model: type[PurposeTokenMixin],
        *,
        user_id: int,
        token_hash: str,
        now: datetime,
        cooldown: timedelta,
        new_email: str | None = None,
    ) -> bool:
        """Store a token unless a recent one is still pending.

        Args:
            db: Async database session.
            model: Token table model.
            user_id: Owning account.
            token_hash: SHA-256 hex digest of the new raw token.
            now: Issuance time.
            cooldown: Minimum age of an existing row before it is replaced.
            new_email: Pending address (EmailChangeToken only).

        Returns:
            True if the row was written, False if the cooldown is active.
        """
        values: dict[str, object] = {
            "user_id": user_id,
            "token_hash": token_hash,
            "created_at": now,
        }
        if new_email is not None:
            values["new_email"] = new_email

        stmt = pg_insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={key: stmt.excluded[key] for key in values if key != "user_id"},
            where=model.created_at <= now - cooldown,
        ).returning(model.user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def consume(
        db: AsyncSession,
        model: type[PurposeTokenMixin],
        *,
        token_hash: str,
    ) -> ConsumedRow | None:
        """Delete a token by digest and return what it carried.

        Args:
            db: Async database session.
            model: Token table model.
            token_hash: SHA-256 hex digest of the presented token.

        Returns:
            ConsumedRow if a row was deleted, None otherwise.
        """
        columns = [model.user_id, model.created_at]
        if model is EmailChangeToken:
            columns.append(EmailChangeToken.new_email)

        stmt = (
            delete(model)
            .where(model.token_hash == token_hash)
            .returning(*columns)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return ConsumedRow(*row)

    @staticmethod
    async def pending_email_claimed(
        db: AsyncSession,
        *,
        email: str,
        exclude_user_id: int,
        not_before: datetime,
    ) -> bool:
        """Check for another account's live email-change request.

        Args:
            db: Async database session.
            email: Lower-cased address.
            exclude_user_id: The requesting account.
            not_before: Requests created before this instant have expired.

        Returns:
            True if another account has a non-expired request for ``email``.
        """
        condition = (
            (EmailChangeToken.new_email == email)
            & (EmailChangeToken.user_id != exclude_user_id)
            & (EmailChangeToken.created_at >= not_before)
        )
        result = await db.execute(select(exists().where(condition)))
        return bool(result.scalar())

    @staticmethod
    async def delete_created_before(
        db: AsyncSession,
        model: type[PurposeTokenMixin],
        cutoff: datetime,
    ) -> int:
        """Delete tokens issued before ``cutoff``.

        Args:
            db: Async database session.
            model: Token table model.
            cutoff: Rows created before this instant are removed.

        Returns:
            Number of rows deleted.
        """
        stmt = (
            delete(model)
            .where(model.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount
