"""Apply the effect of a redeemed one-time token to an account.

Each operation redeems its token and applies the change on the same
database session. Nothing is committed here: the request handler commits
once, so a failure at any step rolls back the redemption together with
the change.

- verify_email: set the verified flag.
- reset_password: overwrite the digest and revoke every session.
- change_email: re-check that the address is still free, then overwrite.
- change_password: authenticated variant of reset, gated on the current
  password instead of a token.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core.errors import (
    ConflictError,
    InternalError,
    UnauthorizedError,
    store_errors,
)
from gatekeeper.core.passwords import PasswordHasher
from gatekeeper.repositories.user_repository import UserRepository
from gatekeeper.services.purpose_tokens import PurposeTokenManager
from gatekeeper.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

_EMAIL_TAKEN = "EMAIL_TAKEN"


class AccountMutator:
    """Credential and identity changes driven by tokens or passwords.

    Args:
        hasher: Password hasher.
        sessions: Session manager (for revocation).
        verify_tokens: Email-verification token manager.
        reset_tokens: Password-reset token manager.
        change_tokens: Email-change token manager.
    """

    def __init__(
        self,
        *,
        hasher: PasswordHasher,
        sessions: SessionManager,
        verify_tokens: PurposeTokenManager,
        reset_tokens: PurposeTokenManager,
        change_tokens: PurposeTokenManager,
    ) -> None:
        self._hasher = hasher
        self._sessions = sessions
        self._verify_tokens = verify_tokens
        self._reset_tokens = reset_tokens
        self._change_tokens = change_tokens

    async def verify_email(self, db: AsyncSession, raw: str) -> int:
        """Redeem a verification token and mark the account verified.

        Args:
            db: Async database session.
            raw: Raw verification token.

        Returns:
            Verified account id.

        Raises:
            NotFoundError: If the token is unknown or already used.
            GoneError: If verification tokens have a validity window and
                this one is past it.
            InternalError: If the store fails.
        """
        consumed = await self._verify_tokens.consume(db, raw)
        with store_errors("account.verify_email", user_id=consumed.user_id):
            await UserRepository.mark_verified(db, consumed.user_id)
        logger.info("Email verified for user %d", consumed.user_id)
        return consumed.user_id

    async def reset_password(
        self, db: AsyncSession, raw: str, new_password: str
    ) -> int:
        """Redeem a reset token, replace the password, revoke all sessions.

        The token is redeemed before the new password is hashed, so unknown
        and expired tokens cost no hashing work. A hashing failure raises
        before anything else is written and the request rolls back, which
        leaves the token redeemable.

        Args:
            db: Async database session.
            raw: Raw reset token.
            new_password: Replacement password (length already checked).

        Returns:
            Account id whose password was reset.

        Raises:
            NotFoundError: If the token is unknown or already used.
            GoneError: If the token is older than its validity window.
            InternalError: If hashing or the store fails.
        """
        consumed = await self._reset_tokens.consume(db, raw)
        user_id = consumed.user_id
        password_hash = await self._hasher.hash(new_password)

        with store_errors("account.reset_password", user_id=user_id):
            await UserRepository.set_password_hash(db, user_id, password_hash)
        await self._sessions.revoke_all(db, user_id)
        logger.info("Password reset for user %d", user_id)
        return user_id

    async def change_email(self, db: AsyncSession, raw: str) -> int:
        """Redeem an email-change token and move the account to the new address.

        Args:
            db: Async database session.
            raw: Raw email-change token.

        Returns:
            Account id whose email changed.

        Raises:
            NotFoundError: If the token is unknown or already used.
            GoneError: If the token is older than its validity window.
            ConflictError: If another account took the address meanwhile.
            InternalError: If the store fails.
        """
        consumed = await self._change_tokens.consume(db, raw)
        user_id = consumed.user_id
        new_email = consumed.new_email or ""

        with store_errors("account.change_email", user_id=user_id):
            taken = await UserRepository.email_registered(
                db, new_email, exclude_user_id=user_id
            )
        if taken:
            raise ConflictError(_EMAIL_TAKEN, "Email address is already in use")

        try:
            await UserRepository.set_email(db, user_id, new_email)
        except IntegrityError as exc:
            # Another account claimed the address between check and update
            raise ConflictError(
                _EMAIL_TAKEN, "Email address is already in use"
            ) from exc
        except SQLAlchemyError as exc:
            raise InternalError(
                "Database failure in account.change_email",
                operation="account.change_email",
                user_id=user_id,
            ) from exc

        logger.info("Email changed for user %d", user_id)
        return user_id

    async def change_password(
        self,
        db: AsyncSession,
        user_id: int,
        current_password: str,
        new_password: str,
    ) -> None:
        """Replace the password of an authenticated account.

        Every session, including the caller's, is revoked.

        Args:
            db: Async database session.
            user_id: Authenticated account.
            current_password: Password the caller claims is current.
            new_password: Replacement password (length already checked).

        Raises:
            UnauthorizedError: If ``current_password`` does not match.
            InternalError: If hashing or the store fails.
        """
        with store_errors("account.change_password", user_id=user_id):
            user = await UserRepository.get_by_id(db, user_id)
        if user is None:
            raise UnauthorizedError()

        if not await self._hasher.verify(current_password, user.password_hash):
            raise UnauthorizedError("Invalid credentials")

        password_hash = await self._hasher.hash(new_password)
        with store_errors("account.change_password", user_id=user_id):
            await UserRepository.set_password_hash(db, user_id, password_hash)
        await self._sessions.revoke_all(db, user_id)
        logger.info("Password changed for user %d", user_id)
