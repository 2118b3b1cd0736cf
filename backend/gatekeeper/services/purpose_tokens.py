"""One-time tokens for email verification, password reset and email change.

Every purpose follows the same contract and differs only in its policy:
the table it lives in, its absolute validity window, and the notification
that carries it.

- At most one pending token per account per purpose. Issuing replaces the
  previous row, so only the most recent token is ever honored.
- Re-issue is throttled: while the pending token is younger than the
  cooldown, ``request`` stores nothing and returns None.
- Consumption deletes the row in the same statement that finds it, so a
  token is redeemed at most once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import tokens
from gatekeeper.core.clock import Clock, utcnow
from gatekeeper.core.config import Settings
from gatekeeper.core.email import NotificationKind, build_link
from gatekeeper.core.errors import GoneError, NotFoundError, store_errors
from gatekeeper.models.base import PurposeTokenMixin
from gatekeeper.models.purpose_token import (
    EmailChangeToken,
    PasswordResetToken,
    VerificationToken,
)
from gatekeeper.repositories.purpose_token_repository import PurposeTokenRepository

logger = logging.getLogger(__name__)


class TokenPurpose(StrEnum):
    """What a one-time token authorizes."""

    VERIFY_EMAIL = "verify_email"
    RESET_PASSWORD = "reset_password"
    CHANGE_EMAIL = "change_email"


_MODELS: dict[TokenPurpose, type[PurposeTokenMixin]] = {
    TokenPurpose.VERIFY_EMAIL: VerificationToken,
    TokenPurpose.RESET_PASSWORD: PasswordResetToken,
    TokenPurpose.CHANGE_EMAIL: EmailChangeToken,
}

_RESOURCE_NAMES: dict[TokenPurpose, str] = {
    TokenPurpose.VERIFY_EMAIL: "Verification token",
    TokenPurpose.RESET_PASSWORD: "Reset token",
    TokenPurpose.CHANGE_EMAIL: "Email change token",
}


@dataclass(frozen=True)
class PurposePolicy:
    """Per-purpose parameters.

    Attributes:
        purpose: Token purpose.
        model: Table holding pending tokens.
        ttl: Absolute validity from issuance, None for no limit.
        cooldown: Minimum age of a pending token before it may be replaced.
        notification: Email kind that delivers the token.
    """

    purpose: TokenPurpose
    model: type[PurposeTokenMixin]
    ttl: timedelta | None
    cooldown: timedelta
    notification: NotificationKind

    @property
    def resource(self) -> str:
        return _RESOURCE_NAMES[self.purpose]

    @classmethod
    def from_settings(
        cls, purpose: TokenPurpose, settings: Settings
    ) -> "PurposePolicy":
        """Build the policy for a purpose from configuration.

        Args:
            purpose: Token purpose.
            settings: Application settings.

        Returns:
            PurposePolicy for ``purpose``.
        """
        ttl_hours = {
            TokenPurpose.VERIFY_EMAIL: settings.verification_token_ttl_hours,
            TokenPurpose.RESET_PASSWORD: settings.reset_token_ttl_hours,
            TokenPurpose.CHANGE_EMAIL: settings.email_change_token_ttl_hours,
        }[purpose]
        return cls(
            purpose=purpose,
            model=_MODELS[purpose],
            ttl=timedelta(hours=ttl_hours) if ttl_hours is not None else None,
            cooldown=settings.token_resend_cooldown,
            notification=NotificationKind(purpose.value),
        )


@dataclass(frozen=True)
class ConsumedToken:
    """Outcome of a successful redemption.

    Attributes:
        user_id: Account the token belonged to.
        created_at: When the token was issued.
        new_email: Pending address (email-change tokens only).
    """

    user_id: int
    created_at: datetime
    new_email: str | None = None


class PurposeTokenManager:
    """Issue, throttle and consume tokens for one purpose.

    Args:
        policy: Parameters of the purpose.
        settings: Application settings (front-end URL for links).
        clock: Time source.
    """

    def __init__(
        self,
        policy: PurposePolicy,
        settings: Settings,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.policy = policy
        self._settings = settings
        self._clock = clock

    async def request(
        self,
        db: AsyncSession,
        user_id: int,
        *,
        new_email: str | None = None,
    ) -> str | None:
        """Issue a token unless one was issued within the cooldown.

        A raw token is generated on every call, including throttled ones,
        so the work done does not depend on the outcome.

        Args:
            db: Async database session.
            user_id: Owning account.
            new_email: Pending address (change-email purpose only).

        Returns:
            Raw token to deliver, or None if throttled.

        Raises:
            InternalError: If the store fails.
        """
        raw = tokens.new_token()
        operation = f"{self.policy.purpose}.request"
        with store_errors(operation, user_id=user_id):
            issued = await PurposeTokenRepository.issue(
                db,
                self.policy.model,
                user_id=user_id,
                token_hash=tokens.digest(raw),
                now=self._clock(),
                cooldown=self.policy.cooldown,
                new_email=new_email,
            )
        if not issued:
            logger.info("%s throttled for user %d", self.policy.purpose, user_id)
            return None
        return raw

    def burn(self) -> None:
        """Generate and digest a token without storing it.

        Used on the paths that must look like an issuance to an outside
        observer (unknown account, already verified account).
        """
        tokens.digest(tokens.new_token())

    async def consume(self, db: AsyncSession, raw: str) -> ConsumedToken:
        """Redeem a token.

        The row is deleted in the statement that finds it. A token past its
        validity window is not redeemed: its deletion is committed before
        GoneError is raised, so a later attempt answers "not found". Redeeming
        is the first write of every caller, so the commit carries nothing else.

        Args:
            db: Async database session.
            raw: Raw token from the link.

        Returns:
            ConsumedToken with the owner and payload.

        Raises:
            NotFoundError: If no pending token matches.
            GoneError: If the token is past its validity window.
            InternalError: If the store fails.
        """
        operation = f"{self.policy.purpose}.consume"
        with store_errors(operation):
            row = await PurposeTokenRepository.consume(
                db, self.policy.model, token_hash=tokens.digest(raw)
            )
        if row is None:
            raise NotFoundError(self.policy.resource)

        ttl = self.policy.ttl
        if ttl is not None and self._clock() - row.created_at > ttl:
            with store_errors(operation, user_id=row.user_id):
                await db.commit()
            raise GoneError(self.policy.resource)

        return ConsumedToken(
            user_id=row.user_id,
            created_at=row.created_at,
            new_email=row.new_email,
        )

    def link(self, raw: str) -> str:
        """Front-end link that delivers ``raw``."""
        return build_link(self._settings, self.policy.notification, raw)
