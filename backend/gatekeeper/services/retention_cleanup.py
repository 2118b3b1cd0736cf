"""Retention cleanup service.

Removes rows that can no longer authenticate anything:

- Sessions idle for longer than the idle window (they already fail
  validation; this only reclaims space).
- Reset and email-change tokens past their absolute validity window.
- Verification tokens past their window, when one is configured.

Validation never depends on this job having run: expiry is always computed
from timestamps at use time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core.clock import utcnow
from gatekeeper.core.config import Settings
from gatekeeper.core.errors import APIError
from gatekeeper.repositories.purpose_token_repository import PurposeTokenRepository
from gatekeeper.repositories.session_repository import SessionRepository
from gatekeeper.services.purpose_tokens import PurposePolicy, TokenPurpose

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenCleanupResult:
    """Result of expired token cleanup.

    Attributes:
        verification_tokens: Verification tokens deleted.
        reset_tokens: Password reset tokens deleted.
        email_change_tokens: Email change tokens deleted.
    """

    verification_tokens: int
    reset_tokens: int
    email_change_tokens: int


@dataclass(frozen=True)
class AllCleanupResult:
    """Aggregate result of all cleanup jobs.

    Attributes:
        idle_sessions: Idle sessions deleted.
        tokens: Expired token counts per purpose.
    """

    idle_sessions: int
    tokens: TokenCleanupResult


class CleanupError(APIError):
    """Raised when a cleanup operation fails at the database level."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="CLEANUP_ERROR",
            message=message,
            status_code=500,
        )


async def cleanup_idle_sessions(
    db: AsyncSession, settings: Settings, now: datetime
) -> int:
    """Delete sessions whose last use is older than the idle window.

    Args:
        db: Database session.
        settings: Application settings (idle window).
        now: Reference time.

    Returns:
        Number of sessions deleted.

    Raises:
        CleanupError: If the database operation fails.
    """
    try:
        return await SessionRepository.delete_idle(
            db, now - settings.session_idle_window
        )
    except SQLAlchemyError as exc:
        logger.error("Idle session cleanup failed: %s", exc)
        raise CleanupError("Idle session cleanup failed") from exc


async def cleanup_expired_tokens(
    db: AsyncSession, settings: Settings, now: datetime
) -> TokenCleanupResult:
    """Delete one-time tokens past their absolute validity window.

    Purposes without a window are left untouched.

    Args:
        db: Database session.
        settings: Application settings (validity windows).
        now: Reference time.

    Returns:
        TokenCleanupResult with deletion counts.

    Raises:
        CleanupError: If the database operation fails.
    """
    counts: dict[TokenPurpose, int] = {}
    for purpose in TokenPurpose:
        policy = PurposePolicy.from_settings(purpose, settings)
        if policy.ttl is None:
            counts[purpose] = 0
            continue
        try:
            counts[purpose] = await PurposeTokenRepository.delete_created_before(
                db, policy.model, now - policy.ttl
            )
        except SQLAlchemyError as exc:
            logger.error("Expired %s cleanup failed: %s", purpose, exc)
            raise CleanupError(f"Expired {purpose} cleanup failed") from exc

    return TokenCleanupResult(
        verification_tokens=counts[TokenPurpose.VERIFY_EMAIL],
        reset_tokens=counts[TokenPurpose.RESET_PASSWORD],
        email_change_tokens=counts[TokenPurpose.CHANGE_EMAIL],
    )


async def run_all_cleanups(
    db: AsyncSession, settings: Settings, now: datetime | None = None
) -> AllCleanupResult:
    """Run every cleanup job. The caller commits.

    Args:
        db: Database session.
        settings: Application settings.
        now: Reference time. Defaults to the current time.

    Returns:
        AllCleanupResult with counts from all cleanup categories.

    Raises:
        CleanupError: If the database operation fails.
    """
    now = now or utcnow()
    sessions = await cleanup_idle_sessions(db, settings, now)
    tokens = await cleanup_expired_tokens(db, settings, now)
    logger.info(
        "Retention cleanup: %d idle sessions, %d/%d/%d expired tokens",
        sessions,
        tokens.verification_tokens,
        tokens.reset_tokens,
        tokens.email_change_tokens,
    )
    return AllCleanupResult(idle_sessions=sessions, tokens=tokens)
