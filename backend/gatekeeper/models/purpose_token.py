"""One-time token models: email verification, password reset, email change.

Each table holds at most one row per account (``user_id`` is the primary
key). Rows are replaced on re-issue and deleted on consumption.
"""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from gatekeeper.models.base import Base, PurposeTokenMixin
from gatekeeper.models.user import EMAIL_MAX_LENGTH


class VerificationToken(Base, PurposeTokenMixin):
    """Pending email verification for a new account."""

    __tablename__ = "verification_tokens"


class PasswordResetToken(Base, PurposeTokenMixin):
    """Pending password reset."""

    __tablename__ = "reset_tokens"


class EmailChangeToken(Base, PurposeTokenMixin):
    """Pending email change.

    Attributes:
        new_email: Proposed address. Counts as claimed against other
            accounts until the token expires or is consumed.
    """

    __tablename__ = "email_change_tokens"
    __table_args__ = (
        Index("ix_email_change_tokens_new_email", "new_email"),
    )

    new_email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH),
        nullable=False,
    )
