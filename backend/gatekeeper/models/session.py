"""Session model - opaque login sessions with sliding expiry.

A session stays valid while it keeps being used: each successful
validation moves ``last_used_at`` forward. No expiry column is stored.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from gatekeeper.models.base import Base


class Session(Base):
    """Login session.

    Attributes:
        id: Generator-assigned id.
        user_id: Owning account.
        token_hash: SHA-256 hex digest of the bearer token.
        created_at: Login time.
        last_used_at: Last successful validation.
    """

    __tablename__ = "sessions"
    __table_args__ = (
        Index("ix_sessions_user_id", "user_id"),
        Index("ix_sessions_last_used_at", "last_used_at"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
