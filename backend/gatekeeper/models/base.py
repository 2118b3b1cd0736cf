"""SQLAlchemy base classes and common mixins.

Defines the declarative base and the column set shared by the three
one-time token tables.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class PurposeTokenMixin:
    """Columns shared by every one-time token table.

    ``user_id`` is the primary key, so an account holds at most one pending
    token per purpose. Issuing a new token replaces the row in place.

    Attributes:
        user_id: Owning account (one row per account).
        token_hash: SHA-256 hex digest of the raw token. Unique lookup key.
        created_at: Issuance time. Drives both the resend cooldown and the
            absolute validity window.
    """

    @declared_attr
    def user_id(cls) -> Mapped[int]:  # noqa: N805 - declared_attr receives the class
        return mapped_column(
            BigInteger,
            ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
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
