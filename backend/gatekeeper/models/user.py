"""User model - the account that credentials and tokens belong to."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from gatekeeper.models.base import Base

NAME_MAX_LENGTH = 64
EMAIL_MAX_LENGTH = 254


class User(Base):
    """Registered account.

    Attributes:
        id: Time-ordered 63-bit id assigned by the id generator.
        name: Display name.
        email: Unique email address, stored lower-cased and trimmed.
        password_hash: Argon2id digest.
        email_verified: Flips false to true once, when a verification
            token is consumed.
        created_at: Account creation timestamp.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
    )
    name: Mapped[str] = mapped_column(
        String(NAME_MAX_LENGTH),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
