"""Error log model - persistent storage behind the audit sink."""

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from gatekeeper.models.base import Base


class ErrorLog(Base):
    """One recorded internal failure.

    Attributes:
        id: Generator-assigned id.
        machine_id: Machine id of the process that recorded the error.
        name: Operation name (e.g., "session.validate").
        message: Human-readable summary.
        error: Text of the underlying exception.
        stack_trace: Formatted traceback, if one was available.
        context: Structured context. Never holds raw secrets.
        user_id: Acting account id, NULL when unauthenticated.
        created_at: When the error was recorded.
    """

    __tablename__ = "error_log"

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
    )
    machine_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
    )
    error: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
    )
    stack_trace: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    context: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
    )
    user_id: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
