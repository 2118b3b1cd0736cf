"""Initial schema: accounts, sessions, one-time tokens, error log.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

- users: accounts keyed by generator-assigned BIGINT ids
- sessions: opaque bearer sessions with a sliding idle window
- verification_tokens / reset_tokens / email_change_tokens: at most one
  pending token per account per purpose (user_id is the primary key)
- error_log: persistent storage behind the audit sink
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_TOKEN_TABLES = ("verification_tokens", "reset_tokens", "email_change_tokens")


def _token_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("token_hash", sa.String(64), unique=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # =========================================================================
    # Accounts
    # =========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("email", sa.String(254), unique=True, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "email_verified",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # =========================================================================
    # Sessions
    # =========================================================================
    op.create_table(
        "sessions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), unique=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_last_used_at", "sessions", ["last_used_at"])

    # =========================================================================
    # One-time tokens
    # =========================================================================
    op.create_table("verification_tokens", *_token_columns())
    op.create_table("reset_tokens", *_token_columns())
    op.create_table(
        "email_change_tokens",
        *_token_columns(),
        sa.Column("new_email", sa.String(254), nullable=False),
    )
    op.create_index(
        "ix_email_change_tokens_new_email", "email_change_tokens", ["new_email"]
    )

    # =========================================================================
    # Error log
    # =========================================================================
    op.create_table(
        "error_log",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("machine_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("stack_trace", sa.Text(), nullable=True),
        sa.Column(
            "context",
            JSONB(),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("error_log")
    op.drop_index("ix_email_change_tokens_new_email", table_name="email_change_tokens")
    for table in reversed(_TOKEN_TABLES):
        op.drop_table(table)
    op.drop_index("ix_sessions_last_used_at", table_name="sessions")
    op.drop_index("ix_sessions_user_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_table("users")
