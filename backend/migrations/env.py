"""Alembic environment configuration.

Connects to the database named by the application settings and runs
migrations against the gatekeeper models.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from gatekeeper.core.config import get_settings
from gatekeeper.models import Base

config = context.config

# The URL is not pushed into the Alembic config: ConfigParser would treat
# any % in the password as interpolation syntax.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    context.configure(
        url=get_settings().database_url_sync,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = create_engine(
        get_settings().database_url_sync,
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
