"""Alembic environment: uses secmon config for DATABASE_URL and Base.metadata for autogenerate."""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

os.environ.setdefault("APP_ENV", "dev")
from secmon.core.config import settings
from secmon.models import Base

# Every model must be imported so Base.metadata holds every table.
from secmon.models import IgnoreRule, Issue, NotificationTask, Option, RunLock, User  # noqa: F401

config = context.config
# alembic.ini may not define logging sections; fileConfig raises KeyError then.
if config.config_file_name is not None:
    try:
        fileConfig(config.config_file_name)
    except KeyError:
        pass

target_metadata = Base.metadata


def get_url() -> str:
    return settings.DATABASE_URL


def run_migrations_offline() -> None:
    """Emit SQL without connecting."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(get_url(), poolclass=NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
