"""Alembic environment for the Recast record store.

The URL comes from ``ALEMBIC_DATABASE_URL``, then ``RECAST_DATABASE_URL``
(the same variable the API reads), then ``sqlalchemy.url`` in alembic.ini,
then the local SQLite default.  Async driver names are swapped for their
synchronous counterparts because Alembic runs revisions synchronously.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from recast_core.state.tables import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

_DEFAULT_DATABASE_URL = "sqlite:///.recast/state.db"

# Async URL prefix -> sync prefix used for migrations.
_SYNC_PREFIXES: tuple[tuple[str, str], ...] = (
    ("postgresql+asyncpg://", "postgresql+psycopg://"),
    ("postgresql://", "postgresql+psycopg://"),
    ("sqlite+aiosqlite://", "sqlite://"),
)


def _to_sync_url(url: str) -> str:
    for async_prefix, sync_prefix in _SYNC_PREFIXES:
        if url.startswith(async_prefix):
            url = sync_prefix + url[len(async_prefix) :]
            break
    # asyncpg spells it ssl=, libpq spells it sslmode=.
    return url.replace("ssl=require", "sslmode=require")


def _database_url() -> str:
    url = (
        os.environ.get("ALEMBIC_DATABASE_URL")
        or os.environ.get("RECAST_DATABASE_URL")
        or config.get_main_option("sqlalchemy.url")
    )
    if not url:
        logger.info("No database URL configured; migrating %s", _DEFAULT_DATABASE_URL)
        url = _DEFAULT_DATABASE_URL
    return _to_sync_url(url)


def _configure_options(url: str) -> dict[str, object]:
    # SQLite cannot ALTER most columns in place; batch mode rebuilds the table.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Print the migration SQL instead of executing it (``alembic upgrade --sql``)."""
    url = _database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = _database_url()
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = url

    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        with connectable.connect() as connection:
            context.configure(connection=connection, **_configure_options(url))
            with context.begin_transaction():
                context.run_migrations()
    finally:
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
