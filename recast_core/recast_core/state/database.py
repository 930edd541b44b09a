"""Engine and session plumbing shared by the SQL record store and the CLI.

The URL scheme picks the backend:

* ``sqlite+aiosqlite:///path`` opens a local file through
  :mod:`recast_core.state.sqlite_adapter` (``:memory:`` when no path).
* anything else, normally ``postgresql+asyncpg://``, gets a pooled engine.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

# Server-side guard so a stuck usage count cannot hold a request forever.
_PG_STATEMENT_TIMEOUT_MS = "15000"


def is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def sqlite_path_from_url(database_url: str) -> str:
    """Return the file path part of a SQLite URL, or ``":memory:"``."""
    _, sep, path = database_url.partition("///")
    return path if sep and path else ":memory:"


def get_engine(
    database_url: str,
    *,
    pool_size: int = 5,
    max_overflow: int = 5,
) -> AsyncEngine:
    """Build the async engine for *database_url*.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL with an async driver.
    pool_size, max_overflow:
        Pool sizing for server databases.  SQLite ignores both; it is a
        single-writer file and the store keeps transactions short.
    """
    if is_sqlite_url(database_url):
        from recast_core.state.sqlite_adapter import get_local_engine

        return get_local_engine(sqlite_path_from_url(database_url))

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        connect_args={"server_settings": {"statement_timeout": _PG_STATEMENT_TIMEOUT_MS}},
    )
    logger.info("Record store engine ready (%s, pool_size=%d)", engine.url.get_backend_name(), pool_size)
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows are converted to models after commit, so keep attributes loaded.
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit on success, roll back and re-raise on error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables(engine: AsyncEngine) -> None:
    """Create ``users`` and ``usage`` if missing.

    Local deployments call this on startup; production schemas are managed
    by the Alembic revisions under ``state/migrations``.
    """
    from recast_core.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Record store tables verified: %s", ", ".join(sorted(Base.metadata.tables)))
