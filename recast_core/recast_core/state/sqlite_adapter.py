"""SQLite engine for local Recast deployments.

The API server and the ``recast`` CLI can open the same state file at the
same time, so connections use WAL journaling and wait on a busy database
instead of failing immediately.  Table definitions are identical to the
PostgreSQL deployment; only the URL differs.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path(".recast") / "state.db"

# Milliseconds a writer waits for another process's lock.
_BUSY_TIMEOUT_MS = 5000


def get_local_engine(db_path: Path | str = DEFAULT_STATE_PATH) -> AsyncEngine:
    """Open (and if needed create) a SQLite state file via aiosqlite.

    Parameters
    ----------
    db_path:
        Database file; missing parent directories are created.
        ``":memory:"`` gives a private throwaway database.
    """
    if str(db_path) == ":memory:":
        url = "sqlite+aiosqlite:///:memory:"
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite+aiosqlite:///{path}"

    engine = create_async_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine.sync_engine, "connect")
    def _configure_connection(dbapi_conn: object, _: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS}")
        cursor.close()

    logger.debug("Opened SQLite state file %s", url)
    return engine
