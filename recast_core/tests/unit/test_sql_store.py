"""Tests for the SQLite engine, session helpers and SQL record store plumbing.

Covers:
- get_local_engine / get_engine dispatch for SQLite URLs
- create_tables idempotence
- session_scope commit/rollback
- SQLRecordStore: ping, error wrapping, malformed rows
"""

from __future__ import annotations

from pathlib import Path

import pytest
from recast_core.errors import StorageError
from recast_core.models import UserUpsert
from recast_core.state.database import (
    create_tables,
    get_engine,
    get_session_factory,
    session_scope,
    sqlite_path_from_url,
)
from recast_core.state.sql import SQLRecordStore
from recast_core.state.sqlite_adapter import get_local_engine
from recast_core.state.tables import UsageTable, UserTable
from sqlalchemy import select, text

# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------


class TestGetLocalEngine:
    """Verify SQLite engine creation."""

    def test_creates_in_memory_engine(self) -> None:
        engine = get_local_engine(":memory:")
        assert "sqlite" in str(engine.url)

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "deep" / "state.db"
        engine = get_local_engine(db_path)
        assert db_path.parent.exists()
        assert "state.db" in str(engine.url)

    def test_sqlite_url_dispatches_to_local_engine(self, tmp_path: Path) -> None:
        engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
        assert engine.url.drivername == "sqlite+aiosqlite"
        assert "dispatch.db" in str(engine.url)

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("sqlite+aiosqlite:///.recast/state.db", ".recast/state.db"),
            ("sqlite+aiosqlite:////var/lib/recast.db", "/var/lib/recast.db"),
            ("sqlite+aiosqlite:///", ":memory:"),
            ("sqlite+aiosqlite://", ":memory:"),
        ],
    )
    def test_sqlite_path_from_url(self, url: str, expected: str) -> None:
        assert sqlite_path_from_url(url) == expected

    @pytest.mark.asyncio
    async def test_busy_timeout_applied(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "busy.db")
        async with engine.connect() as conn:
            timeout = (await conn.execute(text("PRAGMA busy_timeout"))).scalar_one()
        await engine.dispose()
        assert timeout == 5000


class TestCreateTables:
    """Verify that ORM tables can be created in SQLite."""

    @pytest.mark.asyncio
    async def test_creates_tables_on_disk(self, tmp_path: Path) -> None:
        db_path = tmp_path / "tables.db"
        engine = get_local_engine(db_path)
        await create_tables(engine)
        assert db_path.exists()
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_idempotent_creation(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "idem.db")
        await create_tables(engine)
        await create_tables(engine)
        await engine.dispose()


class TestSessionScope:
    """Verify session lifecycle with SQLite."""

    @pytest.mark.asyncio
    async def test_commit_on_success(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "commit.db")
        await create_tables(engine)
        factory = get_session_factory(engine)

        async with session_scope(factory) as session:
            session.add(UsageTable(user_id="cus_1", content_url="https://example.com", created_at=1))

        async with session_scope(factory) as session:
            rows = (await session.execute(select(UsageTable))).scalars().all()
        assert len(rows) == 1
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "rollback.db")
        await create_tables(engine)
        factory = get_session_factory(engine)

        with pytest.raises(ValueError, match="boom"):
            async with session_scope(factory) as session:
                session.add(UsageTable(user_id="cus_1", content_url="https://example.com", created_at=1))
                await session.flush()
                raise ValueError("boom")

        async with session_scope(factory) as session:
            rows = (await session.execute(select(UsageTable))).scalars().all()
        assert rows == []
        await engine.dispose()


# ---------------------------------------------------------------------------
# SQLRecordStore plumbing
# ---------------------------------------------------------------------------


class TestSQLRecordStore:
    """Verify error wrapping and lifecycle of the durable backing."""

    @pytest.mark.asyncio
    async def test_ping_reports_healthy(self, sql_store: SQLRecordStore) -> None:
        assert await sql_store.ping() is True

    @pytest.mark.asyncio
    async def test_missing_tables_raise_storage_error(self, tmp_path: Path) -> None:
        store = SQLRecordStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        try:
            with pytest.raises(StorageError):
                await store.get_user_by_id("cus_1")
            with pytest.raises(StorageError):
                await store.record_usage("cus_1", "https://example.com")
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_malformed_plan_raises_storage_error(self, sql_store: SQLRecordStore) -> None:
        await sql_store.upsert_user(UserUpsert(id="cus_1", email="a@b.com"))
        async with sql_store._session() as session:
            await session.execute(text("UPDATE users SET plan = 'platinum' WHERE id = 'cus_1'"))

        with pytest.raises(StorageError, match="Malformed user row"):
            await sql_store.get_user_by_id("cus_1")

    @pytest.mark.asyncio
    async def test_upsert_persists_epoch_millis(self, sql_store: SQLRecordStore, clock) -> None:
        await sql_store.upsert_user(UserUpsert(id="cus_1", email="a@b.com"))
        async with sql_store._session() as session:
            row = (await session.execute(select(UserTable).where(UserTable.id == "cus_1"))).scalar_one()

        assert row.created_at == int(clock.now.timestamp() * 1000)
        assert row.plan == "free"

    @pytest.mark.asyncio
    async def test_create_tables_requires_engine(self, sql_store: SQLRecordStore) -> None:
        bare = SQLRecordStore(sql_store._factory)
        with pytest.raises(RuntimeError):
            await bare.create_tables()
