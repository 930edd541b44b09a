"""Shared fixtures for Recast core tests.

Provides a controllable clock plus both record store backings.  The SQL
store runs against a real SQLite file under ``tmp_path`` via aiosqlite so
that the same ORM code paths as production are exercised.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from recast_core.state.memory import InMemoryRecordStore
from recast_core.state.sql import SQLRecordStore

_EPOCH = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = _EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_store(clock: FakeClock) -> InMemoryRecordStore:
    return InMemoryRecordStore(clock=clock)


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path, clock: FakeClock) -> AsyncGenerator[SQLRecordStore, None]:
    """SQL record store backed by a fresh SQLite file."""
    store = SQLRecordStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}", clock=clock)
    await store.create_tables()
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request: pytest.FixtureRequest, tmp_path: Path, clock: FakeClock):
    """Each backing in turn, for behaviour both must share."""
    if request.param == "memory":
        yield InMemoryRecordStore(clock=clock)
        return

    sql = SQLRecordStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'shared.db'}", clock=clock)
    await sql.create_tables()
    yield sql
    await sql.close()
