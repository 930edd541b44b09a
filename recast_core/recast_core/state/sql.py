"""Durable record store on SQLAlchemy async sessions.

Each operation runs in its own short transaction (``session_scope``) and
commits before returning.  There is deliberately no transaction spanning
several operations: the quota check and the usage write are separate
calls.

Anonymous usage rows are written but never counted:
:meth:`SQLRecordStore.count_usage_since` returns 0 for ``user_id=None``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from recast_core.errors import StorageError
from recast_core.models import (
    Plan,
    UsageRecord,
    User,
    UserUpsert,
    from_epoch_ms,
    to_epoch_ms,
    utcnow,
)
from recast_core.state.database import create_tables, get_engine, get_session_factory, session_scope
from recast_core.state.store import DEFAULT_HISTORY_LIMIT
from recast_core.state.tables import UsageTable, UserTable

logger = logging.getLogger(__name__)


async def _dialect_upsert(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
    update_columns: list[str],
) -> Any:
    """Dialect-aware upsert: PostgreSQL ``ON CONFLICT DO UPDATE`` or SQLite equivalent.

    Columns absent from *update_columns* keep their stored value on
    conflict, which is how ``created_at`` survives repeated upserts.
    """
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")

    stmt: Any
    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_={col: getattr(stmt.excluded, col) for col in update_columns},
        )
    else:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_={col: values[col] for col in update_columns},
        )
    return await session.execute(stmt)


def _to_user(row: UserTable) -> User:
    try:
        return User(
            id=row.id,
            email=row.email,
            plan=Plan(row.plan),
            subscription_ref=row.stripe_subscription_id,
            created_at=from_epoch_ms(row.created_at),
        )
    except (ValueError, TypeError) as exc:
        raise StorageError(f"Malformed user row {row.id!r}") from exc


def _to_usage(row: UsageTable) -> UsageRecord:
    try:
        return UsageRecord(
            id=row.id,
            user_id=row.user_id,
            subject_url=row.content_url,
            payload_snapshot=row.generated_content,
            tone=row.tone,
            created_at=from_epoch_ms(row.created_at),
        )
    except (ValueError, TypeError) as exc:
        raise StorageError(f"Malformed usage row {row.id!r}") from exc


class SQLRecordStore:
    """Relational :class:`~recast_core.state.store.RecordStore`.

    Parameters
    ----------
    session_factory:
        Factory producing sessions bound to the target database.
    engine:
        Owning engine, disposed by :meth:`close` when given.
    clock:
        Source of "now" for new rows.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._factory = session_factory
        self._engine = engine
        self._clock = clock

    @classmethod
    def from_url(cls, database_url: str, **kwargs: Any) -> SQLRecordStore:
        """Build a store owning a fresh engine for *database_url*."""
        engine = get_engine(database_url)
        return cls(get_session_factory(engine), engine=engine, **kwargs)

    async def create_tables(self) -> None:
        if self._engine is None:
            raise RuntimeError("create_tables() requires a store constructed with an engine")
        try:
            await create_tables(self._engine)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to create tables") from exc

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with session_scope(self._factory) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Record store operation failed: %s", exc, exc_info=True)
            raise StorageError("Record store operation failed") from exc

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def upsert_user(self, user: UserUpsert) -> User:
        created_at = user.created_at or self._clock()
        values = {
            "id": user.id,
            "email": user.email,
            "plan": user.plan.value,
            "stripe_subscription_id": user.subscription_ref,
            "created_at": to_epoch_ms(created_at),
        }
        async with self._session() as session:
            await _dialect_upsert(
                session,
                UserTable,
                values,
                index_elements=["id"],
                update_columns=["email", "plan", "stripe_subscription_id"],
            )
            result = await session.execute(select(UserTable).where(UserTable.id == user.id))
            row = result.scalar_one()
            return _to_user(row)

    async def get_user_by_id(self, user_id: str) -> User | None:
        async with self._session() as session:
            result = await session.execute(select(UserTable).where(UserTable.id == user_id))
            row = result.scalar_one_or_none()
        return _to_user(row) if row is not None else None

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(UserTable).where(UserTable.email == email).order_by(UserTable.created_at).limit(1)
        async with self._session() as session:
            result = await session.execute(stmt)
            row = result.scalars().first()
        return _to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def record_usage(
        self,
        user_id: str | None,
        subject_url: str,
        payload_snapshot: str | None = None,
        tone: str | None = None,
    ) -> UsageRecord:
        row = UsageTable(
            user_id=user_id,
            content_url=subject_url,
            generated_content=payload_snapshot,
            tone=tone,
            created_at=to_epoch_ms(self._clock()),
        )
        async with self._session() as session:
            session.add(row)
            await session.flush()
            return _to_usage(row)

    async def get_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[UsageRecord]:
        stmt = (
            select(UsageTable)
            .where(UsageTable.user_id == user_id)
            .order_by(UsageTable.created_at.desc(), UsageTable.id.desc())
            .limit(max(limit, 0))
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            rows = list(result.scalars().all())
        return [_to_usage(row) for row in rows]

    async def count_usage_since(self, user_id: str | None, since: datetime) -> int:
        if user_id is None:
            return 0

        stmt = (
            select(func.count())
            .select_from(UsageTable)
            .where(
                UsageTable.user_id == user_id,
                UsageTable.created_at > to_epoch_ms(since),
            )
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one() or 0)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        try:
            async with self._session() as session:
                await session.execute(text("SELECT 1"))
        except StorageError:
            return False
        return True

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
