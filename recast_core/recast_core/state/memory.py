"""In-process record store for development and tests.

State lives on the instance, never at module level: construct one store
per process (or per test) and inject it.  Nothing is persisted across
restarts.

Unlike the durable backing, anonymous usage (``user_id=None``) is counted
here, because anonymous records are matched like any other identity.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from recast_core.models import UsageRecord, User, UserUpsert, utcnow
from recast_core.state.store import DEFAULT_HISTORY_LIMIT

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """Dictionary/list backed :class:`~recast_core.state.store.RecordStore`.

    Parameters
    ----------
    clock:
        Source of "now" for new rows.  Tests inject a controllable clock
        to place records inside or outside the quota window.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._users: dict[str, User] = {}
        self._usage: list[UsageRecord] = []
        self._next_usage_id = 1

    async def upsert_user(self, user: UserUpsert) -> User:
        existing = self._users.get(user.id)
        if existing is not None:
            created_at = existing.created_at
        else:
            created_at = user.created_at or self._clock()

        stored = User(
            id=user.id,
            email=user.email,
            plan=user.plan,
            subscription_ref=user.subscription_ref,
            created_at=created_at,
        )
        self._users[user.id] = stored
        return stored

    async def get_user_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        # Earliest created_at wins, matching the SQL ordering; ties keep insertion order.
        matches = [user for user in self._users.values() if user.email == email]
        return min(matches, key=lambda user: user.created_at, default=None)

    async def record_usage(
        self,
        user_id: str | None,
        subject_url: str,
        payload_snapshot: str | None = None,
        tone: str | None = None,
    ) -> UsageRecord:
        record = UsageRecord(
            id=self._next_usage_id,
            user_id=user_id,
            subject_url=subject_url,
            payload_snapshot=payload_snapshot,
            tone=tone,
            created_at=self._clock(),
        )
        self._next_usage_id += 1
        self._usage.append(record)
        return record

    async def get_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[UsageRecord]:
        records = [r for r in self._usage if r.user_id == user_id]
        records.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return records[: max(limit, 0)]

    async def count_usage_since(self, user_id: str | None, since: datetime) -> int:
        return sum(1 for r in self._usage if r.user_id == user_id and r.created_at > since)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug(
            "Discarding in-memory store (%d users, %d usage records)",
            len(self._users),
            len(self._usage),
        )
