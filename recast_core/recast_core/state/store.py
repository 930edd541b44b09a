"""The Record Store interface.

The store is the sole owner of ``User`` and ``UsageRecord`` state.  Every
other component receives a store instance by injection and goes through
this interface for all reads and writes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from recast_core.models import UsageRecord, User, UserUpsert

DEFAULT_HISTORY_LIMIT = 20


@runtime_checkable
class RecordStore(Protocol):
    """Async persistence contract implemented by every store backing.

    Reads return ``None`` (or an empty list) on true absence.  Backend
    failures raise :class:`~recast_core.errors.StorageError`; no operation
    retries internally.
    """

    async def upsert_user(self, user: UserUpsert) -> User:
        """Insert or update a user, preserving the original ``created_at``."""
        ...

    async def get_user_by_id(self, user_id: str) -> User | None:
        ...

    async def get_user_by_email(self, email: str) -> User | None:
        ...

    async def record_usage(
        self,
        user_id: str | None,
        subject_url: str,
        payload_snapshot: str | None = None,
        tone: str | None = None,
    ) -> UsageRecord:
        """Append a usage record with a store-assigned id and timestamp."""
        ...

    async def get_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[UsageRecord]:
        """Return the user's records, most recent first, capped at *limit*."""
        ...

    async def count_usage_since(self, user_id: str | None, since: datetime) -> int:
        """Count the identity's records created strictly after *since*."""
        ...

    async def ping(self) -> bool:
        """Return ``True`` when the backing is reachable."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...
