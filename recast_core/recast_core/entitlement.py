"""Entitlement checks for content generation.

Pro accounts are never usage-limited.  Everyone else (free plan, unknown
user, anonymous caller) gets ``FREE_LIMIT`` generations per sliding
``QUOTA_WINDOW``, computed at call time rather than reset per calendar
month.

The check and the later usage write are separate store operations, so two
concurrent requests from one free identity can both pass.  Callers that
need the stricter behaviour wrap check-generate-record in
:meth:`EntitlementEngine.reservation`, which serialises requests for the
same identity inside this process.  It does not coordinate across
processes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from recast_core.models import EntitlementResult, utcnow
from recast_core.state.store import RecordStore

logger = logging.getLogger(__name__)

FREE_LIMIT = 1
QUOTA_WINDOW = timedelta(days=30)

QUOTA_EXCEEDED_REASON = "Free plan limit reached. Upgrade to Pro for unlimited access."

# Lock key used for anonymous callers; cannot collide with a Stripe customer id.
_ANONYMOUS_KEY = "\x00anonymous"


@dataclass
class _ReservationSlot:
    """Per-identity lock plus the number of tasks holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class EntitlementEngine:
    """Decides whether an identity may run a generation.

    Parameters
    ----------
    store:
        The record store consulted for plan state and usage counts.
    free_limit:
        Generations allowed per window for non-pro identities.
    window:
        Length of the trailing quota window.
    clock:
        Source of "now"; injectable for tests.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        free_limit: int = FREE_LIMIT,
        window: timedelta = QUOTA_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._free_limit = free_limit
        self._window = window
        self._clock = clock
        self._locks: dict[str, _ReservationSlot] = {}

    @property
    def free_limit(self) -> int:
        return self._free_limit

    async def can_generate(self, user_id: str | None) -> EntitlementResult:
        """Return whether *user_id* (``None`` for anonymous) may generate now."""
        if user_id is not None:
            user = await self._store.get_user_by_id(user_id)
            if user is not None and user.is_pro:
                return EntitlementResult(allowed=True)

        since = self._clock() - self._window
        used = await self._store.count_usage_since(user_id, since)

        if used >= self._free_limit:
            logger.info(
                "Free quota exhausted: user=%s used=%d/%d",
                user_id or "anonymous",
                used,
                self._free_limit,
            )
            return EntitlementResult(
                allowed=False,
                reason=QUOTA_EXCEEDED_REASON,
                remaining_free=0,
            )

        return EntitlementResult(allowed=True, remaining_free=self._free_limit - used)

    @asynccontextmanager
    async def reservation(self, user_id: str | None) -> AsyncGenerator[None, None]:
        """Serialise check-and-record sequences for one identity.

        Hold this for the whole check, generate, record sequence so that a
        second request for the same identity only runs its check after the
        first one's usage record is written.
        """
        key = user_id if user_id is not None else _ANONYMOUS_KEY
        slot = self._locks.get(key)
        if slot is None:
            slot = self._locks[key] = _ReservationSlot()
        slot.holders += 1
        try:
            async with slot.lock:
                yield
        finally:
            # Entry lives only while some task holds or awaits the lock.
            slot.holders -= 1
            if slot.holders == 0:
                del self._locks[key]
