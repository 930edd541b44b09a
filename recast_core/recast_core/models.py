"""Domain models for users, usage records and entitlement decisions.

These are the types that cross the Record Store interface.  Both store
backings return these models rather than ORM rows so that callers never
hold a writable reference to stored state.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Plan(str, Enum):
    """Billing plan assigned to a user."""

    FREE = "free"
    PRO = "pro"


class User(BaseModel):
    """A billing customer known to Recast.

    Attributes
    ----------
    id:
        Stripe customer identifier (primary key).
    email:
        Contact email from the Stripe customer record.  Used as a lookup
        key but not guaranteed unique.
    plan:
        Current plan.  ``pro`` implies an active subscription is believed
        to exist for ``subscription_ref``.
    subscription_ref:
        Stripe subscription identifier, ``None`` when no paid
        subscription is active.
    created_at:
        First-insert timestamp (UTC).  Never changed by later upserts.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    email: str
    plan: Plan = Plan.FREE
    subscription_ref: str | None = None
    created_at: datetime

    @property
    def is_pro(self) -> bool:
        return self.plan == Plan.PRO


class UserUpsert(BaseModel):
    """Input for :meth:`RecordStore.upsert_user`.

    ``created_at`` is only honoured when the row does not exist yet.
    """

    id: str = Field(..., min_length=1)
    email: str
    plan: Plan = Plan.FREE
    subscription_ref: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User, **changes: object) -> UserUpsert:
        """Build an upsert from an existing user with selected fields replaced."""
        data = user.model_dump()
        data.update(changes)
        return cls(**data)


class UsageRecord(BaseModel):
    """One completed generation.  Append-only."""

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str | None = None
    subject_url: str
    payload_snapshot: str | None = None
    tone: str | None = None
    created_at: datetime


class EntitlementResult(BaseModel):
    """Outcome of an entitlement check.

    ``remaining_free`` is ``None`` for pro accounts, which are never
    usage-limited.
    """

    allowed: bool
    reason: str | None = None
    remaining_free: int | None = None


def utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to integer milliseconds since the epoch."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """Convert milliseconds since the epoch to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC)
