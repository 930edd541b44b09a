"""SQLAlchemy 2.0 ORM table definitions for the Recast state store.

All tables use the ``Mapped`` / ``mapped_column`` declaration style.  The
``Base`` declarative base is exported for use by Alembic migrations and the
SQL record store.

Timestamps are stored as integer milliseconds since the epoch so that the
durable rows compare directly with in-process timestamps.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from recast_core.models import to_epoch_ms, utcnow


def _now_ms() -> int:
    return to_epoch_ms(utcnow())


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all Recast tables."""


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserTable(Base):
    """Billing customers keyed by Stripe customer id."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(256), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    plan: Mapped[str] = mapped_column(String(16), nullable=False, default="free")
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=_now_ms)

    __table_args__ = (Index("ix_users_email", "email"),)


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


class UsageTable(Base):
    """Append-only log of completed generations.

    ``user_id`` is nullable: anonymous generations are stored but never
    counted by the durable quota query.
    """

    __tablename__ = "usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    content_url: Mapped[str] = mapped_column(Text, nullable=False)
    generated_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    tone: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=_now_ms)

    __table_args__ = (Index("ix_usage_user_created", "user_id", "created_at"),)
