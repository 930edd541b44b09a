"""Plan-state reconciliation from billing lifecycle events.

Each handler writes the complete target state for the user (plan and
subscription reference) rather than applying a delta, so replaying an
event converges to the same row.  Delivery is at-least-once and may be
out of order; the last event processed wins.
"""

from __future__ import annotations

import logging
from enum import Enum

from recast_core.billing.events import (
    BillingEvent,
    CheckoutCompleted,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnhandledEvent,
)
from recast_core.models import Plan, UserUpsert
from recast_core.state.store import RecordStore

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL = "unknown@example.com"


class ReconcileOutcome(str, Enum):
    """What the reconciler did with an event."""

    APPLIED = "applied"
    IGNORED = "ignored"
    UNKNOWN_CUSTOMER = "unknown_customer"


class BillingReconciler:
    """Applies decoded billing events to user plan state.

    Only :class:`CheckoutCompleted` may create a user.  Subscription events
    for customers without a user row are dropped.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def reconcile(self, event: BillingEvent) -> ReconcileOutcome:
        if isinstance(event, CheckoutCompleted):
            return await self._on_checkout_completed(event)
        if isinstance(event, SubscriptionUpdated):
            return await self._on_subscription_updated(event)
        if isinstance(event, SubscriptionDeleted):
            return await self._on_subscription_deleted(event)
        if isinstance(event, UnhandledEvent):
            logger.debug("Unhandled billing event type: %s (%s)", event.event_type, event.note or "no action")
            return ReconcileOutcome.IGNORED
        raise TypeError(f"Unsupported billing event: {type(event).__name__}")

    async def _on_checkout_completed(self, event: CheckoutCompleted) -> ReconcileOutcome:
        user = await self._store.upsert_user(
            UserUpsert(
                id=event.customer_id,
                email=event.email or PLACEHOLDER_EMAIL,
                plan=Plan.PRO,
                subscription_ref=event.subscription_id,
            )
        )
        logger.info("Pro subscription activated for customer %s (%s)", user.id, user.email)
        return ReconcileOutcome.APPLIED

    async def _on_subscription_updated(self, event: SubscriptionUpdated) -> ReconcileOutcome:
        user = await self._store.get_user_by_id(event.customer_id)
        if user is None:
            logger.warning("Subscription update for unknown customer: %s", event.customer_id)
            return ReconcileOutcome.UNKNOWN_CUSTOMER

        active = event.is_active
        await self._store.upsert_user(
            UserUpsert.from_user(
                user,
                plan=Plan.PRO if active else Plan.FREE,
                subscription_ref=event.subscription_id if active else None,
            )
        )
        logger.info("Subscription %s is %s for customer %s", event.subscription_id, event.status, user.id)
        return ReconcileOutcome.APPLIED

    async def _on_subscription_deleted(self, event: SubscriptionDeleted) -> ReconcileOutcome:
        user = await self._store.get_user_by_id(event.customer_id)
        if user is None:
            logger.warning("Subscription deletion for unknown customer: %s", event.customer_id)
            return ReconcileOutcome.UNKNOWN_CUSTOMER

        await self._store.upsert_user(UserUpsert.from_user(user, plan=Plan.FREE, subscription_ref=None))
        logger.info("Subscription canceled for customer %s", user.id)
        return ReconcileOutcome.APPLIED
