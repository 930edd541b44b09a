"""Billing lifecycle events and plan reconciliation."""

from recast_core.billing.events import (
    BillingEvent,
    CheckoutCompleted,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnhandledEvent,
    decode_stripe_event,
)
from recast_core.billing.reconciler import PLACEHOLDER_EMAIL, BillingReconciler, ReconcileOutcome

__all__ = [
    "PLACEHOLDER_EMAIL",
    "BillingEvent",
    "BillingReconciler",
    "CheckoutCompleted",
    "ReconcileOutcome",
    "SubscriptionDeleted",
    "SubscriptionUpdated",
    "UnhandledEvent",
    "decode_stripe_event",
]
