"""Typed billing lifecycle events decoded from Stripe webhook payloads.

Raw Stripe events are loosely typed dictionaries.  They are decoded once,
at the webhook boundary, into one of the known event kinds below.  Anything
else (including checkout sessions that are not subscriptions) becomes an
:class:`UnhandledEvent` so the reconciler can ignore it explicitly.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

# Stripe event type strings mapped to the kinds below.
STRIPE_CHECKOUT_COMPLETED = "checkout.session.completed"
STRIPE_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
STRIPE_SUBSCRIPTION_DELETED = "customer.subscription.deleted"

MALFORMED_PAYLOAD_NOTE = "malformed payload"


class CheckoutCompleted(BaseModel):
    """A subscription-mode checkout finished; the only event that may create a user."""

    kind: Literal["checkout.completed"] = "checkout.completed"
    event_id: str | None = None
    customer_id: str
    subscription_id: str
    email: str | None = None


class SubscriptionUpdated(BaseModel):
    """A subscription changed status (activated, past_due, canceled, ...)."""

    kind: Literal["subscription.updated"] = "subscription.updated"
    event_id: str | None = None
    customer_id: str
    subscription_id: str
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class SubscriptionDeleted(BaseModel):
    """A subscription was deleted at the provider."""

    kind: Literal["subscription.deleted"] = "subscription.deleted"
    event_id: str | None = None
    customer_id: str
    subscription_id: str | None = None


class UnhandledEvent(BaseModel):
    """Any event Recast does not act on."""

    kind: Literal["unhandled"] = "unhandled"
    event_id: str | None = None
    event_type: str
    note: str | None = None


BillingEvent = Annotated[
    CheckoutCompleted | SubscriptionUpdated | SubscriptionDeleted | UnhandledEvent,
    Field(discriminator="kind"),
]


def _ref(value: Any) -> str | None:
    """Return the id of a Stripe reference that may be a string or an expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        ref = value.get("id")
        return ref if isinstance(ref, str) and ref else None
    return None


def decode_stripe_event(event: dict[str, Any]) -> BillingEvent:
    """Decode a raw Stripe event dictionary into a :data:`BillingEvent`.

    Never raises for unknown or incomplete payloads; those decode to
    :class:`UnhandledEvent` with a short ``note``.
    """
    event_type = str(event.get("type") or "")
    event_id = event.get("id")
    if not isinstance(event_id, str):
        event_id = None

    data = event.get("data")
    data_object = data.get("object") if isinstance(data, dict) else None
    if not isinstance(data_object, dict):
        return UnhandledEvent(event_id=event_id, event_type=event_type or "unknown", note=MALFORMED_PAYLOAD_NOTE)

    if event_type == STRIPE_CHECKOUT_COMPLETED:
        if data_object.get("mode") != "subscription":
            return UnhandledEvent(event_id=event_id, event_type=event_type, note="not a subscription checkout")
        customer_id = _ref(data_object.get("customer"))
        subscription_id = _ref(data_object.get("subscription"))
        if not customer_id or not subscription_id:
            return UnhandledEvent(event_id=event_id, event_type=event_type, note="missing customer or subscription")
        details = data_object.get("customer_details")
        email = details.get("email") if isinstance(details, dict) else None
        email = email or data_object.get("customer_email")
        if not isinstance(email, str):
            email = None
        return CheckoutCompleted(
            event_id=event_id,
            customer_id=customer_id,
            subscription_id=subscription_id,
            email=email or None,
        )

    if event_type in (STRIPE_SUBSCRIPTION_UPDATED, STRIPE_SUBSCRIPTION_DELETED):
        customer_id = _ref(data_object.get("customer"))
        subscription_id = _ref(data_object.get("id"))
        if not customer_id:
            return UnhandledEvent(event_id=event_id, event_type=event_type, note="missing customer")

        if event_type == STRIPE_SUBSCRIPTION_DELETED:
            return SubscriptionDeleted(
                event_id=event_id,
                customer_id=customer_id,
                subscription_id=subscription_id,
            )

        if not subscription_id:
            return UnhandledEvent(event_id=event_id, event_type=event_type, note="missing subscription id")
        return SubscriptionUpdated(
            event_id=event_id,
            customer_id=customer_id,
            subscription_id=subscription_id,
            status=str(data_object.get("status") or ""),
        )

    return UnhandledEvent(event_id=event_id, event_type=event_type or "unknown")
