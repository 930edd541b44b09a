"""Stripe billing client: checkout sessions, webhook verification, customers.

Stripe's Python SDK is synchronous, so calls run on a worker thread via
:func:`asyncio.to_thread` to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from recast_core.errors import SignatureError

from recast_api.config import APISettings

logger = logging.getLogger(__name__)

PRO_PLAN_METADATA = {"plan": "pro"}


class StripeBillingClient:
    """Thin adapter over the Stripe SDK for the pro subscription flow.

    Parameters
    ----------
    settings:
        API settings containing Stripe configuration.
    """

    def __init__(self, settings: APISettings) -> None:
        self._settings = settings

    def _get_stripe(self) -> Any:
        """Lazily import and configure the Stripe library."""
        import stripe

        stripe.api_key = self._settings.stripe_secret_key.get_secret_value()
        return stripe

    @property
    def price_id(self) -> str:
        return self._settings.stripe_price_id

    async def create_checkout_session(self, price_id: str, success_url: str, cancel_url: str) -> dict[str, str]:
        """Create a subscription-mode Checkout session for the pro plan.

        Parameters
        ----------
        price_id:
            The Stripe price ID of the pro plan.
        success_url:
            URL to redirect the user to after successful payment.  May
            contain the ``{CHECKOUT_SESSION_ID}`` template variable.
        cancel_url:
            URL to redirect the user to on cancellation.

        Returns
        -------
        dict
            Contains ``url`` to redirect the customer to.
        """
        stripe = self._get_stripe()
        session_params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": dict(PRO_PLAN_METADATA),
        }
        checkout_session = await asyncio.to_thread(stripe.checkout.Session.create, **session_params)
        logger.info("Created checkout session %s", checkout_session["id"])
        return {"url": checkout_session["url"]}

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify *payload* against the ``stripe-signature`` header.

        Only the signature is checked by the SDK; the verified payload is
        then decoded as plain JSON so callers always get a ``dict``.

        Raises
        ------
        SignatureError
            When the signature is missing or invalid, or the payload is
            not a JSON object.
        """
        if not signature:
            raise SignatureError("Missing Stripe signature")

        stripe = self._get_stripe()
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self._settings.stripe_webhook_secret.get_secret_value(),
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except UnicodeDecodeError as exc:
            raise SignatureError("Invalid payload") from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning("Stripe webhook signature verification failed: %s", exc)
            raise SignatureError("Signature verification failed") from exc

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise SignatureError("Invalid payload") from exc
        if not isinstance(event, dict):
            raise SignatureError("Invalid payload")
        return event

    async def get_customer_email(self, customer_id: str) -> str | None:
        """Return the email on the Stripe customer, or ``None`` if unavailable."""
        stripe = self._get_stripe()
        try:
            customer = await asyncio.to_thread(stripe.Customer.retrieve, customer_id)
        except stripe.StripeError as exc:
            logger.warning("Could not retrieve Stripe customer %s: %s", customer_id, exc)
            return None
        email = customer.get("email") if hasattr(customer, "get") else getattr(customer, "email", None)
        return email or None
