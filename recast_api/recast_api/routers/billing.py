"""Billing endpoints: pro checkout and Stripe webhooks."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from recast_core.billing.events import CheckoutCompleted, decode_stripe_event

from recast_api.dependencies import BillingClientDep, ReconcilerDep
from recast_api.schemas import CheckoutSessionResponse, WebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(request: Request, billing: BillingClientDep) -> dict[str, str]:
    """Create a Stripe Checkout session for the pro subscription.

    Returns a URL that the frontend should redirect the user to.  After
    payment Stripe redirects to ``/success`` on the calling origin.
    """
    price_id = billing.price_id
    if not price_id:
        logger.error("Checkout requested but RECAST_STRIPE_PRICE_ID is not configured")
        raise HTTPException(status_code=500, detail="Stripe Price ID not configured")

    origin = f"{request.url.scheme}://{request.url.netloc}"
    return await billing.create_checkout_session(
        price_id,
        success_url=f"{origin}/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{origin}/",
    )


@router.post("/webhooks", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    billing: BillingClientDep,
    reconciler: ReconcilerDep,
) -> WebhookResponse:
    """Handle incoming Stripe webhook events.

    The signature is verified before anything is decoded; an invalid or
    missing signature is rejected with 400 and nothing is reconciled.
    Storage failures surface as 500 so that Stripe redelivers.
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature", "")

    raw_event = billing.verify_webhook_signature(body, signature)
    event = decode_stripe_event(raw_event)

    if isinstance(event, CheckoutCompleted) and not event.email:
        email = await billing.get_customer_email(event.customer_id)
        if email:
            event = event.model_copy(update={"email": email})

    outcome = await reconciler.reconcile(event)
    logger.info("Stripe event %s (%s) -> %s", raw_event.get("id"), raw_event.get("type"), outcome.value)
    return WebhookResponse(outcome=outcome.value)
