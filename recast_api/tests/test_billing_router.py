"""Tests for the billing router endpoints.

Covers:
- POST /api/v1/billing/checkout: session creation and missing price id
- POST /api/v1/billing/webhooks: signature rejection, reconciliation,
  email enrichment, unknown customers, ignored events
"""

from __future__ import annotations

import json

import pytest
from httpx import AsyncClient
from recast_core.errors import SignatureError
from recast_core.models import Plan, UserUpsert

# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class TestCheckout:
    @pytest.mark.asyncio
    async def test_creates_session_with_origin_redirects(self, client: AsyncClient, mock_billing) -> None:
        resp = await client.post("/api/v1/billing/checkout")

        assert resp.status_code == 200
        assert resp.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test"}
        mock_billing.create_checkout_session.assert_awaited_once_with(
            "price_pro",
            success_url="http://test/success?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="http://test/",
        )

    @pytest.mark.asyncio
    async def test_missing_price_id_is_500(self, client: AsyncClient, mock_billing) -> None:
        mock_billing.price_id = ""

        resp = await client.post("/api/v1/billing/checkout")

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Stripe Price ID not configured"}
        mock_billing.create_checkout_session.assert_not_awaited()


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_invalid_signature_rejected_without_changes(
        self, client: AsyncClient, mock_billing, memory_store, webhook_body: bytes
    ) -> None:
        mock_billing.verify_webhook_signature.side_effect = SignatureError("Signature verification failed")

        resp = await client.post(
            "/api/v1/billing/webhooks",
            content=webhook_body,
            headers={"stripe-signature": "t=1,v1=bad"},
        )

        assert resp.status_code == 400
        assert resp.json() == {"detail": "Invalid webhook signature"}
        assert await memory_store.get_user_by_id("cus_123") is None

    @pytest.mark.asyncio
    async def test_checkout_completed_creates_pro_user(
        self, client: AsyncClient, mock_billing, memory_store, webhook_body: bytes
    ) -> None:
        mock_billing.verify_webhook_signature.return_value = json.loads(webhook_body)

        resp = await client.post(
            "/api/v1/billing/webhooks",
            content=webhook_body,
            headers={"stripe-signature": "t=1,v1=good"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"received": True, "outcome": "applied"}
        mock_billing.verify_webhook_signature.assert_called_once_with(webhook_body, "t=1,v1=good")
        mock_billing.get_customer_email.assert_not_awaited()

        user = await memory_store.get_user_by_id("cus_123")
        assert user.plan == Plan.PRO
        assert user.email == "a@b.com"
        assert user.subscription_ref == "sub_456"

    @pytest.mark.asyncio
    async def test_checkout_without_email_looks_up_customer(
        self, client: AsyncClient, mock_billing, memory_store, make_event
    ) -> None:
        event = make_event(
            "checkout.session.completed",
            {"mode": "subscription", "customer": "cus_123", "subscription": "sub_456"},
        )
        mock_billing.verify_webhook_signature.return_value = event
        mock_billing.get_customer_email.return_value = "billing@b.com"

        resp = await client.post(
            "/api/v1/billing/webhooks",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=good"},
        )

        assert resp.status_code == 200
        mock_billing.get_customer_email.assert_awaited_once_with("cus_123")
        user = await memory_store.get_user_by_id("cus_123")
        assert user.email == "billing@b.com"

    @pytest.mark.asyncio
    async def test_checkout_without_any_email_uses_placeholder(
        self, client: AsyncClient, mock_billing, memory_store, make_event
    ) -> None:
        event = make_event(
            "checkout.session.completed",
            {"mode": "subscription", "customer": "cus_123", "subscription": "sub_456"},
        )
        mock_billing.verify_webhook_signature.return_value = event

        await client.post(
            "/api/v1/billing/webhooks",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=good"},
        )

        user = await memory_store.get_user_by_id("cus_123")
        assert user.email == "unknown@example.com"

    @pytest.mark.asyncio
    async def test_subscription_lifecycle(self, client: AsyncClient, mock_billing, memory_store, make_event) -> None:
        await memory_store.upsert_user(
            UserUpsert(id="cus_123", email="a@b.com", plan=Plan.PRO, subscription_ref="sub_456")
        )

        async def deliver(event_type: str, obj: dict) -> dict:
            event = make_event(event_type, obj)
            mock_billing.verify_webhook_signature.return_value = event
            resp = await client.post(
                "/api/v1/billing/webhooks",
                content=json.dumps(event),
                headers={"stripe-signature": "t=1,v1=good"},
            )
            assert resp.status_code == 200
            return resp.json()

        await deliver("customer.subscription.updated", {"id": "sub_456", "customer": "cus_123", "status": "past_due"})
        user = await memory_store.get_user_by_id("cus_123")
        assert user.plan == Plan.FREE
        assert user.subscription_ref is None

        await deliver("customer.subscription.updated", {"id": "sub_456", "customer": "cus_123", "status": "active"})
        assert (await memory_store.get_user_by_id("cus_123")).plan == Plan.PRO

        for _ in range(2):
            result = await deliver("customer.subscription.deleted", {"id": "sub_456", "customer": "cus_123"})
            assert result["outcome"] == "applied"
        user = await memory_store.get_user_by_id("cus_123")
        assert user.plan == Plan.FREE
        assert user.subscription_ref is None

    @pytest.mark.asyncio
    async def test_unknown_customer_acknowledged(
        self, client: AsyncClient, mock_billing, memory_store, make_event
    ) -> None:
        event = make_event("customer.subscription.deleted", {"id": "sub_9", "customer": "cus_ghost"})
        mock_billing.verify_webhook_signature.return_value = event

        resp = await client.post(
            "/api/v1/billing/webhooks",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=good"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"received": True, "outcome": "unknown_customer"}
        assert await memory_store.get_user_by_id("cus_ghost") is None

    @pytest.mark.asyncio
    async def test_unhandled_event_ignored(self, client: AsyncClient, mock_billing, make_event) -> None:
        event = make_event("invoice.paid", {"id": "in_1", "customer": "cus_123"})
        mock_billing.verify_webhook_signature.return_value = event

        resp = await client.post(
            "/api/v1/billing/webhooks",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=good"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"received": True, "outcome": "ignored"}
