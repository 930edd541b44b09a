"""Shared fixtures for Recast API tests.

Provides test settings, a real in-memory record store, mocked external
collaborators (extractor, generator, Stripe client) and an async httpx
client bound to the app through ``ASGITransport``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from recast_core.state.memory import InMemoryRecordStore

from recast_api.config import APISettings, StoreBackend
from recast_api.dependencies import (
    get_billing_client,
    get_content_generator,
    get_record_store,
    get_settings,
    get_text_extractor,
)
from recast_api.main import create_app
from recast_api.schemas import GeneratedContent, ShortVideoScript
from recast_api.services.billing_service import StripeBillingClient
from recast_api.services.extractor import TextExtractor
from recast_api.services.generator import ContentGenerator

WEBHOOK_SECRET = "whsec_test_secret"


def sign_stripe_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``stripe-signature`` header the way Stripe signs webhooks."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def stripe_event(event_type: str, obj: dict[str, Any], event_id: str = "evt_test") -> dict[str, Any]:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def make_content(*, watermark: bool) -> GeneratedContent:
    return GeneratedContent(
        summary="A summary.",
        short_video_script=ShortVideoScript(hook="Hook", body="Body", cta="CTA"),
        thread_posts=["1/", "2/"],
        professional_post="Post",
        localized_article="記事",
        watermark=watermark,
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_settings() -> APISettings:
    """Return a settings object suitable for testing."""
    return APISettings(
        _env_file=None,
        debug=True,
        store_backend=StoreBackend.MEMORY,
        cors_origins=["http://localhost:3000"],
        stripe_secret_key=SecretStr("sk_test_123"),
        stripe_webhook_secret=SecretStr(WEBHOOK_SECRET),
        stripe_price_id="price_pro",
    )


# ---------------------------------------------------------------------------
# Store and collaborators
# ---------------------------------------------------------------------------


@pytest.fixture()
def memory_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture()
def mock_extractor() -> AsyncMock:
    extractor = AsyncMock(spec=TextExtractor)
    extractor.extract = AsyncMock(return_value="Article body text.")
    return extractor


@pytest.fixture()
def mock_generator() -> AsyncMock:
    """Generator mock that mirrors the real watermark rule."""
    generator = AsyncMock(spec=ContentGenerator)

    def _generate(text: str, tone: str | None, *, is_pro: bool) -> GeneratedContent:
        return make_content(watermark=not is_pro)

    generator.generate = AsyncMock(side_effect=_generate)
    generator.close = AsyncMock()
    return generator


@pytest.fixture()
def mock_billing() -> MagicMock:
    billing = MagicMock(spec=StripeBillingClient)
    billing.price_id = "price_pro"
    billing.create_checkout_session = AsyncMock(return_value={"url": "https://checkout.stripe.com/c/pay/cs_test"})
    billing.verify_webhook_signature = MagicMock()
    billing.get_customer_email = AsyncMock(return_value=None)
    return billing


# ---------------------------------------------------------------------------
# App and client
# ---------------------------------------------------------------------------


@pytest.fixture()
def app(
    test_settings: APISettings,
    memory_store: InMemoryRecordStore,
    mock_extractor: AsyncMock,
    mock_generator: AsyncMock,
    mock_billing: MagicMock,
):
    """Create a FastAPI app with dependency overrides for testing."""
    application = create_app()
    application.dependency_overrides[get_settings] = lambda: test_settings
    application.dependency_overrides[get_record_store] = lambda: memory_store
    application.dependency_overrides[get_text_extractor] = lambda: mock_extractor
    application.dependency_overrides[get_content_generator] = lambda: mock_generator
    application.dependency_overrides[get_billing_client] = lambda: mock_billing
    return application


@pytest_asyncio.fixture()
async def client(app) -> AsyncClient:
    """Yield an async httpx client bound to the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def webhook_body() -> bytes:
    return json.dumps(
        stripe_event(
            "checkout.session.completed",
            {
                "id": "cs_test",
                "object": "checkout.session",
                "mode": "subscription",
                "customer": "cus_123",
                "subscription": "sub_456",
                "customer_details": {"email": "a@b.com"},
            },
        )
    ).encode()


@pytest.fixture()
def sign_payload():
    """Return a callable producing valid ``stripe-signature`` headers."""
    return sign_stripe_payload


@pytest.fixture()
def make_event():
    """Return a callable building raw Stripe event dictionaries."""
    return stripe_event
