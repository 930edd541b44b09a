"""Pydantic request/response schemas for the Recast API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field
from recast_core.models import UsageRecord

# ---------------------------------------------------------------------------
# Generated content
# ---------------------------------------------------------------------------


class ShortVideoScript(BaseModel):
    """Script for a short vertical video."""

    hook: str
    body: str
    cta: str


class GeneratedContent(BaseModel):
    """Every format produced from one source article."""

    summary: str
    short_video_script: ShortVideoScript
    thread_posts: list[str]
    professional_post: str
    localized_article: str
    watermark: bool


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------


class GenerateRequest(BaseModel):
    """Request body for ``POST /generate``."""

    url: str | None = Field(
        default=None,
        description="Absolute http(s) URL of the source article; a missing URL is rejected with 400.",
    )
    user_id: str | None = Field(
        default=None,
        description="Stripe customer id of the caller; omit for anonymous use.",
    )
    tone: str | None = Field(default=None, max_length=128, description="Desired writing tone.")


class GenerateResponse(BaseModel):
    """Response for ``POST /generate``."""

    success: bool = True
    content: GeneratedContent
    remaining_free: int | None = None


# ---------------------------------------------------------------------------
# History / entitlement
# ---------------------------------------------------------------------------


class HistoryItem(BaseModel):
    """One past generation as returned to pro users."""

    id: int
    subject_url: str
    payload_snapshot: str | None = None
    tone: str | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: UsageRecord) -> HistoryItem:
        return cls(
            id=record.id,
            subject_url=record.subject_url,
            payload_snapshot=record.payload_snapshot,
            tone=record.tone,
            created_at=record.created_at,
        )


class HistoryResponse(BaseModel):
    """Response for ``GET /history``."""

    success: bool = True
    history: list[HistoryItem]


class EntitlementResponse(BaseModel):
    """Response for ``GET /entitlement``."""

    allowed: bool
    reason: str | None = None
    remaining_free: int | None = None


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


class CheckoutSessionResponse(BaseModel):
    """Response for ``POST /billing/checkout``."""

    url: str


class WebhookResponse(BaseModel):
    """Response for ``POST /billing/webhooks``."""

    received: bool = True
    outcome: str
