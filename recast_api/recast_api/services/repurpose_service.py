"""Repurposing workflow: validate, check entitlement, generate, record.

Usage is recorded only after generation succeeds, so rejected requests
and failed fetches or generations never consume free quota.
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from urllib.parse import urlsplit

from recast_core.entitlement import EntitlementEngine
from recast_core.errors import UpgradeRequiredError, ValidationError
from recast_core.models import EntitlementResult, UsageRecord
from recast_core.state.store import DEFAULT_HISTORY_LIMIT, RecordStore
from recast_core.usage import UsageRecorder

from recast_api.schemas import GeneratedContent
from recast_api.services.extractor import TextExtractor
from recast_api.services.generator import ContentGenerator

logger = logging.getLogger(__name__)

HISTORY_PRO_ONLY_REASON = "History is a Pro feature."


def validate_subject_url(url: str | None) -> str:
    """Return *url* stripped, or raise :class:`ValidationError`."""
    if not url or not url.strip():
        raise ValidationError("URL is required")
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError("Invalid URL format")
    return url


def normalize_identity(user_id: str | None) -> str | None:
    """Map empty identities to anonymous (``None``)."""
    if user_id is None:
        return None
    user_id = user_id.strip()
    return user_id or None


@dataclass(frozen=True)
class GenerationOutcome:
    content: GeneratedContent
    remaining_free: int | None
    record: UsageRecord


class RepurposeService:
    """Coordinates the record store, entitlement engine and collaborators.

    Parameters
    ----------
    store:
        Record store used for plan lookups and history.
    entitlement:
        Engine deciding whether a generation may run.
    recorder:
        Appends the usage record after a successful generation.
    extractor:
        Turns the subject URL into plain text.
    generator:
        Produces the repurposed content.
    strict_quota:
        Serialise check, generate and record per identity through
        :meth:`EntitlementEngine.reservation`.
    """

    def __init__(
        self,
        store: RecordStore,
        entitlement: EntitlementEngine,
        recorder: UsageRecorder,
        extractor: TextExtractor,
        generator: ContentGenerator,
        *,
        strict_quota: bool = False,
    ) -> None:
        self._store = store
        self._entitlement = entitlement
        self._recorder = recorder
        self._extractor = extractor
        self._generator = generator
        self._strict_quota = strict_quota

    async def generate(self, url: str | None, user_id: str | None, tone: str | None = None) -> GenerationOutcome:
        """Run one generation for *user_id* (``None`` for anonymous).

        Raises
        ------
        ValidationError
            The URL is missing or malformed; nothing else is touched.
        UpgradeRequiredError
            The identity has no free generations left.
        FetchError, GenerationError, StorageError
            Propagated from the collaborators; no usage is recorded.
        """
        subject_url = validate_subject_url(url)
        user_id = normalize_identity(user_id)
        tone = tone.strip() if tone and tone.strip() else None

        guard: AbstractAsyncContextManager[None]
        guard = self._entitlement.reservation(user_id) if self._strict_quota else nullcontext()
        async with guard:
            decision = await self._entitlement.can_generate(user_id)
            if not decision.allowed:
                raise UpgradeRequiredError(decision.reason or "Upgrade required", remaining_free=0)

            is_pro = False
            if user_id is not None:
                user = await self._store.get_user_by_id(user_id)
                is_pro = user is not None and user.is_pro

            text = await self._extractor.extract(subject_url)
            content = await self._generator.generate(text, tone, is_pro=is_pro)
            record = await self._recorder.record(user_id, subject_url, payload=content, tone=tone)

        remaining = None if is_pro else (decision.remaining_free or 0) - 1
        return GenerationOutcome(content=content, remaining_free=remaining, record=record)

    async def check(self, user_id: str | None) -> EntitlementResult:
        """Read-only entitlement check."""
        return await self._entitlement.can_generate(normalize_identity(user_id))

    async def history(self, user_id: str | None, limit: int = DEFAULT_HISTORY_LIMIT) -> list[UsageRecord]:
        """Return the pro user's recent generations, most recent first.

        Raises
        ------
        ValidationError
            No user id was given.
        UpgradeRequiredError
            The user does not exist or is not on the pro plan.
        """
        user_id = normalize_identity(user_id)
        if user_id is None:
            raise ValidationError("User ID required")

        user = await self._store.get_user_by_id(user_id)
        if user is None or not user.is_pro:
            raise UpgradeRequiredError(HISTORY_PRO_ONLY_REASON)

        return await self._store.get_history(user_id, limit=limit)
