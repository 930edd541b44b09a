"""FastAPI dependency injection for settings, the record store and services."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends
from recast_core.billing.reconciler import BillingReconciler
from recast_core.entitlement import EntitlementEngine
from recast_core.state.memory import InMemoryRecordStore
from recast_core.state.sql import SQLRecordStore
from recast_core.state.store import RecordStore
from recast_core.usage import UsageRecorder

from recast_api.config import APISettings, StoreBackend, load_api_settings
from recast_api.services.billing_service import StripeBillingClient
from recast_api.services.extractor import TextExtractor
from recast_api.services.generator import ContentGenerator
from recast_api.services.repurpose_service import RepurposeService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------

_store: RecordStore | None = None


async def init_store(settings: APISettings) -> RecordStore:
    """Create and cache the process-wide record store."""
    global _store  # noqa: PLW0603
    if settings.store_backend == StoreBackend.MEMORY:
        _store = InMemoryRecordStore()
        logger.warning("Using in-memory record store; state is lost on restart")
        return _store

    store = SQLRecordStore.from_url(settings.database_url)
    if settings.auto_create_tables:
        await store.create_tables()
    _store = store
    return _store


async def dispose_store() -> None:
    """Close the global record store (call during shutdown)."""
    global _store  # noqa: PLW0603
    if _store is not None:
        await _store.close()
        _store = None


def get_record_store() -> RecordStore:
    """Return the global record store."""
    if _store is None:
        raise RuntimeError(
            "Record store has not been initialised. Ensure init_store() is called during application startup."
        )
    return _store


StoreDep = Annotated[RecordStore, Depends(get_record_store)]

# ---------------------------------------------------------------------------
# Entitlement engine
# ---------------------------------------------------------------------------

# Cached per store so reservation locks are shared across requests.
_engine: EntitlementEngine | None = None
_engine_store: RecordStore | None = None


def get_entitlement_engine(store: StoreDep, settings: SettingsDep) -> EntitlementEngine:
    """Return the entitlement engine bound to the current store."""
    global _engine, _engine_store  # noqa: PLW0603
    if _engine is None or _engine_store is not store:
        _engine = EntitlementEngine(store, free_limit=settings.free_limit, window=settings.quota_window)
        _engine_store = store
    return _engine


EntitlementDep = Annotated[EntitlementEngine, Depends(get_entitlement_engine)]


def get_usage_recorder(store: StoreDep) -> UsageRecorder:
    return UsageRecorder(store)


def get_billing_reconciler(store: StoreDep) -> BillingReconciler:
    return BillingReconciler(store)


ReconcilerDep = Annotated[BillingReconciler, Depends(get_billing_reconciler)]

# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------

_generator: ContentGenerator | None = None


def init_generator(settings: APISettings) -> ContentGenerator:
    """Create and cache the content generator (holds the Anthropic client)."""
    global _generator  # noqa: PLW0603
    _generator = ContentGenerator(settings)
    if not _generator.enabled:
        logger.warning("RECAST_LLM_API_KEY is not set; generation requests will fail")
    return _generator


async def dispose_generator() -> None:
    global _generator  # noqa: PLW0603
    if _generator is not None:
        await _generator.close()
        _generator = None


def get_content_generator(settings: SettingsDep) -> ContentGenerator:
    if _generator is None:
        return init_generator(settings)
    return _generator


def get_text_extractor(settings: SettingsDep) -> TextExtractor:
    return TextExtractor(settings)


def get_billing_client(settings: SettingsDep) -> StripeBillingClient:
    return StripeBillingClient(settings)


BillingClientDep = Annotated[StripeBillingClient, Depends(get_billing_client)]


def get_repurpose_service(
    store: StoreDep,
    settings: SettingsDep,
    entitlement: EntitlementDep,
    recorder: Annotated[UsageRecorder, Depends(get_usage_recorder)],
    extractor: Annotated[TextExtractor, Depends(get_text_extractor)],
    generator: Annotated[ContentGenerator, Depends(get_content_generator)],
) -> RepurposeService:
    return RepurposeService(
        store,
        entitlement,
        recorder,
        extractor,
        generator,
        strict_quota=settings.strict_quota,
    )


RepurposeServiceDep = Annotated[RepurposeService, Depends(get_repurpose_service)]
