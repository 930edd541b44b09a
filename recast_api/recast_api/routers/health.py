"""Health-check endpoint, registered under ``/api/v1/health``."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter

from recast_api import __version__
from recast_api.dependencies import SettingsDep, StoreDep

logger = logging.getLogger(__name__)

# Short timeout for the store probe so health checks respond quickly.
_STORE_HEALTH_TIMEOUT = 2.0

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(store: StoreDep, settings: SettingsDep) -> dict[str, Any]:
    """Return service health with a record store probe.

    Always answers HTTP 200 so load-balancers see the process as alive;
    ``db`` reports whether the store is reachable.
    """
    result: dict[str, Any] = {
        "status": "healthy",
        "version": __version__,
        "store": settings.store_backend.value,
        "db": "ok",
    }

    try:
        healthy = await asyncio.wait_for(store.ping(), timeout=_STORE_HEALTH_TIMEOUT)
    except TimeoutError:
        logger.warning("Record store health check timed out")
        healthy = False
    if not healthy:
        result["db"] = "degraded"

    return result
