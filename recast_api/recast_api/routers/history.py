"""Generation history (pro only) and entitlement lookups."""

from __future__ import annotations

from fastapi import APIRouter, Query
from recast_core.state.store import DEFAULT_HISTORY_LIMIT

from recast_api.dependencies import RepurposeServiceDep
from recast_api.schemas import EntitlementResponse, HistoryItem, HistoryResponse

router = APIRouter(tags=["history"])


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    service: RepurposeServiceDep,
    user_id: str | None = Query(default=None),
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=1, le=100),
) -> HistoryResponse:
    """Return the pro user's most recent generations."""
    records = await service.history(user_id, limit=limit)
    return HistoryResponse(history=[HistoryItem.from_record(r) for r in records])


@router.get("/entitlement", response_model=EntitlementResponse)
async def get_entitlement(
    service: RepurposeServiceDep,
    user_id: str | None = Query(default=None),
) -> EntitlementResponse:
    """Report whether the identity may generate right now, without consuming quota."""
    result = await service.check(user_id)
    return EntitlementResponse(**result.model_dump())
