"""Content generation endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from recast_api.dependencies import RepurposeServiceDep
from recast_api.schemas import GenerateRequest, GenerateResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generate"])


@router.post("/generate", response_model=GenerateResponse)
async def generate(body: GenerateRequest, service: RepurposeServiceDep) -> GenerateResponse:
    """Repurpose the article at ``body.url`` into every output format.

    Free and anonymous callers get one generation per window; when it is
    used up the response is 403 with ``upgrade_required``.
    ``remaining_free`` is ``null`` for pro users.
    """
    outcome = await service.generate(body.url, body.user_id, body.tone)
    return GenerateResponse(content=outcome.content, remaining_free=outcome.remaining_free)
