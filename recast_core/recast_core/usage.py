"""Usage recording after a successful generation."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel

from recast_core.models import UsageRecord
from recast_core.state.store import RecordStore

logger = logging.getLogger(__name__)


def serialize_payload(payload: BaseModel | dict[str, Any] | str | None) -> str | None:
    """Serialize a generated output into the snapshot stored with the record."""
    if payload is None or isinstance(payload, str):
        return payload
    if isinstance(payload, BaseModel):
        return payload.model_dump_json()
    return json.dumps(payload, ensure_ascii=False, default=str)


class UsageRecorder:
    """Appends one immutable usage record per completed generation.

    Call :meth:`record` only after the generator has returned its output.
    Failure paths (quota rejection, fetch or generation errors, invalid
    input) must never reach it.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def record(
        self,
        user_id: str | None,
        subject_url: str,
        payload: BaseModel | dict[str, Any] | str | None = None,
        tone: str | None = None,
    ) -> UsageRecord:
        record = await self._store.record_usage(
            user_id,
            subject_url,
            payload_snapshot=serialize_payload(payload),
            tone=tone,
        )
        logger.info(
            "Recorded usage id=%s user=%s url=%s",
            record.id,
            user_id or "anonymous",
            subject_url,
        )
        return record
