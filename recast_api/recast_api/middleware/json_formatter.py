"""JSON log formatter.

Emits each log record as a single-line JSON object so that log
aggregators can index fields without regex parsing.  Enabled with
``RECAST_STRUCTURED_LOGGING=true``.

Output schema per line::

    {
        "timestamp": "2026-03-01T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "recast.access",
        "message": "POST /api/v1/generate -> 200",
        "request": { ... },          // from RequestLoggingMiddleware
        "exc_info": "Traceback ..."  // only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_data = getattr(record, "request", None)
        if request_data is not None:
            payload["request"] = request_data

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str = "INFO", *, structured: bool = False) -> None:
    """Install a single root handler, JSON-formatted when *structured*."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())
