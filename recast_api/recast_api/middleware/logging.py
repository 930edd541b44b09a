"""Access logging for the Recast API.

One record per request on the ``recast.access`` logger.  Health probes are
logged at DEBUG so load-balancer polling does not drown real traffic.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("recast.access")

# Masked in log output; stripe-signature would let a reader replay webhooks.
_SENSITIVE_HEADERS: frozenset[str] = frozenset({"authorization", "cookie", "stripe-signature"})
_MASK = "***"

_QUIET_PATHS: frozenset[str] = frozenset({"/api/v1/health"})

CORRELATION_HEADER = "X-Correlation-ID"


def safe_headers(request: Request) -> dict[str, str]:
    """Request headers with sensitive values replaced by ``***``."""
    return {key: _MASK if key.lower() in _SENSITIVE_HEADERS else value for key, value in request.headers.items()}


def _level_for(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    if path in _QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration for every request.

    The correlation id comes from ``X-Correlation-ID`` when the caller
    sends one and is generated otherwise.  It is stored on
    ``request.state.correlation_id`` and echoed on the response.  The
    ``user_id`` query parameter (history and entitlement lookups) is
    included so quota disputes can be traced to an identity.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        start = time.monotonic()
        response: Response | None = None
        try:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            status_code = response.status_code if response is not None else 500
            path = request.url.path
            payload: dict[str, Any] = {
                "method": request.method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
                "client": request.client.host if request.client else None,
                "correlation_id": correlation_id,
                "user_id": request.query_params.get("user_id"),
                "headers": safe_headers(request),
            }
            logger.log(
                _level_for(path, status_code),
                "%s %s -> %d",
                request.method,
                path,
                status_code,
                extra={"request": payload},
            )
