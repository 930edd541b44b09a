"""FastAPI application entry-point for the Recast API."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from recast_core.errors import (
    FetchError,
    GenerationError,
    RecastError,
    SignatureError,
    StorageError,
    UpgradeRequiredError,
    ValidationError,
)

from recast_api import __version__
from recast_api.config import APISettings, load_api_settings
from recast_api.dependencies import dispose_generator, dispose_store, init_generator, init_store
from recast_api.middleware.json_formatter import configure_logging
from recast_api.middleware.logging import CORRELATION_HEADER, RequestLoggingMiddleware
from recast_api.routers import billing, generate, health, history

logger = logging.getLogger(__name__)

# Opaque client-facing messages; details go to the log only.
_ERROR_RESPONSES: dict[type[RecastError], tuple[int, str]] = {
    SignatureError: (400, "Invalid webhook signature"),
    FetchError: (502, "Failed to extract content from URL"),
    GenerationError: (502, "Failed to generate content"),
    StorageError: (500, "Internal storage error"),
}


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup:
    - Configure logging.
    - Open the record store (creating tables when enabled).
    - Build the content generator.

    On shutdown:
    - Close the generator client and the record store.
    """
    settings: APISettings = load_api_settings()

    configure_logging(settings.log_level, structured=settings.structured_logging)
    logger.info("Logging configured (level=%s, structured=%s)", settings.log_level, settings.structured_logging)

    store = await init_store(settings)
    logger.info("Record store initialised (%s)", type(store).__name__)

    init_generator(settings)

    yield

    await dispose_generator()
    await dispose_store()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = load_api_settings()

    app = FastAPI(
        title="Recast API",
        description="Repurpose articles into social formats with a free tier and a Stripe-billed pro plan.",
        version=__version__,
        lifespan=lifespan,
    )

    # -- Middleware (outermost first) ----------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", CORRELATION_HEADER, "Accept"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # -- Routers -------------------------------------------------------------

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(generate.router, prefix="/api/v1")
    app.include_router(history.router, prefix="/api/v1")
    app.include_router(billing.router, prefix="/api/v1")

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(UpgradeRequiredError)
    async def upgrade_required_handler(request: Request, exc: UpgradeRequiredError) -> JSONResponse:
        logger.info("Upgrade required on %s: %s", request.url.path, exc.reason)
        return JSONResponse(
            status_code=403,
            content={"detail": exc.reason, "upgrade_required": True},
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning("ValidationError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(RecastError)
    async def recast_error_handler(request: Request, exc: RecastError) -> JSONResponse:
        status_code, message = 500, "Internal server error"
        for error_type, response in _ERROR_RESPONSES.items():
            if isinstance(exc, error_type):
                status_code, message = response
                break
        if status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc, exc_info=exc)
        else:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


# Module-level application instance used by ``uvicorn recast_api.main:app``.
app = create_app()
