"""Document ingestion FastAPI application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from archive_ingest_core import __version__
from archive_ingest_core.config import Settings, load_settings
from archive_ingest_core.logging_setup import configure_logging
from archive_ingest_core.status import StatusCache

logger = logging.getLogger(__name__)


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    app = FastAPI(
        title="Archive Ingest API",
        description="Ingestion and status reconciliation for scanned archive documents",
        version=__version__,
    )
    app.state.status_cache = StatusCache(
        ttl_s=settings.status_cache_ttl_s,
        max_entries=settings.status_cache_max_entries,
    )
    app.add_exception_handler(Exception, _unhandled_error)

    from archive_ingest_core.api.routes.health import router as health_router
    from archive_ingest_core.api.routes.process import router as process_router
    from archive_ingest_core.api.routes.repair import router as repair_router
    from archive_ingest_core.api.routes.status import router as status_router
    from archive_ingest_core.api.routes.webhook import router as webhook_router

    app.include_router(process_router)
    app.include_router(repair_router)
    app.include_router(webhook_router)
    app.include_router(status_router)
    app.include_router(health_router)

    return app
