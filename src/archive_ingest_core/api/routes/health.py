"""Health check endpoint."""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends

from archive_ingest_core.api.deps import get_health_probe
from archive_ingest_core.api.models import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health(probe: Callable[[], None] = Depends(get_health_probe)):
    try:
        probe()
    except Exception:  # noqa: BLE001
        logger.warning("database health check failed", exc_info=True)
        return HealthResponse(status="degraded", database_connected=False)
    return HealthResponse(status="ok", database_connected=True)
