"""Status reads, as a JSON body (GET) or a response header (HEAD)."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from archive_ingest_core.analysis.client import STATUS_HEADER
from archive_ingest_core.api.deps import get_service
from archive_ingest_core.ingest import IngestService

router = APIRouter(tags=["status"])


@router.get("/status")
def get_status(
    id: str | None = Query(default=None),
    force_data_check: bool = Query(default=False, alias="forceDataCheck"),
    service: IngestService = Depends(get_service),
):
    if not id:
        return JSONResponse(status_code=400, content={"error": "Document ID is required"})
    snapshot = service.status(id, force_data_check=force_data_check)
    if snapshot is None:
        return JSONResponse(status_code=404, content={"error": "Document not found", "documentId": id})
    return snapshot.as_json()


@router.head("/status")
def head_status(id: str | None = Query(default=None), service: IngestService = Depends(get_service)):
    if not id:
        return Response(status_code=400)
    head = service.head_status(id)
    return Response(
        status_code=200 if head.found else 404,
        headers={STATUS_HEADER: json.dumps(head.info, separators=(",", ":"))},
    )
