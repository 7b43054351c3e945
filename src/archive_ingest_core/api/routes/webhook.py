"""Callback endpoint for the external processing service."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from archive_ingest_core.api.deps import get_service
from archive_ingest_core.api.models import WebhookRequest
from archive_ingest_core.ingest import IngestService

router = APIRouter(tags=["webhook"])


@router.put("/webhook")
def webhook(body: WebhookRequest, service: IngestService = Depends(get_service)):
    if not body.document_id:
        return JSONResponse(status_code=400, content={"error": "Document ID is required"})

    result = service.handle_webhook(
        body.document_id,
        status=body.status,
        completed_steps=body.completed_steps,
    )
    if result.not_found:
        return JSONResponse(status_code=404, content={"error": result.message})
    return JSONResponse(status_code=200 if result.ok else 500, content=result.as_json())
