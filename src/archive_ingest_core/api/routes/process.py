"""Ingestion kickoff, finalize and broken-document discovery."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from archive_ingest_core.api.deps import get_service
from archive_ingest_core.api.models import BrokenDocumentsResponse, ProcessRequest
from archive_ingest_core.ingest import IngestService

router = APIRouter(tags=["process"])


@router.post("/process")
def process(
    body: ProcessRequest,
    x_archive_id: str | None = Header(default=None, alias="X-Archive-ID"),
    service: IngestService = Depends(get_service),
):
    if body.find_broken_only:
        report = service.find_broken()
        return BrokenDocumentsResponse(
            message=f"Found {len(report.document_ids)} broken documents",
            broken_doc_ids=report.document_ids,
            breakdown=report.breakdown,
        ).model_dump(by_alias=True)

    if not body.document_id:
        return JSONResponse(status_code=400, content={"error": "Document ID is required"})

    if body.is_finalize:
        result = service.finalize(
            body.document_id,
            document_type=body.document_type,
            document_group=body.document_group,
        )
        return JSONResponse(status_code=200 if result.ok else 500, content=result.as_json())

    result = service.kickoff(
        body.document_id,
        archive_id=body.archive_id or x_archive_id,
        steps=body.steps,
        document_url=body.document_url,
        document_type=body.document_type,
        document_group=body.document_group,
    )
    if result.not_found:
        return JSONResponse(status_code=404, content=result.as_json())
    return JSONResponse(status_code=200 if result.ok else 500, content=result.as_json())
