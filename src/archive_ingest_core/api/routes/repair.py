"""Targeted and batch repair of broken documents."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from archive_ingest_core.api.deps import get_service
from archive_ingest_core.api.models import RepairAllResponse, RepairRequest
from archive_ingest_core.ingest import IngestService

router = APIRouter(tags=["repair"])


@router.patch("/repair")
def repair(body: RepairRequest, service: IngestService = Depends(get_service)):
    if body.repair_all_broken:
        summary = service.repair_all()
        if summary.scanned_clean:
            message = "No broken documents found"
        else:
            message = f"Repaired {summary.repaired} documents, {summary.failed} failed"
        return RepairAllResponse(
            message=message,
            repaired=summary.repaired,
            failed=summary.failed,
            documents=[r.as_json() for r in summary.documents],
        ).model_dump()

    if not body.document_id:
        return JSONResponse(
            status_code=400,
            content={"error": "Document ID is required for single document repair"},
        )

    if body.force_data_update:
        result = service.force_update(body.document_id, retry_count=body.retry_count)
        return JSONResponse(status_code=200 if result.ok else 500, content=result.as_json())

    result = service.repair(body.document_id)
    return JSONResponse(status_code=200 if result.ok else 400, content=result.as_json())
