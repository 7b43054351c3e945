from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from archive_ingest_core.dates import NormalizedDates, normalize_dates
from archive_ingest_core.ids import clean_document_id
from archive_ingest_core.models import Document, DocumentStamp, HandwrittenNote, Page, ProcessingStage
from archive_ingest_core.payload import AnalysisPayload
from archive_ingest_core.resolver import IdentityResolver
from archive_ingest_core.status import stage_after_reconcile, step_flags
from archive_ingest_core.store import DocumentStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReconciledRecord:
    document: Document
    pages: list[Page]
    notes: list[HandwrittenNote]
    stamps: list[DocumentStamp]


def _safe_normalize(document_id: str, raw_dates: list[str]) -> NormalizedDates:
    try:
        return normalize_dates(raw_dates)
    except Exception:  # noqa: BLE001
        logger.exception("date normalization failed for %s; continuing without dates", document_id)
        return NormalizedDates()


def _build_pages(document_id: str, payload: AnalysisPayload) -> list[Page]:
    pages: list[Page] = []
    seen: set[int] = set()
    for index, item in enumerate(payload.pages):
        number = item.page_number or index + 1
        if number in seen:
            logger.warning("document %s: duplicate page %d in payload, keeping the first", document_id, number)
            continue
        seen.add(number)
        pages.append(
            Page(
                document_id=document_id,
                page_number=number,
                image_path=item.image_path or f"{document_id}/page-{number}.png",
                summary=item.summary,
                full_text=item.full_text,
                names=list(item.names),
                places=list(item.places),
                dates=list(item.dates),
                objects=list(item.objects),
                has_image=item.image_path is not None,
                has_text=item.full_text is not None,
            )
        )
    return pages


def build_record(
    *,
    document_id: str,
    payload: AnalysisPayload,
    mark_complete: bool,
    existing: Document | None,
    now: datetime,
) -> ReconciledRecord:
    """
    Derives the full stored shape of a document from an analysis payload.

    Pure: the same inputs always give the same record, which is what makes reconciling
    twice with one payload a no-op for everything but timestamps.
    """
    target_id = existing.document_id if existing is not None else document_id

    pages = _build_pages(target_id, payload)
    notes = [
        HandwrittenNote(
            document_id=target_id,
            page_number=n.page_number or 1,
            content=n.content or "",
            location=n.location or "",
        )
        for n in payload.handwritten_notes
    ]
    stamps = [
        DocumentStamp(
            document_id=target_id,
            page_number=s.page_number or 1,
            type=s.type or "unknown",
            text=s.text or "",
            date=s.date or "",
        )
        for s in payload.stamps
    ]

    dates = _safe_normalize(target_id, payload.all_dates)
    stage = stage_after_reconcile(mark_complete=mark_complete, page_count=len(pages))

    content: dict[str, Any] = payload.as_content_json()
    content.update(step_flags(analysis_complete=stage is ProcessingStage.READY))
    content.update(
        {
            "processingStage": stage.value,
            "lastProcessed": now.isoformat(),
            "normalizedDates": [e.as_json() for e in dates.entries],
            "earliestDate": dates.earliest.isoformat() if dates.earliest else None,
            "latestDate": dates.latest.isoformat() if dates.latest else None,
        }
    )

    doc = Document(
        document_id=target_id,
        archive_id=(existing.archive_id if existing is not None else None) or document_id,
        old_id=existing.old_id if existing is not None else None,
        document_url=payload.document_url or (existing.document_url if existing is not None else None),
        document_type=existing.document_type if existing is not None else None,
        document_group=existing.document_group if existing is not None else None,
        title=payload.title,
        summary=payload.summary,
        full_text=payload.full_text,
        search_text=payload.summary,
        page_count=payload.page_count or len(pages),
        all_names=list(payload.all_names),
        all_places=list(payload.all_places),
        all_dates=list(payload.all_dates),
        all_objects=list(payload.all_objects),
        normalized_dates=list(dates.entries),
        earliest_date=dates.earliest,
        latest_date=dates.latest,
        has_handwritten_notes=len(notes) > 0,
        has_stamps=len(stamps) > 0,
        has_full_text=payload.full_text is not None,
        processing_stage=stage,
        processing_steps=list(existing.processing_steps) if existing is not None else [],
        processing_error=None,
        processing_date=now,
        last_processed=now,
        content_json=content,
        created_at=existing.created_at if existing is not None else None,
    )
    return ReconciledRecord(document=doc, pages=pages, notes=notes, stamps=stamps)


class Reconciler:
    """
    Merges a fetched analysis payload into the stored document.

    Child rows (pages, notes, stamps) are always replaced wholesale and the whole write
    goes through a single `replace_document` call. `reconcile` never raises.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        resolver: IdentityResolver | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._resolver = resolver or IdentityResolver(store)
        self._clock = clock

    def bound_to(self, store: DocumentStore) -> Reconciler:
        return Reconciler(store, clock=self._clock)

    def reconcile(
        self,
        document_id: str,
        payload: AnalysisPayload | dict[str, Any] | None,
        mark_complete: bool = False,
    ) -> bool:
        cleaned = clean_document_id(document_id)
        if not cleaned:
            logger.error("reconcile called without a document id")
            return False
        if payload is None:
            logger.error("no analysis data provided for %s", cleaned)
            return False
        data = AnalysisPayload.from_raw(payload)

        try:
            existing = self._resolver.resolve(cleaned)
        except Exception:  # noqa: BLE001
            logger.exception("lookup failed for %s", cleaned)
            return False

        try:
            record = build_record(
                document_id=cleaned,
                payload=data,
                mark_complete=mark_complete,
                existing=existing,
                now=self._clock(),
            )
        except Exception:  # noqa: BLE001
            logger.exception("could not derive a record for %s from its payload", cleaned)
            return False

        logger.info(
            "%s document %s: %d pages, %d notes, %d stamps, stage=%s",
            "updating" if existing is not None else "creating",
            record.document.document_id,
            len(record.pages),
            len(record.notes),
            len(record.stamps),
            record.document.processing_stage.value,
        )
        try:
            self._store.replace_document(
                record.document,
                pages=record.pages,
                notes=record.notes,
                stamps=record.stamps,
            )
        except Exception:  # noqa: BLE001
            logger.exception("persisting document %s failed", record.document.document_id)
            return False
        return True
