from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from threading import Lock
from time import monotonic
from typing import Any

from archive_ingest_core.models import Document, ProcessingStage

logger = logging.getLogger(__name__)

# Pipeline flag stored in the content blob -> externally visible step name.
STEP_FLAGS: dict[str, str] = {
    "folderCreated": "createFolder",
    "pdfDownloaded": "downloadPdf",
    "pngCreated": "createPngs",
    "analysisComplete": "analyzeImages",
    "arweavePublished": "publishArweave",
    "summaryUpdated": "updateSummary",
    "indexedInDb": "indexDatabase",
}
ANALYSIS_COMPLETE_STEP = "analyzeImages"


def stage_after_reconcile(*, mark_complete: bool, page_count: int) -> ProcessingStage:
    """
    `ready` is reachable only through a complete reconciliation that carried pages.
    """
    if mark_complete and page_count > 0:
        return ProcessingStage.READY
    if mark_complete:
        logger.warning("refusing to mark a document ready without pages")
    return ProcessingStage.WAITING_FOR_ANALYSIS


def stage_after_status_report(current: ProcessingStage, reported: str | None) -> ProcessingStage:
    """
    Status-only updates from the processing service never promote a document.

    A `ready` document stays `ready`; everything else stays `waitingForAnalysis`.
    """
    if reported and reported != current.value:
        logger.debug("ignoring reported stage %r (current %s)", reported, current.value)
    return current


def completed_steps(content_json: dict[str, Any] | None) -> list[str]:
    content = content_json or {}
    return [step for flag, step in STEP_FLAGS.items() if content.get(flag) is True]


def step_flags(*, analysis_complete: bool) -> dict[str, bool]:
    flags = {flag: True for flag in STEP_FLAGS}
    flags["analysisComplete"] = analysis_complete
    return flags


@dataclass(frozen=True)
class StatusSnapshot:
    document_id: str
    status: str = ProcessingStage.WAITING_FOR_ANALYSIS.value
    analysis_complete: bool = False
    db_id: str | None = None
    archive_id: str | None = None
    old_id: str | None = None
    steps: list[str] = field(default_factory=list)
    completed_steps: list[str] = field(default_factory=list)
    timestamp: str | None = None
    error: str | None = None
    document_url: str | None = None
    has_summary: bool = False
    has_pages: bool = False
    cached: bool = False

    def as_json(self) -> dict[str, Any]:
        data = asdict(self)
        return {
            "documentId": data["document_id"],
            "dbId": data["db_id"],
            "archiveId": data["archive_id"],
            "oldId": data["old_id"],
            "status": data["status"],
            "analysisComplete": data["analysis_complete"],
            "steps": data["steps"],
            "completedSteps": data["completed_steps"],
            "timestamp": data["timestamp"],
            "error": data["error"],
            "documentUrl": data["document_url"],
            "hasSummary": data["has_summary"],
            "hasPages": data["has_pages"],
            "cached": data["cached"],
        }


def snapshot_for(requested_id: str, doc: Document, *, page_rows: int) -> StatusSnapshot:
    ready = doc.processing_stage is ProcessingStage.READY
    last = doc.last_processed or doc.processing_date
    return StatusSnapshot(
        document_id=requested_id,
        status=doc.processing_stage.value,
        analysis_complete=ready,
        db_id=doc.document_id,
        archive_id=doc.archive_id or requested_id,
        old_id=doc.old_id,
        steps=list(doc.processing_steps),
        completed_steps=completed_steps(doc.content_json),
        timestamp=last.isoformat() if last else None,
        error=doc.processing_error,
        document_url=doc.document_url,
        has_summary=bool(doc.summary),
        has_pages=page_rows > 0,
    )


class StatusCache:
    """
    Bounded, TTL'd fallback for status reads when the store cannot be reached.

    Never authoritative: entries are written after each successful status computation and
    only read back when the store raises. Oldest entries are evicted first.
    """

    def __init__(
        self,
        *,
        ttl_s: float = 300.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = monotonic,
    ):
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._ttl_s = ttl_s
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[StatusSnapshot, float]] = OrderedDict()
        self._lock = Lock()

    def get(self, document_id: str) -> StatusSnapshot | None:
        with self._lock:
            item = self._entries.get(document_id)
            if item is None:
                return None
            snapshot, expires_at = item
            if self._clock() >= expires_at:
                del self._entries[document_id]
                return None
            return snapshot

    def put(self, snapshot: StatusSnapshot) -> None:
        with self._lock:
            self._entries.pop(snapshot.document_id, None)
            self._entries[snapshot.document_id] = (snapshot, self._clock() + self._ttl_s)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, document_id: str) -> None:
        with self._lock:
            self._entries.pop(document_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
