from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Callable
from contextlib import AbstractContextManager
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from archive_ingest_core.analysis.client import AnalysisServiceClient
from archive_ingest_core.ids import clean_document_id, infer_collection
from archive_ingest_core.models import Document, DocumentScanRow, ProcessingStage
from archive_ingest_core.reconcile import Reconciler
from archive_ingest_core.resolver import IdentityResolver
from archive_ingest_core.store import DocumentStore

logger = logging.getLogger(__name__)

# Content blobs written by an old migration were the bare discovery record.
LEGACY_CONTENT_MARKER = '{"archiveId":'

LEGACY_SHAPE = "legacy_shape"
ZERO_PAGE_COUNT = "zero_page_count"
NO_PAGES = "no_pages"
COMPLETE_WITHOUT_PAGES = "complete_without_pages"

StoreFactory = Callable[[], AbstractContextManager[DocumentStore]]


def _has_legacy_shape(content: dict[str, Any] | None) -> bool:
    if not isinstance(content, dict):
        return False
    return json.dumps(content, separators=(",", ":")).startswith(LEGACY_CONTENT_MARKER)


def broken_reasons(row: DocumentScanRow) -> list[str]:
    """
    Every structural problem found on one stored document; empty means healthy.
    """
    reasons: list[str] = []
    if _has_legacy_shape(row.content_json):
        reasons.append(LEGACY_SHAPE)
    if row.page_count == 0:
        reasons.append(ZERO_PAGE_COUNT)
    if row.page_rows == 0:
        reasons.append(NO_PAGES)
    claims_complete = isinstance(row.content_json, dict) and row.content_json.get("analysisComplete") is True
    if claims_complete and (row.page_rows == 0 or row.page_count == 0):
        reasons.append(COMPLETE_WITHOUT_PAGES)
    return reasons


def is_broken(row: DocumentScanRow) -> bool:
    return bool(broken_reasons(row))


def scan_row_for(doc: Document, *, page_rows: int) -> DocumentScanRow:
    return DocumentScanRow(
        document_id=doc.document_id,
        archive_id=doc.archive_id,
        content_json=doc.content_json,
        page_count=doc.page_count,
        page_rows=page_rows,
    )


def needs_data_refresh(doc: Document, *, page_rows: int, force: bool = False) -> bool:
    """
    True when a document claims completion but its stored data is structurally missing.

    Used by the status read path to decide whether to self-heal.
    """
    if force:
        return True
    claims_complete = (
        doc.processing_stage is ProcessingStage.READY or doc.content_json.get("analysisComplete") is True
    )
    if not claims_complete:
        return False
    if is_broken(scan_row_for(doc, page_rows=page_rows)):
        return True
    no_entities = not (doc.all_names or doc.all_places or doc.all_dates or doc.all_objects)
    return not doc.summary or no_entities


@dataclass(frozen=True)
class ScanReport:
    document_ids: list[str]
    breakdown: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class RepairResult:
    document_id: str
    ok: bool
    message: str | None = None

    def as_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.document_id, "status": "success" if self.ok else "failed"}
        if self.message:
            out["message"] = self.message
        return out


@dataclass(frozen=True)
class RepairSummary:
    repaired: int
    failed: int
    documents: list[RepairResult]

    @property
    def scanned_clean(self) -> bool:
        return self.repaired == 0 and self.failed == 0


class RepairScanner:
    """
    Finds structurally broken documents and drives the reconciler to fix them.

    Documents are repaired one at a time by default to bound load on the analysis
    service; `max_concurrency` raises that bound explicitly. Concurrent workers each open
    their own store through `store_factory` and never share a connection.
    One document failing never stops the batch.
    """

    def __init__(
        self,
        store: DocumentStore,
        client: AnalysisServiceClient,
        reconciler: Reconciler,
        *,
        resolver: IdentityResolver | None = None,
        default_collection: str = "jfk",
        max_concurrency: int = 1,
        store_factory: StoreFactory | None = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if max_concurrency > 1 and store_factory is None:
            raise ValueError("max_concurrency > 1 requires a store_factory")
        self._store = store
        self._client = client
        self._reconciler = reconciler
        self._resolver = resolver or IdentityResolver(store)
        self._default_collection = default_collection
        self._max_concurrency = max_concurrency
        self._store_factory = store_factory

    def _collection(self, document_id: str, record: Document | None = None) -> str:
        return infer_collection(document_id, record=record, default=self._default_collection)

    def scan_report(self) -> ScanReport:
        rows = self._store.list_scan_rows()
        broken: list[DocumentScanRow] = []
        breakdown: Counter[str] = Counter()
        for row in rows:
            reasons = broken_reasons(row)
            if reasons:
                broken.append(row)
                breakdown.update(reasons)
        logger.info(
            "scanned %d documents, %d need repair (%s)",
            len(rows),
            len(broken),
            ", ".join(f"{k}={v}" for k, v in sorted(breakdown.items())) or "none",
        )
        return ScanReport(document_ids=[r.document_id for r in broken], breakdown=dict(breakdown))

    def scan_for_broken(self) -> list[str]:
        return self.scan_report().document_ids

    def repair_document(self, document_id: str) -> bool:
        """
        Standard repair: only acts on a stored document that is actually broken.
        """
        cleaned = clean_document_id(document_id)
        try:
            existing = self._resolver.resolve(cleaned)
            if existing is None:
                logger.error("document %s not found; nothing to repair", cleaned)
                return False
            page_rows = self._store.count_pages(existing.document_id)
        except Exception:  # noqa: BLE001
            logger.exception("lookup failed while repairing %s", cleaned)
            return False

        reasons = broken_reasons(scan_row_for(existing, page_rows=page_rows))
        if not reasons:
            logger.info("document %s does not need repair", cleaned)
            return False

        logger.info("repairing %s (%s)", cleaned, ", ".join(reasons))
        payload = self._client.fetch(cleaned, self._collection(cleaned, existing))
        if payload is None:
            return False
        if not payload.is_complete():
            logger.error("retrieved incomplete data for %s", cleaned)
            return False
        return self._reconciler.reconcile(cleaned, payload, True)

    def force_update(self, document_id: str) -> bool:
        """
        Unconditional re-fetch and reconcile, regardless of the stored state.
        """
        cleaned = clean_document_id(document_id)
        payload = self._client.fetch(cleaned, self._collection(cleaned))
        if payload is None or not payload.is_complete():
            logger.error("failed to get complete data for %s", cleaned)
            return False
        return self._reconciler.reconcile(cleaned, payload, True)

    def _repair_one(self, row: DocumentScanRow) -> RepairResult:
        media_id = row.archive_id or row.document_id
        try:
            ok = self.repair_document(media_id)
            if not ok:
                logger.info("standard repair did not fix %s, forcing an update", media_id)
                ok = self.force_update(media_id)
        except Exception as e:  # noqa: BLE001
            logger.exception("repair of %s raised", row.document_id)
            return RepairResult(document_id=row.document_id, ok=False, message=str(e))
        if ok:
            return RepairResult(document_id=row.document_id, ok=True)
        return RepairResult(document_id=row.document_id, ok=False, message="Repair failed")

    def _repair_isolated(self, row: DocumentScanRow) -> RepairResult:
        try:
            with self._store_factory() as store:
                worker = RepairScanner(
                    store,
                    self._client,
                    self._reconciler.bound_to(store),
                    default_collection=self._default_collection,
                )
                return worker._repair_one(row)
        except Exception as e:  # noqa: BLE001
            logger.exception("could not open a store to repair %s", row.document_id)
            return RepairResult(document_id=row.document_id, ok=False, message=str(e))

    def repair_all(self, *, on_result: Callable[[RepairResult], None] | None = None) -> RepairSummary:
        rows = [r for r in self._store.list_scan_rows() if is_broken(r)]
        logger.info("repairing %d broken documents (concurrency=%d)", len(rows), self._max_concurrency)

        results: list[RepairResult] = []
        if self._max_concurrency == 1:
            for row in rows:
                result = self._repair_one(row)
                results.append(result)
                if on_result is not None:
                    on_result(result)
        else:
            with ThreadPoolExecutor(max_workers=self._max_concurrency) as pool:
                for result in pool.map(self._repair_isolated, rows):
                    results.append(result)
                    if on_result is not None:
                        on_result(result)

        repaired = sum(1 for r in results if r.ok)
        return RepairSummary(repaired=repaired, failed=len(results) - repaired, documents=results)
