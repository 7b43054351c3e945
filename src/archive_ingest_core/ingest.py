from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from archive_ingest_core.analysis.client import AnalysisServiceClient
from archive_ingest_core.errors import IncompleteAnalysisError, PersistenceError
from archive_ingest_core.ids import archives_gov_url, clean_document_id, infer_collection
from archive_ingest_core.models import Document, ProcessingStage
from archive_ingest_core.payload import AnalysisPayload
from archive_ingest_core.reconcile import Reconciler
from archive_ingest_core.repair import (
    RepairScanner,
    RepairSummary,
    ScanReport,
    StoreFactory,
    needs_data_refresh,
)
from archive_ingest_core.resolver import IdentityResolver
from archive_ingest_core.retry import retry_bounded
from archive_ingest_core.status import (
    ANALYSIS_COMPLETE_STEP,
    STEP_FLAGS,
    StatusCache,
    StatusSnapshot,
    snapshot_for,
    stage_after_status_report,
)
from archive_ingest_core.store import DocumentStore

logger = logging.getLogger(__name__)

INDEX_ONLY_STEPS = ["indexDatabase"]
DEFAULT_KICKOFF_STEPS = ["download", "conversion", "analysis", "publishing", "indexing"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def data_details(payload: AnalysisPayload) -> dict[str, Any]:
    return {
        "pageCount": len(payload.pages),
        "hasSummary": payload.summary is not None,
        "hasHandwrittenNotes": len(payload.handwritten_notes) > 0,
        "hasStamps": len(payload.stamps) > 0,
    }


@dataclass(frozen=True)
class OperationResult:
    ok: bool
    document_id: str
    status: str
    message: str
    details: dict[str, Any] | None = None
    attempts: int | None = None
    error: str | None = None
    not_found: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def as_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "documentId": self.document_id,
            "status": self.status,
            "message": self.message,
        }
        if self.details is not None:
            out["dataDetails"] = self.details
        if self.attempts is not None:
            out["attempts"] = self.attempts
        if self.error is not None:
            out["error"] = self.error
        out.update(self.extra)
        return out


@dataclass(frozen=True)
class HeadStatus:
    found: bool
    info: dict[str, Any]


class IngestService:
    """
    Orchestrates the externally triggered flows: kickoff, finalize, webhook, forced
    update, repair and status reads. HTTP handlers and the CLI are thin wrappers around it.
    """

    def __init__(
        self,
        store: DocumentStore,
        client: AnalysisServiceClient,
        *,
        cache: StatusCache | None = None,
        default_collection: str = "jfk",
        default_retry_count: int = 1,
        repair_max_concurrency: int = 1,
        store_factory: StoreFactory | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.client = client
        self.cache = cache or StatusCache()
        self.resolver = IdentityResolver(store)
        self.reconciler = Reconciler(store, resolver=self.resolver, clock=clock)
        self.scanner = RepairScanner(
            store,
            client,
            self.reconciler,
            resolver=self.resolver,
            default_collection=default_collection,
            max_concurrency=repair_max_concurrency,
            store_factory=store_factory,
        )
        self._default_collection = default_collection
        self._default_retry_count = default_retry_count
        self._clock = clock

    def _collection(
        self,
        document_id: str,
        *,
        explicit: str | None = None,
        record: Document | None = None,
    ) -> str:
        return infer_collection(document_id, explicit=explicit, record=record, default=self._default_collection)

    def _fetch_and_reconcile(self, document_id: str, collection: str) -> Callable[[int], AnalysisPayload]:
        def attempt(_: int) -> AnalysisPayload:
            payload = self.client.fetch_or_raise(document_id, collection)
            if not payload.has_pages:
                raise IncompleteAnalysisError(f"Retrieved empty data for document {document_id}")
            if not self.reconciler.reconcile(document_id, payload, True):
                raise PersistenceError("Failed to update document in database")
            return payload

        return attempt

    def _record_error(self, document_id: str, message: str) -> None:
        try:
            doc = self.resolver.resolve(document_id)
            if doc is None:
                return
            now = self._clock()
            self.store.upsert_document(
                replace(
                    doc,
                    processing_error=message,
                    processing_date=now,
                    last_processed=now,
                    content_json={**doc.content_json, "processingError": message},
                )
            )
        except Exception:  # noqa: BLE001
            logger.exception("could not record processing error for %s", document_id)

    # -- finalize / force ---------------------------------------------------------------

    def finalize(
        self,
        document_id: str,
        *,
        document_type: str | None = None,
        document_group: str | None = None,
    ) -> OperationResult:
        target = clean_document_id(document_id)
        explicit = document_type if document_type == "rfk" else document_group
        collection = self._collection(target, explicit=explicit)
        logger.info("finalizing document %s (collection=%s)", target, collection)

        payload = self.client.fetch(target, collection)
        if payload is None:
            return OperationResult(
                ok=False,
                document_id=target,
                status="error",
                message="Failed to fetch analysis data for document",
            )
        extra: dict[str, Any] = {}
        if not payload.is_complete(require_summary=True):
            extra["warning"] = "Analysis data has no pages or no summary"
            logger.warning("finalizing %s with incomplete analysis data", target)

        if not self.reconciler.reconcile(target, payload, True):
            return OperationResult(
                ok=False,
                document_id=target,
                status="error",
                message="Failed to update document in database",
            )
        self.cache.invalidate(target)
        return OperationResult(
            ok=True,
            document_id=target,
            status="success",
            message="Document finalized with full data update",
            details=data_details(payload),
            extra=extra,
        )

    def force_update(self, document_id: str, *, retry_count: int | None = None) -> OperationResult:
        target = clean_document_id(document_id)
        attempts = max(1, int(retry_count or self._default_retry_count))
        outcome = retry_bounded(
            self._fetch_and_reconcile(target, self._collection(target)),
            attempts=attempts,
            label=f"force update {target}",
        )
        if outcome.ok and outcome.value is not None:
            self.cache.invalidate(target)
            return OperationResult(
                ok=True,
                document_id=target,
                status="success",
                message="Document updated with latest data",
                details=data_details(outcome.value),
                attempts=outcome.attempts,
            )
        return OperationResult(
            ok=False,
            document_id=target,
            status="failed",
            message=f"Failed after {outcome.attempts} attempts. Last error: {outcome.last_error}",
            attempts=outcome.attempts,
            error=outcome.last_error,
        )

    # -- repair ---------------------------------------------------------------------------

    def find_broken(self) -> ScanReport:
        return self.scanner.scan_report()

    def repair(self, document_id: str) -> OperationResult:
        target = clean_document_id(document_id)
        if self.scanner.repair_document(target):
            self.cache.invalidate(target)
            return OperationResult(
                ok=True, document_id=target, status="success", message="Document repaired successfully"
            )
        return OperationResult(
            ok=False,
            document_id=target,
            status="failed",
            message="Failed to repair document or repair not needed",
        )

    def repair_all(self) -> RepairSummary:
        return self.scanner.repair_all(on_result=lambda r: self.cache.invalidate(r.document_id))

    # -- webhook --------------------------------------------------------------------------

    def handle_webhook(
        self,
        document_id: str,
        *,
        status: str | None = None,
        completed_steps: list[str] | None = None,
        retry_count: int | None = None,
    ) -> OperationResult:
        target = clean_document_id(document_id)
        steps = list(completed_steps or [])
        logger.info("webhook for %s: status=%s steps=%s", target, status or "-", ",".join(steps) or "none")

        existing = self.resolver.resolve(target)
        if existing is None:
            return OperationResult(
                ok=False,
                document_id=target,
                status="error",
                message="Document not found in database",
                not_found=True,
            )
        self.cache.invalidate(target)

        if ANALYSIS_COMPLETE_STEP in steps:
            outcome = retry_bounded(
                self._fetch_and_reconcile(target, self._collection(target, record=existing)),
                attempts=max(1, int(retry_count or self._default_retry_count)),
                label=f"webhook reconcile {target}",
            )
            if outcome.ok and outcome.value is not None:
                return OperationResult(
                    ok=True,
                    document_id=target,
                    status="success",
                    message="Document updated with complete analysis data",
                    details=data_details(outcome.value),
                    attempts=outcome.attempts,
                )
            self._record_error(target, outcome.last_error or "analysis reconcile failed")
            return OperationResult(
                ok=False,
                document_id=target,
                status="error",
                message="Failed to update document with analysis data",
                attempts=outcome.attempts,
                error=outcome.last_error,
            )

        now = self._clock()
        stage = stage_after_status_report(existing.processing_stage, status)
        content = {
            **existing.content_json,
            "processingStage": stage.value,
            "lastProcessed": now.isoformat(),
            "completedSteps": steps,
        }
        if status:
            content["reportedStatus"] = status
        for flag, step in STEP_FLAGS.items():
            if step in steps and step != ANALYSIS_COMPLETE_STEP:
                content[flag] = True
        try:
            self.store.upsert_document(
                replace(existing, processing_stage=stage, processing_date=now, last_processed=now, content_json=content)
            )
        except Exception as e:  # noqa: BLE001
            logger.exception("webhook status update failed for %s", target)
            return OperationResult(
                ok=False,
                document_id=target,
                status="error",
                message="Failed to update document status",
                error=str(e),
            )
        return OperationResult(ok=True, document_id=target, status="updated", message="Document status updated")

    # -- kickoff --------------------------------------------------------------------------

    def _prepare_record(
        self,
        target: str,
        *,
        collection: str,
        document_url: str,
        steps: list[str],
    ) -> OperationResult | None:
        existing = self.resolver.resolve(target)
        media = self.client.media_status(target, collection)

        if media.exists and existing is None:
            logger.info("document %s exists on the analysis service but not locally; importing", target)
            payload = self.client.fetch(target, collection)
            if payload is not None:
                self.reconciler.reconcile(target, payload, media.has_analysis)
                if media.has_analysis and steps == INDEX_ONLY_STEPS:
                    return OperationResult(
                        ok=True,
                        document_id=target,
                        status=ProcessingStage.READY.value,
                        message="Document successfully indexed with data from the analysis service",
                        details=data_details(payload),
                        extra={"documentUrl": document_url, "steps": INDEX_ONLY_STEPS, "analysisComplete": True},
                    )
            existing = self.resolver.resolve(target)

        now = self._clock()
        requested = steps or ["download"]
        if existing is not None:
            stage = existing.processing_stage
            self.store.upsert_document(
                replace(
                    existing,
                    document_url=document_url,
                    processing_steps=requested,
                    processing_error=None,
                    processing_date=now,
                    last_processed=now,
                    content_json={
                        **existing.content_json,
                        "processingStage": stage.value,
                        "processingSteps": requested,
                        "requestedSteps": steps,
                        "lastProcessed": now.isoformat(),
                        "analysisComplete": stage is ProcessingStage.READY,
                    },
                )
            )
        else:
            self.store.upsert_document(
                Document(
                    document_id=target,
                    archive_id=target,
                    document_url=document_url,
                    page_count=0,
                    processing_steps=requested,
                    processing_date=now,
                    last_processed=now,
                    content_json={
                        "processingStage": ProcessingStage.WAITING_FOR_ANALYSIS.value,
                        "processingSteps": requested,
                        "requestedSteps": steps,
                        "lastProcessed": now.isoformat(),
                        "analysisComplete": False,
                    },
                )
            )
        return None

    def kickoff(
        self,
        document_id: str,
        *,
        archive_id: str | None = None,
        steps: list[str] | None = None,
        document_url: str | None = None,
        document_type: str | None = None,
        document_group: str | None = None,
    ) -> OperationResult:
        target = clean_document_id(archive_id or document_id)
        steps = list(steps or [])
        explicit = document_type if document_type == "rfk" else document_group
        try:
            record = self.resolver.resolve(target)
        except Exception:  # noqa: BLE001
            logger.exception("lookup failed for %s", target)
            record = None
        collection = self._collection(target, explicit=explicit, record=record)
        url = document_url or archives_gov_url(target, collection=collection)
        logger.info("processing %s (collection=%s, steps=%s)", target, collection, ",".join(steps) or "all")
        self.cache.invalidate(target)

        try:
            early = self._prepare_record(target, collection=collection, document_url=url, steps=steps)
            if early is not None:
                return early
        except Exception as e:  # noqa: BLE001
            logger.exception("database preparation failed for %s; continuing", target)
            self._record_error(target, f"Database preparation failed: {e}")

        base_extra = {"documentUrl": url}
        if steps == INDEX_ONLY_STEPS:
            payload = self.client.fetch(target, collection)
            if payload is None:
                return OperationResult(
                    ok=False,
                    document_id=target,
                    status=ProcessingStage.WAITING_FOR_ANALYSIS.value,
                    message="Failed to retrieve document analysis data",
                    error="Analysis data not found",
                    not_found=True,
                    extra={**base_extra, "analysisComplete": False},
                )
            complete = payload.has_pages
            saved = self.reconciler.reconcile(target, payload, complete)
            return OperationResult(
                ok=True,
                document_id=target,
                status=(ProcessingStage.READY if complete else ProcessingStage.WAITING_FOR_ANALYSIS).value,
                message=(
                    "Document indexed in database with complete data"
                    if saved
                    else "Partial document data saved to database"
                ),
                details=data_details(payload),
                extra={**base_extra, "steps": INDEX_ONLY_STEPS, "analysisComplete": complete},
            )

        if not self.client.start_processing(document_id=target, document_url=url, steps=steps):
            message = "Processing service did not accept the request"
            self._record_error(target, message)
            return OperationResult(
                ok=True,
                document_id=target,
                status=ProcessingStage.WAITING_FOR_ANALYSIS.value,
                message="Failed to process document",
                error=message,
                extra={**base_extra, "analysisComplete": False},
            )
        return OperationResult(
            ok=True,
            document_id=target,
            status=ProcessingStage.WAITING_FOR_ANALYSIS.value,
            message="Document processing started",
            extra={**base_extra, "steps": steps or DEFAULT_KICKOFF_STEPS, "analysisComplete": False},
        )

    # -- status ---------------------------------------------------------------------------

    def _heal(self, target: str, collection: str) -> bool:
        payload = self.client.fetch(target, collection)
        if payload is None or not payload.is_complete():
            logger.error("failed to get complete data for %s; analysis data not available", target)
            return False
        return self.reconciler.reconcile(target, payload, True)

    def status(self, document_id: str, *, force_data_check: bool = False) -> StatusSnapshot | None:
        """
        Current status of one document, self-healing complete-but-empty records.

        Returns None when neither the store nor the analysis service knows the id. When
        the store itself fails, the last cached snapshot (or a default) is returned.
        """
        target = clean_document_id(document_id)
        try:
            doc = self.resolver.resolve(target)
            collection = self._collection(target, record=doc)
            if doc is not None:
                page_rows = self.store.count_pages(doc.document_id)
                if needs_data_refresh(doc, page_rows=page_rows, force=force_data_check):
                    logger.info("document %s claims completion but is missing data; refreshing", target)
                    if self._heal(target, collection):
                        doc = self.store.get_document(doc.document_id) or doc
                        page_rows = self.store.count_pages(doc.document_id)
            else:
                media = self.client.media_status(target, collection)
                if not media.has_analysis or not self._heal(target, collection):
                    return None
                doc = self.resolver.resolve(target)
                if doc is None:
                    return None
                page_rows = self.store.count_pages(doc.document_id)
        except Exception:  # noqa: BLE001
            logger.exception("status lookup failed for %s; falling back to cache", target)
            cached = self.cache.get(target)
            if cached is not None:
                return replace(cached, cached=True)
            return StatusSnapshot(document_id=target, cached=True)

        snapshot = snapshot_for(target, doc, page_rows=page_rows)
        self.cache.put(snapshot)
        return snapshot

    def head_status(self, document_id: str) -> HeadStatus:
        target = clean_document_id(document_id)
        collection = self._collection(target)
        media = self.client.media_status(target, collection)
        info: dict[str, Any] = {
            "exists": False,
            "hasFolder": False,
            "hasPdf": False,
            "hasPngs": False,
            "hasAnalysis": False,
            "hasArweave": False,
            "hasLatestSummary": False,
            "analysisComplete": False,
        }
        info.update(media.raw)

        cached = None
        try:
            doc = self.resolver.resolve(target)
        except Exception:  # noqa: BLE001
            logger.exception("status lookup failed for %s; falling back to cache", target)
            doc = None
            cached = self.cache.get(target)
        if cached is not None:
            if cached.analysis_complete:
                info["hasAnalysis"] = True
                info["analysisComplete"] = True
            info["dbId"] = cached.db_id
            info["cached"] = True
        if doc is not None:
            content = doc.content_json
            overlay = {
                "folderCreated": "hasFolder",
                "pdfDownloaded": "hasPdf",
                "pngCreated": "hasPngs",
                "arweavePublished": "hasArweave",
                "summaryUpdated": "hasLatestSummary",
            }
            for flag, key in overlay.items():
                if content.get(flag) is True:
                    info[key] = True
            if doc.processing_stage is ProcessingStage.READY:
                info["hasAnalysis"] = True
                info["analysisComplete"] = True
            info["isIndexed"] = True
            info["dbId"] = doc.document_id

        info["status"] = (
            ProcessingStage.READY if info.get("analysisComplete") is True else ProcessingStage.WAITING_FOR_ANALYSIS
        ).value
        return HeadStatus(found=media.exists or doc is not None or cached is not None, info=info)
