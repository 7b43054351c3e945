from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

import pytest
from fakes import FakeAnalysisService, InMemoryStore, full_payload

from archive_ingest_core.models import Document, DocumentScanRow, Page, ProcessingStage
from archive_ingest_core.reconcile import Reconciler
from archive_ingest_core.repair import (
    COMPLETE_WITHOUT_PAGES,
    LEGACY_SHAPE,
    NO_PAGES,
    ZERO_PAGE_COUNT,
    RepairScanner,
    broken_reasons,
    is_broken,
    needs_data_refresh,
)


def _row(**kw) -> DocumentScanRow:  # noqa: ANN003
    base = {"document_id": "doc", "archive_id": None, "content_json": {}, "page_count": 5, "page_rows": 5}
    base.update(kw)
    return DocumentScanRow(**base)


def _pages(document_id: str, n: int) -> list[Page]:
    return [Page(document_id=document_id, page_number=i, image_path=f"{i}.png") for i in range(1, n + 1)]


def test_page_count_without_page_rows_is_broken() -> None:
    assert broken_reasons(_row(page_rows=0)) == [NO_PAGES]


def test_healthy_document_is_not_broken() -> None:
    assert not is_broken(_row())
    assert not is_broken(_row(content_json={"analysisComplete": True, "title": "t"}))


def test_each_heuristic() -> None:
    assert broken_reasons(_row(content_json={"archiveId": "x", "title": "t"})) == [LEGACY_SHAPE]
    assert broken_reasons(_row(page_count=0)) == [ZERO_PAGE_COUNT]
    assert broken_reasons(_row(page_count=0, page_rows=0, content_json={"analysisComplete": True})) == [
        ZERO_PAGE_COUNT,
        NO_PAGES,
        COMPLETE_WITHOUT_PAGES,
    ]
    assert LEGACY_SHAPE not in broken_reasons(_row(content_json={"title": "t", "archiveId": "x"}))


def test_needs_data_refresh() -> None:
    healthy = Document(
        document_id="d",
        summary="s",
        page_count=1,
        all_names=["n"],
        processing_stage=ProcessingStage.READY,
    )
    assert not needs_data_refresh(healthy, page_rows=1)
    assert needs_data_refresh(healthy, page_rows=0)
    assert needs_data_refresh(Document(document_id="d", summary=None, page_count=1, all_names=["n"],
                                       processing_stage=ProcessingStage.READY), page_rows=1)
    waiting = Document(document_id="d")
    assert not needs_data_refresh(waiting, page_rows=0)
    assert needs_data_refresh(waiting, page_rows=0, force=True)


def _setup() -> tuple[InMemoryStore, FakeAnalysisService, RepairScanner]:
    store = InMemoryStore()
    service = FakeAnalysisService()
    client = service.client()
    scanner = RepairScanner(store, client, Reconciler(store))
    return store, service, scanner


def test_scan_reports_broken_ids_and_breakdown() -> None:
    store, _, scanner = _setup()
    store.replace_document(Document(document_id="ok", page_count=2), pages=_pages("ok", 2), notes=[], stamps=[])
    store.upsert_document(Document(document_id="empty", page_count=5))
    store.upsert_document(Document(document_id="zero", page_count=0))

    report = scanner.scan_report()
    assert report.document_ids == ["empty", "zero"]
    assert report.breakdown == {NO_PAGES: 2, ZERO_PAGE_COUNT: 1}
    assert scanner.scan_for_broken() == ["empty", "zero"]
    assert "ok" in store.documents


def test_repair_document_only_touches_broken_documents() -> None:
    store, service, scanner = _setup()
    store.replace_document(Document(document_id="ok", page_count=2), pages=_pages("ok", 2), notes=[], stamps=[])
    service.payloads["ok"] = full_payload()
    assert scanner.repair_document("ok") is False
    assert service.fetch_count("ok") == 0

    store.upsert_document(Document(document_id="broken", page_count=3))
    service.payloads["broken"] = full_payload(pages=3)
    assert scanner.repair_document("/broken") is True
    assert store.count_pages("broken") == 3
    assert store.get_document("broken").processing_stage is ProcessingStage.READY


def test_repair_document_rejects_incomplete_payloads() -> None:
    store, service, scanner = _setup()
    store.upsert_document(Document(document_id="broken", page_count=0))
    service.payloads["broken"] = {"summary": "no pages"}
    assert scanner.repair_document("broken") is False
    assert scanner.repair_document("missing") is False


def test_repair_all_continues_past_failures() -> None:
    store, service, scanner = _setup()
    for doc_id in ("a", "b", "c"):
        store.upsert_document(Document(document_id=doc_id, page_count=0))
    service.payloads["a"] = full_payload()
    service.payloads["c"] = full_payload(pages=1)

    summary = scanner.repair_all()
    assert summary.repaired == 2
    assert summary.failed == 1
    assert [(r.document_id, r.ok) for r in summary.documents] == [("a", True), ("b", False), ("c", True)]
    assert summary.documents[1].as_json() == {"id": "b", "status": "failed", "message": "Repair failed"}
    assert not summary.scanned_clean


def test_repair_all_falls_back_to_force_update() -> None:
    store, service, scanner = _setup()
    store.upsert_document(Document(document_id="a", page_count=0))
    service.payloads["a"] = full_payload()
    service.fail_fetch["a"] = 1

    summary = scanner.repair_all()
    assert summary.repaired == 1
    assert service.fetch_count("a") == 2


def test_repair_all_uses_archive_id_for_fetches() -> None:
    store, service, scanner = _setup()
    store.upsert_document(Document(document_id="104-1", archive_id="ARCH-1", page_count=0))
    service.payloads["ARCH-1"] = full_payload()

    summary = scanner.repair_all()
    assert [(r.document_id, r.ok) for r in summary.documents] == [("104-1", True)]
    assert list(store.documents) == ["104-1"]


def test_repair_all_with_nothing_broken() -> None:
    store, _, scanner = _setup()
    assert scanner.repair_all().scanned_clean


def test_repair_all_continues_after_store_errors() -> None:
    store, service, scanner = _setup()
    for doc_id in ("a", "b", "c"):
        store.upsert_document(Document(document_id=doc_id, page_count=0))
        service.payloads[doc_id] = full_payload()
    store.fail_reads_for.add("b")

    summary = scanner.repair_all()
    assert [(r.document_id, r.ok) for r in summary.documents] == [("a", True), ("b", False), ("c", True)]
    assert store.count_pages("c") == 2


def test_bounded_concurrency_gives_each_worker_its_own_store() -> None:
    store = InMemoryStore()
    service = FakeAnalysisService()
    opened: list[int] = []
    lock = threading.Lock()

    @contextmanager
    def open_store() -> Iterator[InMemoryStore]:
        with lock:
            opened.append(1)
        yield store

    scanner = RepairScanner(store, service.client(), Reconciler(store), max_concurrency=3, store_factory=open_store)
    for doc_id in ("a", "b", "c", "d"):
        store.upsert_document(Document(document_id=doc_id, page_count=0))
        service.payloads[doc_id] = full_payload(pages=1)
    summary = scanner.repair_all()
    assert summary.repaired == 4
    assert [r.document_id for r in summary.documents] == ["a", "b", "c", "d"]
    assert len(opened) == 4


def test_concurrent_worker_that_cannot_open_a_store_fails_alone() -> None:
    store = InMemoryStore()
    service = FakeAnalysisService()
    calls: list[int] = []
    lock = threading.Lock()

    @contextmanager
    def open_store() -> Iterator[InMemoryStore]:
        with lock:
            calls.append(1)
            first = len(calls) == 1
        if first:
            raise RuntimeError("too many connections")
        yield store

    scanner = RepairScanner(store, service.client(), Reconciler(store), max_concurrency=2, store_factory=open_store)
    for doc_id in ("a", "b", "c"):
        store.upsert_document(Document(document_id=doc_id, page_count=0))
        service.payloads[doc_id] = full_payload(pages=1)
    summary = scanner.repair_all()
    assert (summary.repaired, summary.failed) == (2, 1)
    assert [r.message for r in summary.documents if not r.ok] == ["too many connections"]


def test_concurrency_requires_a_store_factory() -> None:
    store = InMemoryStore()
    with pytest.raises(ValueError, match="store_factory"):
        RepairScanner(store, FakeAnalysisService().client(), Reconciler(store), max_concurrency=2)
