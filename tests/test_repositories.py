from __future__ import annotations

from datetime import date, datetime, timezone

import psycopg
import pytest
from fakes import FakeAnalysisService, full_payload

from archive_ingest_core.models import (
    Document,
    DocumentStamp,
    HandwrittenNote,
    Page,
    ProcessingStage,
    TimelineEntry,
)
from archive_ingest_core.reconcile import Reconciler
from archive_ingest_core.repair import RepairScanner
from archive_ingest_core.repositories.documents import DocumentRepository


def test_documents_round_trip_and_alternate_id_lookup(conn) -> None:  # noqa: ANN001
    docs = DocumentRepository(conn)
    stamped = datetime(2025, 3, 18, 9, 30, tzinfo=timezone.utc)
    docs.upsert_document(
        Document(
            document_id="104-10003-10041",
            archive_id="ARCH-41",
            old_id="ABC123",
            title="Memo",
            page_count=2,
            all_names=["Oswald"],
            all_dates=["21 May 1982"],
            normalized_dates=[TimelineEntry(original_text="21 May 1982", normalized=date(1982, 5, 21))],
            earliest_date=date(1982, 5, 21),
            latest_date=date(1982, 5, 21),
            processing_stage=ProcessingStage.READY,
            processing_steps=["download", "analysis"],
            last_processed=stamped,
            content_json={"analysisComplete": True},
        )
    )

    loaded = docs.get_document("104-10003-10041")
    assert loaded is not None
    assert loaded.archive_id == "ARCH-41"
    assert loaded.all_names == ["Oswald"]
    assert loaded.normalized_dates == [TimelineEntry(original_text="21 May 1982", normalized=date(1982, 5, 21))]
    assert loaded.processing_stage is ProcessingStage.READY
    assert loaded.processing_steps == ["download", "analysis"]
    assert loaded.last_processed == stamped
    assert loaded.content_json == {"analysisComplete": True}
    assert loaded.created_at is not None

    assert docs.find_by_any_id("ABC123").document_id == "104-10003-10041"
    assert docs.find_by_any_id("ARCH-41").document_id == "104-10003-10041"
    assert docs.find_by_any_id("nope") is None


def test_replace_document_swaps_children(conn) -> None:  # noqa: ANN001
    docs = DocumentRepository(conn)
    doc = Document(document_id="doc-children", page_count=2)
    docs.replace_document(
        doc,
        pages=[Page(document_id="doc-children", page_number=n, image_path=f"{n}.png", names=["a"]) for n in (1, 2)],
        notes=[HandwrittenNote(document_id="doc-children", page_number=1, content="note", location="top")],
        stamps=[DocumentStamp(document_id="doc-children", page_number=2, text="SECRET", type="class", date="1963")],
    )
    assert docs.count_pages("doc-children") == 2
    assert docs.list_pages("doc-children")[0].names == ["a"]
    assert docs.list_notes("doc-children")[0].content == "note"
    assert docs.list_stamps("doc-children")[0].text == "SECRET"

    docs.replace_document(
        doc,
        pages=[Page(document_id="doc-children", page_number=1, image_path="1.png")],
        notes=[],
        stamps=[],
    )
    assert [p.page_number for p in docs.list_pages("doc-children")] == [1]
    assert docs.list_notes("doc-children") == []
    assert docs.list_stamps("doc-children") == []


def test_failed_replace_rolls_back(conn) -> None:  # noqa: ANN001
    docs = DocumentRepository(conn)
    docs.replace_document(
        Document(document_id="doc-atomic", page_count=1),
        pages=[Page(document_id="doc-atomic", page_number=1, image_path="1.png")],
        notes=[],
        stamps=[],
    )
    duplicate_pages = [Page(document_id="doc-atomic", page_number=1, image_path="x.png")] * 2
    with pytest.raises(Exception):  # noqa: B017
        docs.replace_document(
            Document(document_id="doc-atomic", page_count=9, title="changed"),
            pages=duplicate_pages,
            notes=[],
            stamps=[],
        )
    loaded = docs.get_document("doc-atomic")
    assert loaded.page_count == 1
    assert loaded.title is None
    assert [p.image_path for p in docs.list_pages("doc-atomic")] == ["1.png"]


def test_reconcile_and_scan_against_postgres(conn) -> None:  # noqa: ANN001
    docs = DocumentRepository(conn)
    payload = {"pages": [{"pageNumber": 1, "fullText": "x"}], "allDates": ["21 May 1982", "bogus"]}
    reconciler = Reconciler(docs)
    assert reconciler.reconcile("/pg-e2e", payload, True)
    assert reconciler.reconcile("pg-e2e", payload, True)

    doc = docs.get_document("pg-e2e")
    assert doc.page_count == 1
    assert docs.count_pages("pg-e2e") == 1
    assert [e.original_text for e in doc.normalized_dates] == ["21 May 1982"]
    assert doc.processing_stage is ProcessingStage.READY

    docs.upsert_document(Document(document_id="pg-broken", page_count=5))
    rows = {r.document_id: r for r in docs.list_scan_rows()}
    assert rows["pg-broken"].page_rows == 0
    assert rows["pg-e2e"].page_rows == 1

    scanner = RepairScanner(docs, client=None, reconciler=reconciler)  # type: ignore[arg-type]
    broken = scanner.scan_for_broken()
    assert "pg-broken" in broken
    assert "pg-e2e" not in broken


def test_failed_read_leaves_connection_usable(conn) -> None:  # noqa: ANN001
    docs = DocumentRepository(conn)
    docs.upsert_document(Document(document_id="doc-recover", page_count=1))

    conn.execute("alter table pages rename to pages_moved")
    conn.commit()
    try:
        with pytest.raises(psycopg.errors.UndefinedTable):
            docs.list_scan_rows()
    finally:
        conn.execute("alter table pages_moved rename to pages")
        conn.commit()

    assert docs.find_by_any_id("doc-recover").document_id == "doc-recover"
    docs.replace_document(
        Document(document_id="doc-recover", page_count=1),
        pages=[Page(document_id="doc-recover", page_number=1, image_path="1.png")],
        notes=[],
        stamps=[],
    )
    assert docs.count_pages("doc-recover") == 1


class _FailingLookupRepository(DocumentRepository):
    def __init__(self, conn, failing_id: str):  # noqa: ANN001
        super().__init__(conn)
        self._failing_id = failing_id

    def find_by_any_id(self, candidate: str) -> Document | None:
        if candidate == self._failing_id:
            self._fetchone("select 1/0")
        return super().find_by_any_id(candidate)


def test_repair_all_survives_a_failed_lookup_on_postgres(conn) -> None:  # noqa: ANN001
    docs = _FailingLookupRepository(conn, "pg-batch-a")
    analysis = FakeAnalysisService()
    for doc_id in ("pg-batch-a", "pg-batch-b"):
        docs.upsert_document(Document(document_id=doc_id, page_count=0))
        analysis.payloads[doc_id] = full_payload()

    summary = RepairScanner(docs, analysis.client(), Reconciler(docs)).repair_all()
    results = {r.document_id: r.ok for r in summary.documents}
    assert results["pg-batch-a"] is False
    assert results["pg-batch-b"] is True
    assert docs.count_pages("pg-batch-b") == 2
    assert docs.get_document("pg-batch-b").processing_stage is ProcessingStage.READY
