from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any

import psycopg

from archive_ingest_core.config import Settings
from archive_ingest_core.models import (
    Document,
    DocumentScanRow,
    DocumentStamp,
    HandwrittenNote,
    Page,
    ProcessingStage,
    TimelineEntry,
)

_DOCUMENT_COLUMNS = """
  document_id, archive_id, old_id,
  document_url, document_type, document_group,
  title, summary, full_text, search_text, page_count,
  all_names, all_places, all_dates, all_objects,
  normalized_dates, earliest_date, latest_date,
  has_handwritten_notes, has_stamps, has_full_text,
  processing_stage, processing_steps, processing_error,
  processing_date, last_processed, content_json,
  created_at, updated_at
"""

_UPSERT_SQL = """
insert into documents (
  document_id, archive_id, old_id,
  document_url, document_type, document_group,
  title, summary, full_text, search_text, page_count,
  all_names, all_places, all_dates, all_objects,
  normalized_dates, earliest_date, latest_date,
  has_handwritten_notes, has_stamps, has_full_text,
  processing_stage, processing_steps, processing_error,
  processing_date, last_processed, content_json,
  updated_at
) values (
  %(document_id)s, %(archive_id)s, %(old_id)s,
  %(document_url)s, %(document_type)s, %(document_group)s,
  %(title)s, %(summary)s, %(full_text)s, %(search_text)s, %(page_count)s,
  %(all_names)s, %(all_places)s, %(all_dates)s, %(all_objects)s,
  %(normalized_dates)s::jsonb, %(earliest_date)s, %(latest_date)s,
  %(has_handwritten_notes)s, %(has_stamps)s, %(has_full_text)s,
  %(processing_stage)s, %(processing_steps)s, %(processing_error)s,
  %(processing_date)s, %(last_processed)s, %(content_json)s::jsonb,
  now()
)
on conflict (document_id) do update set
  archive_id = excluded.archive_id,
  old_id = excluded.old_id,
  document_url = excluded.document_url,
  document_type = excluded.document_type,
  document_group = excluded.document_group,
  title = excluded.title,
  summary = excluded.summary,
  full_text = excluded.full_text,
  search_text = excluded.search_text,
  page_count = excluded.page_count,
  all_names = excluded.all_names,
  all_places = excluded.all_places,
  all_dates = excluded.all_dates,
  all_objects = excluded.all_objects,
  normalized_dates = excluded.normalized_dates,
  earliest_date = excluded.earliest_date,
  latest_date = excluded.latest_date,
  has_handwritten_notes = excluded.has_handwritten_notes,
  has_stamps = excluded.has_stamps,
  has_full_text = excluded.has_full_text,
  processing_stage = excluded.processing_stage,
  processing_steps = excluded.processing_steps,
  processing_error = excluded.processing_error,
  processing_date = excluded.processing_date,
  last_processed = excluded.last_processed,
  content_json = excluded.content_json,
  updated_at = now()
"""


def _document_params(doc: Document) -> dict[str, Any]:
    return {
        "document_id": doc.document_id,
        "archive_id": doc.archive_id,
        "old_id": doc.old_id,
        "document_url": doc.document_url,
        "document_type": doc.document_type,
        "document_group": doc.document_group,
        "title": doc.title,
        "summary": doc.summary,
        "full_text": doc.full_text,
        "search_text": doc.search_text,
        "page_count": doc.page_count,
        "all_names": list(doc.all_names),
        "all_places": list(doc.all_places),
        "all_dates": list(doc.all_dates),
        "all_objects": list(doc.all_objects),
        "normalized_dates": json.dumps([e.as_json() for e in doc.normalized_dates]),
        "earliest_date": doc.earliest_date,
        "latest_date": doc.latest_date,
        "has_handwritten_notes": doc.has_handwritten_notes,
        "has_stamps": doc.has_stamps,
        "has_full_text": doc.has_full_text,
        "processing_stage": doc.processing_stage.value,
        "processing_steps": list(doc.processing_steps),
        "processing_error": doc.processing_error,
        "processing_date": doc.processing_date,
        "last_processed": doc.last_processed,
        "content_json": json.dumps(doc.content_json or {}),
    }


def _timeline(raw: Any) -> list[TimelineEntry]:
    entries: list[TimelineEntry] = []
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        text = item.get("originalText")
        normalized = item.get("normalized")
        if isinstance(text, str) and isinstance(normalized, str):
            entries.append(TimelineEntry(original_text=text, normalized=date.fromisoformat(normalized[:10])))
    return entries


def _stage(raw: str | None) -> ProcessingStage:
    try:
        return ProcessingStage(raw)
    except ValueError:
        return ProcessingStage.WAITING_FOR_ANALYSIS


def _row_to_document(row: tuple[Any, ...]) -> Document:
    return Document(
        document_id=row[0],
        archive_id=row[1],
        old_id=row[2],
        document_url=row[3],
        document_type=row[4],
        document_group=row[5],
        title=row[6],
        summary=row[7],
        full_text=row[8],
        search_text=row[9],
        page_count=row[10] or 0,
        all_names=list(row[11] or []),
        all_places=list(row[12] or []),
        all_dates=list(row[13] or []),
        all_objects=list(row[14] or []),
        normalized_dates=_timeline(row[15]),
        earliest_date=row[16],
        latest_date=row[17],
        has_handwritten_notes=row[18],
        has_stamps=row[19],
        has_full_text=row[20],
        processing_stage=_stage(row[21]),
        processing_steps=list(row[22] or []),
        processing_error=row[23],
        processing_date=row[24],
        last_processed=row[25],
        content_json=row[26] or {},
        created_at=row[27],
        updated_at=row[28],
    )


class DocumentRepository:
    def __init__(self, conn: psycopg.Connection):
        self._conn = conn

    def _fetchone(self, sql: str, params: Any = None) -> tuple[Any, ...] | None:
        try:
            return self._conn.execute(sql, params).fetchone()
        except Exception:
            self._conn.rollback()
            raise

    def _fetchall(self, sql: str, params: Any = None) -> list[tuple[Any, ...]]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except Exception:
            self._conn.rollback()
            raise

    def find_by_any_id(self, candidate: str) -> Document | None:
        row = self._fetchone(
            f"""
            select {_DOCUMENT_COLUMNS}
            from documents
            where document_id=%(id)s or archive_id=%(id)s or old_id=%(id)s
            order by document_id
            limit 1
            """,
            {"id": candidate},
        )
        return _row_to_document(row) if row else None

    def get_document(self, document_id: str) -> Document | None:
        row = self._fetchone(
            f"select {_DOCUMENT_COLUMNS} from documents where document_id=%s",
            (document_id,),
        )
        return _row_to_document(row) if row else None

    def upsert_document(self, doc: Document) -> None:
        try:
            self._conn.execute(_UPSERT_SQL, _document_params(doc))
        except Exception:
            self._conn.rollback()
            raise
        self._conn.commit()

    def replace_document(
        self,
        doc: Document,
        *,
        pages: list[Page],
        notes: list[HandwrittenNote],
        stamps: list[DocumentStamp],
    ) -> None:
        """
        Upserts the document and swaps its pages, notes and stamps in one transaction.
        """
        try:
            with self._conn.cursor() as cur:
                cur.execute(_UPSERT_SQL, _document_params(doc))
                cur.execute("delete from pages where document_id=%s", (doc.document_id,))
                cur.execute("delete from handwritten_notes where document_id=%s", (doc.document_id,))
                cur.execute("delete from document_stamps where document_id=%s", (doc.document_id,))
                if pages:
                    cur.executemany(
                        """
                        insert into pages(
                          document_id, page_number, image_path, summary, full_text,
                          names, places, dates, objects, has_image, has_text
                        ) values (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        [
                            (
                                p.document_id,
                                p.page_number,
                                p.image_path,
                                p.summary,
                                p.full_text,
                                list(p.names),
                                list(p.places),
                                list(p.dates),
                                list(p.objects),
                                p.has_image,
                                p.has_text,
                            )
                            for p in pages
                        ],
                    )
                if notes:
                    cur.executemany(
                        """
                        insert into handwritten_notes(document_id, page_number, content, location)
                        values (%s, %s, %s, %s)
                        """,
                        [(n.document_id, n.page_number, n.content, n.location) for n in notes],
                    )
                if stamps:
                    cur.executemany(
                        """
                        insert into document_stamps(document_id, page_number, type, text, date)
                        values (%s, %s, %s, %s, %s)
                        """,
                        [(s.document_id, s.page_number, s.type, s.text, s.date) for s in stamps],
                    )
        except Exception:
            self._conn.rollback()
            raise
        self._conn.commit()

    def list_pages(self, document_id: str) -> list[Page]:
        rows = self._fetchall(
            """
            select document_id, page_number, image_path, summary, full_text,
                   names, places, dates, objects, has_image, has_text
            from pages
            where document_id=%s
            order by page_number
            """,
            (document_id,),
        )
        return [
            Page(
                document_id=r[0],
                page_number=r[1],
                image_path=r[2],
                summary=r[3],
                full_text=r[4],
                names=list(r[5] or []),
                places=list(r[6] or []),
                dates=list(r[7] or []),
                objects=list(r[8] or []),
                has_image=r[9],
                has_text=r[10],
            )
            for r in rows
        ]

    def list_notes(self, document_id: str) -> list[HandwrittenNote]:
        rows = self._fetchall(
            """
            select document_id, page_number, content, location
            from handwritten_notes
            where document_id=%s
            order by page_number, note_id
            """,
            (document_id,),
        )
        return [HandwrittenNote(document_id=r[0], page_number=r[1], content=r[2], location=r[3]) for r in rows]

    def list_stamps(self, document_id: str) -> list[DocumentStamp]:
        rows = self._fetchall(
            """
            select document_id, page_number, type, text, date
            from document_stamps
            where document_id=%s
            order by page_number, stamp_id
            """,
            (document_id,),
        )
        return [
            DocumentStamp(document_id=r[0], page_number=r[1], type=r[2], text=r[3], date=r[4]) for r in rows
        ]

    def count_pages(self, document_id: str) -> int:
        row = self._fetchone(
            "select count(*) from pages where document_id=%s",
            (document_id,),
        )
        return int(row[0]) if row else 0

    def list_scan_rows(self) -> list[DocumentScanRow]:
        rows = self._fetchall(
            """
            select d.document_id, d.archive_id, d.content_json, d.page_count, count(p.page_number)
            from documents d
            left join pages p on p.document_id = d.document_id
            group by d.document_id
            order by d.document_id
            """
        )
        return [
            DocumentScanRow(
                document_id=r[0],
                archive_id=r[1],
                content_json=r[2],
                page_count=r[3],
                page_rows=int(r[4]),
            )
            for r in rows
        ]

    def ping(self) -> None:
        self._fetchone("select 1")


@contextmanager
def open_repository(settings: Settings) -> Iterator[DocumentRepository]:
    """
    A repository on its own connection, closed on exit.
    """
    with settings.db_session() as conn:
        yield DocumentRepository(conn)
