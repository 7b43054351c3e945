from __future__ import annotations

from typing import NoReturn, Protocol

from archive_ingest_core.errors import PersistenceError
from archive_ingest_core.models import (
    Document,
    DocumentScanRow,
    DocumentStamp,
    HandwrittenNote,
    Page,
)


class DocumentStore(Protocol):
    """
    Persistence seam used by the resolver, reconciler, scanner and HTTP handlers.

    `repositories.DocumentRepository` is the PostgreSQL implementation.
    """

    def find_by_any_id(self, candidate: str) -> Document | None: ...

    def get_document(self, document_id: str) -> Document | None: ...

    def upsert_document(self, doc: Document) -> None: ...

    def replace_document(
        self,
        doc: Document,
        *,
        pages: list[Page],
        notes: list[HandwrittenNote],
        stamps: list[DocumentStamp],
    ) -> None: ...

    def list_pages(self, document_id: str) -> list[Page]: ...

    def count_pages(self, document_id: str) -> int: ...

    def list_scan_rows(self) -> list[DocumentScanRow]: ...

    def ping(self) -> None: ...


class UnavailableStore:
    """
    Stands in for a store whose database could not be reached; every call raises.

    Lets request handling reach the service layer, where status reads fall back to
    the status cache and write paths report their usual errors.
    """

    def __init__(self, reason: str):
        self.reason = reason

    def _fail(self, *args: object, **kwargs: object) -> NoReturn:
        raise PersistenceError(f"Database unavailable: {self.reason}")

    find_by_any_id = _fail
    get_document = _fail
    upsert_document = _fail
    replace_document = _fail
    list_pages = _fail
    count_pages = _fail
    list_scan_rows = _fail
    ping = _fail
