from __future__ import annotations

import logging

from archive_ingest_core.ids import clean_document_id
from archive_ingest_core.models import Document
from archive_ingest_core.store import DocumentStore

logger = logging.getLogger(__name__)


class IdentityResolver:
    """
    Finds the stored document for an id from any of the historical id schemes.

    A single lookup matches the primary id, `archive_id` or `old_id`; if several records
    claim the same alternate id the one with the lowest primary id wins. `None` means
    "not stored yet", which ingestion paths treat as "create".
    """

    def __init__(self, store: DocumentStore):
        self._store = store

    def resolve(self, candidate_id: str) -> Document | None:
        cleaned = clean_document_id(candidate_id)
        if not cleaned:
            return None
        doc = self._store.find_by_any_id(cleaned)
        if doc is not None and doc.document_id != cleaned:
            logger.debug("resolved %s to stored document %s via alternate id", cleaned, doc.document_id)
        return doc
