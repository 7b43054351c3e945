from archive_ingest_core.repositories.documents import DocumentRepository, open_repository

__all__ = [
    "DocumentRepository",
    "open_repository",
]
