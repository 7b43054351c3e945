"""
FastAPI dependencies.

Every request gets its own database connection; the status cache and settings are
process-wide. A database that cannot be reached yields an `UnavailableStore` so status
reads can still answer from the cache. Tests replace `get_store`, `get_client` and
`get_health_probe` through `app.dependency_overrides`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import ExitStack
from functools import lru_cache, partial

import psycopg
from fastapi import Depends, Request

from archive_ingest_core.analysis.client import AnalysisServiceClient
from archive_ingest_core.config import Settings, load_settings
from archive_ingest_core.ingest import IngestService
from archive_ingest_core.repair import StoreFactory
from archive_ingest_core.repositories import DocumentRepository, open_repository
from archive_ingest_core.status import StatusCache
from archive_ingest_core.store import DocumentStore, UnavailableStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def get_status_cache(request: Request) -> StatusCache:
    return request.app.state.status_cache


def get_store(settings: Settings = Depends(get_settings)) -> Iterator[DocumentStore]:
    with ExitStack() as stack:
        try:
            conn = stack.enter_context(settings.db_session())
        except psycopg.OperationalError as e:
            logger.error("database unreachable: %s", e)
            store: DocumentStore = UnavailableStore(str(e))
        else:
            store = DocumentRepository(conn)
        yield store


def get_store_factory(settings: Settings = Depends(get_settings)) -> StoreFactory:
    return partial(open_repository, settings)


def get_client(settings: Settings = Depends(get_settings)) -> AnalysisServiceClient:
    return AnalysisServiceClient(
        base_url=settings.analysis_api_url,
        api_key=settings.analysis_api_key,
        timeout_s=settings.analysis_timeout_s,
    )


def get_service(
    store: DocumentStore = Depends(get_store),
    client: AnalysisServiceClient = Depends(get_client),
    cache: StatusCache = Depends(get_status_cache),
    store_factory: StoreFactory = Depends(get_store_factory),
    settings: Settings = Depends(get_settings),
) -> IngestService:
    return IngestService(
        store,
        client,
        cache=cache,
        default_collection=settings.default_collection,
        default_retry_count=settings.default_retry_count,
        repair_max_concurrency=settings.repair_max_concurrency,
        store_factory=store_factory,
    )


def get_health_probe(settings: Settings = Depends(get_settings)) -> Callable[[], None]:
    def probe() -> None:
        with settings.db_session(read_only=True) as conn:
            DocumentRepository(conn).ping()

    return probe
