from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from archive_ingest_core.errors import AnalysisUnavailableError
from archive_ingest_core.ids import clean_document_id
from archive_ingest_core.payload import AnalysisPayload

logger = logging.getLogger(__name__)

STATUS_HEADER = "X-Document-Status"


@dataclass(frozen=True)
class MediaStatus:
    exists: bool = False
    has_analysis: bool = False
    raw: dict[str, Any] = field(default_factory=dict)


def parse_status_header(value: str | None) -> MediaStatus:
    if not value:
        return MediaStatus()
    try:
        parsed = json.loads(value)
    except ValueError:
        logger.warning("unparseable %s header: %r", STATUS_HEADER, value)
        return MediaStatus()
    if not isinstance(parsed, dict):
        return MediaStatus()
    return MediaStatus(
        exists=parsed.get("exists") is True,
        has_analysis=parsed.get("hasAnalysis") is True,
        raw=parsed,
    )


@dataclass(frozen=True)
class AnalysisServiceClient:
    """
    Client for the external media/analysis service.

    Every call opens a short-lived `httpx.Client` bounded by `timeout_s`; a timeout is
    handled exactly like any other transport failure.
    """

    base_url: str
    api_key: str | None = None
    timeout_s: float = 30.0
    transport: httpx.BaseTransport | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_s, transport=self.transport)

    def _url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path

    def fetch_or_raise(self, document_id: str, collection: str) -> AnalysisPayload:
        """
        Fetches the most complete analysis available for one document.

        Raises `AnalysisUnavailableError` carrying the failure reason.
        """
        cleaned = clean_document_id(document_id)
        params = {
            "id": cleaned,
            "type": "analysis",
            "getLatestPageData": "true",
            "collection": collection,
        }
        try:
            with self._client() as client:
                r = client.get(self._url("/api/jfk/media"), params=params, headers=self._headers())
                r.raise_for_status()
                body = r.json()
        except httpx.HTTPStatusError as e:
            raise AnalysisUnavailableError(
                f"Failed to fetch analysis for {cleaned}: "
                f"{e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.TimeoutException as e:
            raise AnalysisUnavailableError(
                f"Timed out after {self.timeout_s}s fetching analysis for {cleaned}"
            ) from e
        except httpx.HTTPError as e:
            raise AnalysisUnavailableError(f"Fetch error for {cleaned}: {e}") from e
        except ValueError as e:
            raise AnalysisUnavailableError(f"Analysis response for {cleaned} is not JSON") from e

        if not isinstance(body, dict):
            raise AnalysisUnavailableError(f"Analysis response for {cleaned} is not an object")
        return AnalysisPayload.from_raw(body)

    def fetch(self, document_id: str, collection: str) -> AnalysisPayload | None:
        try:
            return self.fetch_or_raise(document_id, collection)
        except AnalysisUnavailableError as e:
            logger.error("%s", e)
            return None

    def media_status(self, document_id: str, collection: str) -> MediaStatus:
        """
        HEAD probe telling whether the service holds the document and its analysis.
        """
        cleaned = clean_document_id(document_id)
        try:
            with self._client() as client:
                r = client.head(
                    self._url("/api/jfk/media/status"),
                    params={"id": cleaned, "collection": collection},
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.warning("media status probe failed for %s: %s", cleaned, e)
            return MediaStatus()
        if not r.is_success:
            return MediaStatus()
        return parse_status_header(r.headers.get(STATUS_HEADER))

    def start_processing(self, *, document_id: str, document_url: str, steps: list[str]) -> bool:
        """
        Forwards a processing kickoff; progress comes back through the webhook.
        """
        cleaned = clean_document_id(document_id)
        try:
            with self._client() as client:
                r = client.post(
                    self._url("/api/jfk/process"),
                    headers={**self._headers(), "X-Archive-ID": cleaned},
                    json={"documentUrl": document_url, "archiveId": cleaned, "steps": steps},
                )
                r.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("processing kickoff failed for %s: %s", cleaned, e)
            return False
        return True
