from __future__ import annotations

from datetime import date

from archive_ingest_core.models import Document

RFK = "rfk"
JFK = "jfk"

_ARCHIVES_BASE = "https://www.archives.gov/files/research"
_RFK_RELEASE_PATH = "2025/0418"
_JFK_DEFAULT_RELEASE = "0318"
_JFK_APRIL_RELEASE = "0403"


def clean_document_id(raw: str) -> str:
    """
    Strips surrounding whitespace and any leading path separators.
    """
    return (raw or "").strip().lstrip("/")


def infer_collection(
    document_id: str,
    *,
    explicit: str | None = None,
    record: Document | None = None,
    default: str = JFK,
) -> str:
    if explicit and explicit.strip().lower() == RFK:
        return RFK
    if record is not None:
        if (record.document_group or "").lower() == RFK or (record.document_type or "").lower() == RFK:
            return RFK
    if RFK in document_id.lower():
        return RFK
    return default


def archives_gov_url(
    document_id: str,
    *,
    collection: str = JFK,
    release_date: date | None = None,
) -> str:
    """
    Public archives.gov PDF location for a released record.
    """
    if collection == RFK or RFK in document_id.lower():
        return f"{_ARCHIVES_BASE}/rfk/releases/{_RFK_RELEASE_PATH}/{document_id}.pdf"

    if release_date is not None:
        release_path = f"{release_date.month:02d}{release_date.day:02d}"
    elif document_id.startswith(("2021", "2023")):
        release_path = _JFK_APRIL_RELEASE
    else:
        release_path = _JFK_DEFAULT_RELEASE
    return f"{_ARCHIVES_BASE}/jfk/releases/2025/{release_path}/{document_id}.pdf"
