from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class ProcessingStage(str, Enum):
    WAITING_FOR_ANALYSIS = "waitingForAnalysis"
    READY = "ready"


@dataclass(frozen=True)
class TimelineEntry:
    original_text: str
    normalized: date

    def as_json(self) -> dict[str, str]:
        return {"originalText": self.original_text, "normalized": self.normalized.isoformat()}


@dataclass(frozen=True)
class Document:
    document_id: str
    archive_id: str | None = None
    old_id: str | None = None

    document_url: str | None = None
    document_type: str | None = None
    document_group: str | None = None

    title: str | None = None
    summary: str | None = None
    full_text: str | None = None
    search_text: str | None = None
    page_count: int = 0
    all_names: list[str] = field(default_factory=list)
    all_places: list[str] = field(default_factory=list)
    all_dates: list[str] = field(default_factory=list)
    all_objects: list[str] = field(default_factory=list)

    normalized_dates: list[TimelineEntry] = field(default_factory=list)
    earliest_date: date | None = None
    latest_date: date | None = None

    has_handwritten_notes: bool = False
    has_stamps: bool = False
    has_full_text: bool = False

    processing_stage: ProcessingStage = ProcessingStage.WAITING_FOR_ANALYSIS
    processing_steps: list[str] = field(default_factory=list)
    processing_error: str | None = None
    processing_date: datetime | None = None
    last_processed: datetime | None = None

    # Opaque content blob: the last analysis payload plus pipeline step flags.
    content_json: dict[str, Any] = field(default_factory=dict)

    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class Page:
    document_id: str
    page_number: int  # 1-based, unique per document
    image_path: str
    summary: str | None = None
    full_text: str | None = None
    names: list[str] = field(default_factory=list)
    places: list[str] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)
    objects: list[str] = field(default_factory=list)
    has_image: bool = False
    has_text: bool = False


@dataclass(frozen=True)
class HandwrittenNote:
    document_id: str
    page_number: int
    content: str
    location: str | None = None


@dataclass(frozen=True)
class DocumentStamp:
    document_id: str
    page_number: int
    text: str
    type: str | None = None
    date: str | None = None


@dataclass(frozen=True)
class DocumentScanRow:
    """
    Structural summary of one stored document, enough to decide whether it is broken.
    """

    document_id: str
    archive_id: str | None
    content_json: dict[str, Any] | None
    page_count: int | None
    page_rows: int
