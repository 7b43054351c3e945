from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


def _str_or_none(v: Any) -> str | None:
    if isinstance(v, str):
        return v if v.strip() else None
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return None


def _str_list(v: Any) -> list[str]:
    if not isinstance(v, list):
        return []
    return [item for item in v if isinstance(item, str) and item.strip()]


def _positive_int_or_none(v: Any) -> int | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v if v > 0 else None
    if isinstance(v, str) and v.strip().isdigit():
        n = int(v.strip())
        return n if n > 0 else None
    return None


def _dict_list(v: Any) -> list[dict[str, Any]]:
    if not isinstance(v, list):
        return []
    return [item for item in v if isinstance(item, dict)]


class _Lenient(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class PagePayload(_Lenient):
    page_number: int | None = Field(default=None, alias="pageNumber")
    image_path: str | None = Field(default=None, alias="imagePath")
    summary: str | None = None
    full_text: str | None = Field(default=None, alias="fullText")
    names: list[str] = Field(default_factory=list)
    places: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)
    objects: list[str] = Field(default_factory=list)

    @field_validator("page_number", mode="before")
    @classmethod
    def _page_number(cls, v: Any) -> int | None:
        return _positive_int_or_none(v)

    @field_validator("image_path", "summary", "full_text", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _str_or_none(v)

    @field_validator("names", "places", "dates", "objects", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _str_list(v)


class HandwrittenNotePayload(_Lenient):
    page_number: int | None = Field(default=None, alias="pageNumber")
    content: str | None = None
    location: str | None = None

    @field_validator("page_number", mode="before")
    @classmethod
    def _page_number(cls, v: Any) -> int | None:
        return _positive_int_or_none(v)

    @field_validator("content", "location", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _str_or_none(v)


class StampPayload(_Lenient):
    page_number: int | None = Field(default=None, alias="pageNumber")
    type: str | None = None
    text: str | None = None
    date: str | None = None

    @field_validator("page_number", mode="before")
    @classmethod
    def _page_number(cls, v: Any) -> int | None:
        return _positive_int_or_none(v)

    @field_validator("type", "text", "date", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _str_or_none(v)


class AnalysisPayload(_Lenient):
    """
    One document's analysis result as returned by the analysis service.

    Every field has a default and every validator coerces rather than rejects, so a
    payload of `{}` (or one with wrongly-typed members) still produces a usable model.
    """

    title: str | None = None
    summary: str | None = None
    full_text: str | None = Field(default=None, alias="fullText")
    document_url: str | None = Field(default=None, alias="documentUrl")
    page_count: int | None = Field(default=None, alias="pageCount")
    all_names: list[str] = Field(default_factory=list, alias="allNames")
    all_places: list[str] = Field(default_factory=list, alias="allPlaces")
    all_dates: list[str] = Field(default_factory=list, alias="allDates")
    all_objects: list[str] = Field(default_factory=list, alias="allObjects")
    pages: list[PagePayload] = Field(default_factory=list)
    handwritten_notes: list[HandwrittenNotePayload] = Field(default_factory=list, alias="handwrittenNotes")
    stamps: list[StampPayload] = Field(default_factory=list)

    @field_validator("title", "summary", "full_text", "document_url", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _str_or_none(v)

    @field_validator("page_count", mode="before")
    @classmethod
    def _page_count(cls, v: Any) -> int | None:
        return _positive_int_or_none(v)

    @field_validator("all_names", "all_places", "all_dates", "all_objects", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _str_list(v)

    @field_validator("pages", "handwritten_notes", "stamps", mode="before")
    @classmethod
    def _children(cls, v: Any) -> list[dict[str, Any]]:
        return _dict_list(v)

    @classmethod
    def from_raw(cls, raw: Any) -> AnalysisPayload:
        if isinstance(raw, AnalysisPayload):
            return raw
        if not isinstance(raw, dict):
            logger.warning("analysis payload is %s, not an object; using empty payload", type(raw).__name__)
            return cls()
        try:
            return cls.model_validate(raw)
        except ValidationError:
            logger.warning("analysis payload failed validation; using empty payload", exc_info=True)
            return cls()

    @property
    def has_pages(self) -> bool:
        return len(self.pages) > 0

    def is_complete(self, *, require_summary: bool = False) -> bool:
        if not self.has_pages:
            return False
        if require_summary:
            return self.summary is not None
        return True

    def as_content_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
