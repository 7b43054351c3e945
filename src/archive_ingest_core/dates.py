from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from dateutil.parser import isoparse

from archive_ingest_core.models import TimelineEntry

logger = logging.getLogger(__name__)

MIN_YEAR = 1900
MAX_YEAR = 2100  # exclusive

_MONTHS = {
    "january": 1,
    "jan": 1,
    "february": 2,
    "feb": 2,
    "march": 3,
    "mar": 3,
    "april": 4,
    "apr": 4,
    "may": 5,
    "june": 6,
    "jun": 6,
    "july": 7,
    "jul": 7,
    "august": 8,
    "aug": 8,
    "september": 9,
    "sept": 9,
    "sep": 9,
    "october": 10,
    "oct": 10,
    "november": 11,
    "nov": 11,
    "december": 12,
    "dec": 12,
}

_US_NUMERIC_RE = re.compile(r"^(?P<month>\d{1,2})/(?P<day>\d{1,2})/(?P<year>\d{4})$")
_DAY_MONTH_YEAR_RE = re.compile(
    r"\b(?P<day>\d{1,2})(?:st|nd|rd|th)?\s+(?P<month>[a-z]+)\.?,?\s+(?P<year>\d{4})\b"
)
_MONTH_DAY_YEAR_RE = re.compile(r"\b(?P<month>[a-z]+)\.?\s+(?P<day>\d{1,2}),?\s+(?P<year>\d{4})\b")
_MONTH_YEAR_RE = re.compile(r"\b(?P<month>[a-z]+)\.?\s+(?P<year>\d{4})\b")
_YEAR_RANGE_RE = re.compile(r"\b(?P<start>\d{4})-(?P<suffix>\d{2})\b")
_YEAR_RE = re.compile(r"^(?P<year>\d{4})$")


@dataclass(frozen=True)
class NormalizedDates:
    entries: list[TimelineEntry] = field(default_factory=list)
    earliest: date | None = None
    latest: date | None = None
    dropped: int = 0


def _year_ok(year: int) -> bool:
    return MIN_YEAR <= year < MAX_YEAR


def _parse_machine(text: str) -> date | None:
    try:
        parsed = isoparse(text).date()
    except (ValueError, OverflowError):
        parsed = None
    if parsed is None:
        m = _US_NUMERIC_RE.match(text)
        if not m:
            return None
        try:
            parsed = date(int(m.group("year")), int(m.group("month")), int(m.group("day")))
        except ValueError:
            return None
    # Strict lower bound: two-digit years misread as 19xx/00xx land here.
    if MIN_YEAR < parsed.year < MAX_YEAR:
        return parsed
    return None


def _parse_day_month_year(lowered: str) -> date | None:
    m = _DAY_MONTH_YEAR_RE.search(lowered) or _MONTH_DAY_YEAR_RE.search(lowered)
    if not m:
        return None
    month = _MONTHS.get(m.group("month"))
    year = int(m.group("year"))
    if month is None or not _year_ok(year):
        return None
    try:
        return date(year, month, int(m.group("day")))
    except ValueError:
        return None


def _parse_month_year(lowered: str) -> date | None:
    m = _MONTH_YEAR_RE.search(lowered)
    if not m:
        return None
    month = _MONTHS.get(m.group("month"))
    year = int(m.group("year"))
    if month is None or not _year_ok(year):
        return None
    return date(year, month, 1)


def _parse_year_range(lowered: str) -> tuple[tuple[str, date], tuple[str, date]] | None:
    m = _YEAR_RANGE_RE.search(lowered)
    if not m:
        return None
    start = int(m.group("start"))
    end = (start // 100) * 100 + int(m.group("suffix"))
    if start < MIN_YEAR or end >= MAX_YEAR or end <= start:
        return None
    return (str(start), date(start, 1, 1)), (str(end), date(end, 12, 31))


def _parse_bare_year(lowered: str) -> date | None:
    m = _YEAR_RE.match(lowered)
    if not m:
        return None
    year = int(m.group("year"))
    if not _year_ok(year):
        return None
    return date(year, 1, 1)


def _parse_one(raw: str) -> list[tuple[str, date]]:
    text = raw.strip()
    if not text:
        return []
    lowered = text.lower()

    parsed = _parse_machine(text)
    if parsed is not None:
        return [(raw, parsed)]
    parsed = _parse_day_month_year(lowered)
    if parsed is not None:
        return [(raw, parsed)]
    parsed = _parse_month_year(lowered)
    if parsed is not None:
        return [(raw, parsed)]
    span = _parse_year_range(lowered)
    if span is not None:
        return list(span)
    parsed = _parse_bare_year(lowered)
    if parsed is not None:
        return [(raw, parsed)]
    return []


def normalize_dates(raw_dates: Iterable[object] | None) -> NormalizedDates:
    """
    Converts free-form date strings into a sorted, de-duplicated timeline.

    Entries are keyed by their original text (a year range contributes one entry per
    endpoint, keyed by the 4-digit year). Anything unparseable is dropped and counted,
    never raised.
    """
    by_text: dict[str, date] = {}
    dropped = 0

    for raw in raw_dates or []:
        if not isinstance(raw, str):
            dropped += 1
            continue
        try:
            parsed = _parse_one(raw)
        except Exception:  # noqa: BLE001
            logger.debug("date parse failed for %r", raw, exc_info=True)
            parsed = []
        if not parsed:
            dropped += 1
            logger.debug("dropping unparseable date %r", raw)
            continue
        for key, value in parsed:
            by_text[key] = value

    ordered = sorted(by_text.items(), key=lambda kv: kv[1])
    entries = [TimelineEntry(original_text=k, normalized=v) for k, v in ordered]
    if dropped:
        logger.info("normalized %d dates, dropped %d", len(entries), dropped)
    return NormalizedDates(
        entries=entries,
        earliest=entries[0].normalized if entries else None,
        latest=entries[-1].normalized if entries else None,
        dropped=dropped,
    )
