from __future__ import annotations

from datetime import date

import pytest

from archive_ingest_core.dates import normalize_dates


def _pairs(raw: list[object]) -> list[tuple[str, date]]:
    return [(e.original_text, e.normalized) for e in normalize_dates(raw).entries]


def test_empty_input() -> None:
    result = normalize_dates([])
    assert result.entries == []
    assert result.earliest is None
    assert result.latest is None


def test_none_input_is_empty() -> None:
    assert normalize_dates(None).entries == []


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1963-11-22", date(1963, 11, 22)),
        ("11/22/1963", date(1963, 11, 22)),
        ("21 May 1982", date(1982, 5, 21)),
        ("3rd Sept 1975", date(1975, 9, 3)),
        ("November 22, 1963", date(1963, 11, 22)),
        ("June 1963", date(1963, 6, 1)),
        ("Dec. 1961", date(1961, 12, 1)),
        ("1964", date(1964, 1, 1)),
    ],
)
def test_supported_patterns(raw: str, expected: date) -> None:
    assert _pairs([raw]) == [(raw, expected)]


def test_year_range_emits_both_endpoints() -> None:
    result = normalize_dates(["1959-61"])
    assert [(e.original_text, e.normalized) for e in result.entries] == [
        ("1959", date(1959, 1, 1)),
        ("1961", date(1961, 12, 31)),
    ]
    assert result.earliest == date(1959, 1, 1)
    assert result.latest == date(1961, 12, 31)


def test_year_range_that_does_not_move_forward_is_dropped() -> None:
    result = normalize_dates(["1961-59", "1961-61"])
    assert result.entries == []
    assert result.dropped == 2


def test_dedup_is_by_original_text() -> None:
    assert len(normalize_dates(["1963", "1963"]).entries) == 1
    assert len(normalize_dates(["1963", "June 1963"]).entries) == 2


@pytest.mark.parametrize("raw", ["bogus", "", "   ", "1850", "2150", "31 Foo 1963", "0063-01-01"])
def test_out_of_range_and_garbage_are_dropped(raw: str) -> None:
    result = normalize_dates([raw])
    assert result.entries == []
    assert result.dropped == 1


def test_non_strings_are_dropped_not_raised() -> None:
    result = normalize_dates([None, 1963, {"d": 1}, "1963"])
    assert [(e.original_text, e.normalized) for e in result.entries] == [("1963", date(1963, 1, 1))]
    assert result.dropped == 3


def test_years_always_within_bounds() -> None:
    raw = ["1901-01-01", "2099-12-31", "1 Jan 1900", "Jan 1900", "1900", "1998-99", "1900-01-01"]
    for entry in normalize_dates(raw).entries:
        assert 1900 <= entry.normalized.year < 2100


def test_entries_sorted_by_date_with_bounds() -> None:
    result = normalize_dates(["June 1963", "1959", "21 May 1982"])
    assert [e.original_text for e in result.entries] == ["1959", "June 1963", "21 May 1982"]
    assert result.earliest == date(1959, 1, 1)
    assert result.latest == date(1982, 5, 21)


def test_entry_json_shape() -> None:
    (entry,) = normalize_dates(["21 May 1982"]).entries
    assert entry.as_json() == {"originalText": "21 May 1982", "normalized": "1982-05-21"}
