from __future__ import annotations

from archive_ingest_core.payload import AnalysisPayload


def test_empty_object_gives_defaults() -> None:
    payload = AnalysisPayload.from_raw({})
    assert payload.pages == []
    assert payload.all_dates == []
    assert payload.page_count is None
    assert payload.summary is None
    assert not payload.has_pages
    assert not payload.is_complete()


def test_non_object_gives_empty_payload() -> None:
    assert AnalysisPayload.from_raw(["not", "a", "dict"]).pages == []
    assert AnalysisPayload.from_raw(None).title is None


def test_wrong_types_are_coerced_not_rejected() -> None:
    payload = AnalysisPayload.from_raw(
        {
            "title": 42,
            "summary": "   ",
            "pageCount": "3",
            "allNames": "Oswald",
            "allDates": ["1963", None, 7, ""],
            "pages": [{"pageNumber": "0", "fullText": "x"}, "junk", {"pageNumber": 2, "names": None}],
            "stamps": {"type": "not a list"},
        }
    )
    assert payload.title == "42"
    assert payload.summary is None
    assert payload.page_count == 3
    assert payload.all_names == []
    assert payload.all_dates == ["1963"]
    assert len(payload.pages) == 2
    assert payload.pages[0].page_number is None
    assert payload.pages[0].full_text == "x"
    assert payload.pages[1].names == []
    assert payload.stamps == []


def test_completeness_rules() -> None:
    with_pages = AnalysisPayload.from_raw({"pages": [{"pageNumber": 1}]})
    assert with_pages.is_complete()
    assert not with_pages.is_complete(require_summary=True)

    full = AnalysisPayload.from_raw({"summary": "s", "pages": [{"pageNumber": 1}]})
    assert full.is_complete(require_summary=True)


def test_content_json_uses_wire_names_and_keeps_unknown_keys() -> None:
    payload = AnalysisPayload.from_raw({"fullText": "t", "pages": [{"pageNumber": 1}], "model": "v2"})
    content = payload.as_content_json()
    assert content["fullText"] == "t"
    assert content["pages"][0]["pageNumber"] == 1
    assert content["model"] == "v2"
