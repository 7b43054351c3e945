from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import pytest
from click.testing import CliRunner
from fakes import FakeAnalysisService, InMemoryStore, full_payload

from archive_ingest_core import cli
from archive_ingest_core.ingest import IngestService
from archive_ingest_core.models import Document


@pytest.fixture()
def store(monkeypatch: pytest.MonkeyPatch) -> InMemoryStore:
    store = InMemoryStore()
    analysis = FakeAnalysisService()
    analysis.payloads["fixable"] = full_payload()

    @contextmanager
    def fake_service(settings) -> Iterator[IngestService]:  # noqa: ANN001
        yield IngestService(store, analysis.client())

    monkeypatch.setattr(cli, "_service", fake_service)
    return store


def test_scan_lists_broken_ids(store: InMemoryStore) -> None:
    store.upsert_document(Document(document_id="fixable", page_count=0))
    result = CliRunner().invoke(cli.main, ["scan"])
    assert result.exit_code == 0
    assert "fixable" in result.output


def test_repair_requires_exactly_one_target(store: InMemoryStore) -> None:
    assert CliRunner().invoke(cli.main, ["repair"]).exit_code == 2
    assert CliRunner().invoke(cli.main, ["repair", "doc", "--all"]).exit_code == 2


def test_repair_all_exit_code_reflects_failures(store: InMemoryStore) -> None:
    store.upsert_document(Document(document_id="fixable", page_count=0))
    ok = CliRunner().invoke(cli.main, ["repair", "--all"])
    assert ok.exit_code == 0
    assert '"repaired": 1' in ok.output

    store.upsert_document(Document(document_id="unfixable", page_count=0))
    failed = CliRunner().invoke(cli.main, ["repair", "--all"])
    assert failed.exit_code == 1


def test_status_of_unknown_document(store: InMemoryStore) -> None:
    result = CliRunner().invoke(cli.main, ["status", "missing"])
    assert result.exit_code == 1
