import uuid

import psycopg

from archive_ingest_core.migrations.runner import apply_migrations, discover_migrations, pending_migrations


def test_discover_migrations_is_sorted_and_packaged() -> None:
    versions = [m.version for m in discover_migrations()]
    assert versions == sorted(versions)
    assert "0001_documents" in versions


def test_migrations_are_idempotent(pg_dsn: str, pg_schema: str) -> None:
    applied = apply_migrations(pg_dsn, schema=pg_schema)
    assert applied == []
    assert pending_migrations(pg_dsn, schema=pg_schema) == []


def test_pending_migrations_does_not_create_anything(pg_dsn: str) -> None:
    schema = f"dry_{uuid.uuid4().hex[:10]}"
    assert pending_migrations(pg_dsn, schema=schema) == [m.version for m in discover_migrations()]
    with psycopg.connect(pg_dsn) as conn:
        row = conn.execute(
            "select 1 from information_schema.schemata where schema_name=%s", (schema,)
        ).fetchone()
    assert row is None
