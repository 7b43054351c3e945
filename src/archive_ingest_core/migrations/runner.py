from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import psycopg

from archive_ingest_core.db import connect

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path

    def read_sql(self) -> str:
        return self.path.read_text(encoding="utf-8")


def discover_migrations(directory: Path | None = None) -> list[Migration]:
    directory = directory or Path(__file__).resolve().parent / "sql"
    return [Migration(version=p.stem, path=p) for p in sorted(directory.glob("*.sql"))]


def _prepare(conn: psycopg.Connection, schema: str) -> set[str]:
    conn.execute("set timezone to 'UTC'")
    conn.execute(f'create schema if not exists "{schema}"')
    conn.execute(f'set search_path to "{schema}"')
    conn.execute(
        """
        create table if not exists schema_migrations (
          version text primary key,
          applied_at timestamptz not null default now()
        )
        """
    )
    return {r[0] for r in conn.execute("select version from schema_migrations").fetchall()}


def _recorded_versions(conn: psycopg.Connection, schema: str) -> set[str]:
    table = conn.execute("select to_regclass(%s)", (f'"{schema}".schema_migrations',)).fetchone()
    if table is None or table[0] is None:
        return set()
    return {r[0] for r in conn.execute(f'select version from "{schema}".schema_migrations').fetchall()}


def pending_migrations(dsn: str, *, schema: str = "public") -> list[str]:
    """
    Versions `apply_migrations` would run, read over a read-only session.
    """
    with connect(dsn, schema=schema, read_only=True) as conn:
        done = _recorded_versions(conn, schema)
    return [m.version for m in discover_migrations() if m.version not in done]


def apply_migrations(
    dsn: str,
    *,
    schema: str = "public",
    migrations: Iterable[Migration] | None = None,
) -> list[str]:
    """
    Applies every not-yet-recorded migration into `schema`, one commit per file.

    Re-running is a no-op; the SQL files themselves use `if not exists`.
    """
    if migrations is None:
        migrations = discover_migrations()

    applied: list[str] = []
    with psycopg.connect(dsn) as conn:
        done = _prepare(conn, schema)
        for mig in migrations:
            if mig.version in done:
                continue
            conn.execute(mig.read_sql())
            conn.execute("insert into schema_migrations(version) values (%s)", (mig.version,))
            conn.commit()
            logger.info("applied migration %s to schema %s", mig.version, schema)
            applied.append(mig.version)
        conn.commit()

    return applied
