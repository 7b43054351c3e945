from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import psycopg
from pydantic import SecretStr


@dataclass(frozen=True)
class PostgresConfig:
    dsn: str | None = None
    host: str | None = None
    port: int = 5432
    db: str | None = None
    user: str | None = None
    password: SecretStr | str | None = None

    def build_dsn(self) -> str:
        if self.dsn:
            return self.dsn
        missing = []
        if not self.host:
            missing.append("POSTGRES_HOST")
        if not self.db:
            missing.append("POSTGRES_DB")
        if not self.user:
            missing.append("POSTGRES_USER")
        if not self.password:
            missing.append("POSTGRES_PASSWORD")
        if missing:
            raise ValueError(f"Missing Postgres config: {', '.join(missing)} (or set PG_DSN)")
        password = (
            self.password.get_secret_value()
            if isinstance(self.password, SecretStr)
            else self.password
        )
        return (
            f"postgresql://{self.user}:{password}"
            f"@{self.host}:{self.port}/{self.db}"
        )


APPLICATION_NAME = "archive-ingest"


def session_options(
    *,
    schema: str = "public",
    statement_timeout_ms: int | None = None,
    read_only: bool = False,
) -> str:
    """
    libpq `options` for every archive-ingest session.

    Sessions always run in UTC on `schema`. A statement timeout bounds each persistence
    call, and read-only sessions reject any write at the server.
    """
    parts = [f"search_path={schema}", "timezone=UTC"]
    if statement_timeout_ms:
        parts.append(f"statement_timeout={int(statement_timeout_ms)}")
    if read_only:
        parts.append("default_transaction_read_only=on")
    return " ".join(f"-c {p}" for p in parts)


@contextmanager
def connect(
    dsn: str,
    *,
    schema: str = "public",
    statement_timeout_ms: int | None = None,
    read_only: bool = False,
    connect_timeout_s: int | None = None,
) -> Iterator[psycopg.Connection]:
    kwargs: dict[str, object] = {"application_name": APPLICATION_NAME}
    if connect_timeout_s:
        kwargs["connect_timeout"] = int(connect_timeout_s)
    options = session_options(schema=schema, statement_timeout_ms=statement_timeout_ms, read_only=read_only)
    with psycopg.connect(dsn, options=options, **kwargs) as conn:
        yield conn
