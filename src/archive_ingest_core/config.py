from __future__ import annotations

from contextlib import AbstractContextManager

import psycopg
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from archive_ingest_core.db import PostgresConfig, connect


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    pg_dsn: str | None = Field(default=None, alias="PG_DSN")
    postgres_host: str | None = Field(default=None, alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str | None = Field(default=None, alias="POSTGRES_DB")
    postgres_user: str | None = Field(default=None, alias="POSTGRES_USER")
    postgres_password: SecretStr | None = Field(default=None, alias="POSTGRES_PASSWORD")
    pg_schema: str = Field(default="public", alias="PG_SCHEMA")
    pg_statement_timeout_ms: int = Field(default=15_000, alias="PG_STATEMENT_TIMEOUT_MS")
    pg_connect_timeout_s: int = Field(default=5, alias="PG_CONNECT_TIMEOUT_S")

    analysis_api_url: str = Field(default="https://api.oip.onl", alias="ANALYSIS_API_URL")
    analysis_api_key: str | None = Field(default=None, alias="ANALYSIS_API_KEY")
    analysis_timeout_s: float = Field(default=30.0, alias="ANALYSIS_TIMEOUT_S")
    default_collection: str = Field(default="jfk", alias="DEFAULT_COLLECTION")

    status_cache_ttl_s: float = Field(default=300.0, alias="STATUS_CACHE_TTL_S")
    status_cache_max_entries: int = Field(default=1024, alias="STATUS_CACHE_MAX_ENTRIES")

    repair_max_concurrency: int = Field(default=1, alias="REPAIR_MAX_CONCURRENCY")
    default_retry_count: int = Field(default=1, alias="DEFAULT_RETRY_COUNT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    def postgres(self) -> PostgresConfig:
        return PostgresConfig(
            dsn=self.pg_dsn,
            host=self.postgres_host,
            port=self.postgres_port,
            db=self.postgres_db,
            user=self.postgres_user,
            password=self.postgres_password,
        )

    def db_session(self, *, read_only: bool = False) -> AbstractContextManager[psycopg.Connection]:
        return connect(
            self.postgres().build_dsn(),
            schema=self.pg_schema,
            statement_timeout_ms=self.pg_statement_timeout_ms,
            read_only=read_only,
            connect_timeout_s=self.pg_connect_timeout_s,
        )


def load_settings() -> Settings:
    return Settings()
