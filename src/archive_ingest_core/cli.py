"""
archive-ingest command line: migrations, broken-document scans, repairs and status reads.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from functools import partial

import click

from archive_ingest_core.analysis.client import AnalysisServiceClient
from archive_ingest_core.config import Settings, load_settings
from archive_ingest_core.ingest import IngestService
from archive_ingest_core.logging_setup import configure_logging
from archive_ingest_core.migrations.runner import apply_migrations, pending_migrations
from archive_ingest_core.repositories import open_repository
from archive_ingest_core.status import StatusCache


@contextmanager
def _service(settings: Settings) -> Iterator[IngestService]:
    with open_repository(settings) as store:
        yield IngestService(
            store,
            AnalysisServiceClient(
                base_url=settings.analysis_api_url,
                api_key=settings.analysis_api_key,
                timeout_s=settings.analysis_timeout_s,
            ),
            cache=StatusCache(
                ttl_s=settings.status_cache_ttl_s,
                max_entries=settings.status_cache_max_entries,
            ),
            default_collection=settings.default_collection,
            default_retry_count=settings.default_retry_count,
            repair_max_concurrency=settings.repair_max_concurrency,
            store_factory=partial(open_repository, settings),
        )


def _echo_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


@click.group()
@click.version_option(package_name="archive-ingest-core")
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL.")
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """Document ingestion and status reconciliation."""
    settings = load_settings()
    configure_logging(log_level or settings.log_level)
    ctx.obj = settings


@main.command()
@click.option("--dry-run", is_flag=True, help="Only list migrations that would be applied.")
@click.pass_obj
def migrate(settings: Settings, dry_run: bool) -> None:
    """Apply pending database migrations."""
    dsn = settings.postgres().build_dsn()
    if dry_run:
        for version in pending_migrations(dsn, schema=settings.pg_schema):
            click.echo(version)
        return
    applied = apply_migrations(dsn, schema=settings.pg_schema)
    click.echo(f"applied {len(applied)} migration(s)" + (f": {', '.join(applied)}" if applied else ""))


@main.command()
@click.pass_obj
def scan(settings: Settings) -> None:
    """List documents that need repair, without changing anything."""
    with _service(settings) as service:
        report = service.find_broken()
    for document_id in report.document_ids:
        click.echo(document_id)
    for reason, count in sorted(report.breakdown.items()):
        click.echo(f"{reason}: {count}", err=True)


@main.command()
@click.argument("document_id", required=False)
@click.option("--all", "repair_all", is_flag=True, help="Repair every broken document.")
@click.option("--force", is_flag=True, help="Re-fetch and reconcile unconditionally.")
@click.option("--retries", type=click.IntRange(1, 10), default=None, help="Attempts for --force.")
@click.pass_obj
def repair(
    settings: Settings,
    document_id: str | None,
    repair_all: bool,
    force: bool,
    retries: int | None,
) -> None:
    """Repair one document, or every broken document with --all."""
    if repair_all == bool(document_id):
        raise click.UsageError("pass either DOCUMENT_ID or --all")

    with _service(settings) as service:
        if repair_all:
            summary = service.repair_all()
            _echo_json(
                {
                    "repaired": summary.repaired,
                    "failed": summary.failed,
                    "documents": [r.as_json() for r in summary.documents],
                }
            )
            if summary.failed:
                sys.exit(1)
            return

        if force:
            result = service.force_update(document_id, retry_count=retries)
        else:
            result = service.repair(document_id)
    _echo_json(result.as_json())
    if not result.ok:
        sys.exit(1)


@main.command()
@click.argument("document_id")
@click.option("--force-data-check", is_flag=True, help="Re-fetch even if the record looks healthy.")
@click.pass_obj
def status(settings: Settings, document_id: str, force_data_check: bool) -> None:
    """Show the processing status of one document."""
    with _service(settings) as service:
        snapshot = service.status(document_id, force_data_check=force_data_check)
    if snapshot is None:
        click.echo(f"document {document_id} not found", err=True)
        sys.exit(1)
    _echo_json(snapshot.as_json())


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_obj
def serve(settings: Settings, host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    from archive_ingest_core.api import create_app

    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
