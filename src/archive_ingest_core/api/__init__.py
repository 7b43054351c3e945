from __future__ import annotations

from archive_ingest_core.api.main import create_app

__all__ = ["create_app"]
