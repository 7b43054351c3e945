from __future__ import annotations

from archive_ingest_core.analysis.client import (
    STATUS_HEADER,
    AnalysisServiceClient,
    MediaStatus,
    parse_status_header,
)

__all__ = [
    "STATUS_HEADER",
    "AnalysisServiceClient",
    "MediaStatus",
    "parse_status_header",
]
