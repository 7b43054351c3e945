from archive_ingest_core.config import Settings, load_settings
from archive_ingest_core.dates import NormalizedDates, normalize_dates
from archive_ingest_core.ingest import IngestService
from archive_ingest_core.models import Document, ProcessingStage
from archive_ingest_core.payload import AnalysisPayload
from archive_ingest_core.reconcile import Reconciler
from archive_ingest_core.repair import RepairScanner, broken_reasons, is_broken
from archive_ingest_core.resolver import IdentityResolver

__all__ = [
    "__version__",
    "AnalysisPayload",
    "Document",
    "IdentityResolver",
    "IngestService",
    "NormalizedDates",
    "ProcessingStage",
    "Reconciler",
    "RepairScanner",
    "Settings",
    "broken_reasons",
    "is_broken",
    "load_settings",
    "normalize_dates",
]

__version__ = "0.1.0"
