from __future__ import annotations


class IngestError(Exception):
    pass


class AnalysisUnavailableError(IngestError):
    """The analysis service could not be reached or answered with a non-success status."""


class IncompleteAnalysisError(IngestError):
    """The analysis service answered, but without any pages."""


class PersistenceError(IngestError):
    pass
