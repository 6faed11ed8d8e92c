"""Exception types raised across the ingestion jobs."""


class IngestError(Exception):
    """Base class for ingestion failures."""


class SourceError(IngestError):
    """A source adapter could not produce records."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"[{source}] {message}")
        self.source = source


class ConfigError(IngestError):
    """A required setting is missing for a job that cannot degrade."""
