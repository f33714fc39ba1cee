# datagatherer/common/errors.py
from __future__ import annotations


class DataGathererError(Exception):
    """Base class for all engine errors."""
    pass


class ConfigurationError(DataGathererError, ValueError):
    """Invalid or incomplete configuration (fatal, never retried)."""
    pass


class FetchError(DataGathererError):
    """A single record could not be fetched; recorded, not fatal."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class WriteError(DataGathererError):
    """The sink rejected a batch write. Prior batches stay committed."""

    def __init__(self, message: str, dataset_id: str, flushed_count: int = 0):
        super().__init__(message)
        self.dataset_id = dataset_id
        self.flushed_count = flushed_count


class SchemaMismatchError(DataGathererError):
    """Destination header is absent or does not fit the batch."""
    pass
