"""
Error hierarchy for the search core.

Every error carries a CLI exit code and a stable error code so the command
layer can report failures without knowing where they came from.
"""

from __future__ import annotations


class DesignSearchError(Exception):
    """Base class for all design-search failures."""

    exit_code: int = 1
    error_code: str = "GENERAL_ERROR"


class ProviderError(DesignSearchError):
    """Embedding generation failed (network, auth, or malformed response)."""

    exit_code = 4
    error_code = "PROVIDER_ERROR"


class DimensionMismatchError(DesignSearchError, ValueError):
    """A vector's length disagrees with the established dimension."""

    exit_code = 5
    error_code = "DIMENSION_MISMATCH"

    def __init__(self, expected: int, actual: int, *, record_id: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        self.record_id = record_id
        target = f" for {record_id!r}" if record_id else ""
        super().__init__(
            f"Vector dimension {actual}{target} does not match expected dimension {expected}."
        )


class IndexCorruptError(DesignSearchError):
    """The ANN cache file could not be deserialized or is stale."""

    exit_code = 5
    error_code = "INDEX_CORRUPT"


class StoreError(DesignSearchError):
    """Persistence I/O failed."""

    error_code = "STORE_ERROR"


class ConfigurationError(DesignSearchError):
    """Configuration could not be loaded or validated."""

    exit_code = 3
    error_code = "CONFIGURATION_ERROR"


class OperationCancelledError(DesignSearchError):
    """A long-running operation observed a cancellation request."""

    error_code = "CANCELLED"


class CatalogError(DesignSearchError):
    """A catalog file could not be read or holds invalid items."""

    exit_code = 2
    error_code = "INVALID_CATALOG"
