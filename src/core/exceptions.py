"""Core exceptions for configuration and metadata reconciliation.

This module contains the shared exception classes so that the catalog client,
the local store, the tag writer and the reconciliation orchestrator can raise
and catch the same error kinds without importing each other.
"""


class ConfigurationError(Exception):
    """Raised when configuration loading or parsing fails."""

    def __init__(self, message: str, config_path: str | None = None) -> None:
        """Initialize the configuration error.

        Args:
            message: Error description
            config_path: Path to the config file that caused the error

        """
        super().__init__(message)
        self.config_path = config_path


class ReconciliationError(Exception):
    """Base exception for every failure the reconciliation pipeline reports."""


class CatalogUnavailableError(ReconciliationError):
    """Raised when the remote catalog cannot be reached or answers badly."""

    def __init__(self, message: str, status: int | None = None) -> None:
        """Initialize the catalog error.

        Args:
            message: Error description
            status: HTTP status code, when the failure came from a response

        """
        super().__init__(message)
        self.status = status


class CatalogRateLimitedError(CatalogUnavailableError):
    """Raised when the catalog throttles us (HTTP 429)."""

    def __init__(self, message: str, retry_after: float = 60.0) -> None:
        super().__init__(message, status=429)
        self.retry_after = retry_after


class CatalogNotFoundError(ReconciliationError):
    """Raised when a catalog id does not exist or is restricted."""

    def __init__(self, catalog_id: int) -> None:
        super().__init__(f"Catalog track {catalog_id} not found")
        self.catalog_id = catalog_id


class NoMatchError(ReconciliationError):
    """Raised when a search returns no candidate above the score threshold."""


class StoreError(ReconciliationError):
    """Raised when the local track store cannot be read or updated."""


class TagWriteError(ReconciliationError):
    """Raised when tags cannot be written to an audio file."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class InvalidInputError(ReconciliationError):
    """Raised for malformed batch input, such as an empty track list or unknown id."""
