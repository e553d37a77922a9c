"""bulkfetch exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class BulkFetchError(Exception):
    """Base exception for all bulkfetch failures."""


class ConfigurationError(BulkFetchError):
    """Raised for invalid runtime configuration, before any remote call."""


class DependencyError(BulkFetchError):
    """Raised when an optional runtime dependency is missing."""


class InvalidWatermarkError(BulkFetchError):
    """Raised when a stored or supplied since timestamp cannot be parsed."""


class CheckpointStoreError(BulkFetchError):
    """Raised when the transaction time checkpoint cannot be read or written."""


class ExportApiError(BulkFetchError):
    """Raised for failed export API requests that should not be retried."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnauthorizedError(ExportApiError):
    """Raised when the export API rejects the current access token."""


class RetryableHTTPError(ExportApiError):
    """Raised for transient HTTP statuses and transport failures."""


class AuthenticationError(ExportApiError):
    """Raised when requesting an access token fails."""


class JobStartError(BulkFetchError):
    """Raised when a bulk export job cannot be started."""


class JobTimeoutError(BulkFetchError):
    """Raised when a bulk export job does not complete before the deadline."""


class JobFailedError(BulkFetchError):
    """Raised when the export server reports a job as failed."""


class FetchError(BulkFetchError):
    """Raised when a result file cannot be downloaded."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(
            f"Unable to download result file {url}: {cause}. "
            "Check export server availability and credentials, then rerun the fetch."
        )
        self.url = url
        self.cause = cause


class RecordParseError(BulkFetchError):
    """Raised for oversize or malformed NDJSON records."""


class ProcessorError(BulkFetchError):
    """Raised when a record processor fails."""


class SinkError(BulkFetchError):
    """Raised when a sink fails to accept or commit records."""

    def __init__(self, message: str, sink_names: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.sink_names = sink_names
