"""Runtime configuration model for bulkfetch.

This module owns environment variable parsing and the cross-field
validation every run performs before any remote call is made.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os

from core.constants import (
    DEFAULT_AUTH_URL,
    DEFAULT_EXPORT_GROUP,
    DEFAULT_MAX_UPLOAD_WORKERS,
    DEFAULT_RESOURCE_TYPES,
    DEFAULT_SERVER_BASE_URL,
    INITIAL_BUFFER_SIZE_BYTES,
    JOB_STATUS_PERIOD_SECONDS,
    JOB_STATUS_TIMEOUT_SECONDS,
    MAX_RECORD_SIZE_BYTES,
)
from core.errors import ConfigurationError


@dataclass(frozen=True)
class FetchConfig:
    """Validated bulk fetch configuration.

    Attributes:
        client_id: Export API OAuth client id.
        client_secret: Export API OAuth client secret.
        server_base_url: Bulk data server base URL.
        auth_url: OAuth token URL.
        auth_scopes: Scopes requested with each token.
        resource_types: Resource types requested from the export.
        export_group: Group id to export, or None for a patient-level export.
        output_prefix: Local NDJSON output prefix; no file output when unset.
        rectify: Normalize records before output; required for datastore upload.
        enable_datastore: Upload records to the datastore.
        datastore_url: Datastore REST base URL.
        datastore_token: Optional bearer token for the datastore.
        max_upload_workers: Concurrent datastore upload workers.
        upload_error_file_dir: Directory for the failed-upload report.
        enable_batch_upload: Upload to the datastore in batch bundles.
        batch_upload_size: Batch bundle size; 0 selects the default.
        enable_staged_import: Stage NDJSON in S3 and trigger a datastore import.
        staged_import_bucket: S3 bucket for staged import files.
        since: Explicit since timestamp for this run only.
        since_file: Local path or s3:// URI of the transaction time log.
        no_fail_on_upload_errors: Record upload errors instead of failing.
        pending_job_url: Attach to an existing export job instead of starting one.
        job_status_period: Seconds between job status polls.
        job_status_timeout: Seconds to wait for the job before failing.
        max_record_size: Maximum NDJSON line size in bytes.
        initial_buffer_size: Scan granularity in bytes used when splitting NDJSON.
        s3_region: Optional AWS region for S3 operations.
        s3_profile: Optional AWS profile for boto3 session initialization.
    """

    client_id: str = ""
    client_secret: str = ""
    server_base_url: str = DEFAULT_SERVER_BASE_URL
    auth_url: str = DEFAULT_AUTH_URL
    auth_scopes: tuple[str, ...] = ()
    resource_types: tuple[str, ...] = DEFAULT_RESOURCE_TYPES
    export_group: str | None = DEFAULT_EXPORT_GROUP
    output_prefix: str | None = None
    rectify: bool = False
    enable_datastore: bool = False
    datastore_url: str | None = None
    datastore_token: str | None = None
    max_upload_workers: int = DEFAULT_MAX_UPLOAD_WORKERS
    upload_error_file_dir: str | None = None
    enable_batch_upload: bool = False
    batch_upload_size: int = 0
    enable_staged_import: bool = False
    staged_import_bucket: str | None = None
    since: str | None = None
    since_file: str | None = None
    no_fail_on_upload_errors: bool = False
    pending_job_url: str | None = None
    job_status_period: float = JOB_STATUS_PERIOD_SECONDS
    job_status_timeout: float = JOB_STATUS_TIMEOUT_SECONDS
    max_record_size: int = MAX_RECORD_SIZE_BYTES
    initial_buffer_size: int = INITIAL_BUFFER_SIZE_BYTES
    s3_region: str | None = None
    s3_profile: str | None = None

    @classmethod
    def from_env(cls) -> "FetchConfig":
        """Build config defaults from process environment variables.

        Returns:
            A config object; call ``validate`` before use.

        Raises:
            ConfigurationError: If environment values are invalid.
        """
        return cls(
            client_id=os.getenv("BULKFETCH_CLIENT_ID", ""),
            client_secret=os.getenv("BULKFETCH_CLIENT_SECRET", ""),
            server_base_url=os.getenv("BULKFETCH_SERVER_URL", DEFAULT_SERVER_BASE_URL),
            auth_url=os.getenv("BULKFETCH_AUTH_URL", DEFAULT_AUTH_URL),
            job_status_timeout=_parse_seconds(
                "BULKFETCH_JOB_STATUS_TIMEOUT",
                os.getenv("BULKFETCH_JOB_STATUS_TIMEOUT", str(JOB_STATUS_TIMEOUT_SECONDS)),
            ),
            s3_region=os.getenv("BULKFETCH_S3_REGION"),
            s3_profile=os.getenv("BULKFETCH_S3_PROFILE"),
        )

    def validate(self) -> None:
        """Check required and mutually exclusive settings.

        Raises:
            ConfigurationError: On the first violated constraint.
        """
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "Both client_id and client_secret must be non-empty. "
                "Pass --client-id/--client-secret or set BULKFETCH_CLIENT_ID/BULKFETCH_CLIENT_SECRET."
            )
        if not self.resource_types:
            raise ConfigurationError("At least one resource type must be requested.")
        if self.enable_datastore and not self.datastore_url:
            raise ConfigurationError(
                "If enable_datastore is true, datastore_url must be set. "
                "Provide the datastore REST base URL."
            )
        if self.enable_datastore and not self.rectify:
            raise ConfigurationError(
                "For now, rectify must be enabled for datastore upload. Pass --rectify."
            )
        if self.enable_staged_import and not self.enable_datastore:
            raise ConfigurationError(
                "enable_staged_import requires enable_datastore. Enable datastore upload too."
            )
        if self.enable_staged_import and not self.staged_import_bucket:
            raise ConfigurationError(
                "If enable_staged_import is true, staged_import_bucket must be set."
            )
        if self.since and self.since_file:
            raise ConfigurationError(
                "Only one of since or since_file may be set (cannot set both)."
            )
        self._validate_limits()

    def _validate_limits(self) -> None:
        if self.job_status_period <= 0 or self.job_status_timeout <= 0:
            raise ConfigurationError(
                "job_status_period and job_status_timeout must be positive numbers of seconds."
            )
        if self.max_record_size <= 0 or self.initial_buffer_size <= 0:
            raise ConfigurationError("max_record_size and initial_buffer_size must be positive.")
        if self.initial_buffer_size > self.max_record_size:
            raise ConfigurationError(
                f"initial_buffer_size ({self.initial_buffer_size}) cannot exceed "
                f"max_record_size ({self.max_record_size})."
            )
        if self.max_upload_workers < 1:
            raise ConfigurationError("max_upload_workers must be at least 1.")
        if self.batch_upload_size < 0:
            raise ConfigurationError("batch_upload_size cannot be negative.")


def _parse_seconds(variable_name: str, raw_value: str) -> float:
    """Parse a duration environment value.

    Args:
        variable_name: Environment variable name for error context.
        raw_value: Raw string from environment.

    Returns:
        Parsed duration in seconds.

    Raises:
        ConfigurationError: If value cannot be parsed into float.
    """
    try:
        return float(raw_value)
    except ValueError as error:
        raise ConfigurationError(
            f"Invalid {variable_name} value: "
            f"expected a number of seconds, got '{raw_value}'. "
            f"Set {variable_name} to a numeric value."
        ) from error
