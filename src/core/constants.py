"""Core constants used across bulkfetch modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_SERVER_BASE_URL = "https://sandbox.bcda.cms.gov/api/v2"
DEFAULT_AUTH_URL = "https://sandbox.bcda.cms.gov/auth/token"
DEFAULT_RESOURCE_TYPES = ("Patient", "Coverage", "ExplanationOfBenefit")
DEFAULT_EXPORT_GROUP = "all"
JOB_STATUS_PERIOD_SECONDS = 5.0
JOB_STATUS_TIMEOUT_SECONDS = 6 * 60 * 60.0
IMPORT_JOB_PERIOD_SECONDS = 5.0
IMPORT_JOB_TIMEOUT_SECONDS = 6 * 60 * 60.0
MAX_RECORD_SIZE_BYTES = 500 * 1024
INITIAL_BUFFER_SIZE_BYTES = 5 * 1024
FETCH_MAX_RETRIES = 5
FETCH_RETRY_BACKOFF_SECONDS = 2.0
HTTP_TIMEOUT_SECONDS = 60.0
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
DEFAULT_MAX_UPLOAD_WORKERS = 10
DEFAULT_BATCH_UPLOAD_SIZE = 100
UPLOAD_ERRORS_FILE_NAME = "resources_with_errors.ndjson"
NDJSON_FILE_SUFFIX = ".ndjson"
FHIR_JSON_CONTENT_TYPE = "application/fhir+json"
FHIR_NDJSON_CONTENT_TYPE = "application/fhir+ndjson"
S3_URI_PREFIX = "s3://"
