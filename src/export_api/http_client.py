"""httpx implementation of the export job client.

This module speaks the asynchronous bulk data request pattern:
kick off an ``$export`` operation, poll its ``Content-Location`` status
URL, then stream the NDJSON result files it lists.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterator, Sequence

import httpx

from core.constants import (
    FHIR_JSON_CONTENT_TYPE,
    FHIR_NDJSON_CONTENT_TYPE,
    HTTP_TIMEOUT_SECONDS,
    RETRYABLE_STATUS_CODES,
)
from core.errors import (
    ExportApiError,
    FetchError,
    InvalidWatermarkError,
    RetryableHTTPError,
    UnauthorizedError,
)
from core.timestamps import format_instant, parse_instant
from core.types import JobStatus
from export_api.auth import ClientCredentialsAuthenticator
from export_api.client import DownloadStream


class BulkDataClient:
    """Bulk data export client with bearer-token session state."""

    def __init__(
        self,
        base_url: str,
        authenticator: ClientCredentialsAuthenticator,
        http_client: httpx.Client | None = None,
        download_chunk_size: int = 64 * 1024,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._authenticator = authenticator
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(HTTP_TIMEOUT_SECONDS),
            follow_redirects=True,
        )
        self._download_chunk_size = download_chunk_size
        self._token: str | None = None

    def authenticate(self) -> None:
        """Replace the session token with a freshly issued one."""
        self._token = self._authenticator.request_token(self._http)

    def start_export(
        self,
        resource_types: Sequence[str],
        since: datetime | None,
        export_group: str | None,
    ) -> str:
        """Kick off an export and return the job status URL.

        Raises:
            ExportApiError: If the server does not accept the request.
        """
        if export_group:
            export_url = f"{self._base_url}/Group/{export_group}/$export"
        else:
            export_url = f"{self._base_url}/Patient/$export"
        params = {"_type": ",".join(resource_types)}
        if since is not None:
            params["_since"] = format_instant(since)
        response = self._send(
            "GET",
            export_url,
            params=params,
            headers={"Accept": FHIR_JSON_CONTENT_TYPE, "Prefer": "respond-async"},
        )
        if response.status_code != 202:
            raise ExportApiError(
                f"Unexpected HTTP {response.status_code} from {export_url}; expected 202 Accepted.",
                status_code=response.status_code,
            )
        job_url = response.headers.get("Content-Location")
        if not job_url:
            raise ExportApiError(
                f"Export kick-off at {export_url} returned no Content-Location header."
            )
        return job_url

    def get_job_status(self, job_url: str) -> JobStatus:
        """Return the current state of an export job.

        Raises:
            UnauthorizedError: If the token was rejected.
            RetryableHTTPError: For transient server failures.
            ExportApiError: If the status payload cannot be parsed.
        """
        response = self._send(
            "GET", job_url, headers={"Accept": FHIR_JSON_CONTENT_TYPE}, allow_client_errors=True
        )
        if response.status_code == 202:
            return JobStatus(
                job_url=job_url,
                state="in_progress",
                percent_complete=_parse_progress(response.headers.get("X-Progress", "")),
            )
        if response.status_code == 200:
            return _parse_complete_status(job_url, response)
        return JobStatus(
            job_url=job_url,
            state="failed",
            errors=(f"HTTP {response.status_code}: {response.text[:500]}",),
        )

    def download(self, url: str) -> DownloadStream:
        """Open a streaming download of one NDJSON result file.

        Raises:
            UnauthorizedError: If the token was rejected.
            RetryableHTTPError: For transient failures.
            ExportApiError: For other non-success responses.
        """
        request = self._http.build_request(
            "GET", url, headers=self._headers({"Accept": FHIR_NDJSON_CONTENT_TYPE})
        )
        try:
            response = self._http.send(request, stream=True)
        except httpx.TransportError as error:
            raise RetryableHTTPError(f"Transport error downloading {url}: {error}") from error
        if response.status_code != 200:
            response.read()
            response.close()
            _raise_for_status(url, response)
        return DownloadStream(
            _iter_response(url, response, self._download_chunk_size), response.close
        )

    def close(self) -> None:
        self._http.close()

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        allow_client_errors: bool = False,
    ) -> httpx.Response:
        if self._token is None:
            self.authenticate()
        try:
            response = self._http.request(method, url, params=params, headers=self._headers(headers))
        except httpx.TransportError as error:
            raise RetryableHTTPError(f"Transport error calling {url}: {error}") from error
        if response.status_code < 400:
            return response
        if allow_client_errors and response.status_code not in (401, 429) and response.status_code < 500:
            return response
        _raise_for_status(url, response)
        return response

    def _headers(self, extra: dict[str, str] | None) -> dict[str, str]:
        headers = dict(extra or {})
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers


def _iter_response(url: str, response: httpx.Response, chunk_size: int) -> Iterator[bytes]:
    try:
        yield from response.iter_bytes(chunk_size)
    except httpx.HTTPError as error:
        raise FetchError(url, error) from error


def _raise_for_status(url: str, response: httpx.Response) -> None:
    status_code = response.status_code
    message = f"HTTP {status_code} from {url}"
    if status_code == 401:
        raise UnauthorizedError(message, status_code=status_code)
    if status_code in RETRYABLE_STATUS_CODES:
        raise RetryableHTTPError(message, status_code=status_code)
    raise ExportApiError(message, status_code=status_code)


def _parse_progress(raw_progress: str) -> int | None:
    """Extract a percentage from an ``X-Progress`` header such as ``42%``."""
    digits = raw_progress.strip().split("%", 1)[0].strip()
    if not digits.isdigit():
        return None
    return min(int(digits), 100)


def _parse_complete_status(job_url: str, response: httpx.Response) -> JobStatus:
    try:
        payload = response.json()
    except ValueError as error:
        raise ExportApiError(f"Job status from {job_url} is not JSON: {error}") from error
    if not isinstance(payload, dict):
        raise ExportApiError(f"Job status from {job_url} is not a JSON object.")
    raw_transaction_time = payload.get("transactionTime")
    if not isinstance(raw_transaction_time, str):
        raise ExportApiError(f"Completed job {job_url} has no transactionTime.")
    try:
        transaction_time = parse_instant(raw_transaction_time)
    except InvalidWatermarkError as error:
        raise ExportApiError(f"Completed job {job_url} has an invalid transactionTime: {error}") from error
    result_urls: dict[str, list[str]] = defaultdict(list)
    for item in payload.get("output") or []:
        if isinstance(item, dict) and isinstance(item.get("type"), str) and isinstance(item.get("url"), str):
            result_urls[item["type"]].append(item["url"])
    errors = tuple(
        str(item.get("url", item)) if isinstance(item, dict) else str(item)
        for item in payload.get("error") or []
    )
    return JobStatus(
        job_url=job_url,
        state="complete",
        percent_complete=100,
        result_urls={resource_type: tuple(urls) for resource_type, urls in result_urls.items()},
        transaction_time=transaction_time,
        errors=errors,
    )
