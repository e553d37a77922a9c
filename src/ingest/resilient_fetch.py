"""Result file download with re-authentication retries.

Bulk data servers issue short-lived tokens, and long exports often
outlive them. Unauthorized and transient failures are retried after
re-authenticating; everything else fails on the first attempt.
"""

from __future__ import annotations

import time
from typing import Callable

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from core.constants import FETCH_MAX_RETRIES, FETCH_RETRY_BACKOFF_SECONDS
from core.errors import (
    BulkFetchError,
    FetchError,
    RetryableHTTPError,
    UnauthorizedError,
)
from core.logging_config import get_logger
from export_api.client import DownloadStream, ExportJobClient

_LOGGER = get_logger(__name__)


def fetch_result_file(
    client: ExportJobClient,
    url: str,
    max_retries: int = FETCH_MAX_RETRIES,
    backoff_seconds: float = FETCH_RETRY_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> DownloadStream:
    """Open a result file download, re-authenticating between retries.

    Unauthorized and retryable errors are both retried by
    re-authenticating, as they sometimes appear to be related.

    Args:
        client: Export job client; its session is refreshed on retry.
        url: Result file URL.
        max_retries: Retries after the first attempt.
        backoff_seconds: Fixed wait before each retry.
        sleep: Sleep function, injectable for tests.

    Returns:
        Open download stream.

    Raises:
        FetchError: If the download fails, retries run out, or
            re-authentication fails.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_fixed(backoff_seconds),
        retry=retry_if_exception_type((UnauthorizedError, RetryableHTTPError)),
        before_sleep=_log_retry(url),
        sleep=sleep,
        reraise=True,
    )
    attempts = 0

    def download_attempt() -> DownloadStream:
        nonlocal attempts
        attempts += 1
        if attempts > 1:
            client.authenticate()
        return client.download(url)

    try:
        return retrying(download_attempt)
    except BulkFetchError as error:
        raise FetchError(url, error) from error


def _log_retry(url: str) -> Callable[[RetryCallState], None]:
    def log_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        _LOGGER.info(
            "download_retry",
            url=url,
            attempt=retry_state.attempt_number,
            error=str(error),
            message="Got retryable error from export server. Re-authenticating and trying again.",
        )

    return log_retry
