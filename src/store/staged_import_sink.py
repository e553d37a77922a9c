"""Object-storage staged import sink.

Records are spooled per resource type, uploaded to S3 under a folder
named after the run's transaction time, and then loaded into the
datastore by one bulk import operation that is polled to completion.
"""

from __future__ import annotations

import tempfile
import time
from typing import IO, Any, Callable

from core.constants import (
    IMPORT_JOB_PERIOD_SECONDS,
    IMPORT_JOB_TIMEOUT_SECONDS,
    NDJSON_FILE_SUFFIX,
)
from core.errors import SinkError
from core.logging_config import get_logger
from core.timestamps import format_instant
from core.transaction_time import TransactionTime
from core.types import Record
from ingest.job_monitor import poll_until
from store.datastore_api import DatastoreApi

_LOGGER = get_logger(__name__)
_SPOOL_MAX_BYTES = 16 * 1024 * 1024


class StagedImportSink:
    """Stage NDJSON in S3 and import it into the datastore on finalize."""

    name = "staged_import"

    def __init__(
        self,
        api: DatastoreApi,
        s3_client: Any,
        bucket: str,
        transaction_time: TransactionTime,
        import_period: float = IMPORT_JOB_PERIOD_SECONDS,
        import_timeout: float = IMPORT_JOB_TIMEOUT_SECONDS,
        tolerate_errors: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tolerate_errors = tolerate_errors
        self._api = api
        self._s3 = s3_client
        self._bucket = bucket
        self._transaction_time = transaction_time
        self._import_period = import_period
        self._import_timeout = import_timeout
        self._sleep = sleep
        self._clock = clock
        self._spools: dict[str, IO[bytes]] = {}

    def process(self, record: Record) -> None:
        spool = self._spools.get(record.resource_type)
        if spool is None:
            spool = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_BYTES)
            self._spools[record.resource_type] = spool
        spool.write(record.data + b"\n")

    def finalize(self) -> None:
        """Upload staged files, run the import, and wait for it.

        Raises:
            SinkError: If upload, import start, or import completion fails.
        """
        try:
            if not self._spools:
                return
            sources = self._upload_spools()
            operation_url = self._api.start_import(sources)
            _LOGGER.info("datastore_import_started", operation_url=operation_url, files=len(sources))
            self._wait_for_import(operation_url)
        finally:
            self.close()

    def close(self) -> None:
        """Discard staged spools and release the datastore client."""
        spools, self._spools = list(self._spools.values()), {}
        for spool in spools:
            spool.close()
        self._api.close()

    def _upload_spools(self) -> list[tuple[str, str]]:
        folder = format_instant(self._transaction_time.get())
        sources: list[tuple[str, str]] = []
        for resource_type, spool in sorted(self._spools.items()):
            key = f"{folder}/{resource_type}{NDJSON_FILE_SUFFIX}"
            spool.seek(0)
            try:
                self._s3.upload_fileobj(spool, self._bucket, key)
            except Exception as error:
                raise SinkError(
                    f"Failed to stage {resource_type} NDJSON to s3://{self._bucket}/{key}: {error}. "
                    "Check AWS credentials and bucket permissions.",
                    sink_names=(self.name,),
                ) from error
            sources.append((resource_type, f"s3://{self._bucket}/{key}"))
        return sources

    def _wait_for_import(self, operation_url: str) -> None:
        completed = False
        polls = poll_until(
            lambda: self._api.import_complete(operation_url),
            lambda done: done,
            self._import_period,
            self._import_timeout,
            sleep=self._sleep,
            clock=self._clock,
        )
        for done, error in polls:
            if error is not None:
                raise error
            completed = bool(done)
        if not completed:
            raise SinkError(
                f"Datastore import {operation_url} did not finish before the timeout "
                f"of {self._import_timeout} seconds.",
                sink_names=(self.name,),
            )
        _LOGGER.info("datastore_import_completed", operation_url=operation_url)
