"""Datastore upload sink.

Records are uploaded by a bounded pool of worker threads, either one
resource per request or in batch bundles. Failed uploads are collected
into an optional NDJSON error report and surfaced when the sink is
finalized; ``finalize`` returns only after every submitted upload ends.
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import IO

from core.constants import DEFAULT_BATCH_UPLOAD_SIZE, UPLOAD_ERRORS_FILE_NAME
from core.errors import SinkError
from core.logging_config import get_logger
from core.types import Record
from store.datastore_api import DatastoreApi

_LOGGER = get_logger(__name__)


class DatastoreSink:
    """Upload records to a datastore with bounded concurrency."""

    name = "datastore"

    def __init__(
        self,
        api: DatastoreApi,
        max_workers: int,
        batch_size: int | None = None,
        error_file_dir: Path | None = None,
        tolerate_errors: bool = False,
    ) -> None:
        """Create the sink.

        Args:
            api: Datastore REST client.
            max_workers: Upload worker threads.
            batch_size: Bundle size; None uploads one resource per request.
            error_file_dir: Directory for the failed-upload report.
            tolerate_errors: Report failures as warnings instead of failing.
        """
        self.tolerate_errors = tolerate_errors
        self._api = api
        self._batch_size = batch_size
        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._in_flight = threading.BoundedSemaphore(max_workers * 2)
        self._lock = threading.Lock()
        self._pending_batch: list[Record] = []
        self._failed_count = 0
        self._error_file: IO[str] | None = None
        self._error_file_path = error_file_dir / UPLOAD_ERRORS_FILE_NAME if error_file_dir else None

    @property
    def failed_count(self) -> int:
        return self._failed_count

    def process(self, record: Record) -> None:
        if self._batch_size is None:
            self._submit([record])
            return
        self._pending_batch.append(record)
        if len(self._pending_batch) >= self._batch_size:
            batch, self._pending_batch = self._pending_batch, []
            self._submit(batch)

    def finalize(self) -> None:
        """Wait for all uploads and report failures.

        Raises:
            SinkError: If any record failed to upload.
        """
        if self._pending_batch:
            batch, self._pending_batch = self._pending_batch, []
            self._submit(batch)
        self._executor.shutdown(wait=True)
        self._release()
        if self._failed_count:
            _LOGGER.warning(
                "upload_errors_recorded",
                failed_count=self._failed_count,
                error_file=str(self._error_file_path) if self._error_file_path else None,
            )
            raise SinkError(
                f"{self._failed_count} resource(s) failed to upload to the datastore"
                + (f"; see {self._error_file_path}." if self._error_file_path else "."),
                sink_names=(self.name,),
            )

    def close(self) -> None:
        """Cancel queued uploads, wait for running ones, and release clients."""
        self._pending_batch = []
        self._executor.shutdown(wait=True, cancel_futures=True)
        self._release()

    def _release(self) -> None:
        self._api.close()
        with self._lock:
            if self._error_file is not None:
                self._error_file.close()
                self._error_file = None

    def _submit(self, records: list[Record]) -> None:
        self._in_flight.acquire()
        future = self._executor.submit(self._upload, records)
        future.add_done_callback(lambda done: self._upload_done(done, records))

    def _upload_done(self, future: Future[None], records: list[Record]) -> None:
        self._in_flight.release()
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            for record in records:
                self._record_failure(record, f"unexpected upload failure: {error}")

    def _upload(self, records: list[Record]) -> None:
        entries: list[tuple[Record, str, str, bytes]] = []
        for record in records:
            try:
                entries.append((record, *_resource_entry(record)))
            except SinkError as error:
                self._record_failure(record, str(error))
        if not entries:
            return
        if self._batch_size is None:
            record, resource_type, resource_id, body = entries[0]
            try:
                self._api.put_resource(resource_type, resource_id, body)
            except SinkError as error:
                self._record_failure(record, str(error))
            return
        try:
            entry_errors = self._api.execute_batch([entry[1:] for entry in entries])
        except SinkError as error:
            for record, *_ in entries:
                self._record_failure(record, str(error))
            return
        for (record, *_), entry_error in zip(entries, entry_errors):
            if entry_error is not None:
                self._record_failure(record, entry_error)

    def _record_failure(self, record: Record, message: str) -> None:
        with self._lock:
            self._failed_count += 1
            if self._error_file_path is None:
                return
            if self._error_file is None:
                self._error_file_path.parent.mkdir(parents=True, exist_ok=True)
                self._error_file = self._error_file_path.open("a", encoding="utf-8")
            row = {
                "resource_type": record.resource_type,
                "source_url": record.source_url,
                "error": message,
                "record": record.data.decode("utf-8", errors="replace"),
            }
            self._error_file.write(json.dumps(row, sort_keys=True) + "\n")


def _resource_entry(record: Record) -> tuple[str, str, bytes]:
    try:
        payload = json.loads(record.data)
    except (json.JSONDecodeError, UnicodeDecodeError) as error:
        raise SinkError(f"Record is not valid JSON: {error}") from error
    resource_id = payload.get("id") if isinstance(payload, dict) else None
    if not isinstance(resource_id, str) or not resource_id:
        raise SinkError("Record has no string 'id' to upload under.")
    resource_type = payload.get("resourceType") or record.resource_type
    return str(resource_type), resource_id, record.data


def default_batch_size(enable_batch_upload: bool, batch_upload_size: int) -> int | None:
    """Resolve the configured batch size, or None for per-resource uploads."""
    if not enable_batch_upload:
        return None
    return batch_upload_size or DEFAULT_BATCH_UPLOAD_SIZE
