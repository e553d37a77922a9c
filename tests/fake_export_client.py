"""Shared fake collaborators for bulk fetch tests."""

from __future__ import annotations

from datetime import datetime, timezone
from io import BytesIO
from typing import Sequence

from core.errors import BulkFetchError
from core.types import JobStatus, Record
from export_api.client import DownloadStream

JOB_URL = "https://export.test/jobs/1"
TRANSACTION_TIME = datetime(2021, 5, 1, tzinfo=timezone.utc)


def complete_status(
    result_urls: dict[str, tuple[str, ...]] | None = None,
    transaction_time: datetime = TRANSACTION_TIME,
) -> JobStatus:
    """Build a completed job status.

    Args:
        result_urls: Result file URLs grouped by resource type.
        transaction_time: Transaction time reported by the job.

    Returns:
        Completed job status.
    """
    return JobStatus(
        job_url=JOB_URL,
        state="complete",
        percent_complete=100,
        result_urls=result_urls or {},
        transaction_time=transaction_time,
    )


def in_progress_status(percent_complete: int | None = None) -> JobStatus:
    """Build an in-progress job status."""
    return JobStatus(job_url=JOB_URL, state="in_progress", percent_complete=percent_complete)


class FakeExportClient:
    """Scripted export job client.

    Status polls and downloads pop scripted outcomes in order; an
    exception in a script is raised instead of returned. The last
    status is repeated once the script runs out.
    """

    def __init__(
        self,
        statuses: Sequence[JobStatus | Exception] = (),
        files: dict[str, bytes] | None = None,
        download_errors: dict[str, list[Exception]] | None = None,
        start_error: Exception | None = None,
        auth_errors: Sequence[Exception] = (),
    ) -> None:
        self.statuses = list(statuses) or [complete_status()]
        self.files = dict(files or {})
        self.download_errors = {url: list(errors) for url, errors in (download_errors or {}).items()}
        self.start_error = start_error
        self.auth_errors = list(auth_errors)
        self.authenticate_calls = 0
        self.start_calls: list[tuple[tuple[str, ...], datetime | None, str | None]] = []
        self.status_calls = 0
        self.download_calls: list[str] = []
        self.closed = False

    def authenticate(self) -> None:
        self.authenticate_calls += 1
        if self.auth_errors:
            raise self.auth_errors.pop(0)

    def start_export(
        self,
        resource_types: Sequence[str],
        since: datetime | None,
        export_group: str | None,
    ) -> str:
        self.start_calls.append((tuple(resource_types), since, export_group))
        if self.start_error is not None:
            raise self.start_error
        return JOB_URL

    def get_job_status(self, job_url: str) -> JobStatus:
        self.status_calls += 1
        outcome = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def download(self, url: str) -> DownloadStream:
        self.download_calls.append(url)
        errors = self.download_errors.get(url)
        if errors:
            raise errors.pop(0)
        if url not in self.files:
            raise BulkFetchError(f"No scripted file for {url}.")
        return DownloadStream.from_bytes(self.files[url], chunk_size=7)

    def close(self) -> None:
        self.closed = True


class FakeSink:
    """Sink that records every record it receives."""

    def __init__(
        self,
        name: str = "memory",
        finalize_error: Exception | None = None,
        process_error: Exception | None = None,
        tolerate_errors: bool = False,
    ) -> None:
        self.name = name
        self.tolerate_errors = tolerate_errors
        self.records: list[Record] = []
        self.finalize_calls = 0
        self.close_calls = 0
        self._finalize_error = finalize_error
        self._process_error = process_error

    def process(self, record: Record) -> None:
        if self._process_error is not None:
            raise self._process_error
        self.records.append(record)

    def finalize(self) -> None:
        self.finalize_calls += 1
        if self._finalize_error is not None:
            raise self._finalize_error

    def close(self) -> None:
        self.close_calls += 1


class FakeClock:
    """Manual monotonic clock advanced by the fake sleep function."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class MissingObjectError(Exception):
    """botocore-style error for an absent S3 object."""

    response = {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}}


class FakeS3Client:
    """In-memory subset of the boto3 S3 client API."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}

    def get_object(self, Bucket: str, Key: str) -> dict[str, object]:
        if (Bucket, Key) not in self.objects:
            raise MissingObjectError()
        return {"Body": BytesIO(self.objects[(Bucket, Key)])}

    def put_object(self, Bucket: str, Key: str, Body: bytes | str, **kwargs: object) -> dict[str, object]:
        self.objects[(Bucket, Key)] = Body.encode("utf-8") if isinstance(Body, str) else Body
        return {}

    def upload_fileobj(self, Fileobj: object, Bucket: str, Key: str, **kwargs: object) -> None:
        self.objects[(Bucket, Key)] = Fileobj.read()  # type: ignore[attr-defined]
