"""Export job client boundary.

This module defines the operations the ingest orchestrator consumes
from a bulk data export server, independent of the wire protocol.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Iterator, Protocol, Sequence

from core.types import JobStatus


class DownloadStream:
    """Closable iterator over the byte chunks of one result file."""

    def __init__(self, chunks: Iterable[bytes], close: Callable[[], None] | None = None) -> None:
        self._chunks = iter(chunks)
        self._close = close
        self._closed = False

    @classmethod
    def from_bytes(cls, payload: bytes, chunk_size: int = 8192) -> "DownloadStream":
        """Build a stream over an in-memory payload."""
        chunks = [payload[index : index + chunk_size] for index in range(0, len(payload), chunk_size)]
        return cls(chunks)

    def __iter__(self) -> Iterator[bytes]:
        return self._chunks

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            self._close()

    def __enter__(self) -> "DownloadStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ExportJobClient(Protocol):
    """Operations offered by a bulk data export server."""

    def authenticate(self) -> None:
        """Obtain a fresh access token, replacing the current session credential."""

    def start_export(
        self,
        resource_types: Sequence[str],
        since: datetime | None,
        export_group: str | None,
    ) -> str:
        """Kick off an export job and return its status URL."""

    def get_job_status(self, job_url: str) -> JobStatus:
        """Return the current status of an export job."""

    def download(self, url: str) -> DownloadStream:
        """Open a streaming download of one result file."""

    def close(self) -> None:
        """Release network resources."""
