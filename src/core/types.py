"""Shared typed models.

This module defines immutable data models used by the export client,
the ingest orchestrator, and the sinks to keep interfaces explicit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Mapping

JobState = Literal["pending", "in_progress", "complete", "failed"]


@dataclass(frozen=True)
class JobStatus:
    """Snapshot of one bulk export job.

    Attributes:
        job_url: Status URL identifying the job.
        state: Server-reported job state.
        percent_complete: Progress percentage, or None when unknown.
        result_urls: Result file URLs grouped by resource type.
        transaction_time: Data snapshot boundary, set once complete.
        errors: Error messages reported by the server for this job.
    """

    job_url: str
    state: JobState
    percent_complete: int | None = None
    result_urls: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    transaction_time: datetime | None = None
    errors: tuple[str, ...] = ()

    @property
    def is_complete(self) -> bool:
        """Return whether the job finished and results are downloadable."""
        return self.state == "complete"


@dataclass(frozen=True)
class MonitorEvent:
    """One job status polling observation.

    Attributes:
        status: Latest known job status.
        error: Error raised by this poll, if any.
    """

    status: JobStatus
    error: Exception | None = None


@dataclass(frozen=True)
class Record:
    """One NDJSON line tagged with its origin.

    Attributes:
        resource_type: Export resource type, e.g. ``Patient``.
        source_url: Result file URL the line was read from.
        data: Raw line bytes without the trailing newline.
    """

    resource_type: str
    source_url: str
    data: bytes


@dataclass(frozen=True)
class PipelineReport:
    """Outcome of a finalized record pipeline.

    Attributes:
        records_processed: Records accepted by the pipeline.
        warnings: Tolerated sink failures.
    """

    records_processed: int
    warnings: tuple[str, ...] = ()


RunState = Literal[
    "configuring",
    "job_resolving",
    "job_polling",
    "downloading",
    "finalizing",
    "checkpoint_committing",
    "done",
    "failed",
]


@dataclass(frozen=True)
class FetchRunResult:
    """Summary of one successful bulk fetch run.

    Attributes:
        job_url: Export job that produced the data.
        transaction_time: Watermark committed to the checkpoint store.
        files_processed: Result files downloaded and fed to the pipeline.
        records_processed: Records submitted to the pipeline.
        warnings: Tolerated sink failures.
    """

    job_url: str
    transaction_time: datetime
    files_processed: int
    records_processed: int
    warnings: tuple[str, ...] = ()
