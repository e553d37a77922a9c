"""Bulk fetch run orchestration.

This module coordinates one incremental fetch: configuration checks,
export job start and polling, result file download and record
processing, sink finalization, and the transaction time checkpoint.
The checkpoint is written last, so any earlier failure leads the next
run to refetch the same window instead of skipping data.
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence

from core.config import FetchConfig
from core.errors import (
    BulkFetchError,
    ConfigurationError,
    JobFailedError,
    JobStartError,
    JobTimeoutError,
)
from core.logging_config import get_logger
from core.timestamps import format_instant
from core.transaction_time import TransactionTime
from core.types import FetchRunResult, JobStatus, RunState
from export_api.auth import ClientCredentialsAuthenticator
from export_api.client import ExportJobClient
from export_api.http_client import BulkDataClient
from ingest.checkpoint_store import TransactionTimeStore, build_transaction_time_store
from ingest.input_reader import iter_ndjson_records
from ingest.job_monitor import monitor_job_status
from ingest.record_pipeline import Processor, RecordPipeline, Sink
from ingest.resilient_fetch import fetch_result_file
from store.datastore_api import DatastoreApi
from store.datastore_sink import DatastoreSink, default_batch_size
from store.ndjson_sink import NDJSONSink
from store.s3_client import create_s3_client
from store.staged_import_sink import StagedImportSink
from transforms.rectify import RectifyProcessor

_LOGGER = get_logger(__name__)

ALLOWED_RUN_TRANSITIONS: dict[RunState, tuple[RunState, ...]] = {
    "configuring": ("job_resolving", "failed"),
    "job_resolving": ("job_polling", "failed"),
    "job_polling": ("downloading", "failed"),
    "downloading": ("finalizing", "failed"),
    "finalizing": ("checkpoint_committing", "failed"),
    "checkpoint_committing": ("done", "failed"),
    "done": (),
    "failed": (),
}


class BulkFetchRunner:
    """Single-use runner for one bulk fetch."""

    def __init__(
        self,
        config: FetchConfig,
        client: ExportJobClient | None = None,
        store: TransactionTimeStore | None = None,
        sinks: Sequence[Sink] | None = None,
        processors: Sequence[Processor] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create a runner.

        Args:
            config: Fetch configuration, validated when the run starts.
            client: Export client; built from config when omitted.
            store: Checkpoint store; selected from config when omitted.
            sinks: Output sinks; built from config when omitted.
            processors: Record processors; built from config when omitted.
            sleep: Sleep function used while polling and retrying.
            clock: Monotonic clock used for the job status deadline.
        """
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._store = store
        self._sinks = sinks
        self._processors = processors
        self._sleep = sleep
        self._clock = clock
        self._state: RunState = "configuring"
        self._transaction_time = TransactionTime()

    @property
    def state(self) -> RunState:
        return self._state

    def run(self) -> FetchRunResult:
        """Execute the fetch and commit the new transaction time.

        Returns:
            Summary of the completed run.

        Raises:
            BulkFetchError: Any fatal failure; the checkpoint is unchanged.
                Unexpected exceptions also move the runner to ``failed``
                before propagating.
        """
        if self._state != "configuring":
            raise RuntimeError(f"BulkFetchRunner is single-use; current state is {self._state}.")
        try:
            return self._run()
        except Exception as error:
            self._transition("failed", reason=str(error) or type(error).__name__)
            raise
        finally:
            if self._owns_client and self._client is not None:
                self._client.close()

    def _run(self) -> FetchRunResult:
        store = self._configure()
        self._transition("job_resolving")
        job_url = self._resolve_job(store)
        self._transition("job_polling")
        job_status = self._poll_job(job_url)
        self._transition("downloading")
        pipeline = self._build_pipeline()
        try:
            files_processed = self._download_results(job_status, pipeline)
            self._transition("finalizing")
            report = pipeline.finalize()
        finally:
            pipeline.close()
        self._transition("checkpoint_committing")
        transaction_time = self._transaction_time.get()
        store.store(transaction_time)
        self._transition("done")
        _LOGGER.info(
            "bulk_fetch_complete",
            job_url=job_url,
            transaction_time=format_instant(transaction_time),
            files_processed=files_processed,
            records_processed=report.records_processed,
            warnings=len(report.warnings),
        )
        return FetchRunResult(
            job_url=job_url,
            transaction_time=transaction_time,
            files_processed=files_processed,
            records_processed=report.records_processed,
            warnings=report.warnings,
        )

    def _configure(self) -> TransactionTimeStore:
        self._config.validate()
        if self._sinks is None and not (self._config.output_prefix or self._config.enable_datastore):
            _LOGGER.warning(
                "no_output_configured",
                message="output_prefix is not set and neither is enable_datastore.",
            )
            raise ConfigurationError(
                "The fetch would not produce any output. Set output_prefix or enable datastore upload."
            )
        store = self._store or build_transaction_time_store(self._config)
        if self._client is None:
            self._client = _build_export_client(self._config)
        return store

    def _resolve_job(self, store: TransactionTimeStore) -> str:
        since = store.load()
        if self._config.pending_job_url:
            _LOGGER.info("export_job_attached", job_url=self._config.pending_job_url)
            return self._config.pending_job_url
        try:
            job_url = self._export_client.start_export(
                self._config.resource_types, since, self._config.export_group
            )
        except BulkFetchError as error:
            raise JobStartError(
                f"Unable to start bulk data export: {error}. "
                "Check the server URL and credentials, then retry."
            ) from error
        _LOGGER.info(
            "export_job_started",
            job_url=job_url,
            since=format_instant(since) if since else None,
            resource_types=list(self._config.resource_types),
        )
        return job_url

    def _poll_job(self, job_url: str) -> JobStatus:
        job_status = JobStatus(job_url=job_url, state="pending")
        events = monitor_job_status(
            self._export_client,
            job_url,
            self._config.job_status_period,
            self._config.job_status_timeout,
            sleep=self._sleep,
            clock=self._clock,
        )
        for event in events:
            job_status = event.status
            if event.error is not None:
                _LOGGER.error("export_job_status_error", job_url=job_url, error=str(event.error))
            if job_status.state in ("pending", "in_progress"):
                _LOGGER.info(
                    "export_job_pending",
                    job_url=job_url,
                    progress=job_status.percent_complete
                    if job_status.percent_complete is not None
                    else "unknown",
                )
        if job_status.state == "failed":
            raise JobFailedError(
                f"Export job {job_url} failed: {'; '.join(job_status.errors) or 'no details'}."
            )
        if not job_status.is_complete or job_status.transaction_time is None:
            raise JobTimeoutError(
                f"Export job {job_url} did not finish before the timeout of "
                f"{self._config.job_status_timeout} seconds. Rerun with pending_job_url to keep waiting."
            )
        self._transaction_time.set(job_status.transaction_time)
        _LOGGER.info(
            "export_job_completed",
            job_url=job_url,
            transaction_time=format_instant(job_status.transaction_time),
        )
        return job_status

    def _build_pipeline(self) -> RecordPipeline:
        processors = (
            self._processors
            if self._processors is not None
            else _build_processors(self._config)
        )
        sinks = (
            self._sinks
            if self._sinks is not None
            else _build_sinks(self._config, self._transaction_time)
        )
        return RecordPipeline(processors, sinks)

    def _download_results(self, job_status: JobStatus, pipeline: RecordPipeline) -> int:
        files_processed = 0
        for resource_type in sorted(job_status.result_urls):
            for url in job_status.result_urls[resource_type]:
                records_before = pipeline.records_processed
                with fetch_result_file(self._export_client, url, sleep=self._sleep) as stream:
                    records = iter_ndjson_records(
                        stream,
                        url,
                        max_record_size=self._config.max_record_size,
                        initial_buffer_size=self._config.initial_buffer_size,
                    )
                    for data in records:
                        pipeline.process(resource_type, url, data)
                files_processed += 1
                _LOGGER.info(
                    "result_file_processed",
                    resource_type=resource_type,
                    url=url,
                    records=pipeline.records_processed - records_before,
                )
        return files_processed

    @property
    def _export_client(self) -> ExportJobClient:
        if self._client is None:
            raise RuntimeError("Export client is not initialized before job resolution.")
        return self._client

    def _transition(self, next_state: RunState, reason: str | None = None) -> None:
        validate_run_transition(self._state, next_state)
        _LOGGER.info(
            "run_state_transition",
            from_state=self._state,
            to_state=next_state,
            reason=reason,
        )
        self._state = next_state


def run_bulk_fetch(config: FetchConfig, **runner_kwargs: object) -> FetchRunResult:
    """Run one bulk fetch.

    Args:
        config: Fetch configuration.
        **runner_kwargs: Optional collaborator overrides for ``BulkFetchRunner``.

    Returns:
        Summary of the completed run.

    Raises:
        BulkFetchError: Any fatal failure; the checkpoint is unchanged.
    """
    runner = BulkFetchRunner(config, **runner_kwargs)  # type: ignore[arg-type]
    return runner.run()


def load_latest_transaction_time(config: FetchConfig) -> datetime | None:
    """Return the latest stored transaction time for a config's since source."""
    if config.since and config.since_file:
        raise ConfigurationError("Only one of since or since_file may be set (cannot set both).")
    return build_transaction_time_store(config).load()


def validate_run_transition(current: RunState, next_state: RunState) -> None:
    """Validate one run state transition against allowed edges."""
    allowed_states = ALLOWED_RUN_TRANSITIONS[current]
    if next_state not in allowed_states:
        raise RuntimeError(
            f"Invalid bulk fetch state transition {current!r} -> {next_state!r}. "
            f"Allowed: {', '.join(allowed_states) or 'none'}."
        )


def _build_export_client(config: FetchConfig) -> BulkDataClient:
    authenticator = ClientCredentialsAuthenticator(
        config.client_id,
        config.client_secret,
        config.auth_url,
        scopes=config.auth_scopes,
    )
    return BulkDataClient(config.server_base_url, authenticator)


def _build_processors(config: FetchConfig) -> list[Processor]:
    processors: list[Processor] = []
    if config.rectify:
        processors.append(RectifyProcessor())
    return processors


def _build_sinks(config: FetchConfig, transaction_time: TransactionTime) -> list[Sink]:
    sinks: list[Sink] = []
    if config.output_prefix:
        sinks.append(NDJSONSink.from_output_prefix(config.output_prefix))
    if config.enable_datastore and config.datastore_url:
        _LOGGER.info("datastore_upload_enabled", datastore_url=config.datastore_url)
        api = DatastoreApi(config.datastore_url, token=config.datastore_token)
        if config.enable_staged_import and config.staged_import_bucket:
            sinks.append(
                StagedImportSink(
                    api,
                    create_s3_client(config),
                    config.staged_import_bucket,
                    transaction_time,
                    tolerate_errors=config.no_fail_on_upload_errors,
                )
            )
        else:
            sinks.append(
                DatastoreSink(
                    api,
                    max_workers=config.max_upload_workers,
                    batch_size=default_batch_size(
                        config.enable_batch_upload, config.batch_upload_size
                    ),
                    error_file_dir=Path(config.upload_error_file_dir).expanduser()
                    if config.upload_error_file_dir
                    else None,
                    tolerate_errors=config.no_fail_on_upload_errors,
                )
            )
    return sinks
