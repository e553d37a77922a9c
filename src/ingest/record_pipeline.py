"""Record processing pipeline.

Each record passes through an ordered list of processors and is then
fanned out to every sink. ``finalize`` commits all sinks once the run
has submitted its last record.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from core.errors import BulkFetchError, ConfigurationError, ProcessorError, SinkError
from core.logging_config import get_logger
from core.types import PipelineReport, Record

_LOGGER = get_logger(__name__)


class Processor(Protocol):
    """Per-record transformation applied before fan-out."""

    def process(self, record: Record) -> Record:
        """Return the transformed record or raise on failure."""


class Sink(Protocol):
    """Destination that durably consumes processed records."""

    name: str
    tolerate_errors: bool

    def process(self, record: Record) -> None:
        """Accept one record; may buffer instead of writing immediately."""

    def finalize(self) -> None:
        """Commit every accepted record and release resources."""

    def close(self) -> None:
        """Release resources without committing; safe to call after finalize."""


class RecordPipeline:
    """Ordered processors fanned out to independent sinks."""

    def __init__(
        self,
        processors: Sequence[Processor],
        sinks: Sequence[Sink],
        tolerate_sink_errors: bool = False,
    ) -> None:
        """Create a pipeline.

        Args:
            processors: Processors applied in order; may be empty.
            sinks: Output sinks; at least one is required.
            tolerate_sink_errors: Record failures of any sink as warnings
                instead of aborting. Sinks with ``tolerate_errors`` set
                opt in individually.

        Raises:
            ConfigurationError: If no sinks are given.
        """
        if not sinks:
            raise ConfigurationError(
                "Record pipeline needs at least one sink. "
                "Set an output prefix or enable datastore upload."
            )
        self._processors = tuple(processors)
        self._sinks = tuple(sinks)
        self._tolerate_sink_errors = tolerate_sink_errors
        self._warnings: list[str] = []
        self._records_processed = 0
        self._finalized = False

    @property
    def records_processed(self) -> int:
        return self._records_processed

    def process(self, resource_type: str, source_url: str, data: bytes) -> None:
        """Transform one record and hand it to every sink.

        Raises:
            ProcessorError: If any processor fails.
            SinkError: If a sink fails and errors are not tolerated.
        """
        if self._finalized:
            raise RuntimeError("Record pipeline already finalized; no more records accepted.")
        record = Record(resource_type=resource_type, source_url=source_url, data=data)
        for processor in self._processors:
            record = _apply_processor(processor, record)
        for sink in self._sinks:
            try:
                sink.process(record)
            except Exception as error:
                self._handle_sink_error(sink, "process", _as_sink_error(sink, "process", error))
        self._records_processed += 1

    def finalize(self) -> PipelineReport:
        """Finalize every sink, even after an earlier sink failed.

        Returns:
            Report with record count and tolerated failures.

        Raises:
            SinkError: Aggregated failure of one or more sinks, unless
                errors are tolerated.
        """
        if self._finalized:
            raise RuntimeError("Record pipeline finalize called more than once.")
        self._finalized = True
        failures: list[tuple[Sink, SinkError]] = []
        for sink in self._sinks:
            try:
                sink.finalize()
            except Exception as error:
                failures.append((sink, _as_sink_error(sink, "finalize", error)))
        fatal = [(sink, error) for sink, error in failures if not self._tolerates(sink)]
        if fatal:
            details = "; ".join(f"{sink.name}: {error}" for sink, error in fatal)
            raise SinkError(
                f"Failed to finalize {len(fatal)} sink(s): {details}",
                sink_names=tuple(sink.name for sink, _ in fatal),
            ) from fatal[0][1]
        for sink, error in failures:
            self._record_warning(sink.name, "finalize", error)
        return PipelineReport(
            records_processed=self._records_processed,
            warnings=tuple(self._warnings),
        )

    def close(self) -> None:
        """Release every sink without committing.

        Safe after ``finalize``. Close failures are logged so that one
        sink cannot keep the others from releasing their resources.
        """
        self._finalized = True
        for sink in self._sinks:
            try:
                sink.close()
            except Exception as error:
                _LOGGER.warning("sink_close_failed", sink=sink.name, error=str(error))

    def _handle_sink_error(self, sink: Sink, stage: str, error: SinkError) -> None:
        if not self._tolerates(sink):
            raise error
        self._record_warning(sink.name, stage, error)

    def _tolerates(self, sink: Sink) -> bool:
        return self._tolerate_sink_errors or sink.tolerate_errors

    def _record_warning(self, sink_name: str, stage: str, error: BulkFetchError) -> None:
        message = f"sink {sink_name} {stage} failed: {error}"
        self._warnings.append(message)
        _LOGGER.warning("sink_error_tolerated", sink=sink_name, stage=stage, error=str(error))


def _as_sink_error(sink: Sink, stage: str, error: Exception) -> SinkError:
    if isinstance(error, SinkError):
        return error
    wrapped = SinkError(
        f"Sink {sink.name} {stage} failed with {type(error).__name__}: {error}",
        sink_names=(sink.name,),
    )
    wrapped.__cause__ = error
    return wrapped


def _apply_processor(processor: Processor, record: Record) -> Record:
    try:
        return processor.process(record)
    except ProcessorError:
        raise
    except Exception as error:
        raise ProcessorError(
            f"Processor {type(processor).__name__} failed for {record.resource_type} "
            f"record from {record.source_url}: {error}"
        ) from error
