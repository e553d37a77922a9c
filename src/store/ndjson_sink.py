"""Local NDJSON file sink.

Records are appended to one file per resource type, named
``{file_prefix}_{ResourceType}.ndjson`` under the output directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import IO

from core.constants import NDJSON_FILE_SUFFIX
from core.errors import SinkError
from core.types import Record


class NDJSONSink:
    """Write records to local NDJSON files."""

    name = "ndjson"
    tolerate_errors = False

    def __init__(self, directory: Path, file_prefix: str) -> None:
        """Create the sink and its output directory.

        Raises:
            SinkError: If the directory cannot be created.
        """
        self._directory = directory
        self._file_prefix = file_prefix
        self._files: dict[str, IO[bytes]] = {}
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise SinkError(
                f"Failed to create NDJSON output directory {directory}: {error}.",
                sink_names=(self.name,),
            ) from error

    @classmethod
    def from_output_prefix(cls, output_prefix: str) -> "NDJSONSink":
        """Build a sink from a ``directory/prefix`` output prefix."""
        prefix_path = Path(output_prefix).expanduser()
        if output_prefix.endswith(("/", "\\")):
            return cls(prefix_path, "")
        return cls(prefix_path.parent, prefix_path.name)

    def process(self, record: Record) -> None:
        output = self._file_for(record.resource_type)
        try:
            output.write(record.data + b"\n")
        except OSError as error:
            raise SinkError(
                f"Failed to write {record.resource_type} record to {output.name}: {error}.",
                sink_names=(self.name,),
            ) from error

    def finalize(self) -> None:
        """Flush and close every open file."""
        failures: list[str] = []
        for output in self._files.values():
            try:
                output.flush()
                output.close()
            except OSError as error:
                failures.append(f"{output.name}: {error}")
        self._files.clear()
        if failures:
            raise SinkError(
                f"Failed to close NDJSON outputs: {'; '.join(failures)}",
                sink_names=(self.name,),
            )

    def close(self) -> None:
        """Close any output files that are still open."""
        files, self._files = list(self._files.values()), {}
        for output in files:
            output.close()

    def path_for(self, resource_type: str) -> Path:
        """Return the output file path for a resource type."""
        if self._file_prefix:
            file_name = f"{self._file_prefix}_{resource_type}{NDJSON_FILE_SUFFIX}"
        else:
            file_name = f"{resource_type}{NDJSON_FILE_SUFFIX}"
        return self._directory / file_name

    def _file_for(self, resource_type: str) -> IO[bytes]:
        output = self._files.get(resource_type)
        if output is not None:
            return output
        path = self.path_for(resource_type)
        try:
            output = path.open("wb")
        except OSError as error:
            raise SinkError(
                f"Failed to open NDJSON output {path}: {error}.", sink_names=(self.name,)
            ) from error
        self._files[resource_type] = output
        return output
