"""NDJSON record splitting for downloaded result files.

This module turns a stream of byte chunks into newline-delimited
records while enforcing a maximum record size.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from core.constants import INITIAL_BUFFER_SIZE_BYTES, MAX_RECORD_SIZE_BYTES
from core.errors import RecordParseError


def iter_ndjson_records(
    chunks: Iterable[bytes],
    source_url: str,
    max_record_size: int = MAX_RECORD_SIZE_BYTES,
    initial_buffer_size: int = INITIAL_BUFFER_SIZE_BYTES,
) -> Iterator[bytes]:
    """Split streamed bytes into NDJSON lines.

    Lines end with ``\\n`` or ``\\r\\n``; a final unterminated line is
    still yielded. Blank lines are skipped.

    Args:
        chunks: Byte chunks of one result file.
        source_url: Result file URL for error context.
        max_record_size: Largest allowed line, excluding the line ending.
        initial_buffer_size: Scan granularity in bytes. Incoming chunks are
            re-sliced to this size so an oversize line is detected within
            one slice of ``max_record_size``, however large the network
            chunks are.

    Yields:
        Record bytes without line endings.

    Raises:
        RecordParseError: If a line exceeds ``max_record_size``.
    """
    buffer = bytearray()
    line_number = 0
    for chunk in _resize_chunks(chunks, initial_buffer_size):
        buffer.extend(chunk)
        while True:
            newline_index = buffer.find(b"\n")
            if newline_index < 0:
                break
            line_number += 1
            line = _strip_carriage_return(bytes(buffer[:newline_index]))
            del buffer[: newline_index + 1]
            _check_size(line, source_url, line_number, max_record_size)
            if line.strip():
                yield line
        if len(buffer) > max_record_size + 1:
            _raise_oversize(source_url, line_number + 1, max_record_size)
    if buffer:
        line = _strip_carriage_return(bytes(buffer))
        _check_size(line, source_url, line_number + 1, max_record_size)
        if line.strip():
            yield line


def _resize_chunks(chunks: Iterable[bytes], size: int) -> Iterator[bytes]:
    for chunk in chunks:
        for offset in range(0, len(chunk), size):
            yield chunk[offset : offset + size]


def _strip_carriage_return(line: bytes) -> bytes:
    return line[:-1] if line.endswith(b"\r") else line


def _check_size(line: bytes, source_url: str, line_number: int, max_record_size: int) -> None:
    if len(line) > max_record_size:
        _raise_oversize(source_url, line_number, max_record_size)


def _raise_oversize(source_url: str, line_number: int, max_record_size: int) -> None:
    raise RecordParseError(
        f"NDJSON record at {source_url}:{line_number} exceeds the maximum record size "
        f"of {max_record_size} bytes. Raise max_record_size or inspect the result file."
    )
