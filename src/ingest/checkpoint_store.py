"""Transaction time checkpoint persistence.

This module stores the watermark of the last successful fetch so the
next run only requests data newer than it. Stores are append-only
logs; the latest watermark is the last line.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from core.config import FetchConfig
from core.errors import CheckpointStoreError, InvalidWatermarkError
from core.s3_uri import is_s3_uri, parse_s3_uri
from core.timestamps import format_instant, parse_instant
from store.s3_client import create_s3_client, is_missing_object_error


class TransactionTimeStore(Protocol):
    """Load/store capability shared by all checkpoint backends."""

    def load(self) -> datetime | None:
        """Return the latest stored watermark, or None on a first run."""

    def store(self, transaction_time: datetime) -> None:
        """Persist a new watermark after a fully successful run."""


class InMemoryTransactionTimeStore:
    """Store seeded from an explicit since value, for single-run overrides."""

    def __init__(self, initial_value: str = "") -> None:
        self._value = parse_instant(initial_value) if initial_value.strip() else None

    def load(self) -> datetime | None:
        return self._value

    def store(self, transaction_time: datetime) -> None:
        self._value = transaction_time


class LocalFileTransactionTimeStore:
    """Filesystem-backed append-only transaction time log."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> datetime | None:
        """Read the last line of the log.

        Raises:
            InvalidWatermarkError: If the last entry is not a valid instant.
            CheckpointStoreError: If the file cannot be read.
        """
        if not self._path.exists():
            return None
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as error:
            raise CheckpointStoreError(
                f"Failed to read since file at {self._path}: {error}. Check file permissions."
            ) from error
        except UnicodeDecodeError as error:
            raise InvalidWatermarkError(
                f"Since file at {self._path} is not valid UTF-8: {error}. "
                "Fix or remove the file, or pass an explicit since timestamp."
            ) from error
        return _parse_last_entry(text)

    def store(self, transaction_time: datetime) -> None:
        """Append a watermark line to the log.

        Raises:
            CheckpointStoreError: If the file cannot be written.
        """
        line = format_instant(transaction_time) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as since_file:
                since_file.write(line)
        except OSError as error:
            raise CheckpointStoreError(
                f"Failed to append transaction time to {self._path}: {error}. "
                "All output was committed; rerunning the fetch is safe."
            ) from error


class S3TransactionTimeStore:
    """S3-object-backed transaction time log with append semantics."""

    def __init__(self, uri: str, s3_client: Any) -> None:
        location = parse_s3_uri(uri)
        self._uri = uri
        self._bucket = location.bucket
        self._key = location.key
        self._s3 = s3_client

    def load(self) -> datetime | None:
        """Read the last line of the S3 log object.

        Raises:
            InvalidWatermarkError: If the last entry is not a valid instant.
            CheckpointStoreError: If the object cannot be read.
        """
        return _parse_last_entry(self._read_body())

    def store(self, transaction_time: datetime) -> None:
        """Rewrite the log object with one more watermark line.

        Raises:
            CheckpointStoreError: If the object cannot be written.
        """
        body = self._read_body()
        if body and not body.endswith("\n"):
            body += "\n"
        body += format_instant(transaction_time) + "\n"
        try:
            self._s3.put_object(Bucket=self._bucket, Key=self._key, Body=body.encode("utf-8"))
        except Exception as error:
            raise CheckpointStoreError(
                f"Failed to write transaction time to {self._uri}: {error}. "
                "All output was committed; rerunning the fetch is safe."
            ) from error

    def _read_body(self) -> str:
        try:
            response = self._s3.get_object(Bucket=self._bucket, Key=self._key)
        except Exception as error:
            if is_missing_object_error(error):
                return ""
            raise CheckpointStoreError(
                f"Failed to read since file at {self._uri}: {error}. Check AWS credentials."
            ) from error
        try:
            return response["Body"].read().decode("utf-8")
        except UnicodeDecodeError as error:
            raise InvalidWatermarkError(
                f"Since file at {self._uri} is not valid UTF-8: {error}. "
                "Fix or remove the object, or pass an explicit since timestamp."
            ) from error


def build_transaction_time_store(config: FetchConfig) -> TransactionTimeStore:
    """Select the checkpoint backend for a validated config.

    Args:
        config: Fetch configuration; at most one of since/since_file is set.

    Returns:
        In-memory store for an explicit since value or no checkpoint,
        S3 store for ``s3://`` since files, local store otherwise.
    """
    if config.since:
        return InMemoryTransactionTimeStore(config.since)
    if config.since_file and is_s3_uri(config.since_file):
        return S3TransactionTimeStore(config.since_file, create_s3_client(config))
    if config.since_file:
        return LocalFileTransactionTimeStore(Path(config.since_file).expanduser())
    return InMemoryTransactionTimeStore("")


def _parse_last_entry(text: str) -> datetime | None:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return None
    return parse_instant(lines[-1])
