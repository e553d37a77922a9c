"""S3 URI parsing helpers.

This module centralizes S3 URI parsing for checkpoint and sink layers.
It keeps URI validation behavior consistent across the codebase.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.constants import S3_URI_PREFIX
from core.errors import ConfigurationError


@dataclass(frozen=True)
class S3Location:
    """Parsed S3 location model."""

    bucket: str
    key: str


def is_s3_uri(uri: str) -> bool:
    """Return whether a path string addresses an S3 object."""
    return uri.startswith(S3_URI_PREFIX)


def parse_s3_uri(uri: str) -> S3Location:
    """Parse and validate an S3 object URI.

    Args:
        uri: URI in format ``s3://bucket/key``.

    Returns:
        Parsed bucket and key pair.

    Raises:
        ConfigurationError: If bucket or key is missing.
    """
    stripped_uri = uri.removeprefix(S3_URI_PREFIX)
    if "/" not in stripped_uri:
        _raise_uri_error(uri)
    bucket, key = stripped_uri.split("/", 1)
    if not bucket or not key:
        _raise_uri_error(uri)
    return S3Location(bucket=bucket, key=key)


def _raise_uri_error(uri: str) -> None:
    raise ConfigurationError(
        f"Invalid S3 URI '{uri}': expected s3://bucket/key. "
        "Provide both bucket and object key."
    )
