"""S3 client helpers.

This module encapsulates boto3 client creation and the missing-object
check shared by the S3 checkpoint store and the staged import sink.
"""

from __future__ import annotations

from typing import Any

from core.config import FetchConfig
from core.errors import DependencyError


def create_s3_client(config: FetchConfig) -> Any:
    """Create boto3 S3 client.

    Args:
        config: Runtime config with optional session settings.

    Returns:
        Boto3 S3 client.

    Raises:
        DependencyError: If boto3 is missing.
    """
    try:
        import boto3
    except ImportError as error:
        raise DependencyError(
            "S3 support requires boto3, but it is not installed. "
            "Install boto3 to use s3:// since files or staged import."
        ) from error
    session_kwargs: dict[str, str] = {}
    if config.s3_profile:
        session_kwargs["profile_name"] = config.s3_profile
    if config.s3_region:
        session_kwargs["region_name"] = config.s3_region
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")


def is_missing_object_error(error: Exception) -> bool:
    """Return whether a botocore error means the object does not exist."""
    response = getattr(error, "response", None)
    if not isinstance(response, dict):
        return False
    code = str(response.get("Error", {}).get("Code", ""))
    return code in {"NoSuchKey", "404", "NotFound"}
