"""Unit tests for core config parsing and validation."""

from __future__ import annotations

import os
from dataclasses import replace

import pytest

from core.config import FetchConfig
from core.errors import ConfigurationError


def _valid_config() -> FetchConfig:
    return FetchConfig(client_id="id", client_secret="secret", output_prefix="out/run")


def test_from_env_reads_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve credentials from environment."""
    monkeypatch.setenv("BULKFETCH_CLIENT_ID", "env-id")
    monkeypatch.setenv("BULKFETCH_CLIENT_SECRET", "env-secret")

    config = FetchConfig.from_env()

    assert (config.client_id, config.client_secret) == ("env-id", "env-secret")


def test_from_env_raises_for_invalid_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for a non-numeric job status timeout."""
    monkeypatch.setenv("BULKFETCH_JOB_STATUS_TIMEOUT", "soon")

    with pytest.raises(ConfigurationError):
        FetchConfig.from_env()

    assert os.getenv("BULKFETCH_JOB_STATUS_TIMEOUT") == "soon"


def test_validate_accepts_minimal_config() -> None:
    """Credentials plus an output prefix should be a valid config."""
    config = _valid_config()

    config.validate()

    assert config.output_prefix == "out/run"


def test_validate_rejects_missing_secret() -> None:
    """An empty client secret should be rejected."""
    config = replace(_valid_config(), client_secret="")

    with pytest.raises(ConfigurationError, match="client_secret"):
        config.validate()

    assert config.client_id == "id"


def test_validate_requires_datastore_url() -> None:
    """Datastore upload without a URL should be rejected."""
    config = replace(_valid_config(), enable_datastore=True, rectify=True)

    with pytest.raises(ConfigurationError, match="datastore_url"):
        config.validate()

    assert config.datastore_url is None


def test_validate_requires_rectify_for_datastore() -> None:
    """Datastore upload should require rectification."""
    config = replace(_valid_config(), enable_datastore=True, datastore_url="https://ds.test/fhir")

    with pytest.raises(ConfigurationError, match="rectify"):
        config.validate()

    assert config.rectify is False


def test_validate_requires_datastore_for_staged_import() -> None:
    """Staged import without datastore upload should be rejected."""
    config = replace(_valid_config(), enable_staged_import=True, staged_import_bucket="bucket")

    with pytest.raises(ConfigurationError, match="enable_datastore"):
        config.validate()

    assert config.enable_datastore is False


def test_validate_rejects_since_and_since_file() -> None:
    """Explicit since and since file should be mutually exclusive."""
    config = replace(
        _valid_config(),
        since="2021-05-01T00:00:00.000+00:00",
        since_file="since.txt",
    )

    with pytest.raises(ConfigurationError, match="cannot set both"):
        config.validate()

    assert config.since_file == "since.txt"


def test_validate_rejects_buffer_larger_than_record_limit() -> None:
    """The read buffer should never exceed the maximum record size."""
    config = replace(_valid_config(), max_record_size=10, initial_buffer_size=20)

    with pytest.raises(ConfigurationError, match="initial_buffer_size"):
        config.validate()

    assert config.max_record_size == 10
