"""Unit tests for YAML fetch configuration files."""

from __future__ import annotations

import pytest

from core.config import FetchConfig
from core.config_file import apply_config_file, load_config_file
from core.errors import ConfigurationError


def test_load_config_file_coerces_resource_types(tmp_path) -> None:
    """Comma-separated resource types should load as a tuple."""
    config_path = tmp_path / "fetch.yaml"
    config_path.write_text("resource_types: Patient, Coverage\nrectify: true\n", encoding="utf-8")

    values = load_config_file(str(config_path))

    assert values == {"resource_types": ("Patient", "Coverage"), "rectify": True}


def test_apply_config_file_overrides_defaults(tmp_path) -> None:
    """File values should replace fields on the base config."""
    config_path = tmp_path / "fetch.yaml"
    config_path.write_text(
        "output_prefix: out/run\njob_status_timeout: 30\nmax_upload_workers: 4\n",
        encoding="utf-8",
    )

    config = apply_config_file(FetchConfig(client_id="id"), str(config_path))

    assert (config.client_id, config.output_prefix, config.job_status_timeout, config.max_upload_workers) == (
        "id",
        "out/run",
        30.0,
        4,
    )


def test_load_config_file_rejects_unknown_keys(tmp_path) -> None:
    """Unknown keys should fail instead of being ignored."""
    config_path = tmp_path / "fetch.yaml"
    config_path.write_text("output_prefx: out/run\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="output_prefx"):
        load_config_file(str(config_path))

    assert config_path.exists()


def test_load_config_file_rejects_wrong_type(tmp_path) -> None:
    """A string where an integer is expected should fail."""
    config_path = tmp_path / "fetch.yaml"
    config_path.write_text("max_upload_workers: many\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="max_upload_workers"):
        load_config_file(str(config_path))

    assert config_path.exists()


def test_load_config_file_requires_existing_file(tmp_path) -> None:
    """A missing config file should raise a configuration error."""
    missing_path = tmp_path / "missing.yaml"

    with pytest.raises(ConfigurationError):
        load_config_file(str(missing_path))

    assert not missing_path.exists()
