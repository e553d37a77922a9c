"""YAML fetch configuration files.

A config file is a flat mapping whose keys are ``FetchConfig`` field
names. Values override environment defaults; CLI flags override both.
"""

from __future__ import annotations

from dataclasses import fields, replace
from pathlib import Path
from typing import Mapping, Sequence, cast

import yaml

from core.config import FetchConfig
from core.errors import ConfigurationError

_STRING_FIELDS = ("str", "str | None")


def load_config_file(config_path: str) -> dict[str, object]:
    """Load and type-check a YAML fetch configuration file.

    Args:
        config_path: File path to YAML config.

    Returns:
        Mapping of FetchConfig field names to values.

    Raises:
        ConfigurationError: If the file is missing, invalid, or has unknown keys.
    """
    payload = _load_yaml_payload(config_path)
    if not isinstance(payload, Mapping):
        raise ConfigurationError(
            f"Invalid config file {config_path}: expected a mapping, got {type(payload).__name__}."
        )
    field_types = {item.name: str(item.type) for item in fields(FetchConfig)}
    unknown_keys = sorted(str(key) for key in payload if key not in field_types)
    if unknown_keys:
        raise ConfigurationError(
            f"Config file {config_path} contains unknown fields: {', '.join(unknown_keys)}."
        )
    return {
        str(key): _coerce_value(str(key), field_types[str(key)], value)
        for key, value in payload.items()
    }


def apply_config_file(config: FetchConfig, config_path: str) -> FetchConfig:
    """Return a copy of ``config`` with values from a YAML file applied."""
    return replace(config, **load_config_file(config_path))


def _load_yaml_payload(config_path: str) -> object:
    config_file = Path(config_path).expanduser().resolve()
    if not config_file.exists():
        raise ConfigurationError(
            f"Config file does not exist at {config_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(config_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise ConfigurationError(
            f"Failed to read config file at {config_file}: {error}. Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise ConfigurationError(
            f"Failed to parse YAML config at {config_file}: {error}. Fix YAML syntax and retry."
        ) from error
    if payload is None:
        return {}
    return payload


def _coerce_value(field_name: str, field_type: str, value: object) -> object:
    if field_type in _STRING_FIELDS:
        if value is None and field_type == "str | None":
            return None
        if isinstance(value, str):
            return value
    elif field_type == "bool":
        if isinstance(value, bool):
            return value
    elif field_type == "int":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif field_type == "float":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif field_type == "tuple[str, ...]":
        if isinstance(value, str):
            return tuple(item.strip() for item in value.split(",") if item.strip())
        if isinstance(value, Sequence) and all(isinstance(item, str) for item in value):
            return tuple(value)
    raise ConfigurationError(
        f"Config field '{field_name}' must be of type {field_type}, got {type(value).__name__}."
    )
