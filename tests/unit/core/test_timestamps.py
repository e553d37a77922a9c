"""Unit tests for FHIR instant handling."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.errors import InvalidWatermarkError
from core.timestamps import format_instant, parse_instant


def test_parse_instant_accepts_z_suffix() -> None:
    """A trailing Z should parse as UTC."""
    parsed = parse_instant("2021-05-01T00:00:00Z")

    assert parsed == datetime(2021, 5, 1, tzinfo=timezone.utc)


def test_format_instant_uses_milliseconds() -> None:
    """Formatting should keep millisecond precision and the offset."""
    value = datetime(2021, 5, 1, 12, 30, 0, 250000, tzinfo=timezone(timedelta(hours=-5)))

    rendered = format_instant(value)

    assert rendered == "2021-05-01T12:30:00.250-05:00"


def test_parse_instant_rejects_date_only() -> None:
    """A bare date is not an instant."""
    with pytest.raises(InvalidWatermarkError):
        parse_instant("2021-05-01")

    assert True


def test_parse_instant_rejects_missing_offset() -> None:
    """Instants without a UTC offset should be rejected."""
    with pytest.raises(InvalidWatermarkError):
        parse_instant("2021-05-01T00:00:00.000")

    assert True


def test_format_instant_rejects_naive_datetime() -> None:
    """Naive datetimes cannot be rendered as instants."""
    with pytest.raises(InvalidWatermarkError):
        format_instant(datetime(2021, 5, 1))

    assert True
