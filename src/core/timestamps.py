"""FHIR instant parsing and formatting.

Transaction times travel between the export server, the checkpoint
stores, and export requests as FHIR instants with millisecond precision
and an explicit UTC offset, e.g. ``2021-05-01T00:00:00.000+00:00``.
"""

from __future__ import annotations

from datetime import datetime

from core.errors import InvalidWatermarkError


def parse_instant(raw_value: str) -> datetime:
    """Parse a FHIR instant into a timezone-aware datetime.

    Args:
        raw_value: Instant text; a trailing ``Z`` is accepted as UTC.

    Returns:
        Timezone-aware datetime.

    Raises:
        InvalidWatermarkError: If the value is not an instant with an offset.
    """
    normalized_value = raw_value.strip()
    if normalized_value.endswith("Z"):
        normalized_value = normalized_value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(normalized_value)
    except ValueError as error:
        raise InvalidWatermarkError(
            f"Invalid since timestamp '{raw_value}': {error}. "
            "Use a FHIR instant like 2021-05-01T00:00:00.000+00:00."
        ) from error
    if parsed.tzinfo is None or "T" not in normalized_value:
        raise InvalidWatermarkError(
            f"Invalid since timestamp '{raw_value}': a full date, time and UTC offset are required. "
            "Use a FHIR instant like 2021-05-01T00:00:00.000+00:00."
        )
    return parsed


def format_instant(value: datetime) -> str:
    """Format a timezone-aware datetime as a FHIR instant.

    Args:
        value: Datetime to render.

    Returns:
        Instant string with millisecond precision.

    Raises:
        InvalidWatermarkError: If the datetime is naive.
    """
    if value.tzinfo is None:
        raise InvalidWatermarkError(
            f"Cannot format naive datetime {value!r} as an instant. Attach a timezone first."
        )
    return value.isoformat(timespec="milliseconds")
