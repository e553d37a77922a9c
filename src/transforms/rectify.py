"""Record rectification processor.

Export servers sometimes emit resources that a strict datastore will
reject. This processor applies small structural fixes so records can be
uploaded: it fills a missing ``resourceType`` and drops top-level
``null`` fields.
"""

from __future__ import annotations

import json
from dataclasses import replace

from core.errors import ProcessorError
from core.types import Record


class RectifyProcessor:
    """Normalize one NDJSON resource for datastore upload."""

    def process(self, record: Record) -> Record:
        """Return a rectified copy of the record.

        Raises:
            ProcessorError: If the record is not a JSON object.
        """
        payload = _parse_resource(record)
        if not payload.get("resourceType"):
            payload["resourceType"] = record.resource_type
        rectified = {key: value for key, value in payload.items() if value is not None}
        data = json.dumps(rectified, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return replace(record, data=data)


def _parse_resource(record: Record) -> dict[str, object]:
    try:
        payload = json.loads(record.data)
    except (json.JSONDecodeError, UnicodeDecodeError) as error:
        raise ProcessorError(
            f"Failed to parse {record.resource_type} record from {record.source_url}: {error}. "
            "Disable rectify or inspect the result file."
        ) from error
    if not isinstance(payload, dict):
        raise ProcessorError(
            f"Invalid {record.resource_type} record from {record.source_url}: expected JSON object."
        )
    return payload
