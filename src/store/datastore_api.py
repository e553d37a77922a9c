"""Datastore REST API calls.

This module wraps the handful of FHIR-style REST interactions the
datastore sinks need: resource updates, batch bundles, and bulk import
operations.
"""

from __future__ import annotations

import json
from typing import Sequence

import httpx

from core.constants import FHIR_JSON_CONTENT_TYPE, HTTP_TIMEOUT_SECONDS
from core.errors import SinkError


class DatastoreApi:
    """Thin httpx client for one datastore base URL."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        headers = {"Content-Type": FHIR_JSON_CONTENT_TYPE, "Accept": FHIR_JSON_CONTENT_TYPE}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._headers = headers
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(HTTP_TIMEOUT_SECONDS))

    def put_resource(self, resource_type: str, resource_id: str, body: bytes) -> None:
        """Create or update one resource.

        Raises:
            SinkError: If the datastore rejects the resource.
        """
        url = f"{self._base_url}/{resource_type}/{resource_id}"
        response = self._request("PUT", url, content=body)
        if response.status_code >= 300:
            raise SinkError(
                f"Datastore rejected {resource_type}/{resource_id}: "
                f"HTTP {response.status_code} {response.text[:500]}"
            )

    def execute_batch(self, entries: Sequence[tuple[str, str, bytes]]) -> list[str | None]:
        """Upload resources in one batch bundle.

        Args:
            entries: ``(resource_type, resource_id, body)`` triples.

        Returns:
            One error message per entry, or None where the entry succeeded.

        Raises:
            SinkError: If the whole bundle is rejected.
        """
        bundle = {
            "resourceType": "Bundle",
            "type": "batch",
            "entry": [
                {
                    "resource": json.loads(body),
                    "request": {"method": "PUT", "url": f"{resource_type}/{resource_id}"},
                }
                for resource_type, resource_id, body in entries
            ],
        }
        response = self._request("POST", self._base_url, content=json.dumps(bundle).encode("utf-8"))
        if response.status_code >= 300:
            raise SinkError(
                f"Datastore rejected batch bundle: HTTP {response.status_code} {response.text[:500]}"
            )
        return _entry_errors(response, len(entries))

    def start_import(self, sources: Sequence[tuple[str, str]]) -> str:
        """Trigger a bulk import of staged NDJSON files.

        Args:
            sources: ``(resource_type, object_uri)`` pairs.

        Returns:
            Import operation status URL.

        Raises:
            SinkError: If the import cannot be started.
        """
        parameters = {
            "resourceType": "Parameters",
            "parameter": [
                {"name": "inputFormat", "valueString": "application/fhir+ndjson"},
                *[
                    {
                        "name": "input",
                        "part": [
                            {"name": "type", "valueString": resource_type},
                            {"name": "url", "valueUrl": uri},
                        ],
                    }
                    for resource_type, uri in sources
                ],
            ],
        }
        url = f"{self._base_url}/$import"
        response = self._request(
            "POST",
            url,
            content=json.dumps(parameters).encode("utf-8"),
            extra_headers={"Prefer": "respond-async"},
        )
        operation_url = response.headers.get("Content-Location")
        if response.status_code >= 300 or not operation_url:
            raise SinkError(
                f"Failed to start datastore import at {url}: HTTP {response.status_code}."
            )
        return operation_url

    def import_complete(self, operation_url: str) -> bool:
        """Return whether an import operation finished successfully.

        Raises:
            SinkError: If the operation failed.
        """
        response = self._request("GET", operation_url)
        if response.status_code == 202:
            return False
        if response.status_code == 200:
            return True
        raise SinkError(
            f"Datastore import {operation_url} failed: HTTP {response.status_code} "
            f"{response.text[:500]}"
        )

    def close(self) -> None:
        self._http.close()

    def _request(
        self,
        method: str,
        url: str,
        content: bytes | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        headers = {**self._headers, **(extra_headers or {})}
        try:
            return self._http.request(method, url, content=content, headers=headers)
        except httpx.HTTPError as error:
            raise SinkError(f"Datastore request {method} {url} failed: {error}") from error


def _entry_errors(response: httpx.Response, entry_count: int) -> list[str | None]:
    try:
        payload = response.json()
    except ValueError as error:
        raise SinkError(f"Batch response is not JSON: {error}") from error
    response_entries = payload.get("entry", []) if isinstance(payload, dict) else []
    errors: list[str | None] = []
    for index in range(entry_count):
        entry = response_entries[index] if index < len(response_entries) else {}
        status = str(entry.get("response", {}).get("status", "")) if isinstance(entry, dict) else ""
        errors.append(None if status.startswith("2") else f"batch entry status '{status or 'missing'}'")
    return errors
