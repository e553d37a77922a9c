"""Unit tests for datastore uploads."""

from __future__ import annotations

import json

import httpx
import pytest

from core.errors import SinkError
from core.types import Record
from store.datastore_api import DatastoreApi
from store.datastore_sink import DatastoreSink, default_batch_size

_BASE_URL = "https://datastore.test/fhir"
_URL = "https://export.test/files/Patient-1.ndjson"


def _record(resource_id: str) -> Record:
    payload = {"resourceType": "Patient", "id": resource_id}
    return Record("Patient", _URL, json.dumps(payload).encode("utf-8"))


def _api(handler, requests: list[httpx.Request]) -> DatastoreApi:
    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http_client = httpx.Client(transport=httpx.MockTransport(recording_handler))
    return DatastoreApi(_BASE_URL, token="ds-token", http_client=http_client)


def test_individual_upload_puts_each_resource() -> None:
    """Without batching every record should be PUT under its id."""
    requests: list[httpx.Request] = []
    sink = DatastoreSink(_api(lambda request: httpx.Response(200), requests), max_workers=2)
    for resource_id in ("p1", "p2", "p3"):
        sink.process(_record(resource_id))

    sink.finalize()

    assert sorted((request.method, request.url.path) for request in requests) == [
        ("PUT", "/fhir/Patient/p1"),
        ("PUT", "/fhir/Patient/p2"),
        ("PUT", "/fhir/Patient/p3"),
    ]


def test_upload_sends_bearer_token() -> None:
    """Datastore requests should carry the configured bearer token."""
    requests: list[httpx.Request] = []
    sink = DatastoreSink(_api(lambda request: httpx.Response(201), requests), max_workers=1)
    sink.process(_record("p1"))

    sink.finalize()

    assert requests[0].headers["Authorization"] == "Bearer ds-token"


def test_failed_upload_is_reported_and_recorded(tmp_path) -> None:
    """Rejected resources should land in the error file and fail finalize."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/p2"):
            return httpx.Response(422, text="invalid birthDate")
        return httpx.Response(200)

    sink = DatastoreSink(_api(handler, requests), max_workers=2, error_file_dir=tmp_path)
    sink.process(_record("p1"))
    sink.process(_record("p2"))

    with pytest.raises(SinkError, match="1 resource"):
        sink.finalize()

    error_lines = (tmp_path / "resources_with_errors.ndjson").read_text(encoding="utf-8").splitlines()
    rows = [json.loads(line) for line in error_lines]

    assert len(rows) == 1 and json.loads(rows[0]["record"])["id"] == "p2" and "422" in rows[0]["error"]


def test_batch_upload_groups_records() -> None:
    """Batch mode should send bundles of the configured size."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bundle = json.loads(request.content)
        entries = [{"response": {"status": "201 Created"}} for _ in bundle["entry"]]
        return httpx.Response(200, json={"resourceType": "Bundle", "type": "batch-response", "entry": entries})

    sink = DatastoreSink(_api(handler, requests), max_workers=2, batch_size=2)
    for resource_id in ("p1", "p2", "p3"):
        sink.process(_record(resource_id))

    sink.finalize()

    sizes = sorted(len(json.loads(request.content)["entry"]) for request in requests)

    assert sizes == [1, 2] and all(request.method == "POST" for request in requests)


def test_batch_entry_failures_are_counted() -> None:
    """Failed entries inside an accepted bundle should still fail the sink."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        entries = [{"response": {"status": "201 Created"}}, {"response": {"status": "400 Bad Request"}}]
        return httpx.Response(200, json={"resourceType": "Bundle", "entry": entries})

    sink = DatastoreSink(_api(handler, requests), max_workers=1, batch_size=2)
    sink.process(_record("p1"))
    sink.process(_record("p2"))

    with pytest.raises(SinkError):
        sink.finalize()

    assert sink.failed_count == 1


def test_record_without_id_is_a_failure() -> None:
    """Resources without an id cannot be uploaded."""
    requests: list[httpx.Request] = []
    sink = DatastoreSink(_api(lambda request: httpx.Response(200), requests), max_workers=1)
    sink.process(Record("Patient", _URL, b'{"resourceType":"Patient"}'))

    with pytest.raises(SinkError):
        sink.finalize()

    assert requests == [] and sink.failed_count == 1


def test_default_batch_size() -> None:
    """Batch size zero should select the default when batching is on."""
    sizes = (default_batch_size(False, 50), default_batch_size(True, 0), default_batch_size(True, 25))

    assert sizes == (None, 100, 25)


def test_close_discards_pending_batch_and_closes_api() -> None:
    """Closing without finalize should send nothing and release the HTTP client."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    sink = DatastoreSink(DatastoreApi(_BASE_URL, token="ds-token", http_client=http_client), max_workers=1, batch_size=10)
    sink.process(_record("p1"))

    sink.close()

    assert requests == [] and http_client.is_closed


def test_close_shuts_down_upload_workers() -> None:
    """No uploads should be scheduled once the sink is closed."""
    requests: list[httpx.Request] = []
    sink = DatastoreSink(_api(lambda request: httpx.Response(200), requests), max_workers=1)
    sink.close()

    with pytest.raises(RuntimeError):
        sink.process(_record("p1"))

    assert requests == []
