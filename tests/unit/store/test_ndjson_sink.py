"""Unit tests for the local NDJSON sink."""

from __future__ import annotations

from core.types import Record
from store.ndjson_sink import NDJSONSink

_URL = "https://export.test/files/1.ndjson"


def test_sink_writes_one_file_per_resource_type(tmp_path) -> None:
    """Records should be grouped into per-type files with the prefix."""
    sink = NDJSONSink.from_output_prefix(str(tmp_path / "out" / "run1"))
    sink.process(Record("Patient", _URL, b'{"id":"p1"}'))
    sink.process(Record("Coverage", _URL, b'{"id":"c1"}'))
    sink.process(Record("Patient", _URL, b'{"id":"p2"}'))
    sink.finalize()

    patient_lines = (tmp_path / "out" / "run1_Patient.ndjson").read_text(encoding="utf-8").splitlines()

    assert patient_lines == ['{"id":"p1"}', '{"id":"p2"}'] and (tmp_path / "out" / "run1_Coverage.ndjson").exists()


def test_directory_prefix_uses_bare_type_names(tmp_path) -> None:
    """A prefix ending in a separator should write ``{Type}.ndjson`` files."""
    sink = NDJSONSink.from_output_prefix(f"{tmp_path}/exports/")

    path = sink.path_for("ExplanationOfBenefit")

    assert path == tmp_path / "exports" / "ExplanationOfBenefit.ndjson"


def test_finalize_without_records_creates_no_files(tmp_path) -> None:
    """An empty run should not leave empty output files behind."""
    sink = NDJSONSink(tmp_path, "run1")

    sink.finalize()

    assert list(tmp_path.iterdir()) == []


def test_close_releases_open_files(tmp_path) -> None:
    """Closing an unfinalized sink should leave no file handles open."""
    sink = NDJSONSink(tmp_path, "run1")
    sink.process(Record("Patient", _URL, b'{"id":"p1"}'))

    sink.close()
    sink.close()

    assert (tmp_path / "run1_Patient.ndjson").read_text(encoding="utf-8") == '{"id":"p1"}\n'
