"""Tests for EventExporter: CSV/JSON rendering of security events."""

import csv
import io
import json
from datetime import datetime, timezone

import pytest

from lockwarden.core.types import SecurityEvent, Severity
from lockwarden.exceptions import InvalidInput
from lockwarden.export.exporter import CSV_FIELDS, EventExporter


def _make_event(identity="alice", metadata=None, description="Failed login attempt for identifier: alice"):
    return SecurityEvent(
        type="failed_login",
        severity=Severity.MEDIUM,
        description=description,
        source_address="10.0.0.1",
        identity=identity,
        metadata=metadata if metadata is not None else {"source_attempts": 1, "identity_attempts": 1},
        created_at=datetime(2026, 2, 7, 12, 0, 0, tzinfo=timezone.utc),
        id="evt1",
    )


@pytest.fixture
def exporter():
    return EventExporter()


class TestCsvExport:
    def test_header_and_rows(self, exporter):
        content = exporter.render([_make_event(), _make_event(identity=None, metadata={})], "csv")
        rows = list(csv.DictReader(io.StringIO(content)))

        assert content.splitlines()[0] == ",".join(CSV_FIELDS)
        assert len(rows) == 2
        assert rows[0]["severity"] == "medium"
        assert rows[0]["created_at"] == "2026-02-07T12:00:00+00:00"
        assert rows[0]["metadata"] == '{"identity_attempts": 1, "source_attempts": 1}'
        assert rows[1]["identity"] == ""
        assert rows[1]["metadata"] == ""

    def test_description_with_commas_is_quoted(self, exporter):
        content = exporter.render([_make_event(description='probe, "quoted", done')], "csv")
        row = next(csv.DictReader(io.StringIO(content)))
        assert row["description"] == 'probe, "quoted", done'

    def test_empty_export_has_header_only(self, exporter):
        assert exporter.render([], "csv").splitlines() == [",".join(CSV_FIELDS)]


class TestJsonExport:
    def test_json_round_trips_event_dicts(self, exporter):
        event = _make_event()
        data = json.loads(exporter.render([event], "json"))
        assert data == [event.to_dict()]


class TestFormats:
    def test_unknown_format_rejected(self, exporter):
        with pytest.raises(InvalidInput) as exc_info:
            exporter.render([], "xml")
        assert exc_info.value.field == "format"

    def test_media_type_and_filename(self, exporter):
        now = datetime(2026, 2, 7, 9, 5, 3, tzinfo=timezone.utc)
        assert exporter.media_type("csv") == "text/csv"
        assert exporter.media_type("json") == "application/json"
        assert exporter.filename("json", now) == "security_events_20260207_090503.json"
