"""Event exporter: renders security events to CSV or JSON downloads."""

import csv
import io
import json
from datetime import datetime

from ..core.types import SecurityEvent
from ..exceptions import InvalidInput
from ..utils.logging import get_logger

logger = get_logger("export.exporter")

VALID_FORMATS = ("csv", "json")

CSV_FIELDS = [
    "id",
    "created_at",
    "type",
    "severity",
    "source_address",
    "identity",
    "description",
    "metadata",
]

_MEDIA_TYPES = {
    "csv": "text/csv",
    "json": "application/json",
}


class EventExporter:
    """Renders query results in memory. Row count is bounded by the caller's filter limit."""

    def render(self, events: list[SecurityEvent], export_format: str) -> str:
        if export_format not in VALID_FORMATS:
            raise InvalidInput("format", f"must be one of {', '.join(VALID_FORMATS)}")
        if export_format == "csv":
            content = self._to_csv(events)
        else:
            content = self._to_json(events)
        logger.info("events_exported", format=export_format, rows=len(events))
        return content

    def media_type(self, export_format: str) -> str:
        return _MEDIA_TYPES[export_format]

    def filename(self, export_format: str, now: datetime) -> str:
        return f"security_events_{now.strftime('%Y%m%d_%H%M%S')}.{export_format}"

    def _to_csv(self, events: list[SecurityEvent]) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for event in events:
            row = event.to_dict()
            row["metadata"] = json.dumps(row["metadata"], sort_keys=True) if row["metadata"] else ""
            row["identity"] = row["identity"] or ""
            writer.writerow(row)
        return buffer.getvalue()

    def _to_json(self, events: list[SecurityEvent]) -> str:
        return json.dumps([event.to_dict() for event in events], indent=2, default=str)
