"""Security event routes: the record hook, filtered queries, and exports."""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from ...core.engine import ProtectionEngine
from ...core.types import EventFilter
from ...dependencies import get_protection_engine, require_admin
from ...export.exporter import EventExporter
from ...utils.input_validators import (
    validate_event_type,
    validate_identity,
    validate_severity,
    validate_source,
)

router = APIRouter(prefix="/events", tags=["events"])

_exporter = EventExporter()


class EventRequest(BaseModel):
    type: str
    severity: str
    description: str
    source: str
    identity: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def _build_filter(
    type: Optional[str],
    severity: Optional[str],
    source: Optional[str],
    identity: Optional[str],
    since: Optional[datetime],
    until: Optional[datetime],
    limit: int,
) -> EventFilter:
    return EventFilter(
        type=validate_event_type(type) if type is not None else None,
        severity=validate_severity(severity) if severity is not None else None,
        source=validate_source(source) if source is not None else None,
        identity=validate_identity(identity) if identity is not None else None,
        since=since,
        until=until,
        limit=limit,
    )


@router.post("", status_code=202)
async def record_event(
    body: EventRequest,
    engine: ProtectionEngine = Depends(get_protection_engine),
):
    """Feed an event into the shared threat detector.

    Accepted even when the store drops it; ``recorded`` says which happened.
    """
    event = await engine.record_event(
        body.type,
        body.severity,
        body.description,
        body.source,
        identity=body.identity,
        metadata=body.metadata,
    )
    return {"recorded": event is not None, "event_id": event.id if event else None}


@router.get("")
async def query_events(
    type: Optional[str] = None,
    severity: Optional[str] = None,
    source: Optional[str] = None,
    identity: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    engine: ProtectionEngine = Depends(get_protection_engine),
    _admin: str = Depends(require_admin),
):
    event_filter = _build_filter(type, severity, source, identity, since, until, limit)
    events = await engine.query_events(event_filter)
    return {"count": len(events), "events": [e.to_dict() for e in events]}


@router.get("/export")
async def export_events(
    format: str = Query("csv"),
    type: Optional[str] = None,
    severity: Optional[str] = None,
    source: Optional[str] = None,
    identity: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(10000, ge=1, le=100000),
    engine: ProtectionEngine = Depends(get_protection_engine),
    _admin: str = Depends(require_admin),
):
    event_filter = _build_filter(type, severity, source, identity, since, until, limit)
    content = _exporter.render(await engine.query_events(event_filter), format)
    filename = _exporter.filename(format, engine.clock.now())
    return Response(
        content=content,
        media_type=_exporter.media_type(format),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
