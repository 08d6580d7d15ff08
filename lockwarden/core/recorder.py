"""Event Recorder: the single write path into the Event Store.

Every event, whatever its origin, is validated, appended, run through the
Threat Detector, and dispatched if critical. Appends are retried with
backoff and, once the retries are spent, dropped and counted. Recording
never raises a store failure to the caller.
"""

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Optional

from ..alerting.dispatcher import AlertDispatcher
from ..exceptions import TransientStoreError
from ..stores.event_store import EventStore
from ..utils.input_validators import (
    validate_description,
    validate_event_type,
    validate_identity,
    validate_metadata,
    validate_severity,
    validate_source,
)
from ..utils.logging import get_logger
from ..utils.timeouts import bounded
from .clock import Clock
from .threat_detector import ThreatDetector
from .types import SecurityEvent, Severity

logger = get_logger("core.recorder")


@dataclass
class RecorderStats:
    events_appended: int = 0
    events_dropped: int = 0
    append_retries: int = 0
    alerts_emitted: int = 0
    detection_errors: int = 0
    dispatch_errors: int = 0


class EventRecorder:
    def __init__(
        self,
        events: EventStore,
        clock: Clock,
        detector: Optional[ThreatDetector] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        timeout: float = 2.0,
        attempts: int = 3,
        backoff: float = 0.05,
    ):
        self._events = events
        self._clock = clock
        self._detector = detector
        self._dispatcher = dispatcher
        self._timeout = timeout
        self._attempts = max(1, attempts)
        self._backoff = backoff
        self.stats = RecorderStats()

    async def record(
        self,
        type: str,
        severity: Severity | str,
        description: str,
        source: str,
        identity: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[SecurityEvent]:
        """Validate and record one event.

        Returns the stored event, or None when it was dropped after retries.
        Raises InvalidInput for malformed fields.
        """
        event = SecurityEvent(
            type=validate_event_type(type),
            severity=validate_severity(severity),
            description=validate_description(description),
            source_address=validate_source(source),
            identity=validate_identity(identity) if identity is not None else None,
            metadata=validate_metadata(metadata),
            created_at=self._clock.now(),
        )
        if not await self._append(event):
            return None

        await self._after_append(event)
        if self._detector is not None:
            for alert in await self._detect(event):
                if await self._append(alert):
                    self.stats.alerts_emitted += 1
                    await self._after_append(alert)
        return event

    async def _append(self, event: SecurityEvent) -> bool:
        for attempt in range(1, self._attempts + 1):
            try:
                await bounded(
                    self._events.append(event),
                    self._timeout,
                    store=self._events.name,
                    operation="append",
                    shield=True,
                )
                self.stats.events_appended += 1
                return True
            except TransientStoreError as e:
                if attempt == self._attempts:
                    self.stats.events_dropped += 1
                    logger.error(
                        "event_dropped",
                        event_id=event.id,
                        event_type=event.type,
                        severity=event.severity.value,
                        attempts=attempt,
                        error=str(e),
                    )
                    return False
                self.stats.append_retries += 1
                logger.warning("event_append_retry", event_id=event.id, attempt=attempt, error=str(e))
                await asyncio.sleep(self._backoff * (2 ** (attempt - 1)))
        return False

    async def _detect(self, event: SecurityEvent) -> list[SecurityEvent]:
        try:
            return await self._detector.evaluate(event)
        except TransientStoreError as e:
            self.stats.detection_errors += 1
            logger.warning("threat_detection_skipped", event_id=event.id, error=str(e))
            return []

    async def _after_append(self, event: SecurityEvent) -> None:
        if event.severity == Severity.CRITICAL and self._dispatcher is not None:
            try:
                await self._dispatcher.dispatch(event)
            except Exception as e:
                self.stats.dispatch_errors += 1
                logger.error("alert_dispatch_failed", event_id=event.id, event_type=event.type, error=str(e))

    def get_stats(self) -> dict:
        return asdict(self.stats)
