"""Threat Detector: correlates recorded events to recognize attack patterns.

Three rules run against the Event Store for every newly appended event:
hourly volume of one event type, a burst from one source, and one event
type arriving from many distinct sources. Each rule fires at most once per
subject per rule window; the suppression key lives in the Counter Store so
multiple processes sharing a Redis backend agree on who fired.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from ..config import LockwardenConfig
from ..stores.counter_store import CounterStore
from ..stores.event_store import EventStore
from ..utils.logging import get_logger
from ..utils.timeouts import bounded
from .clock import Clock
from .types import (
    ALERT_TYPES,
    COORDINATED_ATTACK,
    POTENTIAL_ATTACK,
    SECURITY_ALERT,
    EventFilter,
    SecurityEvent,
    Severity,
)

logger = get_logger("core.threat_detector")


@dataclass(frozen=True)
class DetectionRule:
    """Template for one correlation rule."""
    name: str
    alert_type: str
    severity: Severity
    window: timedelta
    threshold: int
    description: str = ""


def build_rules(config: LockwardenConfig) -> dict[str, DetectionRule]:
    return {
        "volume": DetectionRule(
            name="volume",
            alert_type=SECURITY_ALERT,
            severity=Severity.CRITICAL,
            window=timedelta(seconds=config.volume_window_seconds),
            threshold=config.volume_threshold,
            description="High volume of one event type",
        ),
        "burst": DetectionRule(
            name="burst",
            alert_type=POTENTIAL_ATTACK,
            severity=Severity.HIGH,
            window=timedelta(seconds=config.burst_window_seconds),
            threshold=config.burst_threshold,
            description="Burst of events from a single source",
        ),
        "coordinated": DetectionRule(
            name="coordinated",
            alert_type=COORDINATED_ATTACK,
            severity=Severity.CRITICAL,
            window=timedelta(seconds=config.coordinated_window_seconds),
            threshold=config.coordinated_sources_threshold,
            description="Same event type from many distinct sources",
        ),
    }


def _window_label(window: timedelta) -> str:
    minutes = int(window.total_seconds() // 60)
    if minutes and minutes % 60 == 0:
        hours = minutes // 60
        return "1 hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minutes"


class ThreatDetector:
    """Evaluates the correlation rules against the Event Store.

    Synthetic alert events are never evaluated and are excluded from every
    tally, so an alert can not trigger another alert.
    """

    def __init__(
        self,
        events: EventStore,
        counters: CounterStore,
        clock: Clock,
        config: LockwardenConfig,
        timeout: float = 2.0,
    ):
        self._events = events
        self._counters = counters
        self._clock = clock
        self._config = config
        self._timeout = timeout
        self.rules = build_rules(config)
        self.fired: dict[str, int] = {name: 0 for name in self.rules}

    async def evaluate(self, event: SecurityEvent) -> list[SecurityEvent]:
        """Run every rule for ``event``. Returns the alerts to append, possibly none."""
        if event.is_alert:
            return []

        alerts = []
        for check in (self._check_volume, self._check_burst, self._check_coordinated):
            alert = await check(event)
            if alert is not None:
                alerts.append(alert)
        return alerts

    async def _count(self, event_filter: EventFilter) -> int:
        return await bounded(
            self._events.count(event_filter),
            self._timeout,
            store=self._events.name,
            operation="count",
        )

    async def _claim(self, rule: DetectionRule, subject: str) -> bool:
        return await bounded(
            self._counters.claim(f"detector:{rule.name}:{subject}", rule.window.total_seconds()),
            self._timeout,
            store=self._counters.name,
            operation="claim",
            shield=True,
        )

    async def _check_volume(self, event: SecurityEvent) -> Optional[SecurityEvent]:
        rule = self.rules["volume"]
        threshold = self._config.volume_threshold_for(event.type)
        count = await self._count(
            EventFilter(
                type=event.type,
                since=self._clock.now() - rule.window,
                exclude_types=ALERT_TYPES,
            )
        )
        if count < threshold or not await self._claim(rule, event.type):
            return None

        return self._alert(
            rule,
            event,
            description=(
                f"Security Alert: {count} {event.type} events in the last "
                f"{_window_label(rule.window)} (threshold: {threshold})"
            ),
            metadata={
                "event_type": event.type,
                "event_count": count,
                "threshold": threshold,
            },
        )

    async def _check_burst(self, event: SecurityEvent) -> Optional[SecurityEvent]:
        rule = self.rules["burst"]
        count = await self._count(
            EventFilter(
                source=event.source_address,
                since=self._clock.now() - rule.window,
                exclude_types=ALERT_TYPES,
            )
        )
        if count < rule.threshold or not await self._claim(rule, event.source_address):
            return None

        return self._alert(
            rule,
            event,
            description=f"Potential attack detected from IP: {event.source_address}",
            metadata={
                "recent_events": count,
                "threshold": rule.threshold,
                "time_window": _window_label(rule.window),
            },
        )

    async def _check_coordinated(self, event: SecurityEvent) -> Optional[SecurityEvent]:
        rule = self.rules["coordinated"]
        distinct_sources = await bounded(
            self._events.count_distinct_sources(
                EventFilter(
                    type=event.type,
                    since=self._clock.now() - rule.window,
                    exclude_types=ALERT_TYPES,
                )
            ),
            self._timeout,
            store=self._events.name,
            operation="count_distinct_sources",
        )
        if distinct_sources < rule.threshold or not await self._claim(rule, event.type):
            return None

        return self._alert(
            rule,
            event,
            description=(
                f"Coordinated attack detected: {event.type} from "
                f"{distinct_sources} distinct sources in the last {_window_label(rule.window)}"
            ),
            metadata={
                "event_type": event.type,
                "distinct_sources": distinct_sources,
                "threshold": rule.threshold,
            },
        )

    def _alert(
        self,
        rule: DetectionRule,
        trigger: SecurityEvent,
        description: str,
        metadata: dict,
    ) -> SecurityEvent:
        self.fired[rule.name] += 1
        logger.warning(
            "threat_rule_fired",
            rule=rule.name,
            alert_type=rule.alert_type,
            trigger_event_id=trigger.id,
            source=trigger.source_address,
            **metadata,
        )
        return SecurityEvent(
            type=rule.alert_type,
            severity=rule.severity,
            description=description,
            source_address=trigger.source_address,
            identity=trigger.identity,
            created_at=self._clock.now(),
            metadata={
                "rule": rule.name,
                "trigger_event_id": trigger.id,
                "window_seconds": int(rule.window.total_seconds()),
                **metadata,
            },
        )

    def get_stats(self) -> dict:
        return {
            "rules": {
                name: {"threshold": rule.threshold, "window_seconds": int(rule.window.total_seconds())}
                for name, rule in self.rules.items()
            },
            "fired": dict(self.fired),
        }
