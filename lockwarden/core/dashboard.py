"""Dashboard Aggregator: read-only rollups of the Event Store.

One global snapshot is cached under a fixed key for a short TTL. A cache
miss always rebuilds the snapshot in full from the store.
"""

from datetime import timedelta, timezone
from typing import Optional

from ..config import LockwardenConfig
from ..exceptions import InvalidInput
from ..stores.event_store import EventStore
from ..utils.cache import TTLCache
from ..utils.logging import get_logger
from ..utils.timeouts import bounded
from .clock import Clock
from .types import DashboardSnapshot, EventFilter, HealthStatus, Severity

logger = get_logger("core.dashboard")

DASHBOARD_CACHE_KEY = "security_dashboard"

STATISTICS_PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}


class DashboardAggregator:
    def __init__(
        self,
        events: EventStore,
        clock: Clock,
        config: LockwardenConfig,
        cache: Optional[TTLCache] = None,
        timeout: float = 2.0,
    ):
        self._events = events
        self._clock = clock
        self._config = config
        self._cache = cache or TTLCache(default_ttl=config.dashboard_cache_ttl_seconds, clock=clock)
        self._timeout = timeout

    async def _call(self, awaitable, operation: str):
        return await bounded(awaitable, self._timeout, store=self._events.name, operation=operation)

    async def get_dashboard_data(self) -> DashboardSnapshot:
        return await self._cache.get_or_compute(
            DASHBOARD_CACHE_KEY,
            self._build_snapshot,
            ttl=self._config.dashboard_cache_ttl_seconds,
        )

    def invalidate(self) -> None:
        self._cache.invalidate(DASHBOARD_CACHE_KEY)

    async def _build_snapshot(self) -> DashboardSnapshot:
        now = self._clock.now()
        window_start = now - timedelta(days=self._config.dashboard_window_days)

        recent = await self._call(
            self._events.query(EventFilter(limit=self._config.dashboard_recent_limit)), "query"
        )
        counts = await self._call(
            self._events.count_by_type_and_severity(window_start), "count_by_type_and_severity"
        )
        top_sources = await self._call(
            self._events.top_sources(window_start, self._config.dashboard_top_sources_limit),
            "top_sources",
        )
        timeline = await self._call(
            self._events.timeline(now - timedelta(days=self._config.dashboard_timeline_days)),
            "timeline",
        )
        status, health = await self.health()

        logger.debug("dashboard_rebuilt", recent=len(recent), health_status=status.value)
        return DashboardSnapshot(
            recent_events=recent,
            event_counts=counts,
            top_sources=top_sources,
            health_status=status,
            health=health,
            timeline=timeline,
            generated_at=now,
        )

    async def health(self) -> tuple[HealthStatus, dict[str, int]]:
        """Critical if any critical event in the last hour; warning on a run of high events."""
        now = self._clock.now()
        last_hour = now - timedelta(hours=1)
        midnight = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

        critical = await self._call(
            self._events.count(EventFilter(severity=Severity.CRITICAL, since=last_hour)), "count"
        )
        high = await self._call(
            self._events.count(EventFilter(severity=Severity.HIGH, since=last_hour)), "count"
        )
        today = await self._call(self._events.count(EventFilter(since=midnight)), "count")

        if critical > 0:
            status = HealthStatus.CRITICAL
        elif high >= self._config.health_high_warning_threshold:
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.HEALTHY
        return status, {
            "critical_events_last_hour": critical,
            "high_events_last_hour": high,
            "total_events_today": today,
        }

    async def get_statistics(self, period: str = "24h") -> dict:
        if period not in STATISTICS_PERIODS:
            raise InvalidInput("period", f"must be one of {', '.join(STATISTICS_PERIODS)}")
        now = self._clock.now()
        since = now - STATISTICS_PERIODS[period]

        counts = await self._call(
            self._events.count_by_type_and_severity(since), "count_by_type_and_severity"
        )
        by_severity = {s.value: 0 for s in Severity}
        by_type: dict[str, int] = {}
        for (event_type, severity), count in counts.items():
            by_severity[severity] = by_severity.get(severity, 0) + count
            by_type[event_type] = by_type.get(event_type, 0) + count
        top_types = sorted(by_type.items(), key=lambda item: (-item[1], item[0]))[:10]

        timeline = await self._call(self._events.timeline(since), "timeline")
        top_sources = await self._call(
            self._events.top_sources(since, self._config.dashboard_top_sources_limit), "top_sources"
        )
        return {
            "period": period,
            "since": since.isoformat(),
            "total_events": sum(by_type.values()),
            "by_severity": by_severity,
            "by_type": dict(top_types),
            "top_sources": [{"source_address": s, "count": c} for s, c in top_sources],
            "daily_timeline": {day: sum(types.values()) for day, types in timeline.items()},
        }

