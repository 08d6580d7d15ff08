"""Event Store: append-only, time-queryable security events."""

import threading
from bisect import bisect_left, bisect_right
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Iterator

from ..core.clock import Clock
from ..core.types import EventFilter, SecurityEvent, as_utc


class EventStore:
    """Interface for durable event storage.

    Results of ``query`` are ordered by ``created_at`` descending, newest
    append first on ties. Implementations raise TransientStoreError when the
    backend cannot be reached; they never drop an append silently.
    """

    name = "event"

    async def append(self, event: SecurityEvent) -> str:
        raise NotImplementedError

    async def query(self, event_filter: EventFilter) -> list[SecurityEvent]:
        raise NotImplementedError

    async def count(self, event_filter: EventFilter) -> int:
        raise NotImplementedError

    async def count_distinct_sources(self, event_filter: EventFilter) -> int:
        raise NotImplementedError

    async def count_by_type_and_severity(self, since: datetime) -> dict[tuple[str, str], int]:
        raise NotImplementedError

    async def top_sources(self, since: datetime, limit: int = 10) -> list[tuple[str, int]]:
        raise NotImplementedError

    async def timeline(self, since: datetime) -> dict[str, dict[str, int]]:
        """Per-day, per-type counts keyed by ISO date."""
        raise NotImplementedError

    async def purge_older_than(self, older_than: timedelta) -> int:
        """Delete events strictly older than now - ``older_than``."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryEventStore(EventStore):
    """Event store held in process memory. Suitable for tests and single-node use.

    Events are kept sorted by ``(created_at, seq)`` so time-bounded reads
    bisect to their window instead of scanning the whole history.
    """

    name = "memory_event"

    def __init__(self, clock: Clock):
        self._clock = clock
        self._keys: list[tuple[datetime, int]] = []
        self._events: list[SecurityEvent] = []
        self._seq = 0
        self._lock = threading.Lock()

    def _window(self, event_filter: EventFilter) -> list[SecurityEvent]:
        with self._lock:
            lo = 0
            hi = len(self._keys)
            if event_filter.since is not None:
                lo = bisect_left(self._keys, (event_filter.since, 0))
            if event_filter.until is not None:
                hi = bisect_right(self._keys, (event_filter.until, self._seq))
            return self._events[lo:hi]

    def _matching(self, event_filter: EventFilter) -> Iterator[SecurityEvent]:
        """Yield matching events oldest first."""
        return (e for e in self._window(event_filter) if event_filter.matches(e))

    async def append(self, event: SecurityEvent) -> str:
        created_at = as_utc(event.created_at)
        with self._lock:
            self._seq += 1
            key = (created_at, self._seq)
            if not self._keys or key > self._keys[-1]:
                self._keys.append(key)
                self._events.append(event)
            else:
                index = bisect_right(self._keys, key)
                self._keys.insert(index, key)
                self._events.insert(index, event)
        return event.id

    async def query(self, event_filter: EventFilter) -> list[SecurityEvent]:
        matched = [e for e in reversed(self._window(event_filter)) if event_filter.matches(e)]
        if event_filter.limit is not None:
            matched = matched[: event_filter.limit]
        return matched

    async def count(self, event_filter: EventFilter) -> int:
        return sum(1 for _ in self._matching(event_filter))

    async def count_distinct_sources(self, event_filter: EventFilter) -> int:
        return len({e.source_address for e in self._matching(event_filter)})

    async def count_by_type_and_severity(self, since: datetime) -> dict[tuple[str, str], int]:
        counts = Counter(
            (e.type, e.severity.value) for e in self._matching(EventFilter(since=since))
        )
        return dict(counts)

    async def top_sources(self, since: datetime, limit: int = 10) -> list[tuple[str, int]]:
        counts = Counter(e.source_address for e in self._matching(EventFilter(since=since)))
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]

    async def timeline(self, since: datetime) -> dict[str, dict[str, int]]:
        result: dict[str, dict[str, int]] = defaultdict(dict)
        for e in self._matching(EventFilter(since=since)):
            day = e.created_at.date().isoformat()
            result[day][e.type] = result[day].get(e.type, 0) + 1
        return dict(sorted(result.items()))

    async def purge_older_than(self, older_than: timedelta) -> int:
        cutoff = as_utc(self._clock.now() - older_than)
        with self._lock:
            deleted = bisect_left(self._keys, (cutoff, 0))
            del self._keys[:deleted]
            del self._events[:deleted]
        return deleted

    def __len__(self) -> int:
        return len(self._events)
