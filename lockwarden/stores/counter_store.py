"""Counter Store: key -> integer counts with per-key expiry.

Backs every failure and rate counter in the engine. ``increment`` is the
only way counts grow and it is a single atomic step per key, so two
concurrent failed logins for the same identity are both counted.
"""

import threading
import zlib
from dataclasses import dataclass

from ..core.clock import Clock
from ..utils.logging import get_logger

logger = get_logger("stores.counter")

DEFAULT_STRIPES = 64


class CounterStore:
    """Interface for atomic, expiring counters."""

    name = "counter"

    async def increment(self, key: str, ttl: float) -> int:
        """Add one to ``key``, refresh its expiry to now + ttl, return the new count."""
        raise NotImplementedError

    async def get(self, key: str) -> int:
        """Current count; 0 when the key is absent or expired."""
        raise NotImplementedError

    async def reset(self, key: str) -> None:
        raise NotImplementedError

    async def set_with_ttl(self, key: str, value: int, ttl: float) -> None:
        raise NotImplementedError

    async def claim(self, key: str, ttl: float) -> bool:
        """Atomically create ``key`` with a TTL if absent. True only for the first claimer."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


@dataclass
class _Entry:
    value: int
    expires_at: float
    window_started_at: float


class StripedLocks:
    """A fixed pool of locks; each key always maps to the same lock."""

    def __init__(self, stripes: int = DEFAULT_STRIPES):
        self._locks = [threading.Lock() for _ in range(stripes)]

    def for_key(self, key: str) -> threading.Lock:
        return self._locks[zlib.crc32(key.encode("utf-8")) % len(self._locks)]


class InMemoryCounterStore(CounterStore):
    """Process-local counter store over a striped-lock map.

    Expiry is lazy on read; ``sweep()`` removes expired keys in bulk and is
    safe to call from a periodic task.
    """

    name = "memory_counter"

    def __init__(self, clock: Clock, stripes: int = DEFAULT_STRIPES):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._locks = StripedLocks(stripes)

    def _live(self, key: str, now: float) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    async def increment(self, key: str, ttl: float) -> int:
        now = self._clock.timestamp()
        with self._locks.for_key(key):
            entry = self._live(key, now)
            if entry is None:
                entry = _Entry(value=0, expires_at=now + ttl, window_started_at=now)
                self._entries[key] = entry
            entry.value += 1
            entry.expires_at = now + ttl
            return entry.value

    async def get(self, key: str) -> int:
        now = self._clock.timestamp()
        with self._locks.for_key(key):
            entry = self._live(key, now)
            return entry.value if entry else 0

    async def reset(self, key: str) -> None:
        with self._locks.for_key(key):
            self._entries.pop(key, None)

    async def set_with_ttl(self, key: str, value: int, ttl: float) -> None:
        now = self._clock.timestamp()
        with self._locks.for_key(key):
            self._entries[key] = _Entry(value=value, expires_at=now + ttl, window_started_at=now)

    async def claim(self, key: str, ttl: float) -> bool:
        now = self._clock.timestamp()
        with self._locks.for_key(key):
            if self._live(key, now) is not None:
                return False
            self._entries[key] = _Entry(value=1, expires_at=now + ttl, window_started_at=now)
            return True

    def sweep(self) -> int:
        """Drop every expired key. Returns how many were removed."""
        now = self._clock.timestamp()
        removed = 0
        for key in list(self._entries):
            with self._locks.for_key(key):
                entry = self._entries.get(key)
                if entry is not None and now >= entry.expires_at:
                    del self._entries[key]
                    removed += 1
        if removed:
            logger.debug("counter_sweep", removed=removed)
        return removed

    def __len__(self) -> int:
        return len(self._entries)
