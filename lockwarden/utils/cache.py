"""TTL Cache: in-memory cache with time-based expiration."""

import asyncio
import time
from typing import Any, Awaitable, Callable

from ..core.clock import Clock
from ..utils.logging import get_logger

logger = get_logger("utils.cache")


class TTLCache:
    """In-memory cache with per-key TTL expiration.

    Expiry is measured on the injected clock when one is given, so tests can
    age entries out without sleeping.
    """

    def __init__(self, default_ttl: float = 30.0, max_entries: int = 1000, clock: Clock | None = None):
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._store: dict[str, tuple[Any, float]] = {}  # key -> (value, expires_at)
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    def _now(self) -> float:
        return self._clock.timestamp() if self._clock else time.monotonic()

    def get(self, key: str) -> Any | None:
        """Get a cached value if it exists and hasn't expired."""
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._now() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._evict_if_full()
        expires_at = self._now() + (ttl if ttl is not None else self._default_ttl)
        self._store[key] = (value, expires_at)

    def invalidate(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    async def get_or_compute(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """Get cached value or compute it if missing/expired.

        Uses an asyncio lock so concurrent misses on the same key rebuild once.
        """
        cached = self.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        async with self._lock:
            cached = self.get(key)
            if cached is not None:
                self.hits += 1
                return cached

            self.misses += 1
            value = await compute_fn()
            self.set(key, value, ttl)
            logger.debug("cache_rebuilt", key=key)
            return value

    def _evict_if_full(self) -> None:
        """Evict expired entries first, then oldest if still full."""
        now = self._now()
        expired_keys = [k for k, (_, exp) in self._store.items() if now >= exp]
        for k in expired_keys:
            del self._store[k]

        if len(self._store) >= self._max_entries:
            sorted_keys = sorted(self._store, key=lambda k: self._store[k][1])
            to_remove = len(self._store) - self._max_entries + 1
            for k in sorted_keys[:to_remove]:
                del self._store[k]
