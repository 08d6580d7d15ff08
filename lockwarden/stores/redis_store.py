"""Redis-backed counter and lockout stores for multi-process deployments.

Expiry is enforced by Redis itself, on the Redis server's clock.
"""

import json

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..core.types import LockoutRecord
from ..exceptions import RaceLost, TransientStoreError
from ..utils.logging import get_logger
from .counter_store import CounterStore
from .lockout_store import LockoutStore

logger = get_logger("stores.redis")

# Writes ARGV[2] only when the stored record's version equals ARGV[1] (-1 = absent)
_CAS_SCRIPT = """
local current = redis.call('GET', KEYS[1])
local version = -1
if current then
    version = tonumber(cjson.decode(current)['version'])
end
if version ~= tonumber(ARGV[1]) then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2])
return 1
"""


def _ms(ttl: float) -> int:
    return max(1, int(ttl * 1000))


class RedisCounterStore(CounterStore):
    name = "redis_counter"

    def __init__(self, redis: Redis, prefix: str = "lockwarden:counter:"):
        self._redis = redis
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def increment(self, key: str, ttl: float) -> int:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incr(self._key(key))
                pipe.pexpire(self._key(key), _ms(ttl))
                count, _ = await pipe.execute()
            return int(count)
        except RedisError as e:
            raise TransientStoreError(self.name, "increment", str(e)) from e

    async def get(self, key: str) -> int:
        try:
            value = await self._redis.get(self._key(key))
        except RedisError as e:
            raise TransientStoreError(self.name, "get", str(e)) from e
        return int(value) if value is not None else 0

    async def reset(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except RedisError as e:
            raise TransientStoreError(self.name, "reset", str(e)) from e

    async def set_with_ttl(self, key: str, value: int, ttl: float) -> None:
        try:
            await self._redis.set(self._key(key), int(value), px=_ms(ttl))
        except RedisError as e:
            raise TransientStoreError(self.name, "set_with_ttl", str(e)) from e

    async def claim(self, key: str, ttl: float) -> bool:
        try:
            created = await self._redis.set(self._key(key), 1, px=_ms(ttl), nx=True)
        except RedisError as e:
            raise TransientStoreError(self.name, "claim", str(e)) from e
        return bool(created)

    async def close(self) -> None:
        await self._redis.aclose()


class RedisLockoutStore(LockoutStore):
    name = "redis_lockout"

    def __init__(self, redis: Redis, prefix: str = "lockwarden:lockout:"):
        self._redis = redis
        self._prefix = prefix
        self._cas = redis.register_script(_CAS_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> LockoutRecord | None:
        try:
            raw = await self._redis.get(self._key(key))
        except RedisError as e:
            raise TransientStoreError(self.name, "get", str(e)) from e
        if raw is None:
            return None
        return LockoutRecord.from_dict(json.loads(raw))

    async def compare_and_set(
        self, key: str, expected_version: int | None, record: LockoutRecord
    ) -> LockoutRecord:
        expected = -1 if expected_version is None else expected_version
        try:
            written = await self._cas(
                keys=[self._key(key)],
                args=[expected, json.dumps(record.to_dict())],
            )
        except RedisError as e:
            raise TransientStoreError(self.name, "compare_and_set", str(e)) from e
        if not written:
            raise RaceLost(key)
        return record

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except RedisError as e:
            raise TransientStoreError(self.name, "delete", str(e)) from e

    async def close(self) -> None:
        await self._redis.aclose()
