"""Lockout Store: versioned lock records with compare-and-set writes."""

from ..core.types import LockoutRecord
from ..exceptions import RaceLost
from .counter_store import DEFAULT_STRIPES, StripedLocks


class LockoutStore:
    """Interface for lock records.

    ``compare_and_set`` is the single atomic "claim the transition" step:
    it writes ``record`` only when the stored version still equals
    ``expected_version`` (``None`` meaning "no record yet").
    """

    name = "lockout"

    async def get(self, key: str) -> LockoutRecord | None:
        raise NotImplementedError

    async def compare_and_set(
        self, key: str, expected_version: int | None, record: LockoutRecord
    ) -> LockoutRecord:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryLockoutStore(LockoutStore):
    name = "memory_lockout"

    def __init__(self, stripes: int = DEFAULT_STRIPES):
        self._records: dict[str, LockoutRecord] = {}
        self._locks = StripedLocks(stripes)

    async def get(self, key: str) -> LockoutRecord | None:
        with self._locks.for_key(key):
            return self._records.get(key)

    async def compare_and_set(
        self, key: str, expected_version: int | None, record: LockoutRecord
    ) -> LockoutRecord:
        with self._locks.for_key(key):
            current = self._records.get(key)
            current_version = current.version if current is not None else None
            if current_version != expected_version:
                raise RaceLost(key)
            self._records[key] = record
            return record

    async def delete(self, key: str) -> None:
        with self._locks.for_key(key):
            self._records.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._records)
