"""Storage backends for counters, lock records, and security events."""

from .counter_store import CounterStore, InMemoryCounterStore
from .event_store import EventStore, InMemoryEventStore
from .lockout_store import InMemoryLockoutStore, LockoutStore
from .sql_event_store import SqlEventStore

__all__ = [
    "CounterStore",
    "EventStore",
    "InMemoryCounterStore",
    "InMemoryEventStore",
    "InMemoryLockoutStore",
    "LockoutStore",
    "SqlEventStore",
]
