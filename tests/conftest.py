"""Shared test fixtures: a manual clock and an engine wired to in-memory stores."""

import asyncio
import os
from unittest.mock import AsyncMock

import pytest

# No log files from the test run
os.environ.setdefault("LOG_DIR", "")

from lockwarden.alerting.dispatcher import AlertDispatcher
from lockwarden.config import LockwardenConfig
from lockwarden.core.accounts import InMemoryAccountDirectory
from lockwarden.core.clock import ManualClock
from lockwarden.core.engine import ProtectionEngine
from lockwarden.exceptions import TransientStoreError
from lockwarden.stores.counter_store import InMemoryCounterStore
from lockwarden.stores.event_store import InMemoryEventStore
from lockwarden.stores.lockout_store import InMemoryLockoutStore


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def make_config():
    """Build a config that ignores .env files and retries without sleeping."""

    def _make(**overrides) -> LockwardenConfig:
        values = {
            "log_dir": None,
            "event_append_backoff_seconds": 0.0,
            "store_timeout_seconds": 1.0,
        }
        values.update(overrides)
        return LockwardenConfig(_env_file=None, **values)

    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def accounts():
    return InMemoryAccountDirectory()


@pytest.fixture
def dispatcher():
    return AlertDispatcher(webhook_urls=[])


@pytest.fixture
def make_engine(clock, accounts, dispatcher, make_config):
    """Factory for engines over fresh in-memory stores; stores can be swapped per test."""

    def _make(counters=None, lockout_store=None, events=None, **overrides) -> ProtectionEngine:
        return ProtectionEngine(
            make_config(**overrides),
            counters=counters if counters is not None else InMemoryCounterStore(clock),
            lockout_store=lockout_store if lockout_store is not None else InMemoryLockoutStore(),
            events=events if events is not None else InMemoryEventStore(clock),
            accounts=accounts,
            dispatcher=dispatcher,
            clock=clock,
        )

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def unreachable():
    """An AsyncMock that fails like a store whose backend is down."""

    def _make(store: str = "redis_counter", operation: str = "increment") -> AsyncMock:
        return AsyncMock(side_effect=TransientStoreError(store, operation, "Connection refused"))

    return _make


@pytest.fixture
def hanging():
    """A coroutine function that never returns; exercises bounded timeouts."""

    async def _hang(*args, **kwargs):
        await asyncio.Event().wait()

    return _hang
