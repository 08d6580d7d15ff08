"""Tests for EventRecorder: validation, bounded retries, and drop accounting."""

from unittest.mock import AsyncMock

import pytest

from lockwarden.core.recorder import EventRecorder
from lockwarden.core.types import EventFilter, Severity, SubjectKind
from lockwarden.exceptions import InvalidInput, TransientStoreError
from lockwarden.stores.event_store import InMemoryEventStore


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"type": "Failed Login"}, "type"),
            ({"severity": "urgent"}, "severity"),
            ({"description": ""}, "description"),
            ({"source": "not-an-ip"}, "source"),
            ({"identity": " alice"}, "identity"),
            ({"metadata": {"when": object()}}, "metadata"),
        ],
    )
    async def test_malformed_fields_are_rejected(self, engine, overrides, field):
        values = {
            "type": "failed_login",
            "severity": "medium",
            "description": "Failed login",
            "source": "10.0.0.1",
        }
        values.update(overrides)
        with pytest.raises(InvalidInput) as exc_info:
            await engine.record_event(**values)
        assert exc_info.value.field == field
        assert await engine.query_events(EventFilter()) == []

    @pytest.mark.asyncio
    async def test_source_is_canonicalised(self, engine):
        event = await engine.record_event("probe", Severity.LOW, "probe", "2001:DB8::1")
        assert event.source_address == "2001:db8::1"


class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, clock):
        store = InMemoryEventStore(clock)
        store.append = AsyncMock(
            side_effect=[TransientStoreError("sql_event", "append", "database is locked"), None]
        )
        recorder = EventRecorder(store, clock, attempts=3, backoff=0)

        event = await recorder.record("probe", "low", "probe", "10.0.0.1")
        assert event is not None
        assert store.append.await_count == 2
        assert recorder.stats.append_retries == 1
        assert recorder.stats.events_appended == 1

    @pytest.mark.asyncio
    async def test_event_dropped_after_retries(self, clock, unreachable):
        store = InMemoryEventStore(clock)
        store.append = unreachable("sql_event", "append")
        recorder = EventRecorder(store, clock, attempts=3, backoff=0)

        assert await recorder.record("probe", "low", "probe", "10.0.0.1") is None
        assert store.append.await_count == 3
        assert recorder.stats.events_dropped == 1
        assert recorder.get_stats()["events_dropped"] == 1

    @pytest.mark.asyncio
    async def test_drop_never_reaches_auth_caller(self, make_engine, clock, unreachable):
        events = InMemoryEventStore(clock)
        events.append = unreachable("sql_event", "append")
        engine = make_engine(events=events)

        for _ in range(5):
            await engine.report_failure("alice", "10.0.0.1")
        assert await engine.failed_attempt_count(SubjectKind.IDENTITY, "alice") == 5
        assert await engine.lockouts.is_locked(SubjectKind.IDENTITY, "alice")
        assert engine.stats()["recorder"]["events_dropped"] == 6


class TestDispatch:
    @pytest.mark.asyncio
    async def test_only_critical_events_dispatched(self, engine, dispatcher):
        dispatcher.dispatch = AsyncMock()
        await engine.record_event("probe", "high", "probe", "10.0.0.1")
        await engine.record_event("backup_tampering", "critical", "tamper", "10.0.0.2")
        assert dispatcher.dispatch.await_count == 1
        assert dispatcher.dispatch.call_args.args[0].type == "backup_tampering"
