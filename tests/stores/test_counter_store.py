"""Tests for InMemoryCounterStore: atomic increments with per-key expiry."""

import asyncio

import pytest

from lockwarden.stores.counter_store import InMemoryCounterStore, StripedLocks


class TestIncrement:
    @pytest.fixture
    def store(self, clock):
        return InMemoryCounterStore(clock)

    @pytest.mark.asyncio
    async def test_increment_returns_running_count(self, store):
        assert await store.increment("user:alice", ttl=60) == 1
        assert await store.increment("user:alice", ttl=60) == 2
        assert await store.get("user:alice") == 2

    @pytest.mark.asyncio
    async def test_absent_key_reads_zero(self, store):
        assert await store.get("user:nobody") == 0

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, store):
        await store.increment("user:alice", ttl=60)
        await store.increment("ip:10.0.0.1", ttl=60)
        await store.increment("ip:10.0.0.1", ttl=60)
        assert await store.get("user:alice") == 1
        assert await store.get("ip:10.0.0.1") == 2

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_all_counted(self, store):
        results = await asyncio.gather(*(store.increment("user:alice", ttl=60) for _ in range(50)))
        assert sorted(results) == list(range(1, 51))
        assert await store.get("user:alice") == 50


class TestExpiry:
    @pytest.fixture
    def store(self, clock):
        return InMemoryCounterStore(clock)

    @pytest.mark.asyncio
    async def test_key_expires_after_ttl(self, store, clock):
        await store.increment("user:alice", ttl=900)
        clock.advance(seconds=900)
        assert await store.get("user:alice") == 0

    @pytest.mark.asyncio
    async def test_increment_refreshes_ttl(self, store, clock):
        await store.increment("user:alice", ttl=900)
        clock.advance(seconds=600)
        await store.increment("user:alice", ttl=900)
        clock.advance(seconds=600)
        assert await store.get("user:alice") == 2

    @pytest.mark.asyncio
    async def test_increment_after_expiry_starts_new_window(self, store, clock):
        await store.increment("user:alice", ttl=60)
        await store.increment("user:alice", ttl=60)
        clock.advance(seconds=61)
        assert await store.increment("user:alice", ttl=60) == 1

    @pytest.mark.asyncio
    async def test_reset_and_set_with_ttl(self, store, clock):
        await store.increment("user:alice", ttl=60)
        await store.reset("user:alice")
        assert await store.get("user:alice") == 0

        await store.set_with_ttl("user:bob", 7, ttl=30)
        assert await store.get("user:bob") == 7
        clock.advance(seconds=30)
        assert await store.get("user:bob") == 0

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(self, store, clock):
        await store.increment("short", ttl=10)
        await store.increment("long", ttl=100)
        clock.advance(seconds=50)
        assert store.sweep() == 1
        assert len(store) == 1
        assert await store.get("long") == 1


class TestClaim:
    @pytest.mark.asyncio
    async def test_only_first_claim_wins_until_expiry(self, clock):
        store = InMemoryCounterStore(clock)
        assert await store.claim("detector:burst:10.0.0.1", ttl=600) is True
        assert await store.claim("detector:burst:10.0.0.1", ttl=600) is False
        clock.advance(seconds=600)
        assert await store.claim("detector:burst:10.0.0.1", ttl=600) is True


def test_striped_locks_map_key_to_same_lock():
    locks = StripedLocks(stripes=8)
    assert locks.for_key("user:alice") is locks.for_key("user:alice")
