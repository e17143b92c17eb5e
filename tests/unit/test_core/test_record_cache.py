# tests/unit/test_core/test_record_cache.py

"""Tests for the TTL and capacity bounded record cache."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from src.core.errors import StorageError
from src.core.record_cache import STORAGE_KEY, RecordCache
from src.core.storage import MemoryStore


class TestBasicOperations:
    """Tests for get, set and remove."""

    def test_set_and_get(self, fake_clock, candidate_factory) -> None:
        cache = RecordCache(clock=fake_clock)
        record = candidate_factory()
        cache.set("portal 2", record, source="hltb_api", confidence=1.0)
        assert cache.get("portal 2") == record
        entry = cache.get_entry("portal 2")
        assert entry.source == "hltb_api"
        assert entry.confidence == 1.0

    def test_miss(self, fake_clock) -> None:
        cache = RecordCache(clock=fake_clock)
        assert cache.get("unknown") is None

    def test_overwrite(self, fake_clock, candidate_factory) -> None:
        """Setting an existing key replaces the entry and resets its counters."""
        cache = RecordCache(clock=fake_clock)
        cache.set("k", candidate_factory(source_id="1"))
        cache.get("k")
        cache.set("k", candidate_factory(source_id="2"))
        entry = cache.get_entry("k")
        assert entry.record.source_id == "2"
        assert entry.hit_count == 1
        assert len(cache) == 1

    def test_remove(self, fake_clock, candidate_factory) -> None:
        cache = RecordCache(clock=fake_clock)
        cache.set("k", candidate_factory())
        assert cache.remove("k") is True
        assert cache.remove("k") is False
        assert "k" not in cache

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            RecordCache(capacity=0)


class TestExpiry:
    """Tests for TTL handling."""

    def test_entry_expires_after_ttl(self, fake_clock, candidate_factory) -> None:
        """An entry is returned before its TTL and gone at the TTL."""
        cache = RecordCache(ttl=60, clock=fake_clock)
        cache.set("k", candidate_factory())
        fake_clock.advance(59)
        assert cache.get("k") is not None
        fake_clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_hits_do_not_extend_lifetime(self, fake_clock, candidate_factory) -> None:
        """TTL counts from insertion, not from the last access."""
        cache = RecordCache(ttl=60, clock=fake_clock)
        cache.set("k", candidate_factory())
        for _ in range(5):
            fake_clock.advance(15)
            cache.get("k")
        assert "k" not in cache

    def test_sweep_expired(self, fake_clock, candidate_factory) -> None:
        """Sweeping removes only expired entries."""
        cache = RecordCache(ttl=100, clock=fake_clock)
        cache.set("old", candidate_factory())
        fake_clock.advance(60)
        cache.set("new", candidate_factory())
        fake_clock.advance(50)
        assert cache.sweep_expired() == 1
        assert "old" not in cache
        assert "new" in cache


class TestEviction:
    """Tests for capacity-driven eviction."""

    def test_evicts_lowest_score(self, fake_clock, candidate_factory) -> None:
        """Entries that are hit often survive entries that are never hit."""
        cache = RecordCache(capacity=2, clock=fake_clock)
        cache.set("popular", candidate_factory())
        cache.set("cold", candidate_factory())
        for _ in range(3):
            cache.get("popular")
        cache.set("fresh", candidate_factory())

        assert "popular" in cache
        assert "cold" not in cache
        assert "fresh" in cache
        assert cache.stats()["evictions"] == 1

    def test_written_key_never_evicted(self, fake_clock, candidate_factory) -> None:
        """The new entry survives even though its score is the lowest."""
        cache = RecordCache(capacity=1, clock=fake_clock)
        cache.set("old", candidate_factory())
        cache.get("old")
        cache.set("new", candidate_factory())
        assert "new" in cache
        assert "old" not in cache

    def test_ties_evict_least_recently_used(self, fake_clock, candidate_factory) -> None:
        """With equal scores the least recently used entry goes first."""
        cache = RecordCache(capacity=2, clock=fake_clock)
        cache.set("first", candidate_factory())
        cache.set("second", candidate_factory())
        cache.set("third", candidate_factory())
        assert "first" not in cache
        assert "second" in cache

    def test_idle_time_lowers_score(self, fake_clock, candidate_factory) -> None:
        """A stale entry with more hits can lose to a recently hit one."""
        cache = RecordCache(capacity=2, ttl=10 * 24 * 3600, clock=fake_clock)
        cache.set("stale", candidate_factory())
        cache.get("stale")
        cache.get("stale")
        fake_clock.advance(48 * 3600)
        cache.set("recent", candidate_factory())
        cache.get("recent")
        cache.set("newest", candidate_factory())

        # stale: 2 / (1 + 48) ~ 0.04, recent: 1 / 1 = 1.0
        assert "stale" not in cache
        assert "recent" in cache


class TestPersistence:
    """Tests for the KeyValueStore round trip."""

    def test_reload_from_store(self, fake_clock, candidate_factory, memory_store) -> None:
        """A new cache over the same store sees the persisted entries."""
        cache = RecordCache(store=memory_store, clock=fake_clock)
        cache.set("portal 2", candidate_factory(), source="hltb_api", confidence=0.95)
        cache.get("portal 2")
        cache.flush()

        reloaded = RecordCache(store=memory_store, clock=fake_clock)
        entry = reloaded.get_entry("portal 2")
        assert entry.record == candidate_factory()
        assert entry.source == "hltb_api"
        assert entry.confidence == 0.95
        assert entry.hit_count == 2

    def test_expired_entries_dropped_on_load(self, fake_clock, candidate_factory, memory_store) -> None:
        cache = RecordCache(store=memory_store, ttl=60, clock=fake_clock)
        cache.set("k", candidate_factory())
        fake_clock.advance(120)
        assert len(RecordCache(store=memory_store, ttl=60, clock=fake_clock)) == 0

    def test_unreadable_entries_skipped(self, fake_clock, candidate_factory, memory_store) -> None:
        """Corrupt entries are dropped while valid ones load."""
        cache = RecordCache(store=memory_store, clock=fake_clock)
        cache.set("good", candidate_factory())
        payload = memory_store.get(STORAGE_KEY)
        payload["entries"]["bad"] = {"record": {"display_name": "no id"}}
        memory_store.set(STORAGE_KEY, payload)

        reloaded = RecordCache(store=memory_store, clock=fake_clock)
        assert "good" in reloaded
        assert "bad" not in reloaded

    def test_unknown_format_ignored(self, fake_clock, memory_store) -> None:
        memory_store.set(STORAGE_KEY, {"version": 99, "entries": {}})
        assert len(RecordCache(store=memory_store, clock=fake_clock)) == 0

    def test_storage_error_does_not_break_set(self, fake_clock, candidate_factory) -> None:
        """A value over the store's size limit is kept in memory only."""
        store = MemoryStore(max_bytes=10)
        cache = RecordCache(store=store, clock=fake_clock)
        cache.set("k", candidate_factory())
        assert "k" in cache
        assert store.get(STORAGE_KEY) is None

    def test_clear_removes_persisted_index(self, fake_clock, candidate_factory, memory_store) -> None:
        cache = RecordCache(store=memory_store, clock=fake_clock)
        cache.set("k", candidate_factory())
        cache.clear()
        assert memory_store.get(STORAGE_KEY) is None
        assert cache.stats()["size"] == 0


class TestStats:
    """Tests for stats()."""

    def test_counters(self, fake_clock, candidate_factory) -> None:
        cache = RecordCache(capacity=5, clock=fake_clock)
        cache.set("a", candidate_factory())
        cache.get("a")
        cache.get("a")
        cache.get("missing")

        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["capacity"] == 5
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(2 / 3)
        assert stats["entry_hits"] == 2
        assert stats["oldest_entry"] == fake_clock()

    def test_empty(self, fake_clock) -> None:
        stats = RecordCache(clock=fake_clock).stats()
        assert stats["hit_rate"] == 0.0
        assert stats["oldest_entry"] is None


class TestConcurrency:
    """Eviction bookkeeping under concurrent writers and readers."""

    WORKERS = 8
    WRITES = 150

    def test_parallel_writes_past_capacity(self, fake_clock, candidate_factory) -> None:
        store = MemoryStore()
        cache = RecordCache(store, capacity=25, clock=fake_clock)
        record = candidate_factory()

        def worker(worker_id: int) -> int:
            lookups = 0
            for i in range(self.WRITES):
                key = f"w{worker_id}-{i}"
                cache.set(key, record, source="hltb_api")
                cache.get_entry(key)
                cache.get_entry(f"w{(worker_id + 1) % self.WORKERS}-{i}")
                lookups += 2
                assert len(cache) <= cache.capacity
            return lookups

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            lookups = sum(pool.map(worker, range(self.WORKERS)))

        stats = cache.stats()
        assert stats["size"] == cache.capacity
        assert stats["hits"] + stats["misses"] == lookups
        assert stats["size"] + stats["evictions"] == self.WORKERS * self.WRITES
        assert len(store.get(STORAGE_KEY)["entries"]) == stats["size"]

def test_storage_error_is_resolver_error() -> None:
    """Storage failures share the package error base."""
    error = StorageError("disk full")
    assert error.recoverable is True
    assert error.code == "STORAGE_ERROR"
