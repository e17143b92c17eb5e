"""Time-boxed, size-capped cache of acquired game records.

Entries expire after a TTL (checked lazily on read, or proactively by
``sweep_expired``) and are evicted synchronously inside ``set`` once the
cache grows past its capacity. The eviction score favours entries that
are hit often and were used recently:

    score = hit_count / (1 + idle_hours)

The lowest score goes first; among equal scores the least recently used
entry goes first. The entry being written is never evicted.

The whole index is persisted under a single key of a KeyValueStore and
reloaded on construction.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

from src.core.errors import StorageError
from src.core.models import CacheEntry, CandidateRecord
from src.core.storage import KeyValueStore

logger = logging.getLogger("hltbresolver.record_cache")

__all__ = ["RecordCache"]

STORAGE_KEY = "record_cache"
_FORMAT_VERSION = 1

DEFAULT_TTL = 7 * 24 * 3600
DEFAULT_CAPACITY = 1000


class RecordCache:
    """Thread-safe record cache with TTL, capacity and optional persistence.

    Args:
        store: Backend for persistence; None keeps the cache in memory only.
        ttl: Entry lifetime in seconds.
        capacity: Maximum number of entries.
        clock: Wall-clock time function, injectable for tests.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        ttl: float = DEFAULT_TTL,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.ttl = ttl
        self.capacity = capacity
        self._store = store
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._load()

    # ── persistence ───────────────────────────────────────────────

    def _load(self) -> None:
        if self._store is None:
            return
        data = self._store.get(STORAGE_KEY)
        if not isinstance(data, dict) or data.get("version") != _FORMAT_VERSION:
            return

        now = self._clock()
        loaded: list[CacheEntry] = []
        for key, raw in data.get("entries", {}).items():
            try:
                entry = CacheEntry.from_dict(key, raw)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping unreadable cache entry '%s': %s", key, exc)
                continue
            if not self._is_expired(entry, now):
                loaded.append(entry)

        # Rebuild recency order from the persisted access times.
        for entry in sorted(loaded, key=lambda e: e.last_accessed):
            self._entries[entry.key] = entry
        while len(self._entries) > self.capacity:
            self._evict_one(protected=None)
        logger.info("Loaded %d cached records", len(self._entries))

    def _persist(self) -> None:
        if self._store is None:
            return
        payload = {
            "version": _FORMAT_VERSION,
            "entries": {key: entry.to_dict() for key, entry in self._entries.items()},
        }
        try:
            self._store.set(STORAGE_KEY, payload)
        except StorageError as exc:
            logger.warning("Cache write error: %s", exc)

    def flush(self) -> None:
        """Writes the current index (including hit counts) to the store."""
        with self._lock:
            self._persist()

    # ── core operations ───────────────────────────────────────────

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl

    def get(self, key: str) -> CandidateRecord | None:
        """Returns the cached record, or None on a miss or an expired entry."""
        entry = self.get_entry(key)
        return entry.record if entry is not None else None

    def get_entry(self, key: str) -> CacheEntry | None:
        """Like ``get`` but returns the whole entry (source, confidence, counters)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if self._is_expired(entry, now):
                del self._entries[key]
                self._misses += 1
                self._persist()
                logger.debug("Cache entry '%s' expired", key)
                return None

            entry.hit_count += 1
            entry.last_accessed = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry

    def set(
        self,
        key: str,
        record: CandidateRecord,
        source: str | None = None,
        confidence: float | None = None,
    ) -> None:
        """Stores a record, overwriting any entry under the same key.

        Evicts low-scoring entries first if the cache would exceed its capacity.
        """
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key,
                record=record,
                inserted_at=now,
                last_accessed=now,
                source=source,
                confidence=confidence,
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._evict_one(protected=key)
            self._persist()

    def remove(self, key: str) -> bool:
        """Deletes an entry.

        Returns:
            True if the key was present.
        """
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._persist()
            return True

    def _score(self, entry: CacheEntry, now: float) -> float:
        idle_hours = max(0.0, now - entry.last_accessed) / 3600
        return entry.hit_count / (1.0 + idle_hours)

    def _evict_one(self, protected: str | None) -> None:
        now = self._clock()
        victim: CacheEntry | None = None
        victim_score = 0.0
        # Iteration runs from least to most recently used, so ties evict the older entry.
        for entry in self._entries.values():
            if entry.key == protected:
                continue
            score = self._score(entry, now)
            if victim is None or score < victim_score:
                victim, victim_score = entry, score
        if victim is None:
            return
        del self._entries[victim.key]
        self._evictions += 1
        logger.debug("Evicted cache entry '%s' (score %.3f)", victim.key, victim_score)

    # ── maintenance ───────────────────────────────────────────────

    def sweep_expired(self) -> int:
        """Removes every expired entry; meant to be triggered periodically.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
            if expired:
                self._persist()
                logger.info("Swept %d expired cache entries", len(expired))
            return len(expired)

    def clear(self) -> None:
        """Removes all entries and resets the counters."""
        with self._lock:
            self._entries.clear()
            self._hits = self._misses = self._evictions = 0
            if self._store is not None:
                try:
                    self._store.remove(STORAGE_KEY)
                except StorageError as exc:
                    logger.warning("Cache clear error: %s", exc)

    def stats(self) -> dict[str, Any]:
        """Returns size, hit/miss/eviction counters and the oldest insertion time."""
        with self._lock:
            oldest = min((entry.inserted_at for entry in self._entries.values()), default=None)
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "entry_hits": sum(entry.hit_count for entry in self._entries.values()),
                "oldest_entry": oldest,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not self._is_expired(entry, self._clock())
