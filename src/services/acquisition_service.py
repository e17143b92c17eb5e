# src/services/acquisition_service.py

"""Multi-source acquisition of completion-time records.

The orchestrator answers "how long is this game?" by consulting, in
order, the record cache, the skip list and then each candidate source
(structured API, scraped page, curated database). Every remote source
sits behind its own rate limiter and every call goes through the retry
executor. One monotonic deadline bounds the whole resolution: limiter
waits, retries and HTTP timeouts all draw from the remaining budget, and
a result that arrives after the deadline is discarded.

Source failures never escape ``resolve``; they are counted, logged and
reported through the result's ``reason``.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from src.core.errors import ResolverError, ValidationError
from src.core.models import AcquisitionResult
from src.core.rate_limiter import RateLimiter
from src.core.record_cache import RecordCache
from src.core.retry import RetryExecutor
from src.integrations.base_source import CandidateSource
from src.services.matching.title_resolver import TitleResolver
from src.utils.title_normalizer import NormalizationLevel, normalize

logger = logging.getLogger("hltbresolver.acquisition")

__all__ = ["AcquisitionOrchestrator", "SourceBinding"]

MAX_NAME_LENGTH = 200
DEFAULT_TIMEOUT = 2.0
DEFAULT_CONCURRENCY = 4

# Health thresholds
_MIN_ATTEMPTS_FOR_HEALTH = 10
_SLOW_AVERAGE_MS = 5000.0

REASON_NO_MATCH = "no_match"
REASON_SKIPPED = "skipped"
REASON_SOURCE_ERROR = "source_error"
REASON_TIMEOUT = "timeout"
REASON_INVALID = "invalid"


@dataclass
class SourceBinding:
    """A candidate source together with its rate limiter and counters.

    Attributes:
        source: The source to query.
        limiter: Token bucket for remote sources, None for local ones.
        attempts: Number of searches started.
        successes: Number of searches that produced the returned match.
        errors: Number of searches that failed.
        throttled: Number of times the limiter denied admission in time.
    """

    source: CandidateSource
    limiter: RateLimiter | None = None
    attempts: int = 0
    successes: int = 0
    errors: int = 0
    throttled: int = 0

    @property
    def name(self) -> str:
        return self.source.name

    def counters(self) -> dict[str, int]:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "errors": self.errors,
            "throttled": self.throttled,
        }


@dataclass
class _Outcome:
    """Bookkeeping for one resolution across all sources."""

    failed: bool = False
    timed_out: bool = False
    tried: list[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        if self.timed_out:
            return REASON_TIMEOUT
        if self.failed:
            return REASON_SOURCE_ERROR
        return REASON_NO_MATCH


class AcquisitionOrchestrator:
    """Resolves a game name to a completion-time record.

    Args:
        sources: Sources in priority order, each with an optional limiter.
            Plain CandidateSource objects are accepted and get no limiter.
        resolver: Matching cascade used to pick a candidate.
        cache: Record cache; None disables caching.
        retry: Retry executor; a default one when omitted. It must use the
            same monotonic clock as ``clock``.
        timeout: Default overall budget per resolution in seconds.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        sources: Sequence[SourceBinding | CandidateSource],
        resolver: TitleResolver | None = None,
        cache: RecordCache | None = None,
        retry: RetryExecutor | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sources: list[SourceBinding] = [
            s if isinstance(s, SourceBinding) else SourceBinding(source=s) for s in sources
        ]
        self._resolver = resolver or TitleResolver()
        self._cache = cache
        self._retry = retry or RetryExecutor(clock=clock)
        self.timeout = timeout
        self._clock = clock

        self._stats_lock = threading.Lock()
        self._total_requests = 0
        self._cache_hits = 0
        self._total_time_ms = 0.0

    @property
    def sources(self) -> list[SourceBinding]:
        return list(self._sources)

    @property
    def cache(self) -> RecordCache | None:
        return self._cache

    # ── validation ────────────────────────────────────────────────

    @staticmethod
    def validate(name: object, stable_id: object = None) -> str:
        """Checks the inputs of ``resolve``.

        Returns:
            The name with surrounding whitespace removed.

        Raises:
            ValidationError: If the name or the identifier is malformed.
        """
        if not isinstance(name, str):
            raise ValidationError(f"name must be a string, got {type(name).__name__}")
        stripped = name.strip()
        if not stripped:
            raise ValidationError("name must not be empty")
        if len(stripped) > MAX_NAME_LENGTH:
            raise ValidationError(f"name exceeds {MAX_NAME_LENGTH} characters")
        if stable_id is not None and (not isinstance(stable_id, str) or not stable_id.strip()):
            raise ValidationError("stable_id must be a non-empty string")
        return stripped

    @staticmethod
    def cache_key(name: str, stable_id: str | None = None) -> str:
        """Stable identifier when given, else the standard-normalized name."""
        if stable_id is not None:
            return f"id:{stable_id.strip()}"
        return normalize(name, NormalizationLevel.STANDARD)

    # ── resolution ────────────────────────────────────────────────

    def resolve(self, name: str, stable_id: str | None = None, timeout: float | None = None) -> AcquisitionResult:
        """Acquires the record for one game.

        Args:
            name: Game name as shown to the user.
            stable_id: Caller's identifier for the game (e.g. Steam app id).
            timeout: Overall budget in seconds; the default when None.

        Returns:
            The acquisition result. Unsuccessful results carry a reason:
            skipped, no_match, source_error or timeout.

        Raises:
            ValidationError: If the name or the identifier is malformed.
        """
        name = self.validate(name, stable_id)
        started = self._clock()
        deadline = started + (self.timeout if timeout is None else timeout)
        try:
            return self._resolve(name, stable_id, deadline)
        finally:
            elapsed_ms = (self._clock() - started) * 1000
            with self._stats_lock:
                self._total_requests += 1
                self._total_time_ms += elapsed_ms

    def _resolve(self, name: str, stable_id: str | None, deadline: float) -> AcquisitionResult:
        key = self.cache_key(name, stable_id)

        if self._cache is not None:
            entry = self._cache.get_entry(key)
            if entry is not None:
                with self._stats_lock:
                    self._cache_hits += 1
                logger.debug("Cache hit for '%s'", name)
                return AcquisitionResult(found=True, record=entry.record, source="cache", confidence=entry.confidence)

        if self._resolver.is_skipped(name):
            logger.info("Skipping '%s': multiplayer-only game", name)
            return AcquisitionResult.not_found(REASON_SKIPPED, skipped=True)

        outcome = _Outcome()
        for binding in self._sources:
            remaining = deadline - self._clock()
            if remaining <= 0:
                outcome.timed_out = True
                break

            if binding.limiter is not None and not binding.limiter.admit(timeout=remaining):
                with self._stats_lock:
                    binding.throttled += 1
                logger.info("Source %s: no rate limit token within the budget, skipping", binding.name)
                outcome.failed = True
                continue

            result = self._query(binding, name, key, deadline, outcome)
            if result is not None:
                return result
            if outcome.timed_out:
                break

        logger.info("No record for '%s' (%s; tried %s)", name, outcome.reason, ", ".join(outcome.tried) or "none")
        return AcquisitionResult.not_found(outcome.reason)

    def _query(
        self,
        binding: SourceBinding,
        name: str,
        key: str,
        deadline: float,
        outcome: _Outcome,
    ) -> AcquisitionResult | None:
        """Searches one source and runs the resolver on its candidates.

        Returns:
            A final result (match or skip), or None to move on.
        """
        source = binding.source
        outcome.tried.append(source.name)
        with self._stats_lock:
            binding.attempts += 1

        try:
            candidates = self._retry.run(
                lambda: source.search(name, timeout=max(deadline - self._clock(), 0.0)),
                deadline=deadline,
                label=source.name,
            )
        except ResolverError as exc:
            with self._stats_lock:
                binding.errors += 1
            if self._clock() >= deadline:
                logger.warning("Source %s ran out of time for '%s': %s", source.name, name, exc)
                outcome.timed_out = True
                return None
            outcome.failed = True
            logger.warning("Source %s failed for '%s': %s", source.name, name, exc)
            return None
        except Exception:
            with self._stats_lock:
                binding.errors += 1
            outcome.failed = True
            logger.exception("Unexpected error from source %s for '%s'", source.name, name)
            return None

        if self._clock() > deadline:
            logger.warning("Discarding late result from %s for '%s'", source.name, name)
            outcome.timed_out = True
            return None

        if not candidates:
            logger.debug("Source %s has no candidates for '%s'", source.name, name)
            return None

        match = self._resolver.resolve(name, candidates)
        if match is None:
            return None
        if match.skipped:
            return AcquisitionResult.not_found(REASON_SKIPPED, skipped=True)

        with self._stats_lock:
            binding.successes += 1
        if self._cache is not None:
            self._cache.set(key, match.candidate, source=source.name, confidence=match.confidence)

        logger.info(
            "Resolved '%s' -> '%s' via %s/%s (%.0f%%)",
            name,
            match.candidate.display_name,
            source.name,
            match.method.value if match.method else "?",
            match.confidence * 100,
        )
        return AcquisitionResult(
            found=True,
            record=match.candidate,
            source=source.name,
            confidence=match.confidence,
            method=match.method,
        )

    def resolve_many(
        self,
        items: Iterable[str | tuple[str, str | None]],
        max_concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float | None = None,
    ) -> list[AcquisitionResult]:
        """Resolves several games concurrently.

        Args:
            items: Names, or (name, stable_id) pairs.
            max_concurrency: Number of worker threads.
            timeout: Budget per resolution.

        Returns:
            Results in input order. Invalid inputs give reason "invalid".
        """
        pairs = [item if isinstance(item, tuple) else (item, None) for item in items]
        if not pairs:
            return []

        def run(pair: tuple[str, str | None]) -> AcquisitionResult:
            try:
                return self.resolve(pair[0], pair[1], timeout=timeout)
            except ValidationError as exc:
                logger.warning("Invalid batch item %r: %s", pair, exc)
                return AcquisitionResult.not_found(REASON_INVALID)

        workers = max(1, min(max_concurrency, len(pairs)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hltb-acquire") as pool:
            return list(pool.map(run, pairs))

    def explain(self, name: str) -> dict[str, Any]:
        """Scores every source's candidates for one title.

        Each source is searched once, bypassing the cache and the retry
        policy. A remote source without a free rate-limit token is reported
        as throttled rather than waited for.

        Returns:
            ``{name, skipped, sources}`` where ``sources`` maps each source
            name to the resolver's breakdown, ``{"error": ...}`` or
            ``{"throttled": True}``.

        Raises:
            ValidationError: If the name is malformed.
        """
        name = self.validate(name)
        reports: dict[str, Any] = {}
        for binding in self._sources:
            if binding.limiter is not None and not binding.limiter.try_admit():
                reports[binding.name] = {"throttled": True}
                continue
            try:
                candidates = binding.source.search(name, timeout=self.timeout)
            except ResolverError as exc:
                reports[binding.name] = {"error": str(exc)}
                continue
            reports[binding.name] = self._resolver.explain(name, candidates)
        return {"name": name, "skipped": self._resolver.is_skipped(name), "sources": reports}

    # ── maintenance & diagnostics ─────────────────────────────────

    def sweep_cache(self) -> int:
        """Purges expired cache entries; returns how many were removed."""
        if self._cache is None:
            return 0
        return self._cache.sweep_expired()

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    def stats(self) -> dict[str, Any]:
        """Returns request, cache-hit and per-source counters."""
        with self._stats_lock:
            average = self._total_time_ms / self._total_requests if self._total_requests else 0.0
            return {
                "total_requests": self._total_requests,
                "cache_hits": self._cache_hits,
                "average_time_ms": round(average, 2),
                "sources": {binding.name: binding.counters() for binding in self._sources},
            }

    def diagnostics(self) -> dict[str, Any]:
        """Stats plus success rates, source status and cache stats."""
        stats = self.stats()
        for binding in self._sources:
            counters = stats["sources"][binding.name]
            attempts = counters["attempts"]
            counters["success_rate"] = counters["successes"] / attempts if attempts else 0.0
            counters["status"] = binding.source.status()
            if binding.limiter is not None:
                counters["tokens_available"] = round(binding.limiter.available, 2)
        total = stats["total_requests"]
        stats["cache_hit_rate"] = stats["cache_hits"] / total if total else 0.0
        stats["cache"] = self._cache.stats() if self._cache is not None else None
        return stats

    def health_check(self) -> tuple[bool, list[str]]:
        """Reports whether the service looks healthy.

        Returns:
            Tuple of (healthy, list of issues).
        """
        issues: list[str] = []
        stats = self.stats()

        for binding in self._sources:
            if not binding.source.remote:
                continue
            counters = stats["sources"][binding.name]
            if counters["attempts"] > _MIN_ATTEMPTS_FOR_HEALTH and counters["successes"] == 0:
                issues.append(f"Source {binding.name} has {counters['attempts']} attempts and no successes")

        if stats["average_time_ms"] > _SLOW_AVERAGE_MS:
            issues.append(f"Average retrieval time is {stats['average_time_ms']:.0f} ms")

        if self._cache is not None:
            cache_stats = self._cache.stats()
            if cache_stats["size"] >= cache_stats["capacity"]:
                issues.append("Record cache is at capacity")

        return not issues, issues
