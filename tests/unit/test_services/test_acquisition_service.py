# tests/unit/test_services/test_acquisition_service.py

"""Tests for the multi-source acquisition orchestrator."""

from __future__ import annotations

from typing import Callable
from unittest.mock import MagicMock

import pytest
import requests

from src.core.errors import RateLimitedError, SourceUnavailableError, TransientSourceError, ValidationError
from src.core.models import CandidateRecord, MatchMethod
from src.core.rate_limiter import RateLimiter
from src.core.record_cache import RecordCache
from src.core.retry import RetryExecutor
from src.core.storage import MemoryStore
from src.integrations.base_source import CandidateSource
from src.integrations.hltb_scraper import HLTBScraper
from src.services.acquisition_service import AcquisitionOrchestrator, SourceBinding


class ScriptedSource(CandidateSource):
    """Source that answers each call with the next scripted response.

    A response is either a list of candidates or an exception to raise.
    Once the script runs out every call returns no candidates.
    """

    def __init__(
        self,
        name: str,
        responses: list[object] | None = None,
        remote: bool = True,
        on_search: Callable[[str], None] | None = None,
    ) -> None:
        self.name = name
        self.remote = remote
        self._responses = list(responses or [])
        self._on_search = on_search
        self.calls: list[tuple[str, float | None]] = []

    def search(self, name: str, timeout: float | None = None) -> list[CandidateRecord]:
        self.calls.append((name, timeout))
        if self._on_search is not None:
            self._on_search(name)
        if not self._responses:
            return []
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return list(response)


class CatalogSource(CandidateSource):
    """Source returning every catalog record whose name equals the query."""

    def __init__(self, name: str, records: list[CandidateRecord]) -> None:
        self.name = name
        self._records = records

    def search(self, name: str, timeout: float | None = None) -> list[CandidateRecord]:
        return [record for record in self._records if record.display_name == name]


@pytest.fixture
def delays() -> list[float]:
    """Delays the retry executor slept for."""
    return []


@pytest.fixture
def make_orchestrator(fake_clock, delays):
    """Builds an orchestrator whose retry executor shares the fake clock."""

    def sleep(seconds: float) -> None:
        delays.append(seconds)
        fake_clock.advance(seconds)

    def factory(*sources, cache: RecordCache | None = None, timeout: float = 2.0) -> AcquisitionOrchestrator:
        retry = RetryExecutor(
            max_attempts=3,
            base_delay=1.0,
            transient_delay=0.1,
            sleep=sleep,
            jitter=lambda a, b: 0.0,
            clock=fake_clock,
        )
        return AcquisitionOrchestrator(list(sources), cache=cache, retry=retry, timeout=timeout, clock=fake_clock)

    return factory


class TestSourceOrder:
    """Tests for falling through the sources in priority order."""

    def test_first_source_wins(self, make_orchestrator, candidate_factory) -> None:
        api = ScriptedSource("hltb_api", [[candidate_factory("Portal 2")]])
        scraper = ScriptedSource("hltb_scraper")
        result = make_orchestrator(api, scraper).resolve("Portal 2")

        assert result.found
        assert result.source == "hltb_api"
        assert result.method is MatchMethod.EXACT
        assert result.confidence == 1.0
        assert scraper.calls == []

    def test_scraped_fallthrough_writes_cache(self, make_orchestrator, candidate_factory) -> None:
        """An empty structured answer falls through to the scraped source."""
        cache = RecordCache(MemoryStore())
        api = ScriptedSource("hltb_api", [[]])
        scraper = ScriptedSource("hltb_scraper", [[candidate_factory("Portal 2", source_id="7231")]])
        curated = ScriptedSource("curated", remote=False)
        orchestrator = make_orchestrator(api, scraper, curated, cache=cache)

        result = orchestrator.resolve("Portal 2")

        assert result.found
        assert result.source == "hltb_scraper"
        assert result.record.source_id == "7231"
        assert curated.calls == []
        entry = cache.get_entry("portal 2")
        assert entry.source == "hltb_scraper"
        assert entry.confidence == 1.0

    def test_unmatched_candidates_fall_through(self, make_orchestrator, candidate_factory) -> None:
        """Candidates the resolver rejects do not stop the search."""
        api = ScriptedSource("hltb_api", [[candidate_factory("Stardew Valley")]])
        curated = ScriptedSource("curated", [[candidate_factory("Portal 2", source_id="curated:portal 2")]], remote=False)
        result = make_orchestrator(api, curated).resolve("Portal 2")
        assert result.source == "curated"

    def test_no_match(self, make_orchestrator) -> None:
        result = make_orchestrator(ScriptedSource("hltb_api"), ScriptedSource("curated", remote=False)).resolve(
            "Portal 2"
        )
        assert not result.found
        assert result.reason == "no_match"

    def test_source_receives_remaining_budget(self, make_orchestrator) -> None:
        api = ScriptedSource("hltb_api")
        make_orchestrator(api, timeout=1.5).resolve("Portal 2")
        assert api.calls == [("Portal 2", 1.5)]


class TestRetries:
    """Tests for rate limiting and transient failures."""

    def test_rate_limit_backoff_then_fallthrough(self, make_orchestrator, delays, candidate_factory) -> None:
        """A throttled source is retried with growing delays, then skipped."""
        api = ScriptedSource("hltb_api", [RateLimitedError("429")] * 3)
        scraper = ScriptedSource("hltb_scraper", [[candidate_factory("Portal 2")]])
        orchestrator = make_orchestrator(api, scraper, timeout=60.0)

        result = orchestrator.resolve("Portal 2")

        assert len(api.calls) == 3
        assert delays == [1.0, 2.0]
        assert all(later > earlier for earlier, later in zip(delays, delays[1:]))
        assert result.found
        assert result.source == "hltb_scraper"

        counters = orchestrator.stats()["sources"]
        assert counters["hltb_api"]["errors"] == 1
        assert counters["hltb_scraper"]["successes"] == 1

    def test_transient_error_recovers(self, make_orchestrator, delays, candidate_factory) -> None:
        api = ScriptedSource("hltb_api", [TransientSourceError("503", status_code=503), [candidate_factory()]])
        result = make_orchestrator(api).resolve("Portal 2")
        assert result.source == "hltb_api"
        assert delays == [0.1]

    def test_retry_respects_budget(self, make_orchestrator, delays) -> None:
        """A backoff that would overrun the deadline is not waited for."""
        api = ScriptedSource("hltb_api", [RateLimitedError("429", retry_after=30)])
        result = make_orchestrator(api, timeout=2.0).resolve("Portal 2")
        assert delays == []
        assert result.reason == "source_error"

    def test_limiter_denial_skips_source(self, make_orchestrator, fake_clock, candidate_factory) -> None:
        """A source without a token inside the budget is skipped and counted."""
        limiter = RateLimiter(capacity=1, period=60.0, clock=fake_clock)
        limiter.try_admit()
        api = ScriptedSource("hltb_api", [[candidate_factory()]])
        curated = ScriptedSource("curated", [[candidate_factory()]], remote=False)
        orchestrator = make_orchestrator(SourceBinding(api, limiter), curated)

        result = orchestrator.resolve("Portal 2")

        assert api.calls == []
        assert result.source == "curated"
        assert orchestrator.stats()["sources"]["hltb_api"]["throttled"] == 1

    def test_limiter_denial_reports_source_error(self, make_orchestrator, fake_clock) -> None:
        limiter = RateLimiter(capacity=1, period=60.0, clock=fake_clock)
        limiter.try_admit()
        result = make_orchestrator(SourceBinding(ScriptedSource("hltb_api"), limiter)).resolve("Portal 2")
        assert result.reason == "source_error"


class TestFailures:
    """Tests for failure reasons."""

    def test_source_error_reason(self, make_orchestrator) -> None:
        api = ScriptedSource("hltb_api", [SourceUnavailableError("down")])
        curated = ScriptedSource("curated", remote=False)
        result = make_orchestrator(api, curated).resolve("Portal 2")
        assert not result.found
        assert result.reason == "source_error"
        assert len(curated.calls) == 1

    def test_unexpected_exception_contained(self, make_orchestrator, candidate_factory) -> None:
        """Programming errors in a source are logged, never raised."""
        api = ScriptedSource("hltb_api", [RuntimeError("bug")])
        curated = ScriptedSource("curated", [[candidate_factory()]], remote=False)
        orchestrator = make_orchestrator(api, curated)

        result = orchestrator.resolve("Portal 2")

        assert result.source == "curated"
        assert len(api.calls) == 1
        assert orchestrator.stats()["sources"]["hltb_api"]["errors"] == 1

    def test_late_result_discarded(self, make_orchestrator, fake_clock, candidate_factory) -> None:
        """A result arriving after the deadline is dropped and nothing is cached."""
        cache = RecordCache(MemoryStore())
        api = ScriptedSource("hltb_api", [[candidate_factory()]], on_search=lambda name: fake_clock.advance(3.0))
        curated = ScriptedSource("curated", [[candidate_factory()]], remote=False)
        orchestrator = make_orchestrator(api, curated, cache=cache, timeout=2.0)

        result = orchestrator.resolve("Portal 2")

        assert not result.found
        assert result.reason == "timeout"
        assert curated.calls == []
        assert len(cache) == 0

    def test_slow_requests_bounded_by_budget(self, make_orchestrator, fake_clock) -> None:
        """A source whose requests time out cannot hold the call past the deadline."""

        def slow_get(url: str, **kwargs) -> None:
            fake_clock.advance(kwargs["timeout"])
            raise requests.Timeout("read timed out")

        scraper = HLTBScraper(http_timeout=10.0, clock=fake_clock)
        scraper._session.get = MagicMock(side_effect=slow_get)
        curated = ScriptedSource("curated", remote=False)
        start = fake_clock()

        result = make_orchestrator(scraper, curated, timeout=0.5).resolve("Portal 2")

        assert result.reason == "timeout"
        assert fake_clock() - start == 0.5
        assert scraper._session.get.call_count == 1
        assert curated.calls == []

    def test_zero_budget(self, make_orchestrator) -> None:
        api = ScriptedSource("hltb_api")
        result = make_orchestrator(api).resolve("Portal 2", timeout=0.0)
        assert result.reason == "timeout"
        assert api.calls == []


class TestCacheAndSkip:
    """Tests for the checks done before any source is queried."""

    def test_cache_hit_avoids_sources(self, make_orchestrator, candidate_factory) -> None:
        cache = RecordCache(MemoryStore())
        cache.set("id:620", candidate_factory(), source="hltb_api", confidence=0.95)
        api = ScriptedSource("hltb_api")
        orchestrator = make_orchestrator(api, cache=cache)

        result = orchestrator.resolve("Portal 2", stable_id="620")

        assert result.found
        assert result.source == "cache"
        assert result.confidence == 0.95
        assert api.calls == []
        assert orchestrator.stats()["cache_hits"] == 1

    def test_second_lookup_served_from_cache(self, make_orchestrator, candidate_factory) -> None:
        cache = RecordCache(MemoryStore())
        api = ScriptedSource("hltb_api", [[candidate_factory()]])
        orchestrator = make_orchestrator(api, cache=cache)

        first = orchestrator.resolve("Portal 2")
        second = orchestrator.resolve("  PORTAL 2 ")

        assert first.source == "hltb_api"
        assert second.source == "cache"
        assert second.record == first.record
        assert len(api.calls) == 1

    def test_skip_list(self, make_orchestrator) -> None:
        """Multiplayer-only games never reach a source."""
        cache = RecordCache(MemoryStore())
        api = ScriptedSource("hltb_api")
        result = make_orchestrator(api, cache=cache).resolve("Team Fortress 2")

        assert not result.found
        assert result.skipped
        assert result.reason == "skipped"
        assert api.calls == []
        assert len(cache) == 0

    def test_cache_key(self) -> None:
        assert AcquisitionOrchestrator.cache_key("Portal 2", " 620 ") == "id:620"
        assert AcquisitionOrchestrator.cache_key("Half-Life: Alyx") == "half life alyx"


class TestValidation:
    """Tests for input validation."""

    @pytest.mark.parametrize("name", ["", "   ", None, 42, "x" * 201])
    def test_invalid_name(self, make_orchestrator, name: object) -> None:
        api = ScriptedSource("hltb_api")
        with pytest.raises(ValidationError):
            make_orchestrator(api).resolve(name)  # type: ignore[arg-type]
        assert api.calls == []

    @pytest.mark.parametrize("stable_id", ["", "  ", 620])
    def test_invalid_stable_id(self, make_orchestrator, stable_id: object) -> None:
        with pytest.raises(ValidationError):
            make_orchestrator().resolve("Portal 2", stable_id=stable_id)  # type: ignore[arg-type]

    def test_name_stripped(self) -> None:
        assert AcquisitionOrchestrator.validate("  Portal 2 ") == "Portal 2"


class TestResolveMany:
    """Tests for batch resolution."""

    def test_order_and_invalid_items(self, make_orchestrator, candidate_factory) -> None:
        catalog = CatalogSource(
            "hltb_api",
            [candidate_factory("Portal 2", source_id="1"), candidate_factory("Half-Life 2", source_id="2")],
        )
        orchestrator = make_orchestrator(catalog)

        results = orchestrator.resolve_many(
            ["Portal 2", "", ("Half-Life 2", "220"), "Unknown Game", "Dota 2"],
            max_concurrency=3,
        )

        assert [r.found for r in results] == [True, False, True, False, False]
        assert results[0].record.source_id == "1"
        assert results[1].reason == "invalid"
        assert results[2].record.source_id == "2"
        assert results[3].reason == "no_match"
        assert results[4].reason == "skipped"

    def test_empty_batch(self, make_orchestrator) -> None:
        assert make_orchestrator().resolve_many([]) == []


class TestExplain:
    """Tests for the per-source score breakdown."""

    def test_reports_every_source(self, make_orchestrator, fake_clock, candidate_factory) -> None:
        limiter = RateLimiter(capacity=1, period=60.0, clock=fake_clock)
        limiter.try_admit()
        api = ScriptedSource("hltb_api", [[candidate_factory()]])
        scraper = ScriptedSource("hltb_scraper", [SourceUnavailableError("blocked")])
        curated = ScriptedSource("curated", [[candidate_factory("Portal 2")]], remote=False)
        cache = RecordCache(MemoryStore())
        orchestrator = make_orchestrator(SourceBinding(api, limiter), scraper, curated, cache=cache)

        report = orchestrator.explain("  Portal 2 ")

        assert report["name"] == "Portal 2"
        assert report["skipped"] is False
        assert report["sources"]["hltb_api"] == {"throttled": True}
        assert api.calls == []
        assert "blocked" in report["sources"]["hltb_scraper"]["error"]
        assert report["sources"]["curated"]["match"] == "Portal 2"
        assert report["sources"]["curated"]["percentage"] == 100
        assert len(cache) == 0

    def test_invalid_name(self, make_orchestrator) -> None:
        with pytest.raises(ValidationError):
            make_orchestrator().explain("")


class TestDiagnostics:
    """Tests for stats, diagnostics and health checks."""

    def test_stats(self, make_orchestrator, candidate_factory) -> None:
        api = ScriptedSource("hltb_api", [[candidate_factory()]])
        orchestrator = make_orchestrator(api)
        orchestrator.resolve("Portal 2")
        orchestrator.resolve("Half-Life 3")

        stats = orchestrator.stats()
        assert stats["total_requests"] == 2
        assert stats["sources"]["hltb_api"] == {"attempts": 2, "successes": 1, "errors": 0, "throttled": 0}

    def test_diagnostics(self, make_orchestrator, fake_clock, candidate_factory) -> None:
        limiter = RateLimiter(capacity=10, period=60.0, clock=fake_clock)
        api = ScriptedSource("hltb_api", [[candidate_factory()]])
        orchestrator = make_orchestrator(SourceBinding(api, limiter), cache=RecordCache(MemoryStore()))
        orchestrator.resolve("Portal 2")
        orchestrator.resolve("Portal 2")

        diagnostics = orchestrator.diagnostics()
        source = diagnostics["sources"]["hltb_api"]
        assert source["success_rate"] == 1.0
        assert source["tokens_available"] == 9.0
        assert source["status"]["name"] == "hltb_api"
        assert diagnostics["cache_hit_rate"] == 0.5
        assert diagnostics["cache"]["size"] == 1

    def test_healthy(self, make_orchestrator) -> None:
        assert make_orchestrator(ScriptedSource("hltb_api")).health_check() == (True, [])

    def test_failing_remote_source_reported(self, make_orchestrator) -> None:
        binding = SourceBinding(ScriptedSource("hltb_api"), attempts=11)
        healthy, issues = make_orchestrator(binding).health_check()
        assert not healthy
        assert any("hltb_api" in issue for issue in issues)

    def test_local_source_ignored(self, make_orchestrator) -> None:
        binding = SourceBinding(ScriptedSource("curated", remote=False), attempts=50)
        assert make_orchestrator(binding).health_check()[0]

    def test_full_cache_reported(self, make_orchestrator, candidate_factory) -> None:
        cache = RecordCache(capacity=1)
        cache.set("portal 2", candidate_factory())
        healthy, issues = make_orchestrator(cache=cache).health_check()
        assert not healthy
        assert issues == ["Record cache is at capacity"]

    def test_sweep_and_clear(self, make_orchestrator, fake_clock, candidate_factory) -> None:
        cache = RecordCache(ttl=60, clock=fake_clock)
        cache.set("portal 2", candidate_factory())
        orchestrator = make_orchestrator(cache=cache)
        fake_clock.advance(61)
        assert orchestrator.sweep_cache() == 1

        cache.set("half life 2", candidate_factory())
        orchestrator.clear_cache()
        assert len(cache) == 0

    def test_sweep_without_cache(self, make_orchestrator) -> None:
        assert make_orchestrator().sweep_cache() == 0
