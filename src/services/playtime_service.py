# src/services/playtime_service.py

"""Inbound facade: wires the resolver stack from Config and answers requests.

``PlaytimeService.resolve_entity`` is the entry point for callers that
want a plain dict and never an exception. Everything behind it (sources,
limiters, retry policy, cache) is built once from the configuration.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from src.config import Config, config as default_config
from src.core.errors import ValidationError
from src.core.rate_limiter import RateLimiter
from src.core.record_cache import RecordCache
from src.core.retry import RetryExecutor
from src.core.storage import JsonFileStore
from src.integrations.curated_database import CuratedDatabase
from src.integrations.hltb_api import HLTBClient
from src.integrations.hltb_scraper import HLTBScraper
from src.services.acquisition_service import REASON_INVALID, AcquisitionOrchestrator, SourceBinding
from src.services.matching.title_resolver import TitleResolver
from src.utils.json_utils import load_json

logger = logging.getLogger("hltbresolver.playtime_service")

__all__ = ["PlaytimeService", "build_default_service"]


def _build_curated(cfg: Config) -> CuratedDatabase:
    curated = CuratedDatabase(cfg.CURATED_DB_FILE)
    community = load_json(cfg.COMMUNITY_DB_FILE, default={})
    games = community.get("games", []) if isinstance(community, dict) else []
    if games:
        curated.merge(games)
    return curated


def _build_sources(cfg: Config) -> list[SourceBinding]:
    sources: list[SourceBinding] = []

    def limiter(name: str) -> RateLimiter:
        return RateLimiter(
            capacity=cfg.RATE_LIMIT_MAX_REQUESTS,
            period=cfg.RATE_LIMIT_WINDOW_SECONDS,
            name=name,
        )

    if cfg.API_ENABLED:
        sources.append(SourceBinding(HLTBClient(http_timeout=cfg.HTTP_TIMEOUT), limiter(HLTBClient.name)))
    if cfg.SCRAPER_ENABLED:
        sources.append(SourceBinding(HLTBScraper(http_timeout=cfg.HTTP_TIMEOUT), limiter(HLTBScraper.name)))
    if cfg.CURATED_ENABLED:
        sources.append(SourceBinding(_build_curated(cfg)))
    return sources


def build_default_service(cfg: Config | None = None) -> PlaytimeService:
    """Builds the full service stack from a configuration.

    Args:
        cfg: Configuration to use; the global config when omitted.

    Returns:
        A ready PlaytimeService.
    """
    cfg = cfg or default_config

    cache = None
    if cfg.CACHE_ENABLED:
        cache = RecordCache(
            store=JsonFileStore(cfg.CACHE_DIR, max_bytes=cfg.CACHE_MAX_BYTES),
            ttl=cfg.cache_ttl_seconds,
            capacity=cfg.CACHE_MAX_ENTRIES,
        )

    resolver = TitleResolver(
        fuzzy_threshold=cfg.FUZZY_THRESHOLD,
        word_threshold=cfg.WORD_THRESHOLD,
        aggressive_threshold=cfg.AGGRESSIVE_THRESHOLD,
        aggressive_penalty=cfg.AGGRESSIVE_PENALTY,
    )
    retry = RetryExecutor(
        max_attempts=cfg.MAX_ATTEMPTS,
        base_delay=cfg.RETRY_BASE_DELAY,
        transient_delay=cfg.RETRY_TRANSIENT_DELAY,
        max_delay=cfg.RETRY_MAX_DELAY,
    )
    orchestrator = AcquisitionOrchestrator(
        sources=_build_sources(cfg),
        resolver=resolver,
        cache=cache,
        retry=retry,
        timeout=cfg.REQUEST_TIMEOUT,
    )
    logger.info(
        "Playtime service ready (sources: %s, cache: %s)",
        ", ".join(binding.name for binding in orchestrator.sources) or "none",
        "on" if cache is not None else "off",
    )
    return PlaytimeService(orchestrator, batch_concurrency=cfg.BATCH_CONCURRENCY)


class PlaytimeService:
    """Answers completion-time requests as plain dicts.

    Args:
        orchestrator: Acquisition orchestrator doing the actual work.
        batch_concurrency: Worker threads for ``resolve_many``.
    """

    def __init__(self, orchestrator: AcquisitionOrchestrator, batch_concurrency: int = 4) -> None:
        self._orchestrator = orchestrator
        self._batch_concurrency = batch_concurrency

    @property
    def orchestrator(self) -> AcquisitionOrchestrator:
        return self._orchestrator

    def resolve_entity(self, name: Any, stable_id: Any = None) -> dict[str, Any]:
        """Looks up one game. Never raises.

        Returns:
            ``{found, record?, source?, confidence?, method?}`` on success,
            ``{found: False, reason, skipped?}`` otherwise. Malformed input
            gives reason "invalid".
        """
        try:
            result = self._orchestrator.resolve(name, stable_id)
        except ValidationError as exc:
            logger.warning("Rejected request for %r: %s", name, exc)
            return {"found": False, "reason": REASON_INVALID, "error": exc.user_message}
        return result.to_dict()

    def resolve_many(self, items: Iterable[str | tuple[str, str | None]]) -> list[dict[str, Any]]:
        """Looks up several games concurrently; results keep input order."""
        results = self._orchestrator.resolve_many(items, max_concurrency=self._batch_concurrency)
        return [result.to_dict() for result in results]

    def explain(self, name: Any) -> dict[str, Any]:
        """Score breakdown per source for one title, for debugging bad matches."""
        try:
            return self._orchestrator.explain(name)
        except ValidationError as exc:
            return {"error": exc.user_message}

    def sweep_cache(self) -> int:
        return self._orchestrator.sweep_cache()

    def health_check(self) -> dict[str, Any]:
        """Returns health status, issues and the full diagnostics."""
        healthy, issues = self._orchestrator.health_check()
        return {"healthy": healthy, "issues": issues, "diagnostics": self._orchestrator.diagnostics()}
