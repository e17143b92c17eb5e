"""Local curated database of popular games' completion times.

The last source in the acquisition order: it never leaves the process,
needs no rate limiting and keeps answering when HLTB is unreachable.
Entries come from ``src/resources/curated_games.json``; community
entries can be merged in at runtime without displacing high-confidence
local data.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Iterable, Mapping

from src.core.models import CandidateRecord, MetricKey
from src.integrations.base_source import CandidateSource
from src.utils.json_utils import load_json
from src.utils.title_normalizer import NormalizationLevel, core_words, normalize

logger = logging.getLogger("hltbresolver.curated_database")

__all__ = ["CuratedDatabase", "CuratedEntry"]

_DEFAULT_PATH = Path(__file__).resolve().parent.parent / "resources" / "curated_games.json"

_CONFIDENCE_TAGS = ("high", "medium", "low")

MAX_RESULTS = 100


@dataclass(frozen=True)
class CuratedEntry:
    """One game in the curated dataset.

    Attributes:
        title: Canonical title.
        hours: Completion hours per metric, None where unknown.
        aliases: Alternative spellings.
        confidence: Data quality tag: high, medium or low.
        last_updated: Free-form date of the last review ("2024-01").
    """

    title: str
    hours: Mapping[MetricKey, float | None] = field(default_factory=dict)
    aliases: tuple[str, ...] = ()
    confidence: str = "medium"
    last_updated: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_confidence: str = "medium") -> CuratedEntry:
        """Builds an entry from its JSON form.

        Raises:
            KeyError: If the title is missing.
            ValueError: If a metric name is unknown.
        """
        hours = {
            MetricKey(key): (float(value) if value is not None else None)
            for key, value in data.get("hours", {}).items()
        }
        confidence = str(data.get("confidence") or default_confidence).lower()
        if confidence not in _CONFIDENCE_TAGS:
            confidence = default_confidence
        return cls(
            title=str(data["title"]),
            hours=hours,
            aliases=tuple(str(alias) for alias in data.get("aliases") or ()),
            confidence=confidence,
            last_updated=data.get("last_updated"),
        )

    @property
    def names(self) -> tuple[str, ...]:
        return (self.title, *self.aliases)

    def to_candidate(self) -> CandidateRecord:
        """Converts the entry to a CandidateRecord keyed by its standard title."""
        return CandidateRecord(
            source_id=f"curated:{normalize(self.title, NormalizationLevel.STANDARD)}",
            display_name=self.title,
            metrics={
                key: (timedelta(hours=value) if value is not None else None) for key, value in self.hours.items()
            },
            aliases=self.aliases,
        )


class CuratedDatabase(CandidateSource):
    """Local source backed by the bundled curated dataset.

    The dataset is read once, on the first search.

    Args:
        path: JSON file to load; defaults to the bundled dataset.
    """

    name = "curated"
    remote = False

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_PATH
        self._entries: dict[str, CuratedEntry] = {}
        self._loaded = False
        self._lock = threading.Lock()

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._loaded = True
            data = load_json(self._path, default={})
            games = data.get("games", []) if isinstance(data, dict) else []
            for raw in games:
                try:
                    entry = CuratedEntry.from_dict(raw)
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Skipping malformed curated entry %r: %s", raw, exc)
                    continue
                self._entries[normalize(entry.title, NormalizationLevel.STANDARD)] = entry
            logger.info("Curated database loaded with %d games", len(self._entries))

    def entries(self) -> list[CuratedEntry]:
        """Returns all entries in dataset order."""
        self._ensure_loaded()
        with self._lock:
            return list(self._entries.values())

    def search(self, name: str, timeout: float | None = None) -> list[CandidateRecord]:
        """Returns entries related to the query, in dataset order.

        An entry is related when its title or an alias shares a core word
        with the query, or when its standard name equals or contains the
        query's standard name.
        """
        query = normalize(name, NormalizationLevel.STANDARD)
        if not query:
            return []
        query_words = core_words(name)

        results: list[CandidateRecord] = []
        for entry in self.entries():
            if self._related(entry, query, query_words):
                results.append(entry.to_candidate())
                if len(results) >= MAX_RESULTS:
                    break
        logger.debug("Curated database has %d candidates for '%s'", len(results), name)
        return results

    @staticmethod
    def _related(entry: CuratedEntry, query: str, query_words: set[str]) -> bool:
        for entry_name in entry.names:
            standard = normalize(entry_name, NormalizationLevel.STANDARD)
            if standard == query or f" {query} " in f" {standard} ":
                return True
            if query_words & core_words(entry_name):
                return True
        return False

    def merge(self, entries: Iterable[Mapping[str, Any]]) -> int:
        """Adds community entries; high-confidence local entries are kept.

        Merged entries are tagged medium confidence.

        Returns:
            Number of entries added or replaced.
        """
        self._ensure_loaded()
        added = 0
        with self._lock:
            for raw in entries:
                if not isinstance(raw, Mapping) or not raw.get("title") or not raw.get("hours"):
                    continue
                try:
                    entry = CuratedEntry.from_dict({**raw, "confidence": "medium"})
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Skipping malformed community entry: %s", exc)
                    continue
                key = normalize(entry.title, NormalizationLevel.STANDARD)
                existing = self._entries.get(key)
                if existing is not None and existing.confidence == "high":
                    continue
                self._entries[key] = entry
                added += 1
        logger.info("Merged %d community entries into the curated database", added)
        return added

    def stats(self) -> dict[str, int]:
        """Returns entry, alias and per-confidence counts."""
        entries = self.entries()
        counts = {tag: sum(1 for entry in entries if entry.confidence == tag) for tag in _CONFIDENCE_TAGS}
        return {
            "total_games": len(entries),
            "total_aliases": sum(len(entry.aliases) for entry in entries),
            **{f"{tag}_confidence": count for tag, count in counts.items()},
        }

    def status(self) -> dict[str, object]:
        return {"name": self.name, "remote": False, "path": str(self._path), **self.stats()}
