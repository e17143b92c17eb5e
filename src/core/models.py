"""Data types shared by the resolver, the sources and the orchestrator.

All record types are frozen dataclasses. Durations are ``timedelta``
values; ``None`` marks a metric the source has no data for.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

__all__ = [
    "AcquisitionResult",
    "CacheEntry",
    "CandidateRecord",
    "MatchMethod",
    "MetricKey",
    "ResolvedMatch",
]


class MetricKey(str, Enum):
    """Completion-time categories reported for a game."""

    MAIN_STORY = "main_story"
    MAIN_EXTRAS = "main_extras"
    COMPLETIONIST = "completionist"
    ALL_STYLES = "all_styles"


class MatchMethod(str, Enum):
    """Which cascade strategy produced a match."""

    MANUAL = "manual"
    YEAR_SPECIFIC = "year_specific"
    EXACT = "exact"
    FUZZY_STANDARD = "fuzzy_standard"
    WORD_OVERLAP = "word_overlap"
    FUZZY_AGGRESSIVE = "fuzzy_aggressive"


@dataclass(frozen=True)
class CandidateRecord:
    """One game as returned by a candidate source.

    Attributes:
        source_id: Stable identifier of the game within its source.
        display_name: Name as the source spells it.
        metrics: Duration per metric, None where the source has no data.
        platform_tags: Platforms the source lists for the game.
        aliases: Alternative names known for the game.
    """

    source_id: str
    display_name: str
    metrics: Mapping[MetricKey, timedelta | None] = field(default_factory=dict)
    platform_tags: frozenset[str] = frozenset()
    aliases: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Freeze the metric mapping so the record is immutable all the way down.
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))
        object.__setattr__(self, "platform_tags", frozenset(self.platform_tags))
        object.__setattr__(self, "aliases", tuple(self.aliases))

    @property
    def names(self) -> tuple[str, ...]:
        """Display name followed by all aliases."""
        return (self.display_name, *self.aliases)

    def hours(self, key: MetricKey) -> float | None:
        """Returns a metric in hours, or None when missing."""
        value = self.metrics.get(key)
        if value is None:
            return None
        return value.total_seconds() / 3600

    @property
    def has_data(self) -> bool:
        """True if at least one metric carries a duration."""
        return any(value is not None for value in self.metrics.values())

    def to_dict(self) -> dict[str, Any]:
        """Serializes the record to a JSON-safe dict (durations in seconds)."""
        return {
            "source_id": self.source_id,
            "display_name": self.display_name,
            "metrics": {
                key.value: (value.total_seconds() if value is not None else None) for key, value in self.metrics.items()
            },
            "platform_tags": sorted(self.platform_tags),
            "aliases": list(self.aliases),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CandidateRecord:
        """Rebuilds a record from the output of ``to_dict``.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a metric key is unknown.
        """
        metrics: dict[MetricKey, timedelta | None] = {}
        for key, seconds in data.get("metrics", {}).items():
            metrics[MetricKey(key)] = timedelta(seconds=seconds) if seconds is not None else None
        return cls(
            source_id=str(data["source_id"]),
            display_name=str(data["display_name"]),
            metrics=metrics,
            platform_tags=frozenset(data.get("platform_tags", ())),
            aliases=tuple(data.get("aliases", ())),
        )


@dataclass(frozen=True)
class ResolvedMatch:
    """Outcome of the matching cascade for one query.

    Exactly one of ``candidate`` or ``skipped`` is set.

    Attributes:
        candidate: The selected record, None when skipped.
        confidence: Score in [0, 1].
        method: Strategy that produced the match.
        skipped: True when the name is on the skip list.
        skip_reason: Why the name was skipped.
        normalized_query: Query as the winning strategy normalized it.
        normalized_candidate: Candidate name as the winning strategy normalized it.
    """

    candidate: CandidateRecord | None = None
    confidence: float = 0.0
    method: MatchMethod | None = None
    skipped: bool = False
    skip_reason: str | None = None
    normalized_query: str = ""
    normalized_candidate: str = ""

    def __post_init__(self) -> None:
        if (self.candidate is None) == (not self.skipped):
            raise ValueError("ResolvedMatch needs exactly one of candidate or skipped")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        if self.method is MatchMethod.MANUAL and self.confidence != 1.0:
            raise ValueError("manual matches always carry confidence 1.0")


@dataclass
class CacheEntry:
    """Mutable bookkeeping for one cached record.

    Attributes:
        key: Stable identifier or normalized name.
        record: The cached record.
        inserted_at: Wall-clock insertion time (epoch seconds).
        hit_count: Number of cache hits since insertion.
        last_accessed: Wall-clock time of the last write or hit.
        source: Source that originally produced the record.
        confidence: Match confidence at acquisition time.
    """

    key: str
    record: CandidateRecord
    inserted_at: float
    hit_count: int = 0
    last_accessed: float = 0.0
    source: str | None = None
    confidence: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "inserted_at": self.inserted_at,
            "hit_count": self.hit_count,
            "last_accessed": self.last_accessed,
            "source": self.source,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, key: str, data: Mapping[str, Any]) -> CacheEntry:
        inserted_at = float(data["inserted_at"])
        return cls(
            key=key,
            record=CandidateRecord.from_dict(data["record"]),
            inserted_at=inserted_at,
            hit_count=int(data.get("hit_count", 0)),
            last_accessed=float(data.get("last_accessed", inserted_at)),
            source=data.get("source"),
            confidence=data.get("confidence"),
        )


@dataclass(frozen=True)
class AcquisitionResult:
    """What the orchestrator hands back to callers.

    Attributes:
        found: Whether a record was acquired.
        record: The record, when found.
        source: Name of the source that produced it ("cache" on a cache hit).
        confidence: Match confidence, when known.
        method: Matching strategy, when a fresh match was made.
        skipped: True when the name is on the skip list.
        reason: For unsuccessful results: no_match, skipped, source_error,
            timeout or invalid.
    """

    found: bool
    record: CandidateRecord | None = None
    source: str | None = None
    confidence: float | None = None
    method: MatchMethod | None = None
    skipped: bool = False
    reason: str | None = None

    @classmethod
    def not_found(cls, reason: str, skipped: bool = False) -> AcquisitionResult:
        return cls(found=False, reason=reason, skipped=skipped)

    def to_dict(self) -> dict[str, Any]:
        """Returns the inbound response shape used by ``resolve_entity``."""
        data: dict[str, Any] = {"found": self.found}
        if self.found and self.record is not None:
            data["record"] = self.record.to_dict()
            data["source"] = self.source
            data["confidence"] = self.confidence
            if self.method is not None:
                data["method"] = self.method.value
        else:
            data["reason"] = self.reason
            if self.skipped:
                data["skipped"] = True
        return data
