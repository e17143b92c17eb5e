# src/services/matching/strategies.py

"""Matching strategies that make up the title resolution cascade.

Each strategy looks at a prepared query and the candidate list and either
returns a ResolvedMatch or None ("try the next strategy"). The resolver
iterates them in order; new strategies are added by appending to that list.
"""

from __future__ import annotations

import functools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Sequence

from src.core.models import CandidateRecord, MatchMethod, ResolvedMatch
from src.services.matching.overrides import OverrideTable
from src.utils.similarity import combined, word_overlap
from src.utils.title_normalizer import NormalizationLevel, core_words, extract_year, normalize, remove_year

logger = logging.getLogger("hltbresolver.strategies")

__all__ = [
    "ExactStrategy",
    "FuzzyStrategy",
    "ManualOverrideStrategy",
    "MatchQuery",
    "MatchStrategy",
    "SKIP_REASON",
    "SkipStrategy",
    "WordOverlapStrategy",
    "YearSpecificStrategy",
    "length_ratio_ok",
    "normalized",
]

SKIP_REASON = "Multiplayer-only game with no completion times"

# Candidates whose normalized length differs from the query by more than
# this share of the longer name are not scored at all.
MAX_LENGTH_DIFFERENCE = 0.7


@functools.lru_cache(maxsize=8192)
def normalized(title: str, level: NormalizationLevel) -> str:
    """Cached ``normalize``; candidate names repeat across strategies and calls."""
    return normalize(title, level)


@functools.lru_cache(maxsize=8192)
def _core_words(title: str) -> frozenset[str]:
    return frozenset(core_words(title))


def length_ratio_ok(first: str, second: str, max_difference: float = MAX_LENGTH_DIFFERENCE) -> bool:
    """True if both strings are close enough in length to be worth scoring."""
    longest = max(len(first), len(second))
    if longest == 0:
        return True
    return abs(len(first) - len(second)) / longest <= max_difference


@dataclass(frozen=True)
class MatchQuery:
    """A query title prepared once for all strategies.

    Attributes:
        raw: Title as given by the caller.
        minimal: Minimal-normalized title.
        standard: Standard-normalized title.
        aggressive: Aggressive-normalized title.
        year: Parenthesized release year, if any.
        base_standard: Standard-normalized title without its year.
    """

    raw: str
    minimal: str
    standard: str
    aggressive: str
    year: int | None
    base_standard: str

    @classmethod
    def prepare(cls, raw: str) -> MatchQuery:
        return cls(
            raw=raw,
            minimal=normalized(raw, NormalizationLevel.MINIMAL),
            standard=normalized(raw, NormalizationLevel.STANDARD),
            aggressive=normalized(raw, NormalizationLevel.AGGRESSIVE),
            year=extract_year(raw),
            base_standard=normalized(remove_year(raw), NormalizationLevel.STANDARD),
        )

    def at(self, level: NormalizationLevel) -> str:
        if level is NormalizationLevel.MINIMAL:
            return self.minimal
        if level is NormalizationLevel.STANDARD:
            return self.standard
        return self.aggressive


class MatchStrategy(ABC):
    """One step of the matching cascade."""

    method: MatchMethod | None = None

    @abstractmethod
    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> ResolvedMatch | None:
        """Tries to resolve the query against the candidates.

        Args:
            query: Prepared query title.
            candidates: Candidates in source order.

        Returns:
            A match (or skip) to stop the cascade, None to continue.
        """

    @property
    def name(self) -> str:
        return self.method.value if self.method is not None else type(self).__name__


def _find_by_name(
    target: str,
    candidates: Sequence[CandidateRecord],
    level: NormalizationLevel,
) -> CandidateRecord | None:
    """First candidate with a name equal to ``target`` at ``level``."""
    for candidate in candidates:
        for candidate_name in candidate.names:
            if normalized(candidate_name, level) == target:
                return candidate
    return None


class SkipStrategy(MatchStrategy):
    """Stops the cascade for titles on the skip list."""

    def __init__(self, overrides: OverrideTable) -> None:
        self._overrides = overrides

    @property
    def name(self) -> str:
        return "skip"

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> ResolvedMatch | None:
        if not self._overrides.is_skipped(query.standard):
            return None
        return ResolvedMatch(
            skipped=True,
            skip_reason=SKIP_REASON,
            confidence=1.0,
            normalized_query=query.standard,
        )


class YearSpecificStrategy(MatchStrategy):
    """Picks the right reboot when the title carries a release year."""

    method = MatchMethod.YEAR_SPECIFIC

    def __init__(self, overrides: OverrideTable) -> None:
        self._overrides = overrides

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> ResolvedMatch | None:
        target = self._overrides.year_target(query.base_standard, query.year)
        if target is None:
            return None
        candidate = _find_by_name(target, candidates, NormalizationLevel.STANDARD)
        if candidate is None:
            logger.debug("Year override '%s' (%s) -> '%s' not among candidates", query.raw, query.year, target)
            return None
        return ResolvedMatch(
            candidate=candidate,
            confidence=1.0,
            method=self.method,
            normalized_query=query.base_standard,
            normalized_candidate=target,
        )


class ManualOverrideStrategy(MatchStrategy):
    """Applies the curated title -> title table."""

    method = MatchMethod.MANUAL

    def __init__(self, overrides: OverrideTable) -> None:
        self._overrides = overrides

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> ResolvedMatch | None:
        target = self._overrides.target_for(query.standard)
        if target is None:
            return None
        candidate = _find_by_name(target, candidates, NormalizationLevel.STANDARD)
        if candidate is None:
            return None
        return ResolvedMatch(
            candidate=candidate,
            confidence=1.0,
            method=self.method,
            normalized_query=query.standard,
            normalized_candidate=target,
        )


class ExactStrategy(MatchStrategy):
    """Equality after minimal normalization."""

    method = MatchMethod.EXACT

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> ResolvedMatch | None:
        if not query.minimal:
            return None
        candidate = _find_by_name(query.minimal, candidates, NormalizationLevel.MINIMAL)
        if candidate is None:
            return None
        return ResolvedMatch(
            candidate=candidate,
            confidence=1.0,
            method=self.method,
            normalized_query=query.minimal,
            normalized_candidate=query.minimal,
        )


class _ScoringStrategy(MatchStrategy):
    """Scores every candidate name and keeps the strictly best one.

    Ties keep the earlier candidate, so results follow source order.
    """

    level = NormalizationLevel.STANDARD

    def __init__(self, threshold: float, penalty: float = 1.0) -> None:
        self.threshold = threshold
        self.penalty = penalty

    @abstractmethod
    def score(self, query: MatchQuery, candidate_name: str) -> tuple[float, str] | None:
        """Scores one candidate name.

        Returns:
            (score, normalized candidate name), or None if the name was filtered out.
        """

    def best(
        self, query: MatchQuery, candidates: Sequence[CandidateRecord]
    ) -> tuple[float, CandidateRecord, str] | None:
        best: tuple[float, CandidateRecord, str] | None = None
        for candidate in candidates:
            for candidate_name in candidate.names:
                scored = self.score(query, candidate_name)
                if scored is None:
                    continue
                score, normalized_name = scored
                if best is None or score > best[0]:
                    best = (score, candidate, normalized_name)
        return best

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> ResolvedMatch | None:
        best = self.best(query, candidates)
        if best is None:
            return None
        score, candidate, normalized_name = best
        if score < self.threshold:
            logger.debug("%s best score %.3f below %.2f for '%s'", self.name, score, self.threshold, query.raw)
            return None
        return ResolvedMatch(
            candidate=candidate,
            confidence=min(1.0, score * self.penalty),
            method=self.method,
            normalized_query=query.at(self.level),
            normalized_candidate=normalized_name,
        )


class FuzzyStrategy(_ScoringStrategy):
    """Combined similarity at a given normalization level.

    Args:
        level: STANDARD or AGGRESSIVE normalization.
        threshold: Minimum raw score to accept.
        penalty: Factor applied to the raw score to form the confidence.
        scorer: Similarity function, ``combined`` by default.
    """

    def __init__(
        self,
        level: NormalizationLevel,
        threshold: float,
        penalty: float = 1.0,
        scorer: Callable[[str, str], float] = combined,
    ) -> None:
        super().__init__(threshold, penalty)
        self.level = level
        self.method = (
            MatchMethod.FUZZY_AGGRESSIVE if level is NormalizationLevel.AGGRESSIVE else MatchMethod.FUZZY_STANDARD
        )
        self._scorer = scorer

    def score(self, query: MatchQuery, candidate_name: str) -> tuple[float, str] | None:
        query_text = query.at(self.level)
        candidate_text = normalized(candidate_name, self.level)
        if not query_text or not candidate_text:
            return None
        if not length_ratio_ok(query_text, candidate_text):
            return None
        return self._scorer(query_text, candidate_text), candidate_text


class WordOverlapStrategy(_ScoringStrategy):
    """Jaccard overlap of the informative words (longer than three letters)."""

    method = MatchMethod.WORD_OVERLAP

    def score(self, query: MatchQuery, candidate_name: str) -> tuple[float, str] | None:
        query_words = _core_words(query.raw)
        candidate_words = _core_words(candidate_name)
        if not query_words or not candidate_words:
            return None
        return (
            word_overlap(" ".join(sorted(query_words)), " ".join(sorted(candidate_words))),
            normalized(candidate_name, NormalizationLevel.STANDARD),
        )
