# src/services/matching/title_resolver.py

"""Title resolution cascade.

Matches a Steam title against HLTB candidates by running the strategies
in priority order until one accepts:

1. Skip list (multiplayer-only games never resolve).
2. Year-specific override (reboots that share a name).
3. Manual override table.
4. Exact match after minimal normalization.
5. Fuzzy match after standard normalization.
6. Word overlap of informative words.
7. Fuzzy match after aggressive normalization (confidence discounted).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

from src.core.models import CandidateRecord, ResolvedMatch
from src.services.matching.overrides import OverrideTable, default_overrides
from src.services.matching.strategies import (
    ExactStrategy,
    FuzzyStrategy,
    ManualOverrideStrategy,
    MatchQuery,
    MatchStrategy,
    SkipStrategy,
    WordOverlapStrategy,
    YearSpecificStrategy,
    length_ratio_ok,
    normalized,
)
from src.utils.similarity import (
    best_similarity,
    bigram_overlap,
    combined,
    edit_similarity,
    jaro_winkler,
    word_overlap,
)
from src.utils.title_normalizer import NormalizationLevel, core_words

logger = logging.getLogger("hltbresolver.title_resolver")

__all__ = ["TitleResolver"]

DEFAULT_FUZZY_THRESHOLD = 0.8
DEFAULT_WORD_THRESHOLD = 0.75
DEFAULT_AGGRESSIVE_THRESHOLD = 0.7
DEFAULT_AGGRESSIVE_PENALTY = 0.9


class TitleResolver:
    """Picks the best candidate for a title, with method and confidence.

    Never raises for string input; callers validate names beforehand.

    Args:
        overrides: Override table; the bundled table when omitted.
        fuzzy_threshold: Minimum combined score at standard level.
        word_threshold: Minimum word overlap.
        aggressive_threshold: Minimum raw combined score at aggressive level.
        aggressive_penalty: Factor applied to aggressive scores.
        strategies: Replaces the default cascade entirely when given.
    """

    def __init__(
        self,
        overrides: OverrideTable | None = None,
        fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
        word_threshold: float = DEFAULT_WORD_THRESHOLD,
        aggressive_threshold: float = DEFAULT_AGGRESSIVE_THRESHOLD,
        aggressive_penalty: float = DEFAULT_AGGRESSIVE_PENALTY,
        strategies: Sequence[MatchStrategy] | None = None,
    ) -> None:
        self._overrides = overrides if overrides is not None else default_overrides()
        if strategies is None:
            strategies = (
                SkipStrategy(self._overrides),
                YearSpecificStrategy(self._overrides),
                ManualOverrideStrategy(self._overrides),
                ExactStrategy(),
                FuzzyStrategy(NormalizationLevel.STANDARD, fuzzy_threshold),
                WordOverlapStrategy(word_threshold),
                FuzzyStrategy(NormalizationLevel.AGGRESSIVE, aggressive_threshold, aggressive_penalty),
            )
        self._strategies: tuple[MatchStrategy, ...] = tuple(strategies)

    @property
    def strategies(self) -> tuple[MatchStrategy, ...]:
        return self._strategies

    @property
    def overrides(self) -> OverrideTable:
        return self._overrides

    def is_skipped(self, name: str) -> bool:
        """Checks the skip list without needing candidates."""
        return self._overrides.is_skipped(normalized(name, NormalizationLevel.STANDARD))

    def resolve(self, name: str, candidates: Sequence[CandidateRecord]) -> ResolvedMatch | None:
        """Runs the cascade for one title.

        Args:
            name: Title to resolve.
            candidates: Candidates in the order the source returned them.

        Returns:
            The first accepted match or skip, or None when nothing matches.
        """
        started = time.perf_counter()
        query = MatchQuery.prepare(name)

        for strategy in self._strategies:
            result = strategy.attempt(query, candidates)
            if result is None:
                continue
            if result.skipped:
                logger.info("Skipping '%s': %s", name, result.skip_reason)
            else:
                logger.debug(
                    "Matched '%s' -> '%s' via %s (%.0f%%)",
                    name,
                    result.candidate.display_name if result.candidate else "",
                    strategy.name,
                    result.confidence * 100,
                )
            return result

        logger.debug(
            "No match for '%s' among %d candidates (%.1f ms)",
            name,
            len(candidates),
            (time.perf_counter() - started) * 1000,
        )
        return None

    @staticmethod
    def match_percentage(confidence: float) -> int:
        """Converts a confidence into a rounded percentage for display."""
        return round(max(0.0, min(1.0, confidence)) * 100)

    def explain(self, name: str, candidates: Sequence[CandidateRecord]) -> dict[str, Any]:
        """Returns a score breakdown for every candidate, for debugging bad matches.

        Args:
            name: Title to resolve.
            candidates: Candidates to score.

        Returns:
            Dict with the normalized query forms, the cascade outcome and one
            entry per candidate name with its individual similarity scores.
        """
        query = MatchQuery.prepare(name)
        query_words = " ".join(sorted(core_words(name)))
        rows: list[dict[str, Any]] = []
        for candidate in candidates:
            for candidate_name in candidate.names:
                standard = normalized(candidate_name, NormalizationLevel.STANDARD)
                aggressive = normalized(candidate_name, NormalizationLevel.AGGRESSIVE)
                best_score, best_algorithm = best_similarity(query.standard, standard)
                rows.append(
                    {
                        "source_id": candidate.source_id,
                        "name": candidate_name,
                        "standard": standard,
                        "aggressive": aggressive,
                        "length_ok": length_ratio_ok(query.standard, standard),
                        "dice": bigram_overlap(query.standard, standard),
                        "jaro_winkler": jaro_winkler(query.standard, standard),
                        "levenshtein": edit_similarity(query.standard, standard),
                        "combined": combined(query.standard, standard),
                        "combined_aggressive": combined(query.aggressive, aggressive),
                        "words": word_overlap(query_words, " ".join(sorted(core_words(candidate_name)))),
                        "best": best_score,
                        "best_algorithm": best_algorithm,
                    }
                )

        outcome = self.resolve(name, candidates)
        return {
            "query": {
                "raw": name,
                "minimal": query.minimal,
                "standard": query.standard,
                "aggressive": query.aggressive,
                "year": query.year,
            },
            "skipped": bool(outcome and outcome.skipped),
            "method": outcome.method.value if outcome and outcome.method else None,
            "confidence": outcome.confidence if outcome else 0.0,
            "percentage": self.match_percentage(outcome.confidence) if outcome else 0,
            "match": outcome.candidate.display_name if outcome and outcome.candidate else None,
            "candidates": rows,
        }
