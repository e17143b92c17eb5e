# src/services/matching/overrides.py

"""Immutable override table consulted before any similarity scoring.

The table is built once per process and shared by reference; nothing
mutates it afterwards, so resolvers running in parallel threads need no
locking around it.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from src.services.matching.override_data import MANUAL_OVERRIDES, SKIP_TITLES, YEAR_OVERRIDES
from src.utils.title_normalizer import NormalizationLevel, normalize

logger = logging.getLogger("hltbresolver.overrides")

__all__ = ["OverrideTable", "default_overrides"]


def _std(title: str) -> str:
    return normalize(title, NormalizationLevel.STANDARD)


@dataclass(frozen=True)
class OverrideTable:
    """Manual title mappings, the skip set and year-disambiguated mappings.

    All keys and targets are standard-normalized.

    Attributes:
        mappings: Source title -> target title.
        skip: Titles that must never resolve.
        year_mappings: Base title -> {release year -> target title}.
    """

    mappings: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    skip: frozenset[str] = frozenset()
    year_mappings: Mapping[str, Mapping[int, str]] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        mappings: Mapping[str, str] | None = None,
        skip: Iterable[str] = (),
        year_mappings: Mapping[str, Mapping[int, str]] | None = None,
    ) -> OverrideTable:
        """Creates a table from human-spelled titles.

        Args:
            mappings: Source title -> target title.
            skip: Titles to skip.
            year_mappings: Base title -> {year -> target title}.

        Returns:
            A frozen table with every title standard-normalized.
        """
        normalized_mappings = {_std(src): _std(dst) for src, dst in (mappings or {}).items()}
        normalized_years = {
            _std(base): MappingProxyType({int(year): _std(target) for year, target in years.items()})
            for base, years in (year_mappings or {}).items()
        }
        table = cls(
            mappings=MappingProxyType(normalized_mappings),
            skip=frozenset(_std(title) for title in skip),
            year_mappings=MappingProxyType(normalized_years),
        )
        logger.debug(
            "Override table built: %d mappings, %d skipped, %d year tables",
            len(table.mappings),
            len(table.skip),
            len(table.year_mappings),
        )
        return table

    def is_skipped(self, normalized_name: str) -> bool:
        return normalized_name in self.skip

    def target_for(self, normalized_name: str) -> str | None:
        return self.mappings.get(normalized_name)

    def year_target(self, normalized_base: str, year: int | None) -> str | None:
        """Returns the target for a base title released in ``year``, if known."""
        if year is None:
            return None
        years = self.year_mappings.get(normalized_base)
        if years is None:
            return None
        return years.get(year)


@functools.lru_cache(maxsize=1)
def default_overrides() -> OverrideTable:
    """Returns the process-wide table built from the bundled override data."""
    return OverrideTable.build(MANUAL_OVERRIDES, SKIP_TITLES, YEAR_OVERRIDES)
