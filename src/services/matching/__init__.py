"""Title matching: override data, cascade strategies and the resolver.

Resolves a Steam title against HLTB candidates with a method tag and a
confidence score.
"""

from __future__ import annotations

from src.services.matching.overrides import OverrideTable, default_overrides
from src.services.matching.strategies import MatchQuery, MatchStrategy
from src.services.matching.title_resolver import TitleResolver

__all__: list[str] = [
    "MatchQuery",
    "MatchStrategy",
    "OverrideTable",
    "TitleResolver",
    "default_overrides",
]
