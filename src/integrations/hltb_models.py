"""HLTB search-term preparation and API payload conversion.

Search terms are prepared differently from match normalization: HLTB's
search engine wants the title close to how users type it, so only noise
is removed. ``simplify_search_term`` is the second-chance query used when
the full title finds nothing.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Mapping

from src.core.models import CandidateRecord, MetricKey

__all__ = [
    "clean_search_term",
    "seconds_to_duration",
    "simplify_search_term",
    "to_candidate",
]


# ===== SEARCH TERM CONSTANTS =====

# Symbols to strip from game names (TM, (R), (C), also text forms)
# Uses a space replacement to avoid "Velocity®Ultra" → "VelocityUltra"
_SYMBOL_PATTERN = re.compile(r"[™®©]|\(TM\)|\(R\)")

_SUPERSCRIPT_MAP = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹", "0123456789")

# Parenthetical noise: (2003), (Classic), (Legacy), (3D Remake)
_PAREN_NOISE_PATTERN = re.compile(r"\s*\((?:[12][09]\d\d|Classic|Legacy|\d+D\s*Remake)\)\s*", re.IGNORECASE)

_BARE_YEAR_PATTERN = re.compile(r"\s+[12][09]\d\d$")

_SEP = r"(?:\s*[-:–—]\s*|\s+)"

# Suffixes dropped for the second-chance search, applied until nothing changes.
_SIMPLIFY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(_SEP + r"(?:\d+[snrt][tdh]\s+)?Anniversary\s+Edition$", re.IGNORECASE),
    re.compile(
        _SEP + r"(?:Enhanced|Complete|Definitive|Ultimate|Special|Legacy|Maximum|Deluxe|Premium|Gold|"
        r"Platinum|Steam|GOTY|Game\s+of\s+the\s+Year)\s*Edition.*$",
        re.IGNORECASE,
    ),
    re.compile(_SEP + r"(?:GOTY|Game\s+of\s+the\s+Year)$", re.IGNORECASE),
    re.compile(_SEP + r"(?:Remastered|Remake|Director'?s?\s+Cut|Classic|Single\s+Player|Season\s+\d+)$", re.IGNORECASE),
    re.compile(r"\s+(?:Collection|HD|Enhanced|Redux|Reloaded|Online)$", re.IGNORECASE),
    re.compile(r"\s+\([12][09]\d\d\)$"),
    re.compile(r"\s*[-:–—]\s*$"),
)

_METRIC_FIELDS: tuple[tuple[MetricKey, str], ...] = (
    (MetricKey.MAIN_STORY, "comp_main"),
    (MetricKey.MAIN_EXTRAS, "comp_plus"),
    (MetricKey.COMPLETIONIST, "comp_100"),
    (MetricKey.ALL_STYLES, "comp_all"),
)


# ===== SEARCH TERM FUNCTIONS =====


def clean_search_term(name: str) -> str:
    """Strips trademark symbols and parenthetical noise for cleaner search terms.

    Does NOT strip edition suffixes; that is the job of
    ``simplify_search_term`` when the first search finds nothing.

    Args:
        name: Raw game name.

    Returns:
        Cleaned name suitable for HLTB search.
    """
    cleaned = _SYMBOL_PATTERN.sub(" ", name)
    cleaned = cleaned.translate(_SUPERSCRIPT_MAP).replace("`", "'")
    cleaned = _PAREN_NOISE_PATTERN.sub(" ", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def simplify_search_term(name: str) -> str:
    """Strips edition, remaster and year suffixes for the fallback search.

    Handles stacked suffixes like "Enhanced Edition Director's Cut".

    Args:
        name: Cleaned game name.

    Returns:
        Simplified name, or the input unchanged if nothing was stripped.
    """
    name = re.sub(r"\s+", " ", name).strip()
    prev = ""
    while prev != name:
        prev = name
        for pattern in _SIMPLIFY_PATTERNS:
            stripped = pattern.sub("", name).strip()
            if stripped:
                name = stripped
        stripped = _BARE_YEAR_PATTERN.sub("", name).strip()
        if stripped:
            name = stripped
    return name


# ===== PAYLOAD CONVERSION =====


def seconds_to_duration(value: Any) -> timedelta | None:
    """Converts an HLTB seconds field to a duration; 0 and junk mean no data."""
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    return timedelta(seconds=seconds)


def to_candidate(entry: Mapping[str, Any]) -> CandidateRecord:
    """Converts an HLTB search API result dict to a CandidateRecord.

    Args:
        entry: Raw game data dict from the HLTB API.

    Returns:
        Candidate with durations converted from seconds.
    """
    platforms = str(entry.get("profile_platform") or "")
    return CandidateRecord(
        source_id=str(entry.get("game_id", "")),
        display_name=str(entry.get("game_name", "")),
        metrics={key: seconds_to_duration(entry.get(field_name)) for key, field_name in _METRIC_FIELDS},
        platform_tags=frozenset(p.strip() for p in platforms.split(",") if p.strip()),
        aliases=tuple(a.strip() for a in str(entry.get("game_alias") or "").split(",") if a.strip()),
    )
