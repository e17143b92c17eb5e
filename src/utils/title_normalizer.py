# src/utils/title_normalizer.py

"""Game title normalization at three escalating levels.

``minimal`` only removes glyph noise, ``standard`` additionally treats
punctuation as word breaks, and ``aggressive`` strips everything that
commonly differs between two catalogs' spellings of the same game
(editions, subtitles, articles, publisher prefixes, Roman numerals).

All functions are pure and total. Normalization is idempotent per level:
``normalize(normalize(s, L), L) == normalize(s, L)``.

A stricter level is usually no longer than a looser one, with two
exceptions at ``aggressive``: whole-title acronyms expand ("GTA" becomes
"grand theft auto") and a standalone "x" becomes "10". Callers must not
rely on the aggressive form being a shortening.
"""

from __future__ import annotations

import re
from datetime import date
from enum import Enum

__all__ = [
    "NormalizationLevel",
    "core_words",
    "extract_year",
    "normalize",
    "remove_year",
]


class NormalizationLevel(str, Enum):
    """How much of a title to canonicalize."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    AGGRESSIVE = "aggressive"


# ===== PATTERNS =====

# Trademark/copyright glyphs and their text forms, replaced by a space
# so "Velocity®Ultra" keeps its word boundary.
_SYMBOL_PATTERN = re.compile(r"[™®©]|\((?:TM|R|C)\)", re.IGNORECASE)

_SUPERSCRIPT_MAP = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹", "0123456789")

_WHITESPACE_PATTERN = re.compile(r"\s+")

_PUNCTUATION_PATTERN = re.compile(r"[:;,.!?'\"`´‘’“”\-‐‑–—()\[\]{}/\\|~*#]")

# Subtitle separators: colon, spaced hyphen, en/em dash.
_SUBTITLE_PATTERN = re.compile(r"\s*(?::|\s-\s|[–—])")

_LEADING_ARTICLE_PATTERN = re.compile(r"^(?:the|a|an)\s+")

_PUBLISHER_PREFIX_PATTERN = re.compile(r"^(?:sid meier|tom clancy)(?: s|s)?\s+")

_EDITION_SUFFIXES: tuple[str, ...] = (
    "game of the year edition",
    "goty edition",
    "goty",
    "game of the year",
    "definitive edition",
    "enhanced edition",
    "special edition",
    "deluxe edition",
    "ultimate edition",
    "complete edition",
    "collector s edition",
    "collectors edition",
    "gold edition",
    "platinum edition",
    "anniversary edition",
    "remastered",
    "remake",
    "director s cut",
    "directors cut",
    "digital deluxe",
)

# Edition suffix with optional preceding separator, anchored at the end.
_EDITION_PATTERN = re.compile(
    r"(?:\s*[-:–—]\s*|\s+)(?:" + "|".join(re.escape(s) for s in _EDITION_SUFFIXES) + r")$",
)

# Whole-string acronym expansions (standard-normalized keys).
_ACRONYMS: dict[str, str] = {
    "csgo": "counter strike global offensive",
    "cs go": "counter strike global offensive",
    "pubg": "playerunknowns battlegrounds",
    "gta": "grand theft auto",
    "cod": "call of duty",
    "bf": "battlefield",
    "r6": "rainbow six",
    "r6s": "rainbow six siege",
    "dota": "defense of the ancients",
    "tf2": "team fortress 2",
    "mw": "modern warfare",
    "mw2": "modern warfare 2",
    "mw3": "modern warfare 3",
    "bo": "black ops",
    "bo2": "black ops 2",
    "bo3": "black ops 3",
    "bo4": "black ops 4",
}

_ROMAN_NUMERALS: dict[str, str] = {
    "ii": "2",
    "iii": "3",
    "iv": "4",
    "v": "5",
    "vi": "6",
    "vii": "7",
    "viii": "8",
    "ix": "9",
    "x": "10",
}

_WRITTEN_NUMBERS: dict[str, str] = {
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
    "ten": "10",
}

_YEAR_PATTERN = re.compile(r"\((\d{4})\)")

_STOP_WORDS = frozenset({"edition", "game", "collection", "with", "from"})

_MIN_YEAR = 1980


# ===== LEVELS =====


def _collapse(text: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def _minimal(text: str) -> str:
    text = _SYMBOL_PATTERN.sub(" ", text)
    text = text.translate(_SUPERSCRIPT_MAP)
    return _collapse(text).lower()


def _punctuation_to_spaces(text: str) -> str:
    return _collapse(_PUNCTUATION_PATTERN.sub(" ", text))


def _strip_editions(text: str) -> str:
    prev = ""
    while prev != text:
        prev = text
        stripped = _EDITION_PATTERN.sub("", text).strip()
        if stripped:
            text = stripped
    return text


def _strip_subtitle(text: str) -> str:
    match = _SUBTITLE_PATTERN.search(text)
    if match is None:
        return text
    head = text[: match.start()].strip()
    return head if _PUNCTUATION_PATTERN.sub("", head).strip() else text


def _convert_numbers(text: str) -> str:
    tokens = text.split(" ")
    last = len(tokens) - 1
    converted: list[str] = []
    for index, token in enumerate(tokens):
        if token in _ROMAN_NUMERALS:
            converted.append(_ROMAN_NUMERALS[token])
        elif token == "i" and index == last and index > 0:
            converted.append("1")
        elif token in _WRITTEN_NUMBERS and index == last and index > 0:
            converted.append(_WRITTEN_NUMBERS[token])
        else:
            converted.append(token)
    return " ".join(converted)


def _aggressive_step(text: str) -> str:
    text = _strip_editions(text)
    text = _strip_subtitle(text)
    text = _punctuation_to_spaces(text)
    text = _strip_editions(text)

    without_article = _LEADING_ARTICLE_PATTERN.sub("", text)
    if without_article:
        text = without_article
    without_publisher = _PUBLISHER_PREFIX_PATTERN.sub("", text)
    if without_publisher:
        text = without_publisher

    text = _ACRONYMS.get(text, text)
    return _collapse(_convert_numbers(text))


def _aggressive(text: str) -> str:
    text = _minimal(text)
    # Each step can expose another removable prefix or suffix; stop at the fixed point.
    prev = None
    while prev != text:
        prev = text
        text = _aggressive_step(text)
    return text


def normalize(raw: str, level: NormalizationLevel | str = NormalizationLevel.STANDARD) -> str:
    """Normalizes a game title.

    Args:
        raw: Title as spelled by any catalog.
        level: Normalization level (enum member or its string value).

    Returns:
        The normalized title. Empty input gives an empty string; input
        without letters is only whitespace-collapsed and trimmed.
    """
    if not raw:
        return ""
    if not any(ch.isalpha() for ch in raw):
        return _collapse(raw)

    level = NormalizationLevel(level)
    if level is NormalizationLevel.MINIMAL:
        return _minimal(raw)
    if level is NormalizationLevel.STANDARD:
        return _punctuation_to_spaces(_minimal(raw))
    return _aggressive(raw)


# ===== HELPERS =====


def extract_year(raw: str) -> int | None:
    """Extracts a parenthesized release year like ``DOOM (2016)``.

    Args:
        raw: Title to inspect.

    Returns:
        The year if it is plausible (1980 up to two years from now), else None.
    """
    match = _YEAR_PATTERN.search(raw or "")
    if match is None:
        return None
    year = int(match.group(1))
    if _MIN_YEAR <= year <= date.today().year + 2:
        return year
    return None


def remove_year(raw: str) -> str:
    """Removes parenthesized years from a title."""
    return _collapse(_YEAR_PATTERN.sub(" ", raw or ""))


def core_words(raw: str, min_length: int = 4) -> set[str]:
    """Returns the informative words of a title.

    Words are taken from the standard-normalized title; short words and a
    handful of generic words ("edition", "game", ...) are dropped.

    Args:
        raw: Title to tokenize.
        min_length: Minimum word length to keep.

    Returns:
        Set of lowercase words.
    """
    return {
        word
        for word in normalize(raw, NormalizationLevel.STANDARD).split()
        if len(word) >= min_length and word not in _STOP_WORDS
    }
