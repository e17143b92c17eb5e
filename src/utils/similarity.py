# src/utils/similarity.py

"""String similarity scores for normalized game titles.

Every score lies in [0, 1], where 1.0 means identical. The functions
are pure and expect titles that went through ``title_normalizer`` first.
Jaro and Jaro-Winkler come from RapidFuzz; the rest is plain Python.
"""

from __future__ import annotations

from collections import Counter

from rapidfuzz.distance import Jaro, JaroWinkler

__all__ = [
    "best_similarity",
    "bigram_overlap",
    "combined",
    "edit_distance",
    "edit_similarity",
    "jaro",
    "jaro_winkler",
    "word_overlap",
]

# Weights of the combined score.
_BIGRAM_WEIGHT = 0.3
_PREFIX_WEIGHT = 0.4
_EDIT_WEIGHT = 0.3

# Winkler bonus per shared prefix character; RapidFuzz caps the prefix at 4
_PREFIX_SCALE = 0.1


def edit_distance(s1: str, s2: str) -> int:
    """Calculates the Levenshtein (edit) distance between two strings.

    Args:
        s1: First string.
        s2: Second string.

    Returns:
        Minimum number of single-character edits to transform s1 into s2.
    """
    if s1 == s2:
        return 0
    len1, len2 = len(s1), len(s2)
    if len1 == 0:
        return len2
    if len2 == 0:
        return len1

    # Two rows are enough; keep the shorter string on the inner loop.
    if len1 > len2:
        s1, s2 = s2, s1
        len1, len2 = len2, len1

    prev_row = list(range(len1 + 1))
    for j in range(1, len2 + 1):
        curr_row = [j] + [0] * len1
        ch2 = s2[j - 1]
        for i in range(1, len1 + 1):
            cost = 0 if s1[i - 1] == ch2 else 1
            curr_row[i] = min(
                curr_row[i - 1] + 1,  # insertion
                prev_row[i] + 1,  # deletion
                prev_row[i - 1] + cost,  # substitution
            )
        prev_row = curr_row

    return prev_row[len1]


def edit_similarity(s1: str, s2: str) -> float:
    """Edit distance scaled to a similarity: ``1 - distance / max_length``.

    Two empty strings are identical (1.0); one empty string against a
    non-empty one scores 0.0.
    """
    longest = max(len(s1), len(s2))
    if longest == 0:
        return 1.0
    return 1.0 - edit_distance(s1, s2) / longest


def _bigrams(text: str) -> Counter[str]:
    return Counter(text[i : i + 2] for i in range(len(text) - 1))


def bigram_overlap(s1: str, s2: str) -> float:
    """Dice coefficient over character bigram multisets.

    Strings shorter than two characters have no bigrams; for those the
    result is 1.0 when the strings are equal and 0.0 otherwise.

    Args:
        s1: First string.
        s2: Second string.

    Returns:
        ``2 * |common bigrams| / (|bigrams(s1)| + |bigrams(s2)|)``.
    """
    if s1 == s2:
        return 1.0
    if len(s1) < 2 or len(s2) < 2:
        return 0.0

    first = _bigrams(s1)
    second = _bigrams(s2)
    common = sum((first & second).values())
    return 2.0 * common / (sum(first.values()) + sum(second.values()))


def jaro(s1: str, s2: str) -> float:
    """Jaro similarity based on matching characters and transpositions."""
    return Jaro.normalized_similarity(s1, s2)


def jaro_winkler(s1: str, s2: str) -> float:
    """Jaro similarity with a bonus for a common prefix of up to four characters.

    The bonus only applies once the plain Jaro score is above 0.7.
    """
    return JaroWinkler.normalized_similarity(s1, s2, prefix_weight=_PREFIX_SCALE)


def combined(s1: str, s2: str) -> float:
    """Weighted blend: 30% bigram overlap, 40% Jaro-Winkler, 30% edit similarity.

    Symmetric in its arguments and always within [0, 1].
    """
    if s1 == s2:
        return 1.0
    score = (
        _BIGRAM_WEIGHT * bigram_overlap(s1, s2)
        + _PREFIX_WEIGHT * jaro_winkler(s1, s2)
        + _EDIT_WEIGHT * edit_similarity(s1, s2)
    )
    return min(1.0, max(0.0, score))


def word_overlap(s1: str, s2: str) -> float:
    """Jaccard index of the case-insensitive word sets of both strings.

    Two empty strings score 1.0, one empty string scores 0.0.
    """
    words1 = set(s1.lower().split())
    words2 = set(s2.lower().split())
    if not words1 and not words2:
        return 1.0
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def best_similarity(s1: str, s2: str) -> tuple[float, str]:
    """Returns the highest single-algorithm score and the algorithm's name.

    Useful when explaining why two titles matched.
    """
    scores = (
        (combined(s1, s2), "combined"),
        (edit_similarity(s1, s2), "levenshtein"),
        (bigram_overlap(s1, s2), "dice"),
        (jaro_winkler(s1, s2), "jaro_winkler"),
    )
    best = scores[0]
    for score in scores[1:]:
        if score[0] > best[0]:
            best = score
    return best
