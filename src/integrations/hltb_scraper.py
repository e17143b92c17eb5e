"""HowLongToBeat search page scraper (unstructured candidate source).

Fetches the HTML search results page and extracts candidates with
BeautifulSoup. HLTB has shipped several markups over time, so extraction
tries a primary selector set first and a degraded, more generic one
second. Duration texts like "12½ Hours", "20 - 25 Hours", "45 Mins"
or "--" are parsed by ``parse_duration``.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

import requests
from bs4 import BeautifulSoup, Tag

from src.core.models import CandidateRecord, MetricKey
from src.integrations.base_source import (
    CandidateSource,
    budget_deadline,
    raise_for_status,
    request_timeout,
    translate_request_error,
)
from src.integrations.hltb_models import clean_search_term

logger = logging.getLogger("hltbresolver.hltb_scraper")

__all__ = [
    "DEGRADED_SELECTORS",
    "HLTBScraper",
    "PRIMARY_SELECTORS",
    "SelectorSet",
    "parse_duration",
    "parse_search_results",
]

_HLTB_BASE = "https://howlongtobeat.com"
_SEARCH_URL = f"{_HLTB_BASE}/search_results"

_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"

_MAX_TEXT_LENGTH = 200


@dataclass(frozen=True)
class SelectorSet:
    """CSS selectors describing one search-results markup.

    Attributes:
        name: Label for logs and status.
        card: One element per game.
        titles: Candidate selectors for the title, tried in order.
        link: Element whose href carries the game id.
        tidbit: Time containers or flat label/value elements.
        label: Label element inside a time container.
        value: Value element inside a time container.
        no_results: Marker shown when the search found nothing.
    """

    name: str
    card: str
    titles: tuple[str, ...]
    link: str
    tidbit: str
    label: str
    value: str
    no_results: str


PRIMARY_SELECTORS = SelectorSet(
    name="primary",
    card=".search_list_details",
    titles=("h3 a", ".search_list_details_block_title", "h3"),
    link="h3 a[href], a[href*='game']",
    tidbit=".search_list_tidbit",
    label=".search_list_tidbit_short",
    value=".search_list_tidbit_long",
    no_results=".search_list_no_results",
)

DEGRADED_SELECTORS = SelectorSet(
    name="degraded",
    card="li[class*='GameCard'], div[class*='GameCard']",
    titles=("h2 a", "h3 a", "a[title]", "h2", "h3"),
    link="a[href*='game']",
    tidbit="[class*='tidbit'], [class*='Tidbit']",
    label="[class*='short'], [class*='label']",
    value="[class*='long'], [class*='value']",
    no_results="[class*='no_results'], [class*='NoResults']",
)

_LABELS: tuple[tuple[tuple[str, ...], MetricKey], ...] = (
    # "main + extra" must be checked before plain "main"
    (("main + extra", "main+extra", "main + extras", "main+extras"), MetricKey.MAIN_EXTRAS),
    (("main story", "main"), MetricKey.MAIN_STORY),
    (("completionist", "100%"), MetricKey.COMPLETIONIST),
    (("all styles", "all playstyles", "all play styles", "average", "co-op", "vs."), MetricKey.ALL_STYLES),
)

_NO_DATA = frozenset({"", "-", "--", "n/a", "na", "no data", "?"})

_FRACTIONS: dict[str, float] = {"½": 0.5, "¼": 0.25, "¾": 0.75, "⅓": 1 / 3, "⅔": 2 / 3}

_NUMBER = r"(?:\d+(?:[.,]\d+)?\s*[½¼¾⅓⅔]?|[½¼¾⅓⅔])"
_RANGE_PATTERN = re.compile(rf"({_NUMBER})\s*(?:-|–|—|to)\s*({_NUMBER})")
_NUMBER_PATTERN = re.compile(_NUMBER)
_GAME_ID_PATTERN = re.compile(r"(?:[?&]id=|/game/)(\d+)")


# ===== PARSING HELPERS =====


def _to_number(text: str) -> float:
    text = text.strip().replace(",", ".")
    fraction = 0.0
    if text and text[-1] in _FRACTIONS:
        fraction = _FRACTIONS[text[-1]]
        text = text[:-1].strip()
    return (float(text) if text else 0.0) + fraction


def parse_duration(text: str | None) -> timedelta | None:
    """Parses a human-readable HLTB duration.

    Understands fractional glyphs ("12½ Hours"), ranges resolved to their
    mean ("20 - 25 Hours" → 22.5 h), minutes ("45 Mins") and the usual
    no-data sentinels ("--", "N/A").

    Args:
        text: Duration text as shown on the page.

    Returns:
        The duration, or None when the text carries no data.
    """
    if text is None:
        return None
    cleaned = " ".join(text.split()).lower()
    if cleaned in _NO_DATA:
        return None

    range_match = _RANGE_PATTERN.search(cleaned)
    if range_match:
        value = (_to_number(range_match.group(1)) + _to_number(range_match.group(2))) / 2
    else:
        number_match = _NUMBER_PATTERN.search(cleaned)
        if number_match is None:
            return None
        value = _to_number(number_match.group(0))

    if value <= 0:
        return None
    if "min" in cleaned and "hour" not in cleaned:
        return timedelta(minutes=value)
    return timedelta(hours=value)


def _clean_text(text: str) -> str:
    return " ".join(text.split())[:_MAX_TEXT_LENGTH]


def _metric_for(label: str) -> MetricKey | None:
    label = " ".join(label.lower().split())
    for keys, metric in _LABELS:
        if any(label.startswith(key) for key in keys):
            return metric
    return None


def _extract_title(card: Tag, selectors: SelectorSet) -> str:
    for selector in selectors.titles:
        element = card.select_one(selector)
        if element is not None:
            title = element.get("title") or element.get_text(" ", strip=True)
            title = _clean_text(str(title))
            if title:
                return title
    return ""


def _extract_game_id(card: Tag, selectors: SelectorSet) -> str:
    for link in card.select(selectors.link):
        match = _GAME_ID_PATTERN.search(str(link.get("href", "")))
        if match:
            return match.group(1)
    return ""


def _extract_times(card: Tag, selectors: SelectorSet) -> dict[MetricKey, timedelta | None]:
    elements = card.select(selectors.tidbit)
    pairs: list[tuple[str, str]] = []

    # Containers holding a label and a value element.
    for element in elements:
        label = element.select_one(selectors.label)
        value = element.select_one(selectors.value)
        if label is not None and value is not None:
            pairs.append((label.get_text(" ", strip=True), value.get_text(" ", strip=True)))

    # Flat markup: alternating label / value siblings.
    if not pairs:
        leaves = [element for element in elements if element.select_one(selectors.tidbit) is None]
        texts = [leaf.get_text(" ", strip=True) for leaf in leaves]
        pairs = list(zip(texts[0::2], texts[1::2]))

    metrics: dict[MetricKey, timedelta | None] = {}
    for label, value in pairs:
        metric = _metric_for(label)
        if metric is not None and metric not in metrics:
            metrics[metric] = parse_duration(value)
    return metrics


def _parse_with(soup: BeautifulSoup, selectors: SelectorSet) -> list[CandidateRecord]:
    candidates: list[CandidateRecord] = []
    for index, card in enumerate(soup.select(selectors.card)):
        title = _extract_title(card, selectors)
        if not title:
            continue
        game_id = _extract_game_id(card, selectors) or f"scraped-{index}"
        candidates.append(
            CandidateRecord(
                source_id=game_id,
                display_name=title,
                metrics=_extract_times(card, selectors),
            )
        )
    return candidates


def parse_search_results(
    html: str,
    selector_sets: tuple[SelectorSet, ...] = (PRIMARY_SELECTORS, DEGRADED_SELECTORS),
) -> tuple[list[CandidateRecord], str | None]:
    """Extracts candidates from a search results page.

    Args:
        html: Page markup.
        selector_sets: Selector sets to try, in order.

    Returns:
        Tuple of (candidates, name of the selector set that matched). The
        name is None when the page shows no results or no set matched.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for selectors in selector_sets:
        if soup.select_one(selectors.no_results) is not None:
            return [], None
        candidates = _parse_with(soup, selectors)
        if candidates:
            return candidates, selectors.name
    return [], None


# ===== SCRAPER =====


class HLTBScraper(CandidateSource):
    """Scraped source backed by the HLTB search results page.

    Args:
        http_timeout: Default per-request timeout in seconds.
        session: HTTP session to use; a new one is created when omitted.
        clock: Monotonic clock for the search budget.
    """

    name = "hltb_scraper"

    def __init__(
        self,
        http_timeout: float = 10.0,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": _USER_AGENT, "Accept-Language": "en-US,en;q=0.9"})
        self._http_timeout = http_timeout
        self._clock = clock
        self._last_selector_set: str | None = None
        self._last_success: float | None = None

    def status(self) -> dict[str, object]:
        return {
            "name": self.name,
            "remote": True,
            "last_selector_set": self._last_selector_set,
            "last_success": self._last_success,
        }

    def search(self, name: str, timeout: float | None = None) -> list[CandidateRecord]:
        """Fetches and parses the search results page for a game name.

        Raises:
            RateLimitedError: HLTB answered 429.
            TransientSourceError: Network failure, 5xx, or no budget left.
            SourceUnavailableError: Any other HTTP failure.
        """
        term = clean_search_term(name)
        if not term:
            return []

        deadline = budget_deadline(timeout, self._clock)
        req_timeout = request_timeout(deadline, self._http_timeout, self.name, self._clock)
        try:
            resp = self._session.get(
                _SEARCH_URL,
                params={"page": 1, "length": 20, "sort": "name", "search": term},
                headers={"Referer": f"{_HLTB_BASE}/"},
                timeout=req_timeout,
            )
        except requests.RequestException as exc:
            raise translate_request_error(exc, self.name) from exc
        raise_for_status(resp, self.name)

        candidates, selector_set = parse_search_results(resp.text)
        self._last_success = time.time()
        if selector_set is not None:
            self._last_selector_set = selector_set
            if selector_set != PRIMARY_SELECTORS.name:
                logger.info("HLTB scraper fell back to %s selectors for '%s'", selector_set, term)
        logger.debug("HLTB scraper found %d candidates for '%s'", len(candidates), term)
        return candidates
