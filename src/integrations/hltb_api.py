"""HowLongToBeat search API client (structured candidate source).

Queries the HLTB search API directly with automatic endpoint discovery
and auth-token handling. Returns every search hit as a CandidateRecord;
picking the right one is left to the title resolver.

HTTP failures are raised as resolver errors (rate limited, transient,
unavailable) so the orchestrator's retry executor can classify them.
"""

from __future__ import annotations

import logging
import random
import re
import threading
import time
from typing import Any, Callable

import requests
from bs4 import BeautifulSoup

from src.core.errors import SourceUnavailableError
from src.core.models import CandidateRecord
from src.integrations.base_source import (
    CandidateSource,
    budget_deadline,
    raise_for_status,
    request_timeout,
    translate_request_error,
)
from src.integrations.hltb_models import clean_search_term, simplify_search_term, to_candidate

logger = logging.getLogger("hltbresolver.hltb_api")

__all__ = ["HLTBClient"]

_HLTB_BASE = "https://howlongtobeat.com"

# Realistic browser User-Agents for rotation
_USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
    " (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:134.0) Gecko/20100101 Firefox/134.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
)

# Browser-like headers required to avoid 403 from HLTB's bot protection
_BROWSER_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

# Regex: fetch(`/api/<path>/init?...`) identifies the init+search pair
_INIT_PATTERN = re.compile(r"""/api/(\w+)/init""")

_NON_SEARCH_PATHS = frozenset({"user", "logout", "error", "game", "find"})

# Discovered endpoint and auth token stay valid for 5 minutes
_ENDPOINT_TTL = 300

_PAGE_SIZE = 20


class HLTBClient(CandidateSource):
    """Structured source backed by the HLTB search API.

    Discovers the current search endpoint from the site's JS bundles and
    obtains an auth token before the first search. If the endpoint
    answers 403/404 the discovery is repeated once.

    Args:
        http_timeout: Default per-request timeout in seconds.
        session: HTTP session to use; a new one is created when omitted.
        clock: Monotonic clock for the search budget.
    """

    name = "hltb_api"

    def __init__(
        self,
        http_timeout: float = 10.0,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.update(_BROWSER_HEADERS)
        self._http_timeout = http_timeout
        self._clock = clock
        self._api_path: str = ""
        self._auth_token: str = ""
        self._cache_time: float = 0.0
        self._ready_lock = threading.Lock()

    def status(self) -> dict[str, object]:
        return {
            "name": self.name,
            "remote": True,
            "endpoint": f"/api/{self._api_path}" if self._api_path else None,
            "endpoint_age": time.time() - self._cache_time if self._cache_time else None,
        }

    def _timeout(self, deadline: float | None) -> float:
        return request_timeout(deadline, self._http_timeout, self.name, self._clock)

    def search(self, name: str, timeout: float | None = None) -> list[CandidateRecord]:
        """Searches HLTB and returns all hits as candidates.

        Uses a two-pass strategy:
        1. Search with the cleaned full name.
        2. If that finds nothing, search again with edition suffixes stripped.

        Args:
            name: Game name to search for.
            timeout: Budget in seconds for the whole search, including
                endpoint discovery and the fallback search.

        Returns:
            Candidates in the order HLTB returned them.

        Raises:
            RateLimitedError: HLTB answered 429.
            TransientSourceError: Network failure, 5xx, or the budget ran out.
            SourceUnavailableError: Endpoint discovery failed or HLTB refused the request.
        """
        term = clean_search_term(name)
        if not term:
            return []

        deadline = budget_deadline(timeout, self._clock)
        self._ensure_api_ready(deadline)

        results = self._search_raw(term, deadline)
        if not results:
            simplified = simplify_search_term(term)
            if simplified != term:
                logger.debug("HLTB fallback search: '%s' → '%s'", term, simplified)
                results = self._search_raw(simplified, deadline)

        candidates = [to_candidate(entry) for entry in results if entry.get("game_name")]
        logger.debug("HLTB API returned %d candidates for '%s'", len(candidates), term)
        return candidates

    @staticmethod
    def _build_payload(search_name: str) -> dict[str, Any]:
        return {
            "searchType": "games",
            "searchTerms": search_name.split(),
            "searchPage": 1,
            "size": _PAGE_SIZE,
            "searchOptions": {
                "games": {
                    "userId": 0,
                    "platform": "",
                    "sortCategory": "popular",
                    "rangeCategory": "main",
                    "rangeTime": {"min": 0, "max": 0},
                    "gameplay": {"perspective": "", "flow": "", "genre": "", "difficulty": ""},
                    "rangeYear": {"max": "", "min": ""},
                    "modifier": "hide_dlc",
                },
                "users": {"sortCategory": "postcount"},
                "lists": {"sortCategory": "follows"},
                "filter": "",
                "sort": 0,
                "randomizer": 0,
            },
            "useCache": True,
        }

    def _post_search(self, payload: dict[str, Any], deadline: float | None) -> requests.Response:
        req_timeout = self._timeout(deadline)
        try:
            return self._session.post(
                f"{_HLTB_BASE}/api/{self._api_path}",
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Origin": _HLTB_BASE,
                    "Referer": f"{_HLTB_BASE}/",
                    "x-auth-token": self._auth_token,
                },
                timeout=req_timeout,
            )
        except requests.RequestException as exc:
            raise translate_request_error(exc, self.name) from exc

    def _search_raw(self, search_name: str, deadline: float | None) -> list[dict]:
        """Performs one HLTB API search.

        Args:
            search_name: Cleaned game name to search for.
            deadline: Monotonic deadline of the search, None for no budget.

        Returns:
            Raw result dicts.
        """
        payload = self._build_payload(search_name)
        resp = self._post_search(payload, deadline)

        # A stale endpoint or token answers 403/404: rediscover and retry once.
        if resp.status_code in (403, 404):
            logger.info("HLTB endpoint returned %d, refreshing...", resp.status_code)
            self.invalidate()
            self._ensure_api_ready(deadline)
            resp = self._post_search(payload, deadline)

        raise_for_status(resp, self.name)
        try:
            data = resp.json()
        except ValueError as exc:
            raise SourceUnavailableError(f"{self.name}: malformed search response") from exc

        results = data.get("data", []) if isinstance(data, dict) else []
        return [entry for entry in results if isinstance(entry, dict)]

    def invalidate(self) -> None:
        """Forgets the discovered endpoint so the next search rediscovers it."""
        with self._ready_lock:
            self._cache_time = 0.0

    def _ensure_api_ready(self, deadline: float | None = None) -> None:
        """Discovers the API endpoint and obtains an auth token if needed.

        Raises:
            TransientSourceError: The homepage or JS bundles could not be fetched.
            SourceUnavailableError: No endpoint or token could be found.
        """
        with self._ready_lock:
            now = time.time()
            if self._api_path and self._auth_token and (now - self._cache_time) < _ENDPOINT_TTL:
                return

            # Rotate User-Agent
            self._session.headers["User-Agent"] = random.choice(_USER_AGENTS)

            homepage_html = self._fetch_homepage(deadline)
            api_path = self._discover_endpoint(homepage_html, deadline)
            if not api_path:
                raise SourceUnavailableError(f"{self.name}: failed to discover the search endpoint")

            auth_token = self._get_auth_token(api_path, deadline)
            if not auth_token:
                raise SourceUnavailableError(f"{self.name}: failed to obtain an auth token")

            self._api_path = api_path
            self._auth_token = auth_token
            self._cache_time = now
            logger.info("HLTB API ready: /api/%s", api_path)

    def _fetch_homepage(self, deadline: float | None = None) -> str:
        """Fetches the HLTB homepage HTML."""
        req_timeout = self._timeout(deadline)
        try:
            resp = self._session.get(f"{_HLTB_BASE}/", timeout=req_timeout)
        except requests.RequestException as exc:
            raise translate_request_error(exc, self.name) from exc
        raise_for_status(resp, self.name)
        return resp.text

    def _discover_endpoint(self, homepage_html: str, deadline: float | None = None) -> str:
        """Discovers the current HLTB search API path from the website JS.

        Scans all JS chunks for fetch("/api/<path>/init") patterns
        to find the search endpoint.

        Args:
            homepage_html: The HLTB homepage HTML.
            deadline: Monotonic deadline of the search.

        Returns:
            The API path suffix (e.g. 'finder'), or empty string on failure.
        """
        soup = BeautifulSoup(homepage_html, "html.parser")

        chunk_urls: list[str] = []
        for tag in soup.find_all("script", src=True):
            src = str(tag.get("src", ""))
            if "/_next/static/chunks/" in src and not src.endswith("Manifest.js"):
                chunk_urls.append(src if src.startswith("http") else f"{_HLTB_BASE}{src}")

        for url in chunk_urls:
            req_timeout = self._timeout(deadline)
            try:
                js_resp = self._session.get(url, timeout=req_timeout)
                js_resp.raise_for_status()
            except requests.RequestException as exc:
                logger.debug("Skipping HLTB chunk %s: %s", url, exc)
                continue

            for match in _INIT_PATTERN.finditer(js_resp.text):
                path = match.group(1)
                if path in _NON_SEARCH_PATHS:
                    continue
                logger.debug("Found HLTB endpoint via init pattern: /api/%s", path)
                return path

        logger.warning("Could not discover HLTB endpoint from %d JS bundles", len(chunk_urls))
        return ""

    def _get_auth_token(self, api_path: str, deadline: float | None = None) -> str:
        """Obtains an auth token from the HLTB init endpoint.

        Args:
            api_path: The discovered API path suffix.
            deadline: Monotonic deadline of the search.

        Returns:
            Auth token string, or empty string on failure.
        """
        timestamp_ms = int(time.time() * 1000)
        init_url = f"{_HLTB_BASE}/api/{api_path}/init?t={timestamp_ms}"

        req_timeout = self._timeout(deadline)
        try:
            resp = self._session.get(
                init_url,
                headers={"Referer": f"{_HLTB_BASE}/", "Origin": _HLTB_BASE},
                timeout=req_timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Failed to get HLTB auth token: %s", exc)
            return ""
        token = data.get("token", "") if isinstance(data, dict) else ""
        if token:
            logger.debug("Obtained HLTB auth token")
        return token
