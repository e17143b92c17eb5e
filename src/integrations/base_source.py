"""Abstract base class for candidate sources and shared HTTP error mapping.

Every source turns a free-text game name into a list of CandidateRecord
objects. Remote sources translate HTTP failures into the resolver error
taxonomy with ``raise_for_status`` and ``translate_request_error`` so the
retry executor can classify them.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from email.utils import parsedate_to_datetime
from typing import Callable

import requests

from src.core.errors import RateLimitedError, SourceUnavailableError, TransientSourceError
from src.core.models import CandidateRecord

__all__ = [
    "CandidateSource",
    "budget_deadline",
    "parse_retry_after",
    "raise_for_status",
    "request_timeout",
    "translate_request_error",
]

logger = logging.getLogger("hltbresolver.sources")


class CandidateSource(ABC):
    """A place to look up games by name.

    Attributes:
        name: Identifier reported as the result source (e.g. "hltb_api").
        remote: Whether requests leave the process (and need rate limiting).
    """

    name: str = "source"
    remote: bool = True

    @abstractmethod
    def search(self, name: str, timeout: float | None = None) -> list[CandidateRecord]:
        """Looks up candidates for a game name.

        Args:
            name: Game name as given by the caller.
            timeout: Overall budget in seconds for the whole search, shared
                by all of its requests; None for the source's default.

        Returns:
            Candidates in source order, empty if nothing was found.

        Raises:
            RateLimitedError: The source throttled the request.
            TransientSourceError: Network failure or server error.
            SourceUnavailableError: The source cannot serve this request.
        """

    def status(self) -> dict[str, object]:
        """Returns diagnostic information about the source."""
        return {"name": self.name, "remote": self.remote}


def parse_retry_after(value: str | None, now: float | None = None) -> float | None:
    """Parses a Retry-After header given as seconds or as an HTTP date.

    Args:
        value: Raw header value.
        now: Current epoch time, defaults to ``time.time()``.

    Returns:
        Seconds to wait, or None when the header is missing or unreadable
        so the caller falls back to its own backoff.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    current = time.time() if now is None else now
    return max(0.0, retry_at.timestamp() - current)


def raise_for_status(response: requests.Response, source: str) -> None:
    """Raises the matching resolver error for a non-2xx response.

    Args:
        response: HTTP response to check.
        source: Source name for error messages.

    Raises:
        RateLimitedError: On 429.
        TransientSourceError: On 5xx.
        SourceUnavailableError: On any other non-2xx status.
    """
    status = response.status_code
    if 200 <= status < 300:
        return
    if status == 429:
        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        hint = f" (retry after {retry_after:.0f}s)" if retry_after is not None else ""
        raise RateLimitedError(f"{source}: rate limited{hint}", retry_after=retry_after)
    if status >= 500:
        raise TransientSourceError(f"{source}: server error {status}", status_code=status)
    raise SourceUnavailableError(f"{source}: HTTP {status}")


def translate_request_error(exc: requests.RequestException, source: str) -> Exception:
    """Maps a requests exception onto the resolver error taxonomy.

    Timeouts and connection failures are transient; everything else
    (invalid URL, too many redirects, ...) makes the source unavailable.
    """
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return TransientSourceError(f"{source}: {exc}")
    return SourceUnavailableError(f"{source}: {exc}")


def budget_deadline(timeout: float | None, clock: Callable[[], float] = time.monotonic) -> float | None:
    """Turns a search's overall timeout into a deadline on ``clock``."""
    if timeout is None:
        return None
    return clock() + max(timeout, 0.0)


def request_timeout(
    deadline: float | None,
    default: float,
    source: str,
    clock: Callable[[], float] = time.monotonic,
) -> float:
    """Timeout for the next HTTP request of a search.

    A search may take several requests; each one gets what is left of
    the budget, capped at the source's own per-request default.

    Args:
        deadline: Deadline from ``budget_deadline``, None for no budget.
        default: The source's per-request timeout.
        source: Source name for error messages.
        clock: Clock the deadline was taken on.

    Raises:
        TransientSourceError: The budget is already spent.
    """
    if deadline is None:
        return default
    remaining = deadline - clock()
    if remaining <= 0:
        raise TransientSourceError(f"{source}: time budget exhausted")
    return min(remaining, default)
