"""Bounded retries with exponential backoff and jitter.

Every failure is classified before deciding whether to retry:

* rate limited: exponential backoff, ``base_delay * 2**attempt`` plus up
  to 25% jitter (never shorter than a Retry-After hint);
* transient (network, timeout, 5xx): a short fixed delay;
* terminal (everything else): re-raised immediately without using the
  retry budget, so programming errors and bad input are never retried.
"""

from __future__ import annotations

import logging
import random
import time
from enum import Enum
from typing import Callable, TypeVar

import requests

from src.core.errors import RateLimitedError, TransientSourceError

logger = logging.getLogger("hltbresolver.retry")

__all__ = ["FailureClass", "RetryExecutor", "classify"]

T = TypeVar("T")


class FailureClass(str, Enum):
    """Retry category of an exception."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    TERMINAL = "terminal"


def classify(exc: BaseException) -> FailureClass:
    """Decides how an exception raised by a source operation is retried.

    Args:
        exc: The raised exception.

    Returns:
        The failure class.
    """
    if isinstance(exc, RateLimitedError):
        return FailureClass.RATE_LIMITED
    if isinstance(exc, TransientSourceError):
        return FailureClass.TRANSIENT
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return FailureClass.TRANSIENT
    return FailureClass.TERMINAL


class RetryExecutor:
    """Runs an operation with bounded retries.

    Args:
        max_attempts: Total attempts including the first one.
        base_delay: Initial backoff in seconds for rate-limited failures.
        transient_delay: Fixed delay in seconds for transient failures.
        max_delay: Upper bound for a single backoff delay.
        sleep: Sleep function, injectable for tests.
        jitter: Returns a random float in [a, b], injectable for tests.
        clock: Monotonic clock used to honour deadlines.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        transient_delay: float = 0.5,
        max_delay: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.transient_delay = transient_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._jitter = jitter
        self._clock = clock

    def backoff_delay(self, attempt: int, exc: BaseException, base_delay: float | None = None) -> float:
        """Computes the delay before the next attempt.

        Args:
            attempt: Zero-based index of the attempt that just failed.
            exc: The failure of that attempt.
            base_delay: Overrides the configured base delay.

        Returns:
            Delay in seconds.
        """
        if classify(exc) is FailureClass.TRANSIENT:
            return self.transient_delay

        base = self.base_delay if base_delay is None else base_delay
        exponential = base * (2**attempt)
        delay = min(exponential + self._jitter(0.0, 0.25 * exponential), self.max_delay)
        retry_after = getattr(exc, "retry_after", None)
        if retry_after:
            delay = max(delay, float(retry_after))
        return delay

    def run(
        self,
        operation: Callable[[], T],
        max_attempts: int | None = None,
        base_delay: float | None = None,
        deadline: float | None = None,
        label: str = "operation",
    ) -> T:
        """Runs ``operation`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument callable to run.
            max_attempts: Overrides the configured attempt budget.
            base_delay: Overrides the configured base delay.
            deadline: Monotonic time after which no further attempt starts.
            label: Name used in log messages.

        Returns:
            The operation's result.

        Raises:
            Exception: The last failure once attempts are exhausted, the
                deadline would be overrun, or the failure is terminal.
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        attempt = 0
        while True:
            try:
                result = operation()
            except Exception as exc:
                failure = classify(exc)
                if failure is FailureClass.TERMINAL:
                    raise
                if attempt + 1 >= attempts:
                    logger.warning("%s failed after %d attempts: %s", label, attempt + 1, exc)
                    raise

                delay = self.backoff_delay(attempt, exc, base_delay)
                if deadline is not None and self._clock() + delay >= deadline:
                    logger.debug("%s: retry in %.2fs would overrun the deadline", label, delay)
                    raise

                logger.info(
                    "%s %s (attempt %d/%d), retrying in %.2fs",
                    label,
                    failure.value,
                    attempt + 1,
                    attempts,
                    delay,
                )
                self._sleep(delay)
                attempt += 1
                continue

            if attempt > 0:
                logger.debug("%s succeeded after %d retries", label, attempt)
            return result
