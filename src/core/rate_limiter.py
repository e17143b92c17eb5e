"""Token-bucket rate limiter shared by all requests to one remote source.

The bucket holds up to ``capacity`` tokens and refills continuously at
``capacity / period`` tokens per second. Refill is computed lazily from
the elapsed time on every call; there is no background timer.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger("hltbresolver.rate_limiter")

__all__ = ["RateLimiter"]


class RateLimiter:
    """Thread-safe token bucket.

    Waiting callers block on a condition variable and re-check after the
    time the next token needs. Admission is not strictly FIFO, but every
    waiter eventually gets a token as long as tokens keep refilling.

    Args:
        capacity: Maximum number of tokens (burst size).
        period: Seconds needed to refill a completely empty bucket.
        name: Label used in log messages.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        capacity: int = 10,
        period: float = 60.0,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if period <= 0:
            raise ValueError("period must be positive")
        self.capacity = capacity
        self.period = period
        self.name = name
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()
        self._condition = threading.Condition(threading.Lock())

    @property
    def refill_rate(self) -> float:
        """Tokens added per second."""
        return self.capacity / self.period

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(float(self.capacity), self._tokens + elapsed * self.refill_rate)
        self._updated = now

    def _wait_time(self) -> float:
        return max(0.0, (1.0 - self._tokens) / self.refill_rate)

    @property
    def available(self) -> float:
        """Current number of tokens (fractional)."""
        with self._condition:
            self._refill()
            return self._tokens

    def try_admit(self) -> bool:
        """Takes a token if one is available, without blocking.

        Returns:
            True if a token was taken.
        """
        with self._condition:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def admit(self, timeout: float | None = None) -> bool:
        """Blocks until a token is available.

        Args:
            timeout: Maximum seconds to wait; None waits indefinitely.

        Returns:
            True once a token was taken, False if the timeout expired first.
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._condition:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return True

                wait = self._wait_time()
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0 or remaining < wait:
                        logger.debug("Rate limiter '%s': no token within %.2fs", self.name, max(remaining, 0.0))
                        return False
                logger.debug("Rate limiter '%s': waiting %.2fs for a token", self.name, wait)
                self._condition.wait(wait)
