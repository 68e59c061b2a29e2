"""Token-bucket rate limiter shared by every outbound price-provider call."""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Token bucket that delays callers instead of failing them.

    ``acquire`` takes a token when one is available. Otherwise the caller
    sleeps for at least ``min_delay`` seconds, or longer if the bucket needs
    more time to refill, and checks again. The bucket never holds more than
    ``burst`` tokens, so the sustained rate cannot be exceeded even when
    several worker threads share one limiter.

    Parameters
    ----------
    rate_per_second : float
        Sustained number of operations allowed per second
    burst : int
        Bucket capacity
    min_delay : float
        Minimum wait in seconds when the bucket is empty
    clock : Callable[[], float]
        Monotonic clock, injectable for tests
    sleep : Callable[[float], None]
        Sleep function, injectable for tests

    """

    def __init__(
        self,
        rate_per_second: float = 8.0,
        burst: int = 1,
        min_delay: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate_per_second <= 0:
            msg = f"rate_per_second must be positive, got {rate_per_second}"
            raise ValueError(msg)
        if burst < 1:
            msg = f"burst must be at least 1, got {burst}"
            raise ValueError(msg)

        self.rate_per_second = rate_per_second
        self.burst = burst
        self.min_delay = min_delay
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = float(burst)
        self._updated_at = clock()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated_at)
        self._updated_at = now
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate_per_second)

    def try_acquire(self) -> bool:
        """
        Take a token without waiting.

        Returns
        -------
        bool
            True if a token was available

        """
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def _wait_time(self) -> float:
        with self._lock:
            self._refill(self._clock())
            refill_wait = max(0.0, 1.0 - self._tokens) / self.rate_per_second
        return max(self.min_delay, refill_wait)

    def acquire(self) -> None:
        """Take a token, sleeping until one is available."""
        while not self.try_acquire():
            wait_time = self._wait_time()
            logger.debug("Rate limit reached, waiting %.2fs", wait_time)
            self._sleep(wait_time)
