"""Retry envelope with exponential backoff for outbound HTTP and RPC calls."""

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

import httpx

from portfolio_scanner.exceptions import TransientTransportError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryConfig:
    """
    Configuration for retry behavior.

    Parameters
    ----------
    max_retries : int
        Maximum number of retries after the first attempt
    base_delay : float
        Multiplier applied to the exponential term
    max_delay : float
        Maximum delay between retries
    exponential_base : float
        Base for exponential backoff calculation

    """

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base

    @property
    def max_attempts(self) -> int:
        """Total number of attempts including the first one."""
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay after a failed attempt using exponential backoff.

        Parameters
        ----------
        attempt : int
            Number of the attempt that just failed (1-indexed)

        Returns
        -------
        float
            Delay in seconds (2, 4, 8, ... with the defaults)

        """
        delay = self.base_delay * (self.exponential_base**attempt)
        return min(delay, self.max_delay)


def with_retry(
    config: RetryConfig | None = None,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to add retry logic with exponential backoff to a function.

    Parameters
    ----------
    config : RetryConfig | None
        Retry configuration. Uses default config if None.
    retry_on : tuple[type[BaseException], ...]
        Exception types considered transient
    sleep : Callable[[float], None]
        Sleep function, injectable for tests

    Returns
    -------
    Callable
        Decorated function with retry logic

    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception: BaseException | None = None

            for attempt in range(1, config.max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e

                    # Don't wait after the last attempt
                    if attempt == config.max_attempts:
                        break

                    delay = config.get_delay(attempt)
                    logger.debug(
                        "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                        func.__name__,
                        attempt,
                        config.max_attempts,
                        delay,
                        e,
                    )
                    sleep(delay)

            raise last_exception  # type: ignore[misc]

        return wrapper

    return decorator


class _RetryableResponse(Exception):
    """Response status that signals a temporary server-side problem."""


class JSONFetcher:
    """
    Performs GET requests returning JSON, retrying transport and parse failures.

    A well-formed JSON body is always returned as-is, even when it describes
    an error or an empty result. Only network failures, throttling/5xx
    statuses and unparsable bodies are retried.

    Parameters
    ----------
    label : str
        Name of the remote service, used in logs and errors
    client : httpx.Client | None
        HTTP client. A new client is created if None.
    retry_config : RetryConfig | None
        Retry configuration
    rate_limiter : Any | None
        Shared rate limiter; one token is acquired before every attempt
    sleep : Callable[[float], None]
        Sleep function used between attempts
    timeout : float
        Request timeout in seconds for the default client
    headers : dict[str, str] | None
        Extra headers sent with every request

    """

    def __init__(
        self,
        label: str,
        client: httpx.Client | None = None,
        retry_config: RetryConfig | None = None,
        rate_limiter: Any | None = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.label = label
        self.client = client or httpx.Client(timeout=timeout)
        self.headers = headers
        self.retry_config = retry_config or RetryConfig()
        self.rate_limiter = rate_limiter
        self._sleep = sleep

    def get_json(self, url: str, params: dict[str, Any] | None = None, *, label: str | None = None) -> Any:
        """
        Fetch and decode a JSON document.

        Parameters
        ----------
        url : str
            Request URL
        params : dict[str, Any] | None
            Query parameters
        label : str | None
            Call description for diagnostics; defaults to the fetcher label

        Returns
        -------
        Any
            Decoded JSON body

        Raises
        ------
        TransientTransportError
            If every attempt failed; carries the last response body

        """
        call_label = label or self.label
        last_body: str | None = None
        max_attempts = self.retry_config.max_attempts

        for attempt in range(1, max_attempts + 1):
            if self.rate_limiter is not None:
                self.rate_limiter.acquire()

            try:
                response = self.client.get(url, params=params, headers=self.headers)
                last_body = response.text
                if response.status_code == 429 or response.status_code >= 500:
                    msg = f"HTTP {response.status_code}"
                    raise _RetryableResponse(msg)
                return response.json()
            except (httpx.TransportError, _RetryableResponse, ValueError) as e:
                if attempt == max_attempts:
                    break

                delay = self.retry_config.get_delay(attempt)
                logger.debug(
                    "Failed to fetch from %s (attempt %d/%d), retrying in %.1fs: %s",
                    call_label,
                    attempt,
                    max_attempts,
                    delay,
                    e,
                )
                self._sleep(delay)

        logger.debug("Giving up on %s after %d attempts", call_label, max_attempts)
        raise TransientTransportError(call_label, url, last_body, attempts=max_attempts)

    def close(self) -> None:
        """Close HTTP client."""
        self.client.close()

    def __enter__(self) -> "JSONFetcher":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()
