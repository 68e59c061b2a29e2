"""Pytest configuration for portfolio-scanner tests."""

from collections.abc import Callable

import httpx
import pytest

from portfolio_scanner.rpc.retry import JSONFetcher, RetryConfig


def pytest_configure(config):
    """Disable ape plugin during tests."""
    # Unregister ape pytest plugin to avoid network connection issues
    config.pluginmanager.set_blocked("ape_test")


class SleepRecorder:
    """Records requested sleeps instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_fetcher(sleeps: SleepRecorder) -> Callable[..., JSONFetcher]:
    """Build a JSONFetcher backed by a mock transport handler."""

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        label: str = "test",
        max_retries: int = 5,
        rate_limiter=None,
    ) -> JSONFetcher:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return JSONFetcher(
            label,
            client=client,
            retry_config=RetryConfig(max_retries=max_retries),
            rate_limiter=rate_limiter,
            sleep=sleeps,
        )

    return factory
