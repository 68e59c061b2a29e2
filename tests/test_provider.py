"""Tests for the Ape-backed native balance reader."""

import pytest

pytest.importorskip("ape")

from portfolio_scanner.rpc.provider import ApeNativeBalanceProvider  # noqa: E402
from portfolio_scanner.rpc.retry import RetryConfig  # noqa: E402

ACCOUNT = "0x7fc66500c84a76ad7e9c93437bfc5ac33e2ddae9"


class FakeApeProvider:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: list[str] = []

    def get_balance(self, address: str) -> int:
        self.calls.append(address)
        if len(self.calls) <= self.failures:
            raise ConnectionError("node timeout")
        return 1_500_000_000_000_000_000


def test_get_balance_requires_connection():
    provider = ApeNativeBalanceProvider()

    with pytest.raises(RuntimeError, match="Not connected"):
        provider.get_balance(ACCOUNT)


def test_get_balance_uses_checksum_address():
    provider = ApeNativeBalanceProvider(retry_config=RetryConfig(max_retries=0))
    fake = FakeApeProvider()
    provider._provider = fake

    assert provider.get_balance(ACCOUNT) == 1_500_000_000_000_000_000
    assert fake.calls == ["0x7Fc66500c84A76Ad7e9c93437bFc5Ac33E2DDaE9"]


def test_get_balance_retries(sleeps):
    provider = ApeNativeBalanceProvider(retry_config=RetryConfig(max_retries=2), sleep=sleeps)
    fake = FakeApeProvider(failures=2)
    provider._provider = fake

    assert provider.get_balance(ACCOUNT) == 1_500_000_000_000_000_000
    assert len(fake.calls) == 3
    assert sleeps.calls == [2.0, 4.0]


def test_disconnect_without_connection_is_noop():
    provider = ApeNativeBalanceProvider()
    provider.disconnect()

    assert not provider.is_connected
