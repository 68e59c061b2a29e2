"""Tests for Pydantic data models."""

import pytest
from pydantic import ValidationError

from portfolio_scanner.core.models import (
    BlockRange,
    DiscoveredToken,
    PortfolioSnapshot,
    PriceQuote,
    PriceSource,
    ScanSettings,
    TokenHolding,
)


def _holding(symbol: str, balance: float, usd: float, eth: float, address: str | None = "0xabc") -> TokenHolding:
    return TokenHolding(
        symbol=symbol,
        contract_address=address,
        balance=balance,
        prices={"usd": usd, "eth": eth},
        price_source=PriceSource.COINGECKO,
    )


def test_discovered_token_lowercases_address():
    token = DiscoveredToken(
        symbol="YFI",
        name="yearn.finance",
        contract_address="0x0bc529c00C6401aEF6D220BE8C6Ea1667F6Ad93e",
    )

    assert token.contract_address == "0x0bc529c00c6401aef6d220be8c6ea1667f6ad93e"


def test_block_range_defaults_cover_full_history():
    block_range = BlockRange()

    assert block_range.start_block == 0
    assert block_range.end_block == 999_999_999


def test_block_range_rejects_inverted_range():
    with pytest.raises(ValidationError):
        BlockRange(start_block=10, end_block=5)


def test_token_holding_valuations():
    holding = _holding("AAVE", 2.0, usd=100.0, eth=0.05)

    assert holding.valuations == {"usd": 200.0, "eth": 0.1}
    assert holding.value_in("usd") == 200.0
    assert holding.value_in("gbp") == 0.0
    assert not holding.is_native


def test_zero_price_means_zero_valuation():
    holding = TokenHolding(symbol="JUNK", contract_address="0xdef", balance=1000.0, prices={"usd": 0.0})

    assert holding.value_in("usd") == 0.0
    assert not holding.is_material("usd")


def test_price_quote_default_is_no_price():
    quote = PriceQuote(identifier="nonexistingtoken", quote_currency="usd")
    assert quote.price == 0.0


def test_snapshot_totals_equal_sum_of_parts():
    """Totals are native plus every included token, per currency."""
    native = _holding("ETH", 1.5, usd=2000.0, eth=1.0, address=None)
    tokens = [
        _holding("AAVE", 2.0, usd=100.0, eth=0.05),
        _holding("DAI", 50.0, usd=1.0, eth=0.0005),
    ]
    snapshot = PortfolioSnapshot(account="0xdead", native=native, tokens=tokens)

    totals = snapshot.totals()

    for currency in ("usd", "eth"):
        expected = native.value_in(currency) + sum(t.value_in(currency) for t in tokens)
        assert totals[currency] == pytest.approx(expected)
    assert totals["usd"] == pytest.approx(3250.0)


def test_snapshot_excludes_immaterial_tokens_from_totals():
    """A holding worth 0.005 USD stays in state but not in totals."""
    native = _holding("ETH", 1.0, usd=2000.0, eth=1.0, address=None)
    dust = _holding("DUST", 0.5, usd=0.01, eth=0.000005)
    snapshot = PortfolioSnapshot(account="0xdead", native=native, tokens=[dust])

    assert dust.value_in("usd") == pytest.approx(0.005)
    assert snapshot.tokens == [dust]
    assert snapshot.material_tokens() == []
    assert snapshot.totals()["usd"] == pytest.approx(2000.0)


def test_snapshot_primary_currency_drives_materiality():
    native = _holding("ETH", 0.0, usd=2000.0, eth=1.0, address=None)
    token = _holding("WBTC", 0.001, usd=60.0, eth=0.03)
    snapshot = PortfolioSnapshot(account="0xdead", quote_currencies=["eth", "usd"], native=native, tokens=[token])

    # 0.00003 ETH is below the threshold even though it is 0.06 USD
    assert snapshot.primary_currency == "eth"
    assert snapshot.material_tokens() == []


def test_snapshot_json_includes_valuations():
    native = _holding("ETH", 1.0, usd=2000.0, eth=1.0, address=None)
    data = PortfolioSnapshot(account="0xdead", native=native).model_dump(mode="json")

    assert data["native"]["valuations"] == {"usd": 2000.0, "eth": 1.0}
    assert data["native"]["price_source"] == "coingecko"


def test_scan_settings_defaults():
    settings = ScanSettings(etherscan_api_key="key")

    assert settings.quote_currencies == ["usd", "eth"]
    assert settings.rate_limit_per_second == 8.0
    assert settings.rate_limit_burst == 1
    assert settings.max_retries == 5
    assert settings.max_workers == 1
    assert settings.materiality_threshold == 0.01
    assert settings.cache_path is None


def test_scan_settings_normalizes_currencies():
    settings = ScanSettings(etherscan_api_key="key", quote_currencies=["USD", " eth ", "usd"])
    assert settings.quote_currencies == ["usd", "eth"]


def test_scan_settings_rejects_empty_currencies():
    with pytest.raises(ValidationError):
        ScanSettings(etherscan_api_key="key", quote_currencies=[" "])


def test_price_source_enum_values():
    assert PriceSource.COINGECKO.value == "coingecko"
    assert PriceSource.PARASWAP.value == "paraswap"
    assert list(PriceSource) == [PriceSource.COINGECKO, PriceSource.PARASWAP]
