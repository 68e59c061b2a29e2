"""Core models, token discovery, and balance resolution.

The aggregator depends on the pricing package and is imported from
``portfolio_scanner.core.aggregator`` directly.
"""

from portfolio_scanner.core.balances import BalanceResolver, normalize
from portfolio_scanner.core.discovery import TokenDiscovery
from portfolio_scanner.core.models import (
    BlockRange,
    DiscoveredToken,
    PortfolioSnapshot,
    PriceQuote,
    PriceSource,
    ResolvedIdentifier,
    ScanSettings,
    TokenHolding,
)

__all__ = [
    "BalanceResolver",
    "BlockRange",
    "DiscoveredToken",
    "PortfolioSnapshot",
    "PriceQuote",
    "PriceSource",
    "ResolvedIdentifier",
    "ScanSettings",
    "TokenDiscovery",
    "TokenHolding",
    "normalize",
]
