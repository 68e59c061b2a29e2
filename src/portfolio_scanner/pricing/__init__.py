"""Price providers and their ordered fallback chain."""

from portfolio_scanner.pricing.base import PriceProvider
from portfolio_scanner.pricing.chain import PriceProviderChain
from portfolio_scanner.pricing.coingecko import CoingeckoPricing
from portfolio_scanner.pricing.paraswap import ParaswapPricing

__all__ = [
    "CoingeckoPricing",
    "ParaswapPricing",
    "PriceProvider",
    "PriceProviderChain",
]
