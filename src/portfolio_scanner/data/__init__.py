"""Settings loading and well-known addresses."""

from portfolio_scanner.data.addresses import (
    DEX_QUOTE_TOKENS,
    NATIVE_TOKEN_ADDRESS,
    USDT_ADDRESS,
    is_valid_address,
    normalize_account,
)
from portfolio_scanner.data.loader import load_settings

__all__ = [
    # Address constants and helpers
    "DEX_QUOTE_TOKENS",
    "NATIVE_TOKEN_ADDRESS",
    "USDT_ADDRESS",
    "is_valid_address",
    # Loader functions
    "load_settings",
    "normalize_account",
]
