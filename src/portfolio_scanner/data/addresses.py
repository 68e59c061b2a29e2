"""Well-known addresses and address validation helpers."""

import re

from portfolio_scanner.exceptions import InvalidAddressError

# Pseudo-address DEX aggregators use for the native currency
NATIVE_TOKEN_ADDRESS = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"

USDT_ADDRESS = "0xdac17f958d2ee523a2206206994597c13d831ec7"

# Quote currency -> (token address, decimals) used for DEX quotes
DEX_QUOTE_TOKENS: dict[str, tuple[str, int]] = {
    "eth": (NATIVE_TOKEN_ADDRESS, 18),
    "usd": (USDT_ADDRESS, 6),
}

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(address: str) -> bool:
    """
    Check if a string is a well-formed 20-byte hex address.

    Parameters
    ----------
    address : str
        Candidate address

    Returns
    -------
    bool
        True if the address has a 0x prefix and 40 hex digits

    """
    return isinstance(address, str) and bool(_ADDRESS_RE.match(address.strip()))


def normalize_account(address: str) -> str:
    """
    Validate and normalize an account address supplied by the user.

    A missing 0x prefix is tolerated.

    Parameters
    ----------
    address : str
        Account address

    Returns
    -------
    str
        Lowercase 0x-prefixed address

    Raises
    ------
    InvalidAddressError
        If the address does not parse

    """
    candidate = (address or "").strip()
    if candidate and not candidate.lower().startswith("0x"):
        candidate = f"0x{candidate}"
    if not is_valid_address(candidate):
        raise InvalidAddressError(address)
    return candidate.lower()
