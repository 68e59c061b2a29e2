"""Token discovery from an account's ERC20 transfer history."""

import json
import logging
from collections.abc import Callable

from portfolio_scanner.core.models import BlockRange, DiscoveredToken
from portfolio_scanner.data.addresses import normalize_account
from portfolio_scanner.exceptions import AccountScanError, TransientTransportError
from portfolio_scanner.rpc.retry import JSONFetcher

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class TokenDiscovery:
    """
    Lists the distinct tokens an account has ever transacted.

    Uses the Etherscan ``tokentx`` endpoint, which returns every ERC20
    transfer involving the account.

    Parameters
    ----------
    etherscan : JSONFetcher
        Fetcher for the Etherscan API
    api_key : str
        Etherscan API key
    etherscan_url : str
        Etherscan API endpoint

    """

    ETHERSCAN_URL = "https://api.etherscan.io/api"

    def __init__(self, etherscan: JSONFetcher, api_key: str, etherscan_url: str = ETHERSCAN_URL) -> None:
        self.etherscan = etherscan
        self.api_key = api_key
        self.etherscan_url = etherscan_url

    def fetch_transfers(self, account: str, block_range: BlockRange) -> list[dict]:
        """
        Fetch the raw transfer entries of an account.

        Parameters
        ----------
        account : str
            Account address
        block_range : BlockRange
            Blocks to include

        Returns
        -------
        list[dict]
            Transfer entries in ascending block order

        Raises
        ------
        AccountScanError
            If Etherscan rejects the query or cannot be reached

        """
        try:
            data = self.etherscan.get_json(
                self.etherscan_url,
                params={
                    "module": "account",
                    "action": "tokentx",
                    "address": account,
                    "startblock": block_range.start_block,
                    "endblock": block_range.end_block,
                    "sort": "asc",
                    "apikey": self.api_key,
                },
                label="etherscan token transfers",
            )
        except TransientTransportError as e:
            raise AccountScanError(account, "etherscan", e.last_body) from e

        if not isinstance(data, dict) or data.get("message") != "OK":
            raise AccountScanError(account, "etherscan", json.dumps(data))

        result = data.get("result")
        if not isinstance(result, list):
            raise AccountScanError(account, "etherscan", json.dumps(data))
        return result

    def list_transacted_tokens(
        self,
        account: str,
        block_range: BlockRange | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[DiscoveredToken]:
        """
        List the distinct tokens found in an account's transfer history.

        Tokens are deduplicated by symbol and by contract address; the first
        occurrence wins.

        Parameters
        ----------
        account : str
            Account address
        block_range : BlockRange | None
            Blocks to include, full history if None
        progress : ProgressCallback | None
            Called with (processed, total) after each entry

        Returns
        -------
        list[DiscoveredToken]
            Tokens in order of first appearance

        Raises
        ------
        InvalidAddressError
            If the account does not parse
        AccountScanError
            If the history cannot be queried

        """
        account = normalize_account(account)
        entries = self.fetch_transfers(account, block_range or BlockRange())

        tokens: list[DiscoveredToken] = []
        seen_symbols: set[str] = set()
        seen_addresses: set[str] = set()
        total = len(entries)

        for index, entry in enumerate(entries, start=1):
            if progress:
                progress(index, total)

            symbol = entry.get("tokenSymbol") if isinstance(entry, dict) else None
            address = entry.get("contractAddress") if isinstance(entry, dict) else None
            if not (isinstance(symbol, str) and symbol and isinstance(address, str) and address):
                logger.warning("Skipping malformed transfer entry %d for %s", index, account)
                continue

            address = address.lower()
            if symbol in seen_symbols or address in seen_addresses:
                continue

            seen_symbols.add(symbol)
            seen_addresses.add(address)
            tokens.append(
                DiscoveredToken(
                    symbol=symbol,
                    name=entry.get("tokenName") or "",
                    contract_address=address,
                )
            )

        logger.info("Discovered %d distinct tokens in %d transfers for %s", len(tokens), total, account)
        return tokens
