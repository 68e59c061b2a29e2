"""ERC20 balance and decimal exponent resolution."""

import json
import logging
from decimal import Decimal, InvalidOperation

from portfolio_scanner.exceptions import BalanceError, DecimalsError, TransientTransportError
from portfolio_scanner.rpc.cache import LookupCache, MemoryLookupCache
from portfolio_scanner.rpc.retry import JSONFetcher

logger = logging.getLogger(__name__)

DECIMALS_NAMESPACE = "decimals"


def normalize(raw_balance: int | str, decimals: int) -> float:
    """
    Convert a raw integer balance to a human quantity.

    Parameters
    ----------
    raw_balance : int | str
        Raw integer balance as reported by the ledger
    decimals : int
        Decimal exponent of the token

    Returns
    -------
    float
        ``raw_balance / 10**decimals``

    """
    if decimals < 0:
        msg = f"decimals must be non-negative, got {decimals}"
        raise ValueError(msg)
    return float(Decimal(int(raw_balance)) / (Decimal(10) ** decimals))


class BalanceResolver:
    """
    Resolves token balances of an account.

    Raw balances come from Etherscan and decimal exponents from Ethplorer.
    Decimals are fetched once per contract and cached.

    Parameters
    ----------
    etherscan : JSONFetcher
        Fetcher for the Etherscan API
    ethplorer : JSONFetcher
        Fetcher for the Ethplorer API
    etherscan_api_key : str
        Etherscan API key
    ethplorer_api_key : str
        Ethplorer API key
    cache : LookupCache | None
        Lookup cache (decimals namespace)
    etherscan_url : str
        Etherscan API endpoint
    ethplorer_url : str
        Ethplorer API base URL

    """

    ETHERSCAN_URL = "https://api.etherscan.io/api"
    ETHPLORER_URL = "https://api.ethplorer.io"

    def __init__(
        self,
        etherscan: JSONFetcher,
        ethplorer: JSONFetcher,
        etherscan_api_key: str,
        ethplorer_api_key: str = "freekey",
        cache: LookupCache | None = None,
        etherscan_url: str = ETHERSCAN_URL,
        ethplorer_url: str = ETHPLORER_URL,
    ) -> None:
        self.etherscan = etherscan
        self.ethplorer = ethplorer
        self.etherscan_api_key = etherscan_api_key
        self.ethplorer_api_key = ethplorer_api_key
        self.cache = cache if cache is not None else MemoryLookupCache()
        self.etherscan_url = etherscan_url
        self.ethplorer_url = ethplorer_url.rstrip("/")

    def get_decimals(self, contract_address: str) -> int:
        """
        Get the decimal exponent of a token contract.

        Parameters
        ----------
        contract_address : str
            Token contract address

        Returns
        -------
        int
            Decimal exponent (commonly 18)

        Raises
        ------
        DecimalsError
            If the exponent cannot be fetched or parsed

        """
        cached = self.cache.get(DECIMALS_NAMESPACE, contract_address)
        if isinstance(cached, int) and not isinstance(cached, bool):
            return cached

        try:
            data = self.ethplorer.get_json(
                f"{self.ethplorer_url}/getTokenInfo/{contract_address}",
                params={"apiKey": self.ethplorer_api_key},
                label="ethplorer token info",
            )
        except TransientTransportError as e:
            raise DecimalsError(contract_address, str(e)) from e

        value = data.get("decimals") if isinstance(data, dict) else None
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise DecimalsError(contract_address, "decimals not present")

        try:
            decimals = int(value)
        except ValueError as e:
            raise DecimalsError(contract_address, f"invalid decimals {value!r}") from e
        if decimals < 0:
            raise DecimalsError(contract_address, f"invalid decimals {value!r}")

        self.cache.set(DECIMALS_NAMESPACE, contract_address, decimals)
        return decimals

    def get_raw_balance(self, account: str, contract_address: str) -> int:
        """
        Get the raw integer token balance of an account.

        Parameters
        ----------
        account : str
            Account address
        contract_address : str
            Token contract address

        Returns
        -------
        int
            Raw balance before decimal normalization

        Raises
        ------
        BalanceError
            If Etherscan rejects the request or keeps failing

        """
        try:
            data = self.etherscan.get_json(
                self.etherscan_url,
                params={
                    "module": "account",
                    "action": "tokenbalance",
                    "contractaddress": contract_address,
                    "address": account,
                    "tag": "latest",
                    "apikey": self.etherscan_api_key,
                },
                label="etherscan token balance",
            )
        except TransientTransportError as e:
            raise BalanceError(contract_address, e.last_body) from e

        body = json.dumps(data) if data is not None else None
        if not isinstance(data, dict) or data.get("message") != "OK" or str(data.get("status", "1")) != "1":
            raise BalanceError(contract_address, body)

        try:
            return int(Decimal(str(data.get("result"))))
        except (InvalidOperation, ValueError) as e:
            raise BalanceError(contract_address, body) from e

    def get_balance(self, account: str, contract_address: str) -> tuple[float, int]:
        """
        Get the normalized token balance of an account.

        Decimals are resolved first; a failure there fails the whole lookup.

        Parameters
        ----------
        account : str
            Account address
        contract_address : str
            Token contract address

        Returns
        -------
        tuple[float, int]
            Normalized balance and the decimal exponent used

        Raises
        ------
        DecimalsError
            If the decimal exponent cannot be resolved
        BalanceError
            If the raw balance cannot be fetched

        """
        decimals = self.get_decimals(contract_address)
        raw_balance = self.get_raw_balance(account, contract_address)
        balance = normalize(raw_balance, decimals)
        logger.debug(
            "Balance of %s for %s: %s (raw %s, decimals %d)",
            contract_address,
            account,
            balance,
            raw_balance,
            decimals,
        )
        return balance, decimals
