"""CoinGecko market-data provider for token prices."""

import logging

from portfolio_scanner.core.models import PriceSource
from portfolio_scanner.pricing.base import PriceProvider
from portfolio_scanner.rpc.retry import JSONFetcher

logger = logging.getLogger(__name__)


class CoingeckoPricing(PriceProvider):
    """
    Fetches token prices from the CoinGecko API.

    CoinGecko identifies coins by a slug (e.g. 'yearn-finance'), so every
    contract address is first resolved to that slug.

    Parameters
    ----------
    fetcher : JSONFetcher
        Retrying JSON fetcher
    base_url : str
        CoinGecko API base URL
    platform : str
        Asset platform the contract addresses belong to

    """

    BASE_URL = "https://api.coingecko.com/api/v3"
    LINK_TEMPLATE = "https://www.coingecko.com/en/coins/{identifier}"

    source = PriceSource.COINGECKO
    native_identifier = "ethereum"

    def __init__(
        self,
        fetcher: JSONFetcher,
        base_url: str = BASE_URL,
        platform: str = "ethereum",
    ) -> None:
        super().__init__(fetcher)
        self.base_url = base_url.rstrip("/")
        self.platform = platform

    def resolve_identifier(self, contract_address: str) -> str | None:
        """
        Resolve a contract address to a CoinGecko coin id.

        Parameters
        ----------
        contract_address : str
            Token contract address

        Returns
        -------
        str | None
            Coin id, or None when CoinGecko does not list the contract

        """
        url = f"{self.base_url}/coins/{self.platform}/contract/{contract_address.lower()}"
        data = self.fetcher.get_json(url, label="coingecko contract lookup")

        if not isinstance(data, dict):
            return None

        # {"error": "Could not find coin with the given id"}
        if "error" in data:
            logger.debug("CoinGecko has no listing for %s: %s", contract_address, data["error"])
            return None

        identifier = data.get("id")
        if not isinstance(identifier, str) or not identifier:
            return None
        return identifier

    def get_price(self, identifier: str, quote_currency: str) -> float:
        """
        Fetch the price of a coin id in a quote currency.

        Parameters
        ----------
        identifier : str
            CoinGecko coin id
        quote_currency : str
            Quote currency code

        Returns
        -------
        float
            Price, 0.0 if CoinGecko returned no quote for the pair

        Examples
        --------
        >>> pricing = CoingeckoPricing(JSONFetcher("coingecko"))
        >>> pricing.get_price("nonexistingtoken", "usd")
        0.0

        """
        currency = quote_currency.lower()
        data = self.fetcher.get_json(
            f"{self.base_url}/simple/price",
            params={"ids": identifier, "vs_currencies": currency},
            label="coingecko price",
        )

        if not isinstance(data, dict):
            return 0.0
        quotes = data.get(identifier)
        if not isinstance(quotes, dict):
            return 0.0
        return self._as_float(quotes.get(currency))

    def link(self, identifier: str) -> str:
        return self.LINK_TEMPLATE.format(identifier=identifier)
