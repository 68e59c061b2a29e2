"""ParaSwap DEX-quote provider used when no market listing exists."""

import logging
from collections.abc import Callable
from decimal import Decimal, InvalidOperation

from portfolio_scanner.core.models import PriceSource
from portfolio_scanner.data.addresses import DEX_QUOTE_TOKENS, NATIVE_TOKEN_ADDRESS, is_valid_address
from portfolio_scanner.pricing.base import PriceProvider
from portfolio_scanner.rpc.retry import JSONFetcher

logger = logging.getLogger(__name__)


class ParaswapPricing(PriceProvider):
    """
    Prices tokens by asking ParaSwap for a swap route.

    The identifier is the contract address itself. A price is the amount of
    the quote token received when selling exactly one whole source token.

    Parameters
    ----------
    fetcher : JSONFetcher
        Retrying JSON fetcher
    decimals_lookup : Callable[[str], int] | None
        Returns the decimal exponent of a source token. Tokens are assumed to
        have 18 decimals when None.
    base_url : str
        ParaSwap API base URL
    network : int
        Chain id to quote on

    """

    BASE_URL = "https://apiv5.paraswap.io"
    LINK_TEMPLATE = "https://app.paraswap.io/#/{identifier}-USDT"
    DEFAULT_DECIMALS = 18

    source = PriceSource.PARASWAP
    native_identifier = NATIVE_TOKEN_ADDRESS

    def __init__(
        self,
        fetcher: JSONFetcher,
        decimals_lookup: Callable[[str], int] | None = None,
        base_url: str = BASE_URL,
        network: int = 1,
    ) -> None:
        super().__init__(fetcher)
        self.decimals_lookup = decimals_lookup
        self.base_url = base_url.rstrip("/")
        self.network = network

    def resolve_identifier(self, contract_address: str) -> str | None:
        """
        Use the contract address as identifier when it is well-formed.

        Parameters
        ----------
        contract_address : str
            Token contract address

        Returns
        -------
        str | None
            Lowercase address, or None if it is not a valid address

        """
        if not is_valid_address(contract_address):
            return None
        return contract_address.lower()

    def _source_decimals(self, identifier: str) -> int:
        if identifier == NATIVE_TOKEN_ADDRESS or self.decimals_lookup is None:
            return self.DEFAULT_DECIMALS
        return self.decimals_lookup(identifier)

    def get_price(self, identifier: str, quote_currency: str) -> float:
        """
        Fetch the price of one source token in a quote currency.

        Parameters
        ----------
        identifier : str
            Source token address
        quote_currency : str
            'usd' (quoted in USDT) or 'eth'

        Returns
        -------
        float
            Quote token amount for one source token, 0.0 when ParaSwap has
            no route or the quote currency is not supported

        """
        currency = quote_currency.lower()
        quote_token = DEX_QUOTE_TOKENS.get(currency)
        if quote_token is None:
            logger.warning("ParaSwap cannot quote against %s", quote_currency)
            return 0.0

        dest_address, dest_decimals = quote_token
        if identifier.lower() == dest_address:
            return 1.0

        src_decimals = self._source_decimals(identifier)
        data = self.fetcher.get_json(
            f"{self.base_url}/prices",
            params={
                "srcToken": identifier,
                "destToken": dest_address,
                "amount": str(10**src_decimals),
                "srcDecimals": src_decimals,
                "destDecimals": dest_decimals,
                "side": "SELL",
                "network": self.network,
            },
            label="paraswap price",
        )

        if not isinstance(data, dict):
            return 0.0

        # {"error": "Token not found"}
        if "error" in data:
            logger.debug("ParaSwap has no route for %s -> %s: %s", identifier, currency, data["error"])
            return 0.0

        route = data.get("priceRoute")
        if not isinstance(route, dict):
            return 0.0

        try:
            dest_amount = Decimal(str(route.get("destAmount", "0")))
        except InvalidOperation:
            return 0.0
        return float(dest_amount / Decimal(10) ** dest_decimals)

    def link(self, identifier: str) -> str:
        return self.LINK_TEMPLATE.format(identifier=identifier)
