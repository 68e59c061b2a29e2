"""Base price provider class shared by the market-data and DEX-quote providers."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from portfolio_scanner.core.models import PriceQuote, PriceSource
from portfolio_scanner.rpc.retry import JSONFetcher


class PriceProvider(ABC):
    """
    Abstract base class for price providers.

    A provider maps a contract address to its own pricing identifier and
    prices that identifier against a quote currency. "Not listed" and "no
    quote" are legitimate results (None and 0.0), never exceptions.

    Attributes
    ----------
    source : PriceSource
        Provider identity (must be set in subclass)
    native_identifier : str
        Identifier used to price the native currency (must be set in subclass)

    Parameters
    ----------
    fetcher : JSONFetcher
        Retrying JSON fetcher, usually sharing the scan's rate limiter

    """

    source: ClassVar[PriceSource]
    native_identifier: ClassVar[str] = ""

    def __init__(self, fetcher: JSONFetcher) -> None:
        if not getattr(self, "source", None):
            msg = f"{self.__class__.__name__} must define 'source' attribute"
            raise ValueError(msg)
        self.fetcher = fetcher

    @property
    def name(self) -> str:
        return self.source.value

    @abstractmethod
    def resolve_identifier(self, contract_address: str) -> str | None:
        """
        Map a contract address to this provider's pricing identifier.

        Parameters
        ----------
        contract_address : str
            Token contract address

        Returns
        -------
        str | None
            Identifier, or None if the provider has no listing

        Raises
        ------
        TransientTransportError
            If the provider could not be reached

        """
        ...

    @abstractmethod
    def get_price(self, identifier: str, quote_currency: str) -> float:
        """
        Price an identifier in a quote currency.

        Parameters
        ----------
        identifier : str
            Identifier returned by ``resolve_identifier``
        quote_currency : str
            Quote currency code (e.g. 'usd', 'eth')

        Returns
        -------
        float
            Price, 0.0 when the provider has no quote for the pair

        Raises
        ------
        TransientTransportError
            If the provider could not be reached

        """
        ...

    @abstractmethod
    def link(self, identifier: str) -> str:
        """Human link to the provider's page for an identifier."""
        ...

    def get_quote(self, identifier: str, quote_currency: str) -> PriceQuote:
        return PriceQuote(
            identifier=identifier,
            quote_currency=quote_currency,
            price=self.get_price(identifier, quote_currency),
        )

    @staticmethod
    def _as_float(value: Any) -> float:
        """Convert a JSON number or numeric string to float, 0.0 otherwise."""
        if isinstance(value, bool):
            return 0.0
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    def close(self) -> None:
        """Close HTTP client."""
        self.fetcher.close()

    def __enter__(self) -> "PriceProvider":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()
