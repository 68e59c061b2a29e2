"""Ordered fallback across price providers."""

import logging
import threading
from collections.abc import Sequence

from portfolio_scanner.core.models import PriceSource, ResolvedIdentifier
from portfolio_scanner.exceptions import PriceLookupError, TokenScopedError, TransientTransportError
from portfolio_scanner.pricing.base import PriceProvider
from portfolio_scanner.rpc.cache import LookupCache, MemoryLookupCache

logger = logging.getLogger(__name__)

IDENTIFIER_NAMESPACE = "identifier"


class PriceProviderChain:
    """
    Tries price providers in priority order.

    The first provider that resolves a contract address is used to price
    that token in every quote currency. The resolution is cached per
    contract address, so it runs once per token regardless of how many
    currencies are quoted.

    Parameters
    ----------
    providers : Sequence[PriceProvider]
        Providers, highest priority first
    cache : LookupCache | None
        Lookup cache shared across scans (identifier namespace)

    """

    def __init__(self, providers: Sequence[PriceProvider], cache: LookupCache | None = None) -> None:
        if not providers:
            msg = "at least one price provider is required"
            raise ValueError(msg)
        self.providers = list(providers)
        self.cache = cache if cache is not None else MemoryLookupCache()
        self._resolved: dict[str, ResolvedIdentifier | None] = {}
        self._lock = threading.Lock()

    def get_provider(self, source: PriceSource) -> PriceProvider | None:
        for provider in self.providers:
            if provider.source == source:
                return provider
        return None

    def _from_cache(self, contract_address: str) -> ResolvedIdentifier | None:
        cached = self.cache.get(IDENTIFIER_NAMESPACE, contract_address)
        if not isinstance(cached, dict):
            return None
        try:
            resolved = ResolvedIdentifier(**cached)
        except (TypeError, ValueError):
            return None
        # Ignore entries for providers that are not part of this chain
        if self.get_provider(resolved.source) is None:
            return None
        return resolved

    def resolve(self, contract_address: str) -> ResolvedIdentifier | None:
        """
        Resolve a contract address with the first provider that lists it.

        Provider errors are logged and the next provider is tried.

        Parameters
        ----------
        contract_address : str
            Token contract address

        Returns
        -------
        ResolvedIdentifier | None
            Resolved identifier, or None if no provider could resolve it

        """
        key = contract_address.lower()
        with self._lock:
            if key in self._resolved:
                return self._resolved[key]

        resolved = self._from_cache(key)
        if resolved is None:
            for provider in self.providers:
                try:
                    identifier = provider.resolve_identifier(key)
                except (TransientTransportError, TokenScopedError) as e:
                    logger.warning("%s could not resolve %s: %s", provider.name, key, e)
                    continue

                if identifier:
                    resolved = ResolvedIdentifier(
                        source=provider.source,
                        identifier=identifier,
                        link=provider.link(identifier),
                    )
                    self.cache.set(IDENTIFIER_NAMESPACE, key, resolved.model_dump(mode="json"))
                    break

                logger.debug("%s has no listing for %s", provider.name, key)

        if resolved is None:
            logger.info("No price provider lists %s", key)

        with self._lock:
            self._resolved[key] = resolved
        return resolved

    def quote(
        self,
        resolved: ResolvedIdentifier,
        quote_currencies: Sequence[str],
        contract_address: str = "",
    ) -> dict[str, float]:
        """
        Price a resolved identifier in each quote currency.

        Parameters
        ----------
        resolved : ResolvedIdentifier
            Identifier returned by ``resolve``
        quote_currencies : Sequence[str]
            Quote currency codes
        contract_address : str
            Contract address, for error reporting

        Returns
        -------
        dict[str, float]
            Price per quote currency (0.0 when no quote)

        Raises
        ------
        PriceLookupError
            If the provider could not be reached after retries

        """
        provider = self.get_provider(resolved.source)
        if provider is None:
            raise PriceLookupError(
                contract_address or resolved.identifier,
                resolved.source.value,
                "provider not configured",
            )

        prices: dict[str, float] = {}
        for currency in quote_currencies:
            try:
                prices[currency] = provider.get_quote(resolved.identifier, currency).price
            except TransientTransportError as e:
                raise PriceLookupError(contract_address or resolved.identifier, provider.name, str(e)) from e
        return prices

    def native_quote(self, quote_currencies: Sequence[str]) -> tuple[dict[str, float], ResolvedIdentifier | None]:
        """
        Price the native currency.

        The first provider returning a non-zero price in the primary quote
        currency is used for every currency.

        Parameters
        ----------
        quote_currencies : Sequence[str]
            Quote currency codes, primary first

        Returns
        -------
        tuple[dict[str, float], ResolvedIdentifier | None]
            Prices per currency and the identifier used (None if unpriced)

        """
        for provider in self.providers:
            resolved = ResolvedIdentifier(
                source=provider.source,
                identifier=provider.native_identifier,
                link=provider.link(provider.native_identifier),
            )
            try:
                prices = self.quote(resolved, quote_currencies, contract_address="native")
            except TokenScopedError as e:
                logger.warning("%s could not price the native currency: %s", provider.name, e)
                continue
            if prices.get(quote_currencies[0], 0.0) > 0:
                return prices, resolved

        logger.warning("No price provider could price the native currency")
        return {currency: 0.0 for currency in quote_currencies}, None
