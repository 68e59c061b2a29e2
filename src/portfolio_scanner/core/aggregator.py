"""Portfolio aggregator orchestrating discovery, balances, and pricing per token."""

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

import httpx

from portfolio_scanner.core.balances import BalanceResolver, normalize
from portfolio_scanner.core.discovery import TokenDiscovery
from portfolio_scanner.core.models import (
    DEFAULT_MATERIALITY_THRESHOLD,
    DEFAULT_QUOTE_CURRENCIES,
    NATIVE_DECIMALS,
    NATIVE_SYMBOL,
    BlockRange,
    DiscoveredToken,
    PortfolioSnapshot,
    ScanSettings,
    TokenHolding,
)
from portfolio_scanner.data.addresses import normalize_account
from portfolio_scanner.exceptions import AccountScanError, TokenScopedError
from portfolio_scanner.pricing.chain import PriceProviderChain
from portfolio_scanner.pricing.coingecko import CoingeckoPricing
from portfolio_scanner.pricing.paraswap import ParaswapPricing
from portfolio_scanner.rpc.cache import JSONFileLookupCache, LookupCache, MemoryLookupCache
from portfolio_scanner.rpc.ratelimit import RateLimiter
from portfolio_scanner.rpc.retry import JSONFetcher, RetryConfig

logger = logging.getLogger(__name__)


class NativeBalanceSource(Protocol):
    """Anything able to read an account's native balance in wei."""

    def get_balance(self, account: str) -> int: ...


class PortfolioAggregator:
    """
    Builds a priced portfolio snapshot for an account.

    Workflow:
    1. Read and price the native currency balance
    2. Discover every token the account has transacted
    3. For each token: resolve balance, resolve pricing identifier, quote
       every currency
    4. Assemble the snapshot; tokens failing any step are skipped

    Parameters
    ----------
    discovery : TokenDiscovery
        Token discovery service
    balances : BalanceResolver
        Balance resolver
    price_chain : PriceProviderChain
        Ordered price providers
    native_source : NativeBalanceSource
        Native balance reader
    max_workers : int
        Tokens processed concurrently (1 = sequential)
    materiality_threshold : float
        Minimum primary-currency value counted in totals

    """

    def __init__(
        self,
        discovery: TokenDiscovery,
        balances: BalanceResolver,
        price_chain: PriceProviderChain,
        native_source: NativeBalanceSource,
        max_workers: int = 1,
        materiality_threshold: float = DEFAULT_MATERIALITY_THRESHOLD,
    ) -> None:
        self.discovery = discovery
        self.balances = balances
        self.price_chain = price_chain
        self.native_source = native_source
        self.max_workers = max(1, max_workers)
        self.materiality_threshold = materiality_threshold

    def scan(
        self,
        account: str,
        block_range: BlockRange | None = None,
        quote_currencies: Sequence[str] | None = None,
        progress: Any | None = None,
        task_id: Any | None = None,
    ) -> PortfolioSnapshot:
        """
        Scan an account into a priced snapshot.

        Parameters
        ----------
        account : str
            Account address
        block_range : BlockRange | None
            Transaction history range, full history if None
        quote_currencies : Sequence[str] | None
            Quote currencies, primary first (default: usd, eth)
        progress : Any | None
            Rich progress bar instance (optional)
        task_id : Any | None
            Task ID for progress updates (optional)

        Returns
        -------
        PortfolioSnapshot
            Snapshot with native and token holdings

        Raises
        ------
        ScanError
            If the account cannot be scanned at all

        """
        account = normalize_account(account)
        block_range = block_range or BlockRange()
        currencies = [c.lower() for c in (quote_currencies or DEFAULT_QUOTE_CURRENCIES)]

        if progress is not None and task_id is not None:
            progress.update(task_id, description="Reading native balance...")

        native = self.get_native_holding(account, currencies)

        if progress is not None and task_id is not None:
            progress.update(task_id, description="Loading ERC20 token transactions...")

        tokens = self.discovery.list_transacted_tokens(account, block_range)

        if progress is not None and task_id is not None:
            progress.update(task_id, description="Pricing tokens...", total=len(tokens), completed=0)

        def process(token: DiscoveredToken) -> TokenHolding | None:
            holding = self._process_token(account, token, currencies)
            if progress is not None and task_id is not None:
                progress.advance(task_id)
            return holding

        if self.max_workers == 1 or len(tokens) <= 1:
            results = [process(token) for token in tokens]
        else:
            # Workers share the price chain's rate limiter
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(tokens))) as executor:
                results = list(executor.map(process, tokens))

        holdings = [holding for holding in results if holding is not None]
        skipped = [token.symbol for token, holding in zip(tokens, results, strict=True) if holding is None]

        if progress is not None and task_id is not None:
            progress.update(task_id, description="✓ Scan complete")

        return PortfolioSnapshot(
            account=account,
            block_range=block_range,
            quote_currencies=currencies,
            native=native,
            tokens=holdings,
            skipped=skipped,
            materiality_threshold=self.materiality_threshold,
        )

    def get_native_holding(self, account: str, quote_currencies: Sequence[str]) -> TokenHolding:
        """
        Read and price the native currency balance.

        Parameters
        ----------
        account : str
            Account address
        quote_currencies : Sequence[str]
            Quote currencies, primary first

        Returns
        -------
        TokenHolding
            Native holding without contract address

        Raises
        ------
        AccountScanError
            If the balance cannot be read

        """
        try:
            wei = self.native_source.get_balance(account)
        except Exception as e:
            msg = f"Could not read {NATIVE_SYMBOL} balance of {account}: {e}"
            raise AccountScanError(account, "node", message=msg) from e

        prices, resolved = self.price_chain.native_quote(quote_currencies)
        return TokenHolding(
            symbol=NATIVE_SYMBOL,
            name="Ether",
            balance=normalize(wei, NATIVE_DECIMALS),
            decimals=NATIVE_DECIMALS,
            prices=prices,
            price_source=resolved.source if resolved else None,
            source_link=resolved.link if resolved else "",
        )

    def build_holding(
        self,
        account: str,
        token: DiscoveredToken,
        quote_currencies: Sequence[str],
    ) -> TokenHolding:
        """
        Run the balance and pricing pipeline for one token.

        A token no provider lists is kept with zero prices.

        Parameters
        ----------
        account : str
            Account address
        token : DiscoveredToken
            Token to process
        quote_currencies : Sequence[str]
            Quote currencies

        Returns
        -------
        TokenHolding
            Priced holding

        Raises
        ------
        TokenScopedError
            If decimals, balance or price resolution fails

        """
        balance, decimals = self.balances.get_balance(account, token.contract_address)

        resolved = self.price_chain.resolve(token.contract_address)
        if resolved is None:
            prices = {currency: 0.0 for currency in quote_currencies}
        else:
            prices = self.price_chain.quote(resolved, quote_currencies, token.contract_address)

        return TokenHolding(
            symbol=token.symbol,
            name=token.name,
            contract_address=token.contract_address,
            balance=balance,
            decimals=decimals,
            prices=prices,
            price_source=resolved.source if resolved else None,
            source_link=resolved.link if resolved else "",
        )

    def _process_token(
        self,
        account: str,
        token: DiscoveredToken,
        quote_currencies: Sequence[str],
    ) -> TokenHolding | None:
        try:
            return self.build_holding(account, token, quote_currencies)
        except TokenScopedError as e:
            # Skip this token, continue with the others
            logger.warning("Skipping %s (%s): %s", token.symbol, token.contract_address, e)
            return None

    def close(self) -> None:
        """Close every HTTP client used by the pipeline."""
        self.discovery.etherscan.close()
        self.balances.ethplorer.close()
        for provider in self.price_chain.providers:
            provider.close()

    def __enter__(self) -> "PortfolioAggregator":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()


def build_aggregator(
    settings: ScanSettings,
    native_source: NativeBalanceSource,
    client: httpx.Client | None = None,
    cache: LookupCache | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PortfolioAggregator:
    """
    Wire a portfolio aggregator from settings.

    Price providers share one rate limiter. Balance and discovery calls use
    the same retry policy but are not rate limited.

    Parameters
    ----------
    settings : ScanSettings
        Scan settings
    native_source : NativeBalanceSource
        Native balance reader
    client : httpx.Client | None
        Shared HTTP client (a client per service is created if None)
    cache : LookupCache | None
        Lookup cache, built from ``settings.cache_path`` if None
    sleep : Callable[[float], None]
        Sleep function used by retries and the rate limiter

    Returns
    -------
    PortfolioAggregator
        Ready-to-use aggregator

    """
    retry_config = RetryConfig(max_retries=settings.max_retries)
    limiter = RateLimiter(
        rate_per_second=settings.rate_limit_per_second,
        burst=settings.rate_limit_burst,
        min_delay=settings.rate_limit_min_delay,
        sleep=sleep,
    )
    if cache is None:
        cache = JSONFileLookupCache(settings.cache_path) if settings.cache_path else MemoryLookupCache()

    def fetcher(label: str, rate_limited: bool = False, headers: dict[str, str] | None = None) -> JSONFetcher:
        return JSONFetcher(
            label,
            client=client,
            retry_config=retry_config,
            rate_limiter=limiter if rate_limited else None,
            sleep=sleep,
            timeout=settings.request_timeout,
            headers=headers,
        )

    etherscan = fetcher("etherscan")
    balances = BalanceResolver(
        etherscan=etherscan,
        ethplorer=fetcher("ethplorer"),
        etherscan_api_key=settings.etherscan_api_key,
        ethplorer_api_key=settings.ethplorer_api_key,
        cache=cache,
    )
    coingecko_headers = {"x-cg-demo-api-key": settings.coingecko_api_key} if settings.coingecko_api_key else None
    providers = [
        CoingeckoPricing(fetcher("coingecko", rate_limited=True, headers=coingecko_headers)),
        ParaswapPricing(fetcher("paraswap", rate_limited=True), decimals_lookup=balances.get_decimals),
    ]

    return PortfolioAggregator(
        discovery=TokenDiscovery(etherscan, settings.etherscan_api_key),
        balances=balances,
        price_chain=PriceProviderChain(providers, cache=cache),
        native_source=native_source,
        max_workers=settings.max_workers,
        materiality_threshold=settings.materiality_threshold,
    )
