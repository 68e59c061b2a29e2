"""Data models for discovered tokens, holdings, and portfolio snapshots."""

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

NATIVE_SYMBOL = "ETH"
NATIVE_DECIMALS = 18
DEFAULT_QUOTE_CURRENCIES = ["usd", "eth"]
DEFAULT_MATERIALITY_THRESHOLD = 0.01


class PriceSource(StrEnum):
    """Price providers, in default priority order."""

    COINGECKO = "coingecko"
    PARASWAP = "paraswap"


class BlockRange(BaseModel):
    """
    Inclusive block range for transaction history queries.

    Attributes
    ----------
    start_block : int
        First block to include
    end_block : int
        Last block to include (default covers the full history)

    """

    start_block: int = Field(default=0, ge=0)
    end_block: int = Field(default=999_999_999, ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "BlockRange":
        if self.start_block > self.end_block:
            msg = f"start_block {self.start_block} is after end_block {self.end_block}"
            raise ValueError(msg)
        return self


class DiscoveredToken(BaseModel):
    """
    Token found in an account's transaction history.

    Attributes
    ----------
    symbol : str
        Ledger-reported token symbol
    name : str
        Ledger-reported token name
    contract_address : str
        Token contract address, lowercase hex

    """

    symbol: str
    name: str = ""
    contract_address: str

    @field_validator("contract_address")
    @classmethod
    def _lowercase_address(cls, value: str) -> str:
        return value.lower()


class PriceQuote(BaseModel):
    """
    Price of one pricing identifier in one quote currency.

    A price of 0.0 means no quote was found; it is not an error.

    """

    identifier: str
    quote_currency: str
    price: float = 0.0


class ResolvedIdentifier(BaseModel):
    """
    Pricing key a provider assigned to a contract address.

    Attributes
    ----------
    source : PriceSource
        Provider that resolved the identifier
    identifier : str
        Provider-internal lookup key
    link : str
        Human link to the provider's page for the token

    """

    source: PriceSource
    identifier: str
    link: str = ""


class TokenHolding(BaseModel):
    """
    Priced balance of one token (or of the native currency).

    Attributes
    ----------
    symbol : str
        Token symbol
    name : str
        Token name
    contract_address : str | None
        Contract address, None for the native currency
    balance : float
        Normalized quantity
    decimals : int
        Decimal exponent used for normalization
    prices : dict[str, float]
        Price per quote currency (0.0 when unknown)
    price_source : PriceSource | None
        Provider used for pricing, None when no provider listed the token
    source_link : str
        Human link to the pricing source

    """

    symbol: str
    name: str = ""
    contract_address: str | None = None
    balance: float
    decimals: int = NATIVE_DECIMALS
    prices: dict[str, float] = Field(default_factory=dict)
    price_source: PriceSource | None = None
    source_link: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def valuations(self) -> dict[str, float]:
        """Valuation per quote currency (balance times price)."""
        return {currency: self.balance * price for currency, price in self.prices.items()}

    @property
    def is_native(self) -> bool:
        return self.contract_address is None

    def value_in(self, currency: str) -> float:
        return self.balance * self.prices.get(currency, 0.0)

    def is_material(self, currency: str, threshold: float = DEFAULT_MATERIALITY_THRESHOLD) -> bool:
        return self.value_in(currency) >= threshold


class PortfolioSnapshot(BaseModel):
    """
    Point-in-time valuation of an account.

    Attributes
    ----------
    account : str
        Scanned account address
    block_range : BlockRange
        Range of history used for token discovery
    quote_currencies : list[str]
        Quote currencies; the first one is the primary currency
    native : TokenHolding
        Native currency holding
    tokens : list[TokenHolding]
        Token holdings in discovery order, including immaterial ones
    skipped : list[str]
        Symbols dropped because of token-scoped failures
    materiality_threshold : float
        Minimum primary-currency value for a token to count in totals

    """

    account: str
    block_range: BlockRange = Field(default_factory=BlockRange)
    quote_currencies: list[str] = Field(default_factory=lambda: list(DEFAULT_QUOTE_CURRENCIES))
    native: TokenHolding
    tokens: list[TokenHolding] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    materiality_threshold: float = DEFAULT_MATERIALITY_THRESHOLD

    @property
    def primary_currency(self) -> str:
        return self.quote_currencies[0]

    def material_tokens(self) -> list[TokenHolding]:
        """
        Get token holdings worth at least the materiality threshold.

        Returns
        -------
        list[TokenHolding]
            Holdings that count toward totals and rendered output

        """
        return [
            token
            for token in self.tokens
            if token.is_material(self.primary_currency, self.materiality_threshold)
        ]

    def totals(self) -> dict[str, float]:
        """
        Sum native and material token valuations per quote currency.

        Returns
        -------
        dict[str, float]
            Total valuation per quote currency

        """
        included = [self.native, *self.material_tokens()]
        return {currency: sum(h.value_in(currency) for h in included) for currency in self.quote_currencies}


class ScanSettings(BaseModel):
    """
    Explicit configuration passed to every component of a scan.

    Attributes
    ----------
    etherscan_api_key : str
        Etherscan API key (transaction history and token balances)
    ethplorer_api_key : str
        Ethplorer API key (token decimals)
    coingecko_api_key : str | None
        Optional CoinGecko demo API key
    network : str
        Ape network choice used to read the native balance
    quote_currencies : list[str]
        Quote currencies, primary first
    rate_limit_per_second : float
        Sustained price-provider request rate
    rate_limit_burst : int
        Rate limiter bucket size
    rate_limit_min_delay : float
        Minimum wait when the bucket is empty
    max_retries : int
        Retry ceiling for every outbound call
    request_timeout : float
        HTTP timeout in seconds
    max_workers : int
        Tokens processed in parallel (1 = sequential)
    materiality_threshold : float
        Minimum primary-currency value for totals and output
    cache_path : Path | None
        On-disk lookup cache location, None to keep the cache in memory

    """

    etherscan_api_key: str
    ethplorer_api_key: str = "freekey"
    coingecko_api_key: str | None = None
    network: str = "ethereum:mainnet"
    quote_currencies: list[str] = Field(default_factory=lambda: list(DEFAULT_QUOTE_CURRENCIES), min_length=1)
    rate_limit_per_second: float = Field(default=8.0, gt=0)
    rate_limit_burst: int = Field(default=1, ge=1)
    rate_limit_min_delay: float = Field(default=2.0, ge=0)
    max_retries: int = Field(default=5, ge=0)
    request_timeout: float = Field(default=30.0, gt=0)
    max_workers: int = Field(default=1, ge=1)
    materiality_threshold: float = Field(default=DEFAULT_MATERIALITY_THRESHOLD, ge=0)
    cache_path: Path | None = None

    @field_validator("quote_currencies")
    @classmethod
    def _normalize_currencies(cls, value: list[str]) -> list[str]:
        normalized: list[str] = []
        for currency in value:
            code = currency.strip().lower()
            if code and code not in normalized:
                normalized.append(code)
        if not normalized:
            msg = "at least one quote currency is required"
            raise ValueError(msg)
        return normalized
