"""Exception hierarchy separating token-scoped failures from fatal scan failures."""


class PortfolioScannerError(Exception):
    """Base exception for all portfolio scanner errors."""


class ConfigurationError(PortfolioScannerError):
    """Exception raised when settings are missing or invalid."""


class TransientTransportError(PortfolioScannerError):
    """
    Exception raised when an outbound call keeps failing after every retry.

    Parameters
    ----------
    label : str
        Human readable name of the failing call (e.g. 'coingecko price')
    url : str
        Requested URL
    last_body : str | None
        Last response body received, if any
    attempts : int
        Number of attempts made

    """

    def __init__(self, label: str, url: str, last_body: str | None = None, attempts: int = 0) -> None:
        self.label = label
        self.url = url
        self.last_body = last_body
        self.attempts = attempts
        msg = f"Could not fetch from {label} after {attempts} attempts: response body: {last_body!r}"
        super().__init__(msg)


class TokenScopedError(PortfolioScannerError):
    """
    Recoverable failure limited to a single token.

    The aggregator catches these and drops the token from the snapshot.

    Parameters
    ----------
    contract_address : str
        Contract address of the token that failed
    message : str
        Error description

    """

    def __init__(self, contract_address: str, message: str) -> None:
        self.contract_address = contract_address
        super().__init__(message)


class DecimalsError(TokenScopedError):
    """Exception raised when a token's decimal exponent cannot be resolved."""

    def __init__(self, contract_address: str, detail: str | None = None) -> None:
        msg = f"Error on fetching decimals for token contract {contract_address}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(contract_address, msg)


class BalanceError(TokenScopedError):
    """Exception raised when a token balance lookup fails."""

    def __init__(self, contract_address: str, body: str | None = None) -> None:
        self.body = body
        super().__init__(contract_address, f"Error on processing ERC20 balance for {contract_address}")


class PriceLookupError(TokenScopedError):
    """Exception raised when a price provider call fails for a token."""

    def __init__(self, contract_address: str, provider: str, detail: str | None = None) -> None:
        self.provider = provider
        msg = f"Price lookup via {provider} failed for {contract_address}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(contract_address, msg)


class ScanError(PortfolioScannerError):
    """Fatal, account-scoped failure that aborts the whole scan."""


class AccountScanError(ScanError):
    """
    Exception raised when the account itself cannot be queried.

    Parameters
    ----------
    account : str
        Account address that was queried
    provider : str
        Service that rejected the query
    body : str | None
        Raw diagnostic body returned by the service

    """

    def __init__(self, account: str, provider: str, body: str | None = None, message: str | None = None) -> None:
        self.account = account
        self.provider = provider
        self.body = body
        msg = message or f"Error on processing the list of ERC20 tokens for {account} via {provider}"
        if body:
            msg = f"{msg}: {body}"
        super().__init__(msg)


class InvalidAddressError(AccountScanError):
    """Exception raised when the supplied account address does not parse."""

    def __init__(self, account: str) -> None:
        super().__init__(account, provider="input", message=f"Error at specified address: {account!r}")
