"""End-to-end tests for the portfolio aggregator against mocked services."""

import httpx
import pytest

from portfolio_scanner.core.aggregator import PortfolioAggregator, build_aggregator
from portfolio_scanner.core.models import PriceSource, ScanSettings
from portfolio_scanner.data.addresses import NATIVE_TOKEN_ADDRESS
from portfolio_scanner.exceptions import AccountScanError, InvalidAddressError
from portfolio_scanner.rpc.cache import JSONFileLookupCache, MemoryLookupCache

ACCOUNT = "0x000000000000000000000000000000000000dead"
AAVE = "0x7fc66500c84a76ad7e9c93437bfc5ac33e2ddae9"
DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
YFI = "0x0bc529c00c6401aef6d220be8c6ea1667f6ad93e"
SHIB = "0x95ad61b0a150d79219dcf64e1e6cc01f0b64c4ce"
OBSCURE = "0x1111111111111111111111111111111111111111"


class FakeChain:
    """
    In-memory stand-in for Etherscan, Ethplorer, CoinGecko and ParaSwap.

    ``tokens`` maps contract address to (symbol, decimals, raw balance,
    coingecko id or None, {currency: price}).
    """

    def __init__(self, tokens: dict, native_prices: dict[str, float]) -> None:
        self.tokens = tokens
        self.native_prices = native_prices
        self.broken_balances: set[str] = set()
        self.etherscan_down = False
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == "api.etherscan.io":
            return self._etherscan(request)
        if host == "api.ethplorer.io":
            address = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"address": address, "decimals": str(self.tokens[address][1])})
        if host == "api.coingecko.com":
            return self._coingecko(request)
        if host == "apiv5.paraswap.io":
            return httpx.Response(400, json={"error": "No routes found with enough liquidity"})
        return httpx.Response(404, json={"error": "unknown host"})

    def _etherscan(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if self.etherscan_down:
            return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"})
        if params["action"] == "tokentx":
            result = [
                {"tokenSymbol": symbol, "tokenName": symbol.title(), "contractAddress": address}
                for address, (symbol, *_rest) in self.tokens.items()
            ]
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": result})
        address = params["contractaddress"]
        if address in self.broken_balances:
            return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Error!"})
        return httpx.Response(200, json={"status": "1", "message": "OK", "result": str(self.tokens[address][2])})

    def _coingecko(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if "/contract/" in path:
            address = path.rsplit("/", 1)[-1]
            coin_id = self.tokens.get(address, (None, None, None, None))[3]
            if coin_id is None:
                return httpx.Response(404, json={"error": "Could not find coin with the given id"})
            return httpx.Response(200, json={"id": coin_id})

        coin_id = request.url.params["ids"]
        currency = request.url.params["vs_currencies"]
        if coin_id == "ethereum":
            prices = self.native_prices
        else:
            prices = next((t[4] for t in self.tokens.values() if t[3] == coin_id), {})
        if currency not in prices:
            return httpx.Response(200, json={})
        return httpx.Response(200, json={coin_id: {currency: prices[currency]}})


class FakeNativeSource:
    def __init__(self, wei: int = 0, error: Exception | None = None) -> None:
        self.wei = wei
        self.error = error
        self.accounts: list[str] = []

    def get_balance(self, account: str) -> int:
        self.accounts.append(account)
        if self.error:
            raise self.error
        return self.wei


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain(
        tokens={
            AAVE: ("AAVE", 18, 2 * 10**18, "aave", {"usd": 100.0, "eth": 0.05}),
            DAI: ("DAI", 18, 50 * 10**18, "dai", {"usd": 1.0, "eth": 0.0005}),
            YFI: ("YFI", 18, 10**15, "yearn-finance", {"usd": 8000.0, "eth": 4.0}),
            SHIB: ("SHIB", 18, 10**18, "shiba-inu", {"usd": 0.005, "eth": 0.0000025}),
            OBSCURE: ("OBS", 8, 5 * 10**8, None, {}),
        },
        native_prices={"usd": 2000.0, "eth": 1.0},
    )


@pytest.fixture
def make_aggregator(fake_chain, sleeps):
    def factory(native: FakeNativeSource | None = None, cache=None, **settings_values) -> PortfolioAggregator:
        settings_values.setdefault("rate_limit_per_second", 1_000_000)
        settings_values.setdefault("rate_limit_burst", 1_000)
        settings = ScanSettings(etherscan_api_key="etherscan-key", **settings_values)
        client = httpx.Client(transport=httpx.MockTransport(fake_chain))
        return build_aggregator(
            settings,
            native or FakeNativeSource(wei=3 * 10**18 // 2),
            client=client,
            cache=cache if cache is not None else MemoryLookupCache(),
            sleep=sleeps,
        )

    return factory


def test_scan_builds_priced_snapshot(make_aggregator):
    with make_aggregator() as aggregator:
        snapshot = aggregator.scan(ACCOUNT)

    assert snapshot.account == ACCOUNT
    assert snapshot.quote_currencies == ["usd", "eth"]
    assert snapshot.native.balance == 1.5
    assert snapshot.native.prices == {"usd": 2000.0, "eth": 1.0}
    assert snapshot.native.price_source is PriceSource.COINGECKO

    holdings = {h.symbol: h for h in snapshot.tokens}
    assert [h.symbol for h in snapshot.tokens] == ["AAVE", "DAI", "YFI", "SHIB", "OBS"]
    assert holdings["AAVE"].balance == 2.0
    assert holdings["AAVE"].value_in("usd") == 200.0
    assert holdings["YFI"].value_in("usd") == pytest.approx(8.0)
    assert holdings["AAVE"].source_link == "https://www.coingecko.com/en/coins/aave"
    assert snapshot.skipped == []


def test_totals_are_sum_of_material_parts(make_aggregator):
    with make_aggregator() as aggregator:
        snapshot = aggregator.scan(ACCOUNT)

    material = snapshot.material_tokens()
    totals = snapshot.totals()

    assert [h.symbol for h in material] == ["AAVE", "DAI", "YFI"]
    for currency in ("usd", "eth"):
        expected = snapshot.native.value_in(currency) + sum(h.value_in(currency) for h in material)
        assert totals[currency] == pytest.approx(expected)
    assert totals["usd"] == pytest.approx(3000.0 + 200.0 + 50.0 + 8.0)


def test_sub_threshold_token_excluded_from_totals(make_aggregator):
    """SHIB is worth 0.005 USD: present in state, absent from totals."""
    with make_aggregator() as aggregator:
        snapshot = aggregator.scan(ACCOUNT)

    shib = next(h for h in snapshot.tokens if h.symbol == "SHIB")
    assert shib.value_in("usd") == pytest.approx(0.005)
    assert shib not in snapshot.material_tokens()


def test_unlisted_token_kept_with_zero_price(make_aggregator):
    """A token without market listing or DEX route is valued at zero."""
    with make_aggregator() as aggregator:
        snapshot = aggregator.scan(ACCOUNT)

    obscure = next(h for h in snapshot.tokens if h.symbol == "OBS")
    assert obscure.balance == 5.0
    assert obscure.decimals == 8
    assert obscure.prices == {"usd": 0.0, "eth": 0.0}
    assert obscure.price_source is PriceSource.PARASWAP
    assert obscure.value_in("usd") == 0.0


def test_balance_failure_skips_only_that_token(make_aggregator, fake_chain, caplog):
    fake_chain.broken_balances.add(DAI)

    with make_aggregator() as aggregator:
        snapshot = aggregator.scan(ACCOUNT)

    assert [h.symbol for h in snapshot.tokens] == ["AAVE", "YFI", "SHIB", "OBS"]
    assert snapshot.skipped == ["DAI"]
    assert f"Error on processing ERC20 balance for {DAI}" in caplog.text


def test_discovery_failure_aborts_scan(make_aggregator, fake_chain):
    fake_chain.etherscan_down = True

    with make_aggregator() as aggregator, pytest.raises(AccountScanError) as exc_info:
        aggregator.scan(ACCOUNT)

    assert "Max rate limit reached" in str(exc_info.value)


def test_native_balance_failure_aborts_scan(make_aggregator):
    native = FakeNativeSource(error=ConnectionError("node unreachable"))

    with make_aggregator(native=native) as aggregator, pytest.raises(AccountScanError) as exc_info:
        aggregator.scan(ACCOUNT)

    assert exc_info.value.provider == "node"
    assert "node unreachable" in str(exc_info.value)


def test_invalid_account_is_rejected_before_any_call(make_aggregator, fake_chain):
    native = FakeNativeSource()

    with make_aggregator(native=native) as aggregator, pytest.raises(InvalidAddressError):
        aggregator.scan("0x98b2dE885E916b598f65DeD2")

    assert native.accounts == []
    assert fake_chain.requests == []


def test_parallel_scan_preserves_order(make_aggregator):
    with make_aggregator() as sequential:
        expected = sequential.scan(ACCOUNT)
    with make_aggregator(max_workers=3) as parallel:
        snapshot = parallel.scan(ACCOUNT)

    assert [h.symbol for h in snapshot.tokens] == [h.symbol for h in expected.tokens]
    assert snapshot.totals() == pytest.approx(expected.totals())


def test_quote_currencies_follow_request(make_aggregator):
    with make_aggregator() as aggregator:
        snapshot = aggregator.scan(ACCOUNT, quote_currencies=["ETH"])

    assert snapshot.quote_currencies == ["eth"]
    assert snapshot.native.prices == {"eth": 1.0}
    # Materiality now applies in ETH: YFI (0.004 ETH) drops out of totals
    assert [h.symbol for h in snapshot.material_tokens()] == ["AAVE", "DAI"]
    assert snapshot.totals() == {"eth": pytest.approx(1.5 + 0.1 + 0.025)}


def test_identifiers_resolved_once_per_token(make_aggregator, fake_chain):
    with make_aggregator() as aggregator:
        aggregator.scan(ACCOUNT)

    lookups = [r for r in fake_chain.requests if "/contract/" in r.url.path and AAVE in r.url.path]
    prices = [r for r in fake_chain.requests if r.url.params.get("ids") == "aave"]
    assert len(lookups) == 1
    assert len(prices) == 2


def test_paraswap_reuses_resolved_decimals(make_aggregator, fake_chain):
    """The DEX quote for an unlisted token asks for its real decimals."""
    with make_aggregator() as aggregator:
        aggregator.scan(ACCOUNT)

    dex = [r for r in fake_chain.requests if r.url.host == "apiv5.paraswap.io"]
    obscure = [r for r in dex if r.url.params["srcToken"] == OBSCURE]
    ethplorer = [r for r in fake_chain.requests if r.url.host == "api.ethplorer.io" and OBSCURE in r.url.path]
    assert {r.url.params["srcDecimals"] for r in obscure} == {"8"}
    assert len(ethplorer) == 1
    # The native currency never reaches ParaSwap when CoinGecko priced it
    assert all(r.url.params["srcToken"] != NATIVE_TOKEN_ADDRESS for r in dex)


def test_progress_updates(make_aggregator):
    class RecordingProgress:
        def __init__(self):
            self.updates = []
            self.advanced = 0

        def update(self, task_id, **kwargs):
            self.updates.append(kwargs)

        def advance(self, task_id):
            self.advanced += 1

    progress = RecordingProgress()
    with make_aggregator() as aggregator:
        aggregator.scan(ACCOUNT, progress=progress, task_id=0)

    assert progress.advanced == 5
    assert any(update.get("total") == 5 for update in progress.updates)


def test_unwritable_cache_does_not_abort_scan(make_aggregator, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with make_aggregator(cache=JSONFileLookupCache(blocker / "cache.json")) as aggregator:
        snapshot = aggregator.scan(ACCOUNT)

    assert len(snapshot.tokens) == 5
    assert snapshot.skipped == []
