"""CLI for portfolio scanner."""

import json
import logging
from enum import StrEnum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table
from rich.traceback import install

from portfolio_scanner.core.aggregator import build_aggregator
from portfolio_scanner.core.models import BlockRange, PortfolioSnapshot, ScanSettings
from portfolio_scanner.data import load_settings, normalize_account
from portfolio_scanner.exceptions import ConfigurationError, ScanError
from portfolio_scanner.rpc.retry import RetryConfig

# Install rich traceback handler
install(show_locals=False)

app = typer.Typer(
    name="portfolio-scanner",
    help="Track the balance of ETH and every ERC20 token an account has touched",
    add_completion=False,
)

console = Console()

CURRENCY_SYMBOLS = {"usd": "US$", "eth": "Ξ"}
ALLOCATION_BAR_WIDTH = 20


class OutputFormat(StrEnum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


def _configure_logging(debug: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=debug)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _format_amount(value: float, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, currency.upper())
    precision = 2 if currency == "usd" else 6
    return f"{value:,.{precision}f} {symbol}"


def _load_settings_or_exit(config: Path | None, **overrides) -> ScanSettings:
    try:
        return load_settings(config, **overrides)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e


def _connect_native_source(settings: ScanSettings):
    """Connect to the node that serves native balances."""
    # Imported here so that --help works without a node configuration
    from portfolio_scanner.rpc.provider import ApeNativeBalanceProvider

    native_source = ApeNativeBalanceProvider(
        network_choice=settings.network,
        retry_config=RetryConfig(max_retries=settings.max_retries),
    )
    try:
        native_source.connect()
    except RuntimeError as e:
        console.print(f"[bold red]{escape(str(e))}[/bold red]")
        console.print("[yellow]Make sure you have set WEB3_INFURA_PROJECT_ID environment variable[/yellow]")
        raise typer.Exit(code=1) from e
    return native_source


@app.command()
def scan(
    address: str = typer.Argument(..., help="ETH address to scan"),
    start_block: int | None = typer.Option(None, "--start-block", help="First block of the history to scan"),
    end_block: int | None = typer.Option(None, "--end-block", help="Last block of the history to scan"),
    currency: list[str] | None = typer.Option(
        None,
        "--currency",
        "-q",
        help="Quote currency, repeatable; the first one is primary (default: usd, eth)",
    ),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Tokens processed in parallel"),
    cache: Path | None = typer.Option(None, "--cache", help="On-disk lookup cache file"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Settings file (default: settings.yaml)"),
    format: OutputFormat = typer.Option(
        OutputFormat.TABLE,
        "--format",
        "-f",
        help="Output format",
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """
    Scan an account and print its priced portfolio.

    Examples:

        # Full history, priced in USD and ETH
        portfolio-scanner scan 0xABC...

        # Restrict discovery to a block range
        portfolio-scanner scan 0xABC... --start-block 11855520 --end-block 11855590

        # Output as JSON
        portfolio-scanner scan 0xABC... --format json
    """
    _configure_logging(debug)

    try:
        account = normalize_account(address)
        block_range = BlockRange(
            start_block=start_block if start_block is not None else 0,
            end_block=end_block if end_block is not None else BlockRange().end_block,
        )
    except (ScanError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    settings = _load_settings_or_exit(
        config,
        quote_currencies=currency or None,
        max_workers=workers,
        cache_path=cache,
    )

    native_source = _connect_native_source(settings)

    try:
        with build_aggregator(settings, native_source) as aggregator:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console,
                transient=format == OutputFormat.JSON,
            ) as progress:
                task = progress.add_task(f"Scanning {account}...", total=None)
                snapshot = aggregator.scan(
                    account,
                    block_range,
                    settings.quote_currencies,
                    progress=progress,
                    task_id=task,
                )
    except ScanError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        if debug:
            raise
        raise typer.Exit(code=1) from e
    finally:
        native_source.disconnect()

    if format == OutputFormat.JSON:
        _output_json(snapshot)
    else:
        _output_table(snapshot)


@app.command()
def show_config(
    config: Path | None = typer.Option(None, "--config", "-c", help="Settings file (default: settings.yaml)"),
) -> None:
    """Show the effective settings with API keys masked."""
    settings = _load_settings_or_exit(config)

    table = Table(title="Settings", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.model_dump().items():
        if name.endswith("api_key") and value:
            value = f"{value[:4]}…"
        table.add_row(name, str(value))

    console.print(table)


def _output_table(snapshot: PortfolioSnapshot) -> None:
    """Output portfolio as rich table."""
    currencies = snapshot.quote_currencies
    primary = snapshot.primary_currency
    totals = snapshot.totals()
    total_primary = totals.get(primary, 0.0)

    table = Table(
        title=f"Portfolio for {snapshot.account[:10]}...{snapshot.account[-8:]}",
        show_header=True,
        header_style="bold magenta",
    )

    table.add_column("Token", style="green")
    table.add_column("Contract", style="dim")
    table.add_column("Balance", style="white", justify="right")
    for currency in currencies:
        table.add_column(currency.upper(), style="bold green", justify="right")
    table.add_column("Allocation", style="cyan")
    table.add_column("Source", style="blue")

    holdings = [snapshot.native, *snapshot.material_tokens()]
    holdings.sort(key=lambda h: h.value_in(primary), reverse=True)

    for holding in holdings:
        share = holding.value_in(primary) / total_primary if total_primary else 0.0
        bar = "█" * round(share * ALLOCATION_BAR_WIDTH)
        table.add_row(
            holding.symbol,
            holding.contract_address or "-",
            f"{holding.balance:,.6f}",
            *(_format_amount(holding.value_in(c), c) for c in currencies),
            f"{bar} {share:.1%}",
            holding.source_link or "-",
        )

    console.print("\n")
    console.print(table)

    summary_table = Table(show_header=False, box=None)
    summary_table.add_column("Label", style="bold")
    summary_table.add_column("Value", style="bold green")

    summary_table.add_row("Total balance:", " / ".join(_format_amount(totals[c], c) for c in currencies))
    summary_table.add_row("Tokens shown:", str(len(holdings) - 1))

    hidden = len(snapshot.tokens) - len(snapshot.material_tokens())
    if hidden:
        summary_table.add_row(
            "Below threshold:",
            f"{hidden} (< {snapshot.materiality_threshold} {primary.upper()})",
        )
    if snapshot.skipped:
        summary_table.add_row("[yellow]Skipped:[/yellow]", ", ".join(snapshot.skipped))

    console.print("\n")
    console.print(summary_table)
    console.print("\n")


def _output_json(snapshot: PortfolioSnapshot) -> None:
    """Output portfolio as JSON."""
    data = snapshot.model_dump(mode="json")
    data["totals"] = snapshot.totals()
    console.print_json(json.dumps(data))


if __name__ == "__main__":
    app()
