"""CLI for crypto oneview."""

import asyncio
import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.traceback import install

from crypto_oneview.core.aggregator import DUST_THRESHOLD_USD, AssetAggregator
from crypto_oneview.core.models import PortfolioSnapshot
from crypto_oneview.core.registry import AdapterRegistry
from crypto_oneview.data import (
    get_all_supported_chains,
    get_all_supported_exchanges,
    get_chain_config,
    get_exchange_config,
    get_wallet_sources,
)
from crypto_oneview.pricing import BinanceTickerPricing, CoinGeckoPricing, PriceOracle
from crypto_oneview.stores import CredentialRegistry, Vault, VaultError, WalletRegistry

# Install rich traceback handler
install(show_locals=False)

PASSWORD_ENV = "CRYPTO_ONEVIEW_PASSWORD"

app = typer.Typer(
    name="crypto-oneview",
    help="Aggregate crypto balances across exchanges and wallets into one USD view",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


class OutputFormat(StrEnum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def _fail(message: str) -> typer.Exit:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    return typer.Exit(code=1)


def _unlock(vault: Vault, password: str | None) -> None:
    """
    Unlock the vault, prompting for the password if not given.

    Raises
    ------
    typer.Exit
        If no password is set, the password is wrong or the vault file is unreadable

    """
    if not vault.is_configured:
        raise _fail("No password set. Run 'crypto-oneview set-password' first.")

    if password is None:
        password = typer.prompt("Password", hide_input=True)

    try:
        vault.unlock(password)
    except VaultError as e:
        raise _fail(str(e)) from e


PasswordOption = typer.Option(
    None,
    "--password",
    envvar=PASSWORD_ENV,
    help="Vault password (prompted if omitted)",
    show_default=False,
)


@app.command()
def set_password(
    password: str = typer.Option(
        ...,
        "--password",
        envvar=PASSWORD_ENV,
        prompt=True,
        hide_input=True,
        confirmation_prompt=True,
        help="New vault password",
    ),
) -> None:
    """Set the password protecting stored credentials."""
    vault = Vault()
    if vault.is_configured:
        raise _fail("A password is already set. Remove the data directory to start over.")

    try:
        vault.set_password(password)
    except ValueError as e:
        raise _fail(str(e)) from e

    console.print(f"[green]✓ Password set[/green] [dim]({vault.home})[/dim]")


@app.command()
def add_exchange(
    exchange: str = typer.Argument(..., help="Exchange id (e.g., binance, okx)"),
    api_key: str = typer.Option(..., "--api-key", prompt=True, help="Read-only API key"),
    secret: str = typer.Option(..., "--secret", prompt=True, hide_input=True, help="API secret"),
    passphrase: str | None = typer.Option(None, "--passphrase", help="API passphrase (OKX)"),
    password: str | None = PasswordOption,
) -> None:
    """
    Store read-only API credentials for an exchange.

    Examples:

        crypto-oneview add-exchange binance

        crypto-oneview add-exchange okx --passphrase MyPassphrase
    """
    if exchange not in get_all_supported_exchanges():
        raise _fail(f"Unknown exchange: {exchange}")
    config = get_exchange_config(exchange)

    vault = Vault()
    _unlock(vault, password)

    if config.get("requires_passphrase") and not passphrase:
        passphrase = typer.prompt("Passphrase", hide_input=True)

    try:
        ref = CredentialRegistry(vault).set_credential(exchange, api_key, secret, passphrase)
    except (ValueError, VaultError) as e:
        raise _fail(str(e)) from e

    console.print(f"[green]✓ Saved {config['name']} credential[/green] [dim]({ref.source_id})[/dim]")


@app.command()
def remove_exchange(exchange: str = typer.Argument(..., help="Exchange id")) -> None:
    """Remove stored credentials for an exchange."""
    if not CredentialRegistry(Vault()).remove_credential(exchange):
        raise _fail(f"No credential stored for {exchange}")
    console.print(f"[green]✓ Removed {exchange} credential[/green]")


@app.command()
def list_exchanges() -> None:
    """List supported exchanges and their account types."""
    configured = {ref.kind for ref in CredentialRegistry(Vault()).list()}

    table = Table(title="Supported Exchanges", show_header=True, header_style="bold magenta")
    table.add_column("Exchange", style="cyan")
    table.add_column("Account Types", style="yellow")
    table.add_column("Status", style="green")

    for exchange in get_all_supported_exchanges():
        config = get_exchange_config(exchange)
        account_types = ", ".join(config.get("account_types", {}).values())
        status = "✓ Configured" if exchange in configured else "[dim]-[/dim]"
        table.add_row(f"{config['name']} ({exchange})", account_types, status)

    console.print(table)


@app.command()
def add_wallet(
    source: str = typer.Argument(..., help="Wallet source (binance_hot, okx_hot, ledger_cold)"),
    chain: str = typer.Argument(..., help="Chain (BTC, ETH, ADA)"),
    address: str = typer.Argument(..., help="Address, xpub, or stake address"),
    label: str | None = typer.Option(None, "--label", "-l", help="Nickname"),
    api_key: str | None = typer.Option(None, "--api-key", help="Explorer API key (Etherscan for ETH)"),
    password: str | None = PasswordOption,
) -> None:
    """
    Track a wallet address.

    Examples:

        crypto-oneview add-wallet ledger_cold BTC xpub6C...

        crypto-oneview add-wallet ledger_cold ETH 0xABC... --api-key YOUR_KEY
    """
    vault = Vault()
    if api_key:
        _unlock(vault, password)

    try:
        wallet = WalletRegistry(vault).add_address(source, chain, address, label=label, api_key=api_key)
    except (ValueError, VaultError) as e:
        raise _fail(str(e)) from e

    console.print(f"[green]✓ Tracking {wallet.chain} address[/green] [dim]({wallet.id})[/dim]")


@app.command()
def rename_wallet(
    wallet_id: str = typer.Argument(..., help="Wallet id from list-wallets"),
    label: str = typer.Argument(..., help="New nickname"),
) -> None:
    """Change the nickname of a tracked wallet."""
    if not WalletRegistry(Vault()).update_label(wallet_id, label):
        raise _fail(f"Unknown wallet: {wallet_id}")
    console.print(f"[green]✓ Renamed {wallet_id}[/green]")


@app.command()
def remove_wallet(wallet_id: str = typer.Argument(..., help="Wallet id from list-wallets")) -> None:
    """Stop tracking a wallet address."""
    if not WalletRegistry(Vault()).remove_address(wallet_id):
        raise _fail(f"Unknown wallet: {wallet_id}")
    console.print(f"[green]✓ Removed {wallet_id}[/green]")


@app.command()
def list_wallets() -> None:
    """List tracked wallet addresses."""
    wallets = WalletRegistry(Vault()).list()
    if not wallets:
        console.print("[yellow]No wallets tracked[/yellow]")
        return

    sources = get_wallet_sources()

    table = Table(title="Tracked Wallets", show_header=True, header_style="bold magenta")
    table.add_column("Id", style="dim")
    table.add_column("Source", style="cyan")
    table.add_column("Chain", style="blue")
    table.add_column("Address", style="white")
    table.add_column("Label", style="yellow")
    table.add_column("API Key", style="green")

    for wallet in wallets:
        address = wallet.address if len(wallet.address) <= 24 else f"{wallet.address[:12]}...{wallet.address[-8:]}"
        table.add_row(
            wallet.id,
            sources.get(wallet.source_label, wallet.source_label),
            wallet.chain,
            address,
            wallet.label or "",
            "✓" if wallet.has_api_key else "",
        )

    console.print(table)


@app.command()
def list_chains() -> None:
    """List all supported chains."""
    table = Table(title="Supported Chains", show_header=True, header_style="bold magenta")
    table.add_column("Chain", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Adapter", style="green")

    for chain in get_all_supported_chains():
        config = get_chain_config(chain)
        status = "✓ Active" if AdapterRegistry.get_chain_adapter(chain) else "[dim]-[/dim]"
        table.add_row(chain, config["name"], status)

    console.print(table)


async def _fetch_portfolio(vault: Vault, dust_threshold: Decimal) -> PortfolioSnapshot:
    async with httpx.AsyncClient(timeout=30.0) as client:
        oracle = PriceOracle(
            primary=BinanceTickerPricing(client=client),
            fallback=CoinGeckoPricing(client=client),
        )
        aggregator = AssetAggregator(
            credentials=CredentialRegistry(vault),
            wallets=WalletRegistry(vault),
            oracle=oracle,
            client=client,
            dust_threshold=dust_threshold,
        )
        await aggregator.refresh()
        return aggregator.snapshot()


@app.command()
def portfolio(
    format: OutputFormat = typer.Option(
        OutputFormat.TABLE,
        "--format",
        "-f",
        help="Output format",
    ),
    dust_threshold: str = typer.Option(
        str(DUST_THRESHOLD_USD),
        "--dust-threshold",
        help="Hide priced holdings worth less than this many USD",
    ),
    password: str | None = PasswordOption,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """
    Fetch all balances and show the aggregated portfolio.

    Examples:

        # Show portfolio table
        crypto-oneview portfolio

        # Show every holding, including dust
        crypto-oneview portfolio --dust-threshold 0

        # Output as JSON
        crypto-oneview portfolio --format json
    """
    _configure_logging(debug)

    try:
        threshold = Decimal(dust_threshold)
    except InvalidOperation as e:
        raise _fail(f"Invalid dust threshold: {dust_threshold}") from e
    if not threshold.is_finite():
        raise _fail(f"Invalid dust threshold: {dust_threshold}")

    vault = Vault()
    if vault.is_configured:
        _unlock(vault, password)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=err_console,
        transient=True,
    ) as progress:
        progress.add_task("Fetching balances and prices...", total=None)
        snapshot = asyncio.run(_fetch_portfolio(vault, threshold))

    if format == OutputFormat.JSON:
        _output_json(snapshot)
    else:
        _output_table(snapshot)


def _output_table(snapshot: PortfolioSnapshot) -> None:
    """Output portfolio as rich table."""
    if snapshot.asset_summaries:
        table = Table(title="Portfolio", show_header=True, header_style="bold magenta")
        table.add_column("Asset", style="cyan")
        table.add_column("Amount", style="white", justify="right")
        table.add_column("Price", style="white", justify="right")
        table.add_column("USD Value", style="bold green", justify="right")
        table.add_column("%", style="yellow", justify="right")
        table.add_column("Sources", style="dim")

        for summary in snapshot.asset_summaries:
            sources = ", ".join(
                f"{s.source}/{s.account_type}" if s.account_type else s.source for s in summary.sources
            )
            table.add_row(
                summary.symbol,
                f"{summary.total_amount:,.8f}".rstrip("0").rstrip("."),
                f"${summary.price_usd:,.4f}" if summary.price_usd else "-",
                f"${summary.value_usd:,.2f}" if summary.price_usd else "-",
                f"{summary.percentage:.2f}%",
                sources,
            )

        console.print("\n")
        console.print(table)
    else:
        console.print("\n[yellow]No balances found[/yellow]")

    summary_table = Table(show_header=False, box=None)
    summary_table.add_column("Label", style="bold")
    summary_table.add_column("Value", style="bold green")
    summary_table.add_row("Total Value:", f"${snapshot.total_value_usd:,.2f}")
    summary_table.add_row("Assets:", str(len(snapshot.asset_summaries)))
    if snapshot.last_updated:
        updated = datetime.fromtimestamp(snapshot.last_updated / 1000).strftime("%Y-%m-%d %H:%M:%S")
        summary_table.add_row("Updated:", updated)

    console.print("\n")
    console.print(summary_table)

    if snapshot.errors:
        console.print("\n[bold yellow]Warnings:[/bold yellow]")
        for error in snapshot.errors:
            console.print(f"  [yellow]•[/yellow] {escape(error)}", highlight=False)
    console.print("\n")


def _output_json(snapshot: PortfolioSnapshot) -> None:
    """Output portfolio as JSON."""
    data = snapshot.model_dump(mode="json")
    console.print_json(json.dumps(data))


if __name__ == "__main__":
    app()
