"""
Main CLI application for SPL Trader Analysis.
"""

from .utils import (
    format_number,
    format_date,
    rows_to_csv,
    sort_rows,
    CSV_FIELDS
)
from .models import AnalysisRequest, ResultRow, TokenMetadata
from typing import Optional, List
from datetime import datetime, timedelta, timezone
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.panel import Panel

from .config import Config
from .api_clients import HeliusClient
from .analysis import run_analysis
from .exceptions import ValidationError, SourceUnavailable

# Logging setup
import logging
logger = logging.getLogger(__name__)


app = typer.Typer(
    name="spl-analyzer",
    help="Classify SPL token buys and sells per wallet over a date range."
)

console = Console()


def load_config() -> Config:
    """Load application configuration."""
    try:
        return Config.from_env()
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        console.print(
            "\n[yellow]Please create a .env file with your API key:[/yellow]")
        console.print("HELIUS_API_KEY=your_key_here")
        raise typer.Exit(1)


def configure_logging(config: Config, verbose: bool = False):
    """Apply the configured log level to the root logger."""
    level = logging.DEBUG if verbose else getattr(
        logging, config.log_level, logging.WARNING)
    logging.getLogger().setLevel(level)


def fetch_and_analyze(client: HeliusClient, request: AnalysisRequest,
                      config: Config) -> List[ResultRow]:
    """Run the analysis pipeline with a progress spinner."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task(
            "Fetching and analyzing transactions...", total=None)
        rows = run_analysis(client, request, config.page_size)
        progress.update(task, description="✓ Analyzed transactions")

    return rows


def display_results_table(rows: List[ResultRow], request: AnalysisRequest,
                          metadata: Optional[TokenMetadata] = None):
    """Display results in a rich table."""

    # Token info panel
    if metadata:
        token_panel = Panel(
            f"[bold blue]{metadata.name}[/bold blue] ([green]{metadata.symbol}[/green])\n"
            f"Mint: [yellow]{metadata.mint}[/yellow]",
            title="Token Information",
            expand=False
        )
        console.print(token_panel)

    # Summary stats
    wallets = {row.wallet for row in rows}
    console.print(f"\n[bold]Analysis Summary:[/bold]")
    console.print(
        f"Window: [green]{request.start_time.isoformat()}[/green] to [green]{request.end_time.isoformat()}[/green]")
    console.print(f"Rows: [green]{len(rows):,}[/green]")
    console.print(f"Wallets: [green]{len(wallets):,}[/green]")

    if not rows:
        console.print(
            "[yellow]No transactions found for the given criteria.[/yellow]")
        return

    symbol = metadata.symbol if metadata else ""
    table = Table(title=f"{symbol} Wallet Activity".strip())

    table.add_column("Wallet", style="magenta", no_wrap=True)
    table.add_column("Type", style="blue", no_wrap=True)
    table.add_column("Amount", style="green", justify="right")
    table.add_column("Date", style="white", no_wrap=True)
    table.add_column("First Buy", style="cyan", no_wrap=True)
    table.add_column("Sell %", style="red", justify="right")
    table.add_column("Transaction", style="yellow", no_wrap=True)

    for row in rows:
        wallet_short = f"{row.wallet[:4]}...{row.wallet[-4:]}"
        tx_short = f"{row.tx_signature[:10]}..."

        row_type = "🟢 Buy" if row.type == "buy" else "🔴 Sell"
        first_buy = "" if row.is_first_buy is None else (
            "Yes" if row.is_first_buy else "No")
        sell_pct = "" if row.sell_percentage is None else f"{format_number(row.sell_percentage)}%"

        table.add_row(
            wallet_short,
            row_type,
            format_number(row.amount),
            format_date(row.date),
            first_buy,
            sell_pct,
            tx_short
        )

    console.print(table)


def export_to_csv(rows: List[ResultRow], filepath: str):
    """Export analysis results to CSV."""
    with open(filepath, 'w', newline='') as csvfile:
        csvfile.write(rows_to_csv(rows))


def export_to_json(rows: List[ResultRow], filepath: str):
    """Export analysis results to JSON."""
    with open(filepath, 'w') as jsonfile:
        json.dump([row.to_dict() for row in rows],
                  jsonfile, indent=2, default=str)


@app.command()
def analyze(
    token: str = typer.Argument(..., help="SPL token mint address"),
    start: Optional[str] = typer.Option(
        None, "--start", "-s", help="Window start (ISO-8601). Defaults to 24 hours ago"),
    end: Optional[str] = typer.Option(
        None, "--end", "-e", help="Window end (ISO-8601). Defaults to now"),
    max_wallets: Optional[int] = typer.Option(
        None, "--max-wallets", "-m", help="Maximum number of distinct wallets"),
    transaction_type: str = typer.Option(
        "both", "--type", "-t", help="Transaction type: buy, sell, both"),
    min_amount: Optional[float] = typer.Option(
        None, "--min-amount", help="Minimum absolute token amount"),
    max_amount: Optional[float] = typer.Option(
        None, "--max-amount", help="Maximum absolute token amount"),
    sort_by: Optional[str] = typer.Option(
        None, "--sort-by", help=f"Sort by field: {', '.join(CSV_FIELDS)}"),
    descending: bool = typer.Option(
        False, "--descending", help="Sort in descending order"),
    output_format: Optional[str] = typer.Option(
        None, "--format", "-f", help="Output format: table, csv, json"),
    output_file: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output file path"),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging")
):
    """Analyze buys and sells of an SPL token within a date range."""

    config = load_config()
    configure_logging(config, verbose)
    output_format = output_format or config.output_format

    now = datetime.now(timezone.utc)
    payload = {
        "tokenAddress": token,
        "startDate": start or (now - timedelta(days=1)).isoformat(),
        "endDate": end or now.isoformat(),
        "maxWallets": max_wallets,
        "transactionType": transaction_type,
        "minAmount": min_amount,
        "maxAmount": max_amount,
    }

    try:
        request = AnalysisRequest.from_payload(payload, config)
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if sort_by and sort_by not in CSV_FIELDS:
        console.print(f"[red]Unknown sort field: {sort_by}[/red]")
        raise typer.Exit(1)

    client = HeliusClient(config)

    console.print(f"[cyan]Resolving token: {token}[/cyan]")
    metadata = client.get_token_metadata(token)

    try:
        rows = fetch_and_analyze(client, request, config)
    except SourceUnavailable as e:
        console.print(f"[red]Failed to fetch or analyze data: {e}[/red]")
        raise typer.Exit(1)

    if sort_by:
        rows = sort_rows(rows, sort_by, descending)

    # Display or export results
    if output_format == "table" or not output_file:
        display_results_table(rows, request, metadata)

    if output_file:
        if output_format == "csv":
            export_to_csv(rows, output_file)
            console.print(f"[green]Results exported to {output_file}[/green]")
        elif output_format == "json":
            export_to_json(rows, output_file)
            console.print(f"[green]Results exported to {output_file}[/green]")
        else:
            console.print(
                f"[yellow]Unsupported output format: {output_format}[/yellow]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(5000, "--port", "-p", help="Port to listen on")
):
    """Serve the analysis endpoint at POST /api/analyze."""
    from .server import create_app

    config = load_config()
    configure_logging(config)
    create_app(config).run(host=host, port=port)


@app.command()
def setup():
    """Setup the application by creating a .env file template."""
    env_content = """# SPL Trader Analysis Configuration

# Required: Helius API Key (get from https://dev.helius.xyz)
HELIUS_API_KEY=your_helius_api_key_here

# Fetch Settings
PAGE_SIZE=100
RATE_LIMIT_DELAY=0.1
REQUEST_TIMEOUT=30

# Analysis Defaults
MAX_WALLETS=50
MIN_AMOUNT=0
MAX_AMOUNT=1000000

# Output Settings
OUTPUT_FORMAT=table
LOG_LEVEL=WARNING
"""

    env_path = Path(".env")
    if env_path.exists():
        console.print("[yellow].env file already exists![/yellow]")
        if not typer.confirm("Overwrite existing .env file?"):
            return

    with open(env_path, 'w') as f:
        f.write(env_content)

    console.print(f"[green]Created .env file at {env_path.absolute()}[/green]")
    console.print(
        "\n[yellow]Please edit the .env file and add your API key:[/yellow]")
    console.print("1. Get a Helius API key from https://dev.helius.xyz")
    console.print(
        "2. Replace 'your_helius_api_key_here' with your real key")
    console.print("3. Run: spl-analyzer analyze <mint_address> --start <date> --end <date>")


if __name__ == "__main__":
    app()
