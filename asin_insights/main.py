"""
ASIN Competitor Insights - CLI Entry Point.
CLI using Click and Rich.
"""

import asyncio
import logging
import sys
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from asin_insights import __version__
from asin_insights.config.settings import get_settings
from asin_insights.extractors.identifier_extractor import IdentifierExtractor, ProductNameHeuristic
from asin_insights.models.schemas import ProcessedData
from asin_insights.pipeline.orchestrator import InsightsPipeline
from asin_insights.services.metrics_service import DeterministicFallbackSource
from asin_insights.utils.errors import GenerationError, PipelineError
from asin_insights.utils.formatters import SUPPORTED_FORMATS, ReportFormatter
from asin_insights.utils.logger import setup_logging

# Initialize Rich Consoles
console = Console()
err_console = Console(stderr=True)

# =============================================================================
# Helper Functions
# =============================================================================

def async_command(f):
    """Decorator to run async click commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def setup_logger(verbose: bool):
    """Configure logging based on verbosity."""
    setup_logging(
        level="DEBUG" if verbose else "WARNING",
        json_format=False,
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
    )
    # Silence third-party libs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def print_summary(data: ProcessedData) -> None:
    """Portfolio panel plus a per-ASIN table ranked by priority."""
    portfolio = data.portfolio
    console.print(Panel.fit(
        f"ASINs processed: [cyan]{portfolio.asins_processed}[/cyan]\n"
        f"Avg rating: [cyan]{portfolio.avg_rating:.1f}[/cyan]   "
        f"Avg price: [cyan]${portfolio.avg_price:.2f}[/cyan]\n"
        f"Total est. daily clicks: [cyan]{portfolio.total_est_clicks:,}[/cyan]\n"
        f"Avg priority score: [cyan]{portfolio.avg_priority_score:.3f}[/cyan]",
        title="Portfolio",
    ))

    table = Table(title=f"Run {data.run_id}", show_header=True, header_style="bold magenta")
    table.add_column("ASIN")
    table.add_column("Label")
    table.add_column("Priority", justify="right")
    table.add_column("Price")
    table.add_column("Clicks Share", justify="right")
    table.add_column("Top Action")

    for item in data.ranked_by_priority():
        insights = item.insights
        table.add_row(
            item.asin,
            item.label,
            f"{insights.priority_score:.3f}",
            str(insights.price_position),
            f"{insights.clicks_share:.0%}",
            insights.actions[0].title if insights.actions else "-",
        )

    console.print(table)

# =============================================================================
# CLI Group
# =============================================================================

@click.group()
@click.version_option(version=__version__)
def cli():
    """ASIN Competitor Insights"""
    pass

# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--output-dir', default=None, help='Custom output directory')
@click.option('--format', 'format_type', type=click.Choice(SUPPORTED_FORMATS), default=None, help='Export format')
@click.option('--offline', is_flag=True, help='Use the deterministic fallback only')
@click.option('--verbose', is_flag=True, help='Detailed logging')
@async_command
async def analyze(file_path: str, output_dir: Optional[str], format_type: Optional[str], offline: bool, verbose: bool):
    """
    Analyze the product URLs in a CSV file.

    FILE_PATH: CSV with a `url` column (optional: label, brand).
    """
    setup_logger(verbose)

    settings = get_settings()
    format_type = format_type or settings.report_format
    target_dir = Path(output_dir) if output_dir else settings.output_dir

    console.print(Panel.fit(f"[bold blue]ASIN Competitor Insights[/bold blue]\nInput: [cyan]{Path(file_path).name}[/cyan]"))

    try:
        async with InsightsPipeline(settings=settings, offline=offline) as pipeline:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                task = progress.add_task("[cyan]Running pipeline...", total=None)

                def update_progress(pct, msg):
                    progress.update(task, description=f"[cyan]{msg} ({pct}%)")

                pipeline.progress_callback = update_progress
                data = await pipeline.run_file(file_path)
                progress.update(task, description="[green]Analysis complete!")

    except PipelineError as e:
        console.print(f"[bold red]Error ({e.kind}):[/bold red] {e.message}")
        if verbose:
            console.print_exception()
        sys.exit(1)

    print_summary(data)

    try:
        path = ReportFormatter(output_dir=target_dir).save(data, format_type)
    except GenerationError as e:
        console.print(f"[bold red]Export failed ({e.kind}):[/bold red] {e.message}")
        sys.exit(2)

    console.print(f"[green]✓[/green] Report written to {path}")


@cli.command()
@click.argument('asin')
@click.option('--url', default=None, help='Originating product URL (used for the product name)')
def fallback(asin: str, url: Optional[str]):
    """
    Print the deterministic fallback metrics for an ASIN as JSON.
    """
    setup_logger(False)

    try:
        bundle = DeterministicFallbackSource().generate(asin, source_url=url)
    except ValueError as e:
        console.print(f"[bold red]Invalid ASIN:[/bold red] {e}")
        sys.exit(1)

    click.echo(bundle.to_json())


@cli.command()
@click.argument('urls', nargs=-1, required=True)
def extract(urls: tuple[str, ...]):
    """
    Show the ASIN and derived product name for each URL.
    """
    setup_logger(False)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("URL")
    table.add_column("ASIN")
    table.add_column("Product Name")

    for url in urls:
        asin = IdentifierExtractor.extract(url)
        name = ProductNameHeuristic.derive_name(url)
        table.add_row(url, asin or "[red]none[/red]", name or "-")

    console.print(table)


@cli.command()
def validate_setup():
    """Show the effective configuration."""
    console.print("[bold]Validating Setup...[/bold]")

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")

    status = "[green]Pass[/green]" if settings.remote_enabled else "[yellow]Offline[/yellow]"
    table.add_row("Metrics Source", status, settings.get_metrics_provider())
    table.add_row("Metrics Endpoint", "[blue]Info[/blue]", settings.metrics_api_url or "not configured")
    table.add_row("Request Timeout", "[blue]Info[/blue]", f"{settings.request_timeout_seconds:g}s")
    table.add_row("Max Concurrency", "[blue]Info[/blue]", str(settings.max_concurrent_requests))
    table.add_row("Output Dir", "[green]Pass[/green]", str(settings.output_dir))
    table.add_row("Report Format", "[blue]Info[/blue]", settings.report_format)
    table.add_row("Environment", "[blue]Info[/blue]", settings.app_env)

    console.print(table)

    if not settings.remote_enabled:
        console.print("\n[yellow]METRICS_API_URL is not set. All metrics will come from the deterministic fallback.[/yellow]")


if __name__ == "__main__":
    cli()
