
"""
CLI interface for Funnel Lab.

Provides command-line access to the analysis pipeline and its ledgers.
"""

import sys
from decimal import Decimal
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from funnel_lab.config.loader import AppSettings, load_settings
from funnel_lab.core.cache import compute_key
from funnel_lab.core.pipeline import RequestPipeline
from funnel_lab.demo.seed_demo_data import seed_demo_data
from funnel_lab.logging_config import setup_logging
from funnel_lab.storage.repository import UsageRepository, fetch_error_logs, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_state = {"config": None}


def _settings() -> AppSettings:
    try:
        settings = load_settings(_state["config"])
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)
    setup_logging(settings.logging.level, settings.logging.json)
    return settings


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML settings file (defaults to $FUNNEL_LAB_CONFIG)"
    )
):
    """Funnel Lab CLI."""
    _state["config"] = config
    if ctx.invoked_subcommand is None:
        console.print("Funnel Lab - Use --help to see available commands")


@app.command()
def init():
    """Initialize the Funnel Lab database."""
    settings = _settings()
    try:
        initialize_schema(settings.db_path)
        console.print(f"[green]✓[/] Database initialized at {settings.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("seed-demo")
def seed_demo():
    """Insert demo plans, AI configurations, a subscribed user and a token."""
    settings = _settings()
    try:
        token = seed_demo_data(settings.db_path)
    except Exception as e:
        console.print(f"[red]Error seeding demo data:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print("[green]✓[/] Demo data inserted")
    console.print(f"Bearer token: [bold]{token}[/]")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on")
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from funnel_lab.api.app import create_app

    settings = _settings()
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


@app.command()
def analyze(
    ad_text: str = typer.Option(..., "--ad", "-a", help="Ad copy to analyze"),
    landing_page_text: str = typer.Option(..., "--page", "-l", help="Landing page copy"),
    token: str = typer.Option(..., "--token", "-t", help="Bearer token of the requesting user")
):
    """
    Run one funnel analysis through the full pipeline.

    Goes through authentication, plan checks, the cache and the provider
    exactly as an HTTP request would.
    """
    settings = _settings()
    initialize_schema(settings.db_path)
    pipeline = RequestPipeline(settings)

    result = pipeline.handle(
        f"Bearer {token}",
        {"adText": ad_text, "landingPageText": landing_page_text}
    )
    if result.status_code != 200:
        console.print(f"[red]Error ({result.status_code}):[/] {result.body['error']}")
        sys.exit(EXIT_CODE_FAIL)

    _display_analysis(result.body, result.cache_hit)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(
    service: Optional[str] = typer.Option(None, "--service", "-s", help="Filter by service type"),
    days: int = typer.Option(30, "--days", "-d", help="Days included in the totals"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent calls to list")
):
    """Show recent provider calls and usage totals."""
    settings = _settings()
    repository = UsageRepository(settings.db_path)
    try:
        metrics = repository.get_recent_metrics(service_type=service, limit=limit)
        stats = repository.get_usage_stats(service_type=service, days=days)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        console.print("Run `funnel-lab init` to initialize the database")
        sys.exit(EXIT_CODE_FAIL)

    if not metrics:
        console.print("\n[bold yellow]No AI usage recorded yet[/]\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Recent AI calls")
    table.add_column("Time")
    table.add_column("User")
    table.add_column("Model")
    table.add_column("Tokens in", justify="right")
    table.add_column("Tokens out", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Latency", justify="right")
    table.add_column("Status")
    for metric in metrics:
        table.add_row(
            metric.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            metric.user_id,
            metric.model_name,
            str(metric.tokens_input),
            str(metric.tokens_output),
            _format_currency(metric.estimated_cost),
            f"{metric.response_time_ms} ms",
            "[green]ok[/]" if metric.success else f"[red]{metric.error_type or 'failed'}[/]"
        )
    console.print(table)

    console.print(f"\n[bold]Last {days} days[/bold]")
    console.print(f"Requests: {stats['total_requests']} "
                  f"({stats['successful_requests']} ok, {stats['failed_requests']} failed)")
    console.print(f"Tokens: {stats['total_tokens']:,}")
    console.print(f"Estimated cost: {_format_currency(stats['total_cost'])}")
    console.print(f"Average latency: {stats['avg_response_time_ms']:.0f} ms")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def errors(
    include_resolved: bool = typer.Option(False, "--all", help="Include resolved entries"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum entries to list")
):
    """List deduplicated error-log entries."""
    settings = _settings()
    try:
        entries = fetch_error_logs(include_resolved=include_resolved, limit=limit, db_path=settings.db_path)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not entries:
        console.print("[green]✓[/] No open errors")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Error log")
    table.add_column("Type")
    table.add_column("Message", overflow="fold")
    table.add_column("Count", justify="right")
    table.add_column("First seen")
    table.add_column("Last seen")
    for entry in entries:
        table.add_row(
            entry.error_type,
            entry.error_message,
            str(entry.frequency),
            entry.first_occurrence.strftime("%Y-%m-%d %H:%M:%S"),
            entry.last_occurrence.strftime("%Y-%m-%d %H:%M:%S")
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command("cache-key")
def cache_key(
    ad_text: str = typer.Argument(..., help="Ad copy"),
    landing_page_text: str = typer.Argument(..., help="Landing page copy")
):
    """Print the cache key used for an ad / landing page pair."""
    settings = _settings()
    typer.echo(compute_key([ad_text, landing_page_text], prefix=settings.cache.key_prefix))
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: Decimal) -> str:
    """Format currency with the full six-decimal precision of the ledger."""
    return f"${amount:,.6f}"


def _display_analysis(body: dict, cache_hit: bool):
    """Display an analysis in a readable layout."""
    console.print("\n[bold]Funnel Analysis Result[/bold]" + (" [dim](cached)[/]" if cache_hit else ""))
    console.print("-" * 40)
    console.print(f"Coherence score: [bold]{body['funnelCoherenceScore']}[/] / 10")
    console.print(f"\n[bold]Ad diagnosis:[/bold] {body['adDiagnosis']}")
    console.print(f"\n[bold]Landing page diagnosis:[/bold] {body['landingPageDiagnosis']}")
    console.print("\n[bold]Suggestions:[/bold]")
    for i, suggestion in enumerate(body["syncSuggestions"], 1):
        console.print(f"  {i}. {suggestion}")
    console.print(f"\n[bold]Optimized ad:[/bold] {body['optimizedAd']}")
    console.print()


if __name__ == "__main__":
    app()
