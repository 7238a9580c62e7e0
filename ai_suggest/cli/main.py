"""
CLI interface for AI Suggest.

Provides command-line access to suggestions, usage stats and context.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ai_suggest.config.loader import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    ConfigurationError,
    default_config_yaml,
    load_config,
)
from ai_suggest.core.context import build_snapshot
from ai_suggest.core.governor import UsageGovernor
from ai_suggest.core.pricing import ModelPricing
from ai_suggest.core.prompt import summarize
from ai_suggest.core.service import SuggestionOutcome, SuggestionService
from ai_suggest.storage.cache import SuggestionCache
from ai_suggest.storage.store import PersistentStore

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_state = {"config_path": None}


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    ),
):
    """AI Suggest CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["config_path"] = config
    if ctx.invoked_subcommand is None:
        console.print("AI Suggest - Use --help to see available commands")


def _load(require_credentials: bool) -> AppConfig:
    """Load configuration or exit with a diagnostic."""
    try:
        return load_config(_state["config_path"], require_credentials=require_credentials)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


def _governor(config: AppConfig) -> UsageGovernor:
    return UsageGovernor(
        PersistentStore(config.usage.path),
        daily_limit=config.usage.daily_limit,
        cooldown_seconds=config.usage.cooldown_seconds,
        pricing=ModelPricing.from_rates(
            config.usage.input_cost_per_million,
            config.usage.output_cost_per_million,
        ),
    )


@app.command()
def init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write a starter configuration file."""
    path = Path(_state["config_path"] or DEFAULT_CONFIG_PATH).expanduser()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists:[/] {path} (use --force to overwrite)")
        sys.exit(EXIT_CODE_FAIL)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default_config_yaml(), encoding='utf-8')
    except OSError as e:
        console.print(f"[red]Error writing config:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Wrote configuration to {path}")


@app.command()
def suggest(
    text: str = typer.Argument(..., help="Partial command to complete"),
    cwd: Optional[str] = typer.Option(
        None,
        "--cwd",
        help="Directory to use as context (default: current directory)"
    ),
    history: Optional[List[str]] = typer.Option(
        None,
        "--history",
        "-H",
        help="Recently executed command, oldest first (repeatable)"
    ),
):
    """Suggest a completion for TEXT."""
    config = _load(require_credentials=True)
    service = SuggestionService.from_config(config, cwd=cwd)
    try:
        for command in history or []:
            service.record_executed_command(command)
        result = service.resolve(text)
    finally:
        service.close()

    if result.suggestion is None:
        console.print(f"[dim]No suggestion ({result.outcome.value})[/]")
        sys.exit(EXIT_CODE_PASS)  # An empty result is not an error

    source = "cache" if result.outcome == SuggestionOutcome.CACHE_HIT else result.outcome.value
    console.print(f"{escape(result.suggestion)} [dim]({source})[/]")


@app.command()
def stats():
    """Show usage statistics."""
    config = _load(require_credentials=False)
    usage = _governor(config).get_stats()

    table = Table(title="Usage Statistics")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total requests", str(usage.total_requests))
    table.add_row("Daily requests", f"{usage.daily_requests}/{usage.daily_limit}")
    table.add_row("Cache hits", str(usage.cached_hits))
    table.add_row("Cache hit rate", f"{usage.cache_hit_rate * 100:.1f}%")
    table.add_row("Estimated cost", f"${usage.estimated_cost:.6f}")
    console.print(table)


@app.command()
def context(
    cwd: Optional[str] = typer.Option(
        None,
        "--cwd",
        help="Directory to inspect (default: current directory)"
    ),
):
    """Show the context used to enrich suggestions."""
    config = _load(require_credentials=False)
    snapshot = build_snapshot(
        cwd,
        max_entries=config.context.max_directory_entries,
        probe_timeout=config.context.probe_timeout_seconds,
    )
    summary = summarize(snapshot, config.context.prompt_recent_commands)

    console.print("\n[bold]Current Context[/bold]")
    console.print("-" * 40)
    console.print(summary.display_line())
    console.print(f"Path: {summary.full_path}")
    console.print(f"Project type: {summary.project_type}")


@app.command("clear-cache")
def clear_cache():
    """Remove all cached suggestions."""
    config = _load(require_credentials=False)
    cache = SuggestionCache(
        PersistentStore(config.cache.path),
        ttl_seconds=config.cache.ttl_seconds,
        max_entries=config.cache.max_entries,
        enabled=True,
    )
    cache.clear()
    console.print("[green]✓[/] Suggestion cache cleared")


@app.command("reset-usage")
def reset_usage():
    """Reset usage statistics to zero."""
    config = _load(require_credentials=False)
    _governor(config).reset()
    console.print("[green]✓[/] Usage statistics reset")


if __name__ == "__main__":
    app()
