"""Output formatting utilities for CLI.

stdout carries machine-readable data (JSON, JSONL); stderr carries
human-readable logs, so results can be piped while progress stays visible.
"""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

# stderr console for human logs (preserves colors when redirected)
console = Console(stderr=True)


def output_json(data: Any, indent: Optional[int] = 2):
    """Output JSON to stdout (machine-readable).

    Args:
        data: Data to serialize as JSON
        indent: Indentation level (None for compact)
    """
    print(json.dumps(data, indent=indent, default=str), flush=True)


def output_jsonl(data: Any):
    """Output one JSON object per line to stdout."""
    print(json.dumps(data, default=str), flush=True)


def log_info(message: str, quiet: bool = False):
    if not quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def log_success(message: str, quiet: bool = False):
    if not quiet:
        console.print(f"[green]✓[/green] {message}")


def log_error(message: str):
    """Log error message to stderr (always shown)."""
    console.print(f"[red]✗[/red] {message}", style="bold red")


def log_warning(message: str, quiet: bool = False):
    if not quiet:
        console.print(f"[yellow]⚠[/yellow] {message}")


def log_status(status: dict[str, Any], quiet: bool = False):
    """Render a one-line run status with price and phase progress."""
    if quiet:
        return
    market = status.get("market") or {}
    price = market.get("price")
    price_text = f"{price:.8f} SOL" if price is not None else "n/a"
    console.print(
        f"[dim]{status['status']}[/dim] [bold]{status['phase']}[/bold] "
        f"{status['phase_progress'] * 100:5.1f}% │ price {price_text} │ "
        f"active {status['active_agents']} │ resident {status['resident_instances']}"
    )


def log_report(report: dict[str, Any], quiet: bool = False):
    """Render a simulation report as a table."""
    if quiet:
        return
    tx = report["transactions"]
    table = Table(title=f"Run {report['run_id']}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="magenta")
    table.add_row("Status", report["status"])
    table.add_row("Participants", f"{report['total_agents']:,}")
    table.add_row("Active", f"{report['active_agents']:,}")
    table.add_row("Transactions", f"{tx['total']:,}")
    table.add_row("Confirmed", f"{tx['completed']:,}")
    table.add_row("Failed", f"{tx['failed']:,}")
    table.add_row("Success rate", f"{tx['success_rate'] * 100:.1f}%")
    pool = report.get("pool")
    if pool:
        table.add_row("Price", f"{pool['price']:.8f}")
        table.add_row("Volume (SOL)", f"{pool['total_volume']:.2f}")
    for personality, count in sorted(report["messages_by_personality"].items()):
        table.add_row(f"Messages: {personality}", f"{count:,}")
    console.print(table)
