"""
Database Management CLI Commands

Commands for managing the DuckDB persistence layer:
- init: Initialize database schema
- validate: Validate schema against Pydantic models
- info: Show row counts per table
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from market_simulator.persistence.connection import DatabaseManager
from market_simulator.persistence.models import ALL_MODELS

# Create sub-app for database commands
db_app = typer.Typer(help="Database management commands")
console = Console()


@db_app.command("init")
def db_init(
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "market_data.db",
    force: Annotated[
        bool,
        typer.Option("--force", help="Drop and recreate all tables"),
    ] = False,
) -> None:
    """Initialize database schema from Pydantic models."""
    try:
        console.print(f"[yellow]Initializing database at {db_path}...[/yellow]")

        with DatabaseManager(db_path) as manager:
            manager.initialize_schema(force_recreate=force)

        console.print(f"[green]✓ Database initialized at {db_path}[/green]")

    except Exception as e:
        console.print(f"[red]✗ Error initializing database: {e}[/red]")
        raise typer.Exit(code=1)


@db_app.command("validate")
def db_validate(
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "market_data.db",
) -> None:
    """Validate database schema against Pydantic models."""
    try:
        console.print("[yellow]Validating database schema...[/yellow]")
        with DatabaseManager(db_path) as manager:
            is_valid, problems = manager.validate_schema()
    except Exception as e:
        console.print(f"[red]✗ Error validating schema: {e}[/red]")
        raise typer.Exit(code=1)

    if is_valid:
        console.print("[green]✓ Schema validation passed[/green]")
        return

    console.print("[red]✗ Schema validation failed[/red]")
    for table_name, errors in sorted(problems.items()):
        for error in errors:
            console.print(f"  • {table_name}: {error}")
    console.print("[yellow]Run 'market-sim db init --force' to recreate the schema[/yellow]")
    raise typer.Exit(code=1)


@db_app.command("info")
def db_info(
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "market_data.db",
) -> None:
    """Show database information and statistics."""
    try:
        with DatabaseManager(db_path) as manager:
            console.print("[bold cyan]Database Information[/bold cyan]")
            console.print(f"  Path: {db_path}")

            if Path(db_path).exists():
                size_mb = Path(db_path).stat().st_size / (1024 * 1024)
                console.print(f"  Size: {size_mb:.2f} MB")

            console.print("\n[bold]Table Statistics:[/bold]")
            table = Table()
            table.add_column("Table", style="cyan")
            table.add_column("Row Count", justify="right", style="magenta")

            existing = {
                row[0]
                for row in manager.conn.execute(
                    "SELECT table_name FROM information_schema.tables"
                ).fetchall()
            }
            for model in ALL_MODELS:
                table_name = model.model_config.get("table_name")
                if table_name not in existing:
                    table.add_row(table_name, "[dim]N/A[/dim]")
                    continue
                result = manager.conn.execute(f"SELECT COUNT(*) FROM {table_name}").fetchone()
                table.add_row(table_name, f"{result[0] if result else 0:,}")

            console.print(table)

    except Exception as e:
        console.print(f"[red]✗ Error getting database info: {e}[/red]")
        raise typer.Exit(code=1)
