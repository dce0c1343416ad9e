"""Market Simulator CLI - Main entry point."""

import typer
from typing_extensions import Annotated

from market_simulator import __version__

app = typer.Typer(
    name="market-sim",
    help="Market Simulator - Agent-based token market on a constant-product pool",
    add_completion=True,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from market_simulator.cli.output import console
        console.print(f"[bold]Market Simulator[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Market Simulator CLI."""
    pass


# Import commands after app is defined to avoid circular imports
from market_simulator.cli.commands.run import run_simulation  # noqa: E402
from market_simulator.cli.commands.db import db_app  # noqa: E402
from market_simulator.cli.commands.pool import pool_app  # noqa: E402

app.command(name="run", help="Run a simulation for a fixed wall-clock duration")(run_simulation)
app.add_typer(db_app, name="db")
app.add_typer(pool_app, name="pool")


if __name__ == "__main__":
    app()
