"""Pool inspection commands."""

from __future__ import annotations

from typing import Annotated

import typer

from market_simulator.amm.swap_engine import SwapEngine
from market_simulator.cli.output import log_error, output_json
from market_simulator.errors import PoolUninitializedError
from market_simulator.persistence.connection import DatabaseManager
from market_simulator.persistence.store import MarketStore

pool_app = typer.Typer(help="Liquidity pool commands")

DbPath = Annotated[str, typer.Option("--db-path", "-d", help="Path to database file")]


@pool_app.command("show")
def pool_show(db_path: DbPath = "market_data.db") -> None:
    """Print the current pool state as JSON."""
    with DatabaseManager(db_path) as manager:
        manager.initialize_schema()
        pool = MarketStore(manager.get_connection()).get_pool()
    if pool is None:
        log_error("Liquidity pool not initialized")
        raise typer.Exit(code=1)
    output_json(pool.model_dump(mode="json"))


@pool_app.command("quote")
def pool_quote(
    amount: Annotated[float, typer.Argument(help="Amount offered")],
    sell: Annotated[
        bool,
        typer.Option("--sell", help="Offer tokens for SOL instead of SOL for tokens"),
    ] = False,
    db_path: DbPath = "market_data.db",
) -> None:
    """Quote a swap against the stored reserves without executing it."""
    with DatabaseManager(db_path) as manager:
        manager.initialize_schema()
        engine = SwapEngine(MarketStore(manager.get_connection()))
        try:
            quote = engine.quote(amount, input_is_sol=not sell)
        except (PoolUninitializedError, ValueError) as e:
            log_error(str(e))
            raise typer.Exit(code=1)
    output_json(quote.to_dict())
