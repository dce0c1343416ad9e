"""FastAPI application for Market Simulator."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from market_simulator import __version__
from market_simulator.api.dependencies import container
from market_simulator.api.routers import market_router, pool_router, simulation_router
from market_simulator.config import SimulationConfig, load_config

DB_PATH_ENV = "MARKET_SIM_DB_PATH"
CONFIG_ENV = "MARKET_SIM_CONFIG"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for startup/shutdown."""
    from market_simulator.runtime import SimulationRuntime

    owned = None
    if container.runtime is None:
        config_path = os.environ.get(CONFIG_ENV)
        config = load_config(config_path) if config_path else SimulationConfig()
        owned = SimulationRuntime(config, db_path=os.environ.get(DB_PATH_ENV, "market_data.db"))
        container.runtime = owned

    yield

    # Shutdown: stop the run and close the database we opened
    if owned is not None:
        await owned.shutdown()
        container.clear_all()


app = FastAPI(
    title="Market Simulator API",
    description="REST API for the agent-based token market simulation",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(simulation_router)
app.include_router(pool_router)
app.include_router(market_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}
