"""Run command - Execute a simulation for a fixed wall-clock duration."""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from market_simulator.cli.output import (
    log_error,
    log_info,
    log_report,
    log_status,
    log_success,
    log_warning,
    output_json,
    output_jsonl,
)
from market_simulator.config import SimulationConfig, ValidationError, load_config


def _apply_overrides(
    config: SimulationConfig,
    seed: Optional[int],
    speed: Optional[float],
    local: bool,
) -> SimulationConfig:
    data = config.model_dump()
    if seed is not None:
        data["rng_seed"] = seed
    if speed is not None:
        data["speed"] = speed
    if local:
        data["oracle"]["mode"] = "local"
    return SimulationConfig.from_dict(data)


async def _run(
    config: SimulationConfig,
    db_path: str,
    duration: float,
    status_interval: float,
    stream: bool,
    quiet: bool,
) -> dict[str, Any]:
    from market_simulator.runtime import SimulationRuntime

    runtime = SimulationRuntime(config, db_path=db_path)
    try:
        result = await runtime.scheduler.start()
        if not result.success:
            raise RuntimeError(result.message)
        log_success(f"Run {result.data['run_id']} started", quiet)

        deadline = time.monotonic() + duration
        while (remaining := deadline - time.monotonic()) > 0:
            await asyncio.sleep(min(status_interval, remaining))
            polled = runtime.scheduler.status()
            if not polled.success:
                log_warning(polled.message, quiet)
                continue
            status = polled.data
            log_status(status, quiet)
            if stream:
                output_jsonl(status)
            if status["status"] in ("PAUSED", "ERROR"):
                log_warning(f"Run is {status['status']}; stopping early", quiet)
                break

        stopped = await runtime.scheduler.stop()
        report = runtime.store.latest_report(stopped.data["run_id"])
        return json.loads(report.payload) if report else {}
    finally:
        await runtime.shutdown()


def run_simulation(
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Configuration file (YAML)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    duration: Annotated[
        float,
        typer.Option("--duration", "-t", help="Wall-clock seconds to run before stopping"),
    ] = 60.0,
    seed: Annotated[
        Optional[int],
        typer.Option("--seed", "-s", help="Override RNG seed"),
    ] = None,
    speed: Annotated[
        Optional[float],
        typer.Option("--speed", help="Override speed multiplier (0, 10]"),
    ] = None,
    local: Annotated[
        bool,
        typer.Option("--local", help="Use local rule-based agents instead of the LLM oracle"),
    ] = False,
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "market_data.db",
    status_interval: Annotated[
        float,
        typer.Option("--status-interval", help="Seconds between status lines"),
    ] = 5.0,
    stream: Annotated[
        bool,
        typer.Option("--stream", help="Stream status snapshots as JSONL"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress logs (stdout only)"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show library log records on stderr"),
    ] = False,
) -> None:
    """Run a simulation and print the final report as JSON."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        sim_config = load_config(config) if config else SimulationConfig()
        sim_config = _apply_overrides(sim_config, seed, speed, local)
    except (ValueError, ValidationError) as e:
        log_error(f"Invalid configuration: {e}")
        raise typer.Exit(code=1)

    log_info(
        f"Running {sim_config.population_size} {sim_config.oracle.mode} participants "
        f"for {duration:g}s at {sim_config.speed:g}x",
        quiet,
    )

    try:
        report = asyncio.run(_run(sim_config, db_path, duration, status_interval, stream, quiet))
    except KeyboardInterrupt:
        log_warning("Interrupted", quiet)
        raise typer.Exit(code=130)
    except Exception as e:
        log_error(f"Simulation failed: {e}")
        raise typer.Exit(code=1)

    if report:
        log_report(report, quiet)
    output_json(report)
