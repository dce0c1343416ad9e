"""Router for simulation control endpoints.

Handles the run lifecycle: start, stop, pause, resume, speed and status.
Endpoints are coroutines so the scheduler and its DuckDB connection are
only touched from the event loop.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from market_simulator.api.dependencies import get_scheduler
from market_simulator.api.models import ControlResponse, SpeedRequest
from market_simulator.config.schemas import SimulationConfig
from market_simulator.simulation.scheduler import ControlResult, PhaseScheduler

router = APIRouter(prefix="/simulation", tags=["simulation"])


def _respond(result: ControlResult, failure_status: int = 409) -> ControlResponse:
    if not result.success:
        raise HTTPException(status_code=failure_status, detail=result.message)
    return ControlResponse(**result.to_dict())


@router.post("/start", response_model=ControlResponse)
async def start_simulation(
    config: dict[str, Any] | None = Body(None),
    scheduler: PhaseScheduler = Depends(get_scheduler),
) -> ControlResponse:
    """Start a run, optionally with a configuration overriding the defaults."""
    try:
        parsed = SimulationConfig.from_dict(config) if config else None
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return _respond(await scheduler.start(parsed))


@router.post("/stop", response_model=ControlResponse)
async def stop_simulation(scheduler: PhaseScheduler = Depends(get_scheduler)) -> ControlResponse:
    return _respond(await scheduler.stop())


@router.post("/pause", response_model=ControlResponse)
async def pause_simulation(scheduler: PhaseScheduler = Depends(get_scheduler)) -> ControlResponse:
    return _respond(await scheduler.pause())


@router.post("/resume", response_model=ControlResponse)
async def resume_simulation(scheduler: PhaseScheduler = Depends(get_scheduler)) -> ControlResponse:
    return _respond(await scheduler.resume())


@router.post("/speed", response_model=ControlResponse)
async def set_speed(
    request: SpeedRequest,
    scheduler: PhaseScheduler = Depends(get_scheduler),
) -> ControlResponse:
    """Change the speed multiplier; values outside (0, 10] are rejected with 400."""
    return _respond(await scheduler.set_speed(request.speed), failure_status=400)


@router.get("/status", response_model=ControlResponse)
async def get_status(scheduler: PhaseScheduler = Depends(get_scheduler)) -> ControlResponse:
    return _respond(scheduler.status())
