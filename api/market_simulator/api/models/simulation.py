"""Pydantic models for simulation control endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class ControlResponse(BaseModel):
    """Outcome of a control operation."""

    success: bool
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class SpeedRequest(BaseModel):
    """Request model for changing the speed multiplier."""

    speed: float = Field(..., description="Speed multiplier in (0, 10]")
