"""Simulation lifecycle: scheduling, bootstrap, population and reports."""

from .scheduler import ControlResult, PhaseScheduler

__all__ = ["ControlResult", "PhaseScheduler"]
