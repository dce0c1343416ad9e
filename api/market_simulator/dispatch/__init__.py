"""Batch dispatch of participant actions with adaptive backoff."""

from .backoff import BackoffState
from .dispatcher import Activity, BatchDispatcher, DispatchReport
from .window import ActiveWindow

__all__ = ["Activity", "ActiveWindow", "BackoffState", "BatchDispatcher", "DispatchReport"]
