"""Pydantic request/response models for API endpoints."""

from .market import MessageItem, MessagesResponse, ReportResponse
from .pool import PoolResponse, QuoteRequest, QuoteResponse, SwapRequest, SwapResponse
from .simulation import ControlResponse, SpeedRequest

__all__ = [
    "ControlResponse",
    "MessageItem",
    "MessagesResponse",
    "PoolResponse",
    "QuoteRequest",
    "QuoteResponse",
    "ReportResponse",
    "SpeedRequest",
    "SwapRequest",
    "SwapResponse",
]
