"""Pydantic models for market and report endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class MessageItem(BaseModel):
    participant_id: str | None
    content: str
    sentiment: str
    created_at: datetime


class MessagesResponse(BaseModel):
    messages: list[MessageItem]


class ReportResponse(BaseModel):
    """A stored simulation report."""

    report_id: str
    run_id: str
    is_final: bool
    created_at: datetime
    report: dict[str, Any]
