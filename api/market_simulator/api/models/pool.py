"""Pydantic models for pool endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class PoolResponse(BaseModel):
    """Current pool reserves and statistics."""

    sol_reserve: float
    token_reserve: float
    constant_product: float
    current_price: float
    total_volume: float
    volume_24h: float
    high_24h: float
    low_24h: float
    last_traded_at: datetime | None = None
    updated_at: datetime


class QuoteRequest(BaseModel):
    """Request model for a swap quote."""

    input_amount: float = Field(..., description="Amount offered", gt=0)
    input_is_sol: bool = Field(True, description="True to buy tokens with SOL")


class QuoteResponse(BaseModel):
    """Swap outcome computed against the current reserves."""

    input_amount: float
    output_amount: float
    price_impact: float
    effective_price: float
    input_is_sol: bool


class SwapRequest(BaseModel):
    """Request model for executing a swap on behalf of a participant."""

    participant_id: str = Field(..., description="Participant ID")
    input_amount: float = Field(..., description="Amount offered", gt=0)
    input_is_sol: bool = Field(True, description="True to buy tokens with SOL")
    slippage_tolerance: float | None = Field(None, description="Price impact ceiling (percent)", gt=0)


class SwapResponse(BaseModel):
    """A committed swap with the participant's resulting balances."""

    transaction_id: str
    participant_id: str
    quote: QuoteResponse
    sol_balance: float
    token_balance: float
