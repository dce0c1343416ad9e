"""Value objects describing the market as participants see it."""

from pydantic import BaseModel, Field


class MarketSnapshot(BaseModel):
    """Current pool price and derived statistics."""

    price: float = Field(..., description="SOL per token")
    liquidity: float = Field(..., description="Two times the SOL reserve")
    volume_24h: float = Field(0.0, description="Confirmed SOL volume in the last 24h")
    price_change_24h: float = Field(0.0, description="Percent change against the previous snapshot")
    sol_reserve: float = Field(...)
    token_reserve: float = Field(...)


class Sentiment(BaseModel):
    """Share of bullish and bearish messages among recent chatter."""

    bullish: float = Field(0.5, ge=0, le=1)
    bearish: float = Field(0.5, ge=0, le=1)
    neutral: float = Field(0.0, ge=0, le=1)
    message_count: int = Field(0, ge=0)
