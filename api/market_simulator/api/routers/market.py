"""Router for market statistics, the message feed and reports."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, Query

from market_simulator.api.dependencies import get_market, get_store
from market_simulator.api.models import MessageItem, MessagesResponse, ReportResponse
from market_simulator.errors import PoolUninitializedError
from market_simulator.market.data import MarketDataService
from market_simulator.market.models import MarketSnapshot, Sentiment
from market_simulator.persistence.store import MarketStore

router = APIRouter(tags=["market"])


@router.get("/market", response_model=MarketSnapshot)
async def get_market_info(market: MarketDataService = Depends(get_market)) -> MarketSnapshot:
    try:
        return market.get_market_info()
    except PoolUninitializedError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/market/sentiment", response_model=Sentiment)
async def get_market_sentiment(market: MarketDataService = Depends(get_market)) -> Sentiment:
    return market.get_market_sentiment()


@router.get("/market/messages", response_model=MessagesResponse)
async def get_messages(
    limit: int = Query(30, ge=1, le=500),
    market: MarketDataService = Depends(get_market),
) -> MessagesResponse:
    """Most recent feed messages, newest first."""
    return MessagesResponse(
        messages=[
            MessageItem(
                participant_id=m.participant_id,
                content=m.content,
                sentiment=m.sentiment,
                created_at=m.created_at,
            )
            for m in market.recent_messages(limit)
        ]
    )


@router.get("/reports/latest", response_model=ReportResponse)
async def get_latest_report(
    run_id: str | None = Query(None, description="Restrict to one run"),
    store: MarketStore = Depends(get_store),
) -> ReportResponse:
    record = store.latest_report(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail="No report has been written yet")
    return ReportResponse(
        report_id=record.id,
        run_id=record.run_id,
        is_final=record.is_final,
        created_at=record.created_at,
        report=json.loads(record.payload),
    )
