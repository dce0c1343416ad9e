"""Router for liquidity pool endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from market_simulator.amm.swap_engine import SwapEngine
from market_simulator.api.dependencies import get_swap_engine
from market_simulator.api.models import (
    PoolResponse,
    QuoteRequest,
    QuoteResponse,
    SwapRequest,
    SwapResponse,
)
from market_simulator.errors import (
    InsufficientBalanceError,
    ParticipantNotFoundError,
    PoolUninitializedError,
    SlippageExceededError,
)

router = APIRouter(prefix="/pool", tags=["pool"])


@router.get("", response_model=PoolResponse)
async def get_pool(engine: SwapEngine = Depends(get_swap_engine)) -> PoolResponse:
    try:
        pool = engine.get_pool()
    except PoolUninitializedError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return PoolResponse(**pool.model_dump(exclude={"id"}))


@router.post("/quote", response_model=QuoteResponse)
async def quote_swap(
    request: QuoteRequest,
    engine: SwapEngine = Depends(get_swap_engine),
) -> QuoteResponse:
    """Quote a swap without changing any state."""
    try:
        quote = engine.quote(request.input_amount, request.input_is_sol)
    except PoolUninitializedError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return QuoteResponse(**quote.to_dict())


@router.post("/swap", response_model=SwapResponse)
async def execute_swap(
    request: SwapRequest,
    engine: SwapEngine = Depends(get_swap_engine),
) -> SwapResponse:
    """Execute a swap for a participant.

    Rejections are recorded as FAILED transactions and returned as
    400 (balance, slippage) or 404 (participant, pool).
    """
    try:
        result = await engine.execute(
            request.participant_id,
            request.input_amount,
            request.input_is_sol,
            request.slippage_tolerance,
        )
    except (ParticipantNotFoundError, PoolUninitializedError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (InsufficientBalanceError, SlippageExceededError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return SwapResponse(
        transaction_id=result.transaction_id,
        participant_id=result.participant_id,
        quote=QuoteResponse(**result.quote.to_dict()),
        sol_balance=result.sol_balance,
        token_balance=result.token_balance,
    )
