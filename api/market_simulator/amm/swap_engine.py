"""Constant-product swap engine.

``quote`` is a pure read of the pool. ``execute`` serializes the whole
read-compute-commit sequence behind one ``asyncio.Lock`` and commits the
pool, the participant balances and the CONFIRMED transaction in a single
DuckDB transaction with no await points, so a cancelled caller can never
leave a partial swap behind.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from market_simulator.amm.balances import BalanceSource, resolve_balances
from market_simulator.errors import (
    InsufficientBalanceError,
    ParticipantNotFoundError,
    PoolUninitializedError,
    SlippageExceededError,
)
from market_simulator.persistence.models import (
    PoolStateRecord,
    TransactionRecord,
    TransactionStatus,
)
from market_simulator.persistence.store import DEFAULT_POOL_ID

if TYPE_CHECKING:
    from market_simulator.persistence.store import MarketStore

logger = logging.getLogger(__name__)

DEFAULT_SLIPPAGE_TOLERANCE = 1.5
ROLLING_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class SwapQuote:
    """Outcome of a swap computed against the current reserves."""

    input_amount: float
    output_amount: float
    price_impact: float
    effective_price: float
    input_is_sol: bool
    old_price: float
    new_price: float
    new_sol_reserve: float
    new_token_reserve: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_amount": self.input_amount,
            "output_amount": self.output_amount,
            "price_impact": self.price_impact,
            "effective_price": self.effective_price,
            "input_is_sol": self.input_is_sol,
        }


@dataclass(frozen=True)
class SwapResult:
    """A committed swap."""

    transaction_id: str
    participant_id: str
    quote: SwapQuote
    sol_balance: float
    token_balance: float


def compute_quote(
    sol_reserve: float,
    token_reserve: float,
    input_amount: float,
    input_is_sol: bool,
) -> SwapQuote:
    """Apply the constant-product rule to a pair of reserves.

    Price is quoted as SOL per token. Price impact is the absolute relative
    change of that price, in percent.

    Raises:
        ValueError: If input_amount is not positive
        PoolUninitializedError: If either reserve is not positive
    """
    if not input_amount > 0:
        raise ValueError(f"input_amount must be positive, got {input_amount}")
    if sol_reserve <= 0 or token_reserve <= 0:
        raise PoolUninitializedError()

    k = sol_reserve * token_reserve
    if input_is_sol:
        new_sol = sol_reserve + input_amount
        new_token = k / new_sol
        output = token_reserve - new_token
    else:
        new_token = token_reserve + input_amount
        new_sol = k / new_token
        output = sol_reserve - new_sol

    old_price = sol_reserve / token_reserve
    new_price = new_sol / new_token
    price_impact = abs(new_price - old_price) / old_price * 100

    return SwapQuote(
        input_amount=input_amount,
        output_amount=output,
        price_impact=price_impact,
        effective_price=input_amount / output,
        input_is_sol=input_is_sol,
        old_price=old_price,
        new_price=new_price,
        new_sol_reserve=new_sol,
        new_token_reserve=new_token,
    )


class SwapEngine:
    """Converts trade requests into reserve updates against the shared pool.

    Args:
        store: Durable store holding the pool and participants
        balance_source: Optional ledger consulted for eligibility checks
        on_committed: Coroutine function scheduled after every committed swap;
            its failure is logged and never fails the swap
        default_slippage: Tolerance used when the caller passes none
        pool_id: Pool row to operate on
    """

    def __init__(
        self,
        store: MarketStore,
        balance_source: BalanceSource | None = None,
        on_committed: Callable[[], Awaitable[Any]] | None = None,
        default_slippage: float = DEFAULT_SLIPPAGE_TOLERANCE,
        pool_id: str = DEFAULT_POOL_ID,
    ) -> None:
        self._store = store
        self._balance_source = balance_source
        self._on_committed = on_committed
        self._default_slippage = default_slippage
        self._pool_id = pool_id
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def default_slippage(self) -> float:
        return self._default_slippage

    def bootstrap_pool(self, sol_reserve: float, token_reserve: float) -> PoolStateRecord:
        """Create the pool with seed reserves if it does not exist yet."""
        existing = self._store.get_pool(self._pool_id)
        if existing is not None:
            return existing

        now = datetime.now()
        price = sol_reserve / token_reserve
        pool = PoolStateRecord(
            id=self._pool_id,
            sol_reserve=sol_reserve,
            token_reserve=token_reserve,
            constant_product=sol_reserve * token_reserve,
            current_price=price,
            high_24h=price,
            low_24h=price,
            updated_at=now,
        )
        self._store.create_pool(pool)
        logger.info(
            "Initialized liquidity pool %s with %s SOL / %s tokens",
            self._pool_id, sol_reserve, token_reserve,
        )
        return pool

    def get_pool(self) -> PoolStateRecord:
        pool = self._store.get_pool(self._pool_id)
        if pool is None:
            raise PoolUninitializedError(self._pool_id)
        return pool

    def quote(self, input_amount: float, input_is_sol: bool) -> SwapQuote:
        """Quote a swap against the current reserves without mutating state."""
        if not input_amount > 0:
            raise ValueError(f"input_amount must be positive, got {input_amount}")
        pool = self.get_pool()
        return compute_quote(pool.sol_reserve, pool.token_reserve, input_amount, input_is_sol)

    async def execute(
        self,
        participant_id: str,
        input_amount: float,
        input_is_sol: bool,
        slippage_tolerance: float | None = None,
    ) -> SwapResult:
        """Execute a swap for a participant.

        Every failure appends a FAILED transaction record before it is
        re-raised.

        Raises:
            ParticipantNotFoundError: If the participant does not exist
            InsufficientBalanceError: If the input side balance is short
            SlippageExceededError: If price impact exceeds the tolerance
            PoolUninitializedError: If the pool is missing or empty
        """
        tolerance = self._default_slippage if slippage_tolerance is None else slippage_tolerance

        async with self._lock:
            try:
                participant = self._store.get_participant(participant_id)
                if participant is None:
                    raise ParticipantNotFoundError(participant_id)

                sol_balance, token_balance = await resolve_balances(participant, self._balance_source)
                available = sol_balance if input_is_sol else token_balance
                if available < input_amount:
                    raise InsufficientBalanceError(
                        participant_id, input_amount, available, "SOL" if input_is_sol else "token"
                    )

                quote = self.quote(input_amount, input_is_sol)
                if quote.price_impact > tolerance:
                    raise SlippageExceededError(quote.price_impact, tolerance)

                result = self._commit(participant_id, quote, sol_balance, token_balance)
            except Exception as e:
                self._record_failure(participant_id, input_amount, input_is_sol, e)
                raise

        logger.debug(
            "Swap %s for %s: %s %s -> %s (impact %.4f%%)",
            result.transaction_id, participant_id, input_amount,
            "SOL" if input_is_sol else "tokens", quote.output_amount, quote.price_impact,
        )
        self._schedule_refresh()
        return result

    def _commit(
        self,
        participant_id: str,
        quote: SwapQuote,
        sol_balance: float,
        token_balance: float,
    ) -> SwapResult:
        pool = self.get_pool()
        now = datetime.now()
        volume_in_sol = quote.input_amount if quote.input_is_sol else quote.output_amount

        window_expired = pool.last_traded_at is None or now - pool.last_traded_at > ROLLING_WINDOW
        if window_expired:
            volume_24h = volume_in_sol
            high_24h = max(quote.old_price, quote.new_price)
            low_24h = min(quote.old_price, quote.new_price)
        else:
            volume_24h = pool.volume_24h + volume_in_sol
            high_24h = max(pool.high_24h, quote.new_price)
            low_24h = min(pool.low_24h, quote.new_price)

        updated_pool = pool.model_copy(
            update={
                "sol_reserve": quote.new_sol_reserve,
                "token_reserve": quote.new_token_reserve,
                "constant_product": quote.new_sol_reserve * quote.new_token_reserve,
                "current_price": quote.new_price,
                "total_volume": pool.total_volume + volume_in_sol,
                "volume_24h": volume_24h,
                "high_24h": high_24h,
                "low_24h": low_24h,
                "last_traded_at": now,
                "updated_at": now,
            }
        )

        if quote.input_is_sol:
            new_sol = sol_balance - quote.input_amount
            new_token = token_balance + quote.output_amount
        else:
            new_sol = sol_balance + quote.output_amount
            new_token = token_balance - quote.input_amount

        details = {
            "input": quote.input_amount,
            "output": quote.output_amount,
            "input_is_sol": quote.input_is_sol,
            "effective_price": quote.effective_price,
            "old_price": quote.old_price,
            "new_price": quote.new_price,
            "volume_in_sol": volume_in_sol,
            "side": "BUY" if quote.input_is_sol else "SELL",
        }
        tx = TransactionRecord(
            id=str(uuid.uuid4()),
            participant_id=participant_id,
            input_amount=quote.input_amount,
            input_is_sol=quote.input_is_sol,
            output_amount=quote.output_amount,
            price_impact=quote.price_impact,
            status=TransactionStatus.CONFIRMED,
            details=json.dumps(details),
            created_at=now,
        )

        with self._store.transaction():
            self._store.save_pool(updated_pool)
            self._store.update_balances(participant_id, new_sol, new_token)
            self._store.append_transaction(tx)

        return SwapResult(
            transaction_id=tx.id,
            participant_id=participant_id,
            quote=quote,
            sol_balance=new_sol,
            token_balance=new_token,
        )

    def _record_failure(
        self, participant_id: str, input_amount: float, input_is_sol: bool, error: Exception
    ) -> None:
        tx = TransactionRecord(
            id=str(uuid.uuid4()),
            participant_id=participant_id,
            input_amount=input_amount,
            input_is_sol=input_is_sol,
            status=TransactionStatus.FAILED,
            details=json.dumps(
                {"error": str(error), "input_amount": input_amount, "input_is_sol": input_is_sol}
            ),
            created_at=datetime.now(),
        )
        self._store.append_transaction(tx)
        logger.info("Swap failed for %s: %s", participant_id, error)

    def _schedule_refresh(self) -> None:
        if self._on_committed is None:
            return
        task = asyncio.create_task(self._run_refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_refresh(self) -> None:
        try:
            await self._on_committed()  # type: ignore[misc]
        except Exception:
            logger.exception("Market state refresh after swap failed")

    async def wait_idle(self) -> None:
        """Wait for scheduled post-swap refreshes to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
