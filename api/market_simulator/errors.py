"""Error taxonomy for the market simulator.

Every error carries the structured fields a caller needs to react to it,
plus a human-readable message built from those fields. Per-participant
errors are caught and counted by the dispatcher; only ``UnrecoverableError``
escalates a run to the ERROR state.
"""

from __future__ import annotations


class MarketSimulatorError(Exception):
    """Base class for all simulator errors."""


class InsufficientBalanceError(MarketSimulatorError):
    """Raised when a participant cannot cover the input side of a swap."""

    def __init__(self, participant_id: str, required: float, available: float, asset: str) -> None:
        self.participant_id = participant_id
        self.required = required
        self.available = available
        self.asset = asset
        super().__init__(
            f"Insufficient {asset} balance for {participant_id}: "
            f"required {required}, available {available}"
        )


class SlippageExceededError(MarketSimulatorError):
    """Raised when a quote's price impact exceeds the caller's tolerance."""

    def __init__(self, price_impact: float, tolerance: float) -> None:
        self.price_impact = price_impact
        self.tolerance = tolerance
        super().__init__(
            f"Price impact too high: {price_impact:.2f}% exceeds tolerance of {tolerance}%"
        )


class PoolUninitializedError(MarketSimulatorError):
    """Raised when the liquidity pool is missing or has an empty reserve."""

    def __init__(self, pool_id: str = "default") -> None:
        self.pool_id = pool_id
        super().__init__(f"Liquidity pool not initialized: {pool_id}")


class ParticipantNotFoundError(MarketSimulatorError):
    """Raised when a participant has no durable record."""

    def __init__(self, participant_id: str) -> None:
        self.participant_id = participant_id
        super().__init__(f"Agent {participant_id} not found")


class RateLimitedError(MarketSimulatorError):
    """Raised when the decision oracle throttles a request. Retryable."""

    def __init__(self, message: str = "Rate limited by decision oracle", status_code: int | None = 429) -> None:
        self.status_code = status_code
        super().__init__(message)


class DispatchTimeoutError(MarketSimulatorError):
    """Raised when a dispatched unit of work exceeds its time budget."""

    def __init__(self, participant_id: str, timeout_seconds: float) -> None:
        self.participant_id = participant_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Dispatch for {participant_id} timed out after {timeout_seconds}s")


class UnrecoverableError(MarketSimulatorError):
    """Raised for scheduler-level failures that end the run in ERROR."""
