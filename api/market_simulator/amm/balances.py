"""Ledger balance lookups with fallback to stored balances."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from market_simulator.persistence.models import ParticipantRecord

logger = logging.getLogger(__name__)

SOL_ASSET_ID = "SOL"
TOKEN_ASSET_ID = "TOKEN"


@runtime_checkable
class BalanceSource(Protocol):
    """Authoritative balance lookup, e.g. an on-chain ledger."""

    async def get_balance(self, address: str, asset_id: str) -> float:
        """Return the balance of ``asset_id`` held at ``address``."""
        ...


class InMemoryBalanceSource:
    """Balance source backed by a dict keyed on (address, asset_id).

    Used for offline runs where the ledger is simulated.
    """

    def __init__(self, balances: dict[tuple[str, str], float] | None = None) -> None:
        self._balances = dict(balances or {})

    def set_balance(self, address: str, asset_id: str, amount: float) -> None:
        self._balances[(address, asset_id)] = amount

    async def get_balance(self, address: str, asset_id: str) -> float:
        try:
            return self._balances[(address, asset_id)]
        except KeyError:
            raise LookupError(f"No {asset_id} balance for {address}") from None


async def resolve_balances(
    participant: ParticipantRecord,
    source: BalanceSource | None,
) -> tuple[float, float]:
    """Return (sol, token) balances for a participant.

    The ledger is consulted only when a source is configured and the
    participant has a wallet address. Any ledger failure falls back to the
    stored balances.
    """
    if source is None or not participant.wallet_address:
        return participant.sol_balance, participant.token_balance

    try:
        sol = await source.get_balance(participant.wallet_address, SOL_ASSET_ID)
        token = await source.get_balance(participant.wallet_address, TOKEN_ASSET_ID)
    except Exception as e:
        logger.warning(
            "Ledger lookup failed for %s, using stored balances: %s", participant.id, e
        )
        return participant.sol_balance, participant.token_balance

    return float(sol), float(token)
