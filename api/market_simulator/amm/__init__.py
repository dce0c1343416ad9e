"""Constant-product liquidity pool."""

from .balances import BalanceSource, InMemoryBalanceSource, resolve_balances
from .swap_engine import SwapEngine, SwapQuote, SwapResult, compute_quote

__all__ = [
    "BalanceSource",
    "InMemoryBalanceSource",
    "SwapEngine",
    "SwapQuote",
    "SwapResult",
    "compute_quote",
    "resolve_balances",
]
