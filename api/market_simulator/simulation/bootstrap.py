"""One-time opening activity so a fresh run is not observably empty."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from market_simulator.dispatch.dispatcher import Activity
from market_simulator.errors import MarketSimulatorError
from market_simulator.market.messages import TOKEN_SYMBOL

if TYPE_CHECKING:
    from market_simulator.amm.swap_engine import SwapEngine
    from market_simulator.config.schemas import BootstrapConfig
    from market_simulator.dispatch.dispatcher import BatchDispatcher
    from market_simulator.market.data import MarketDataService
    from market_simulator.persistence.store import MarketStore

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Welcome to the market! The trading simulation is starting."
MESSAGE_THRESHOLD = 10
TRANSACTION_THRESHOLD = 5


@dataclass
class BootstrapSummary:
    skipped: bool = False
    welcome_posted: bool = False
    analyses: int = 0
    messages: int = 0
    trades: int = 0


async def run_bootstrap(
    config: BootstrapConfig,
    store: MarketStore,
    market: MarketDataService,
    swap_engine: SwapEngine,
    dispatcher: BatchDispatcher,
    rng: random.Random,
) -> BootstrapSummary:
    """Seed opening messages and trades.

    Skipped when the store already holds more than 10 messages and more
    than 5 transactions. Per-participant failures are logged and skipped.
    """
    summary = BootstrapSummary()
    message_count = store.count_messages()
    transaction_count = store.transaction_stats()["total"]
    if not config.enabled or (message_count > MESSAGE_THRESHOLD and transaction_count > TRANSACTION_THRESHOLD):
        logger.info("Skipping bootstrap (%d messages, %d transactions)", message_count, transaction_count)
        summary.skipped = True
        return summary

    if message_count == 0:
        market.post_message(None, WELCOME_MESSAGE, "neutral")
        summary.welcome_posted = True

    dispatcher.refresh_window()
    initial = dispatcher.window.prefix(config.participants)
    if not initial:
        logger.info("Bootstrap found no active participants")
        return summary

    report = await dispatcher.dispatch(Activity.ANALYSIS, len(initial))
    summary.analyses = report.succeeded + report.fallbacks

    price = market.get_market_info().price
    for participant_id in initial:
        sentiment = "positive" if rng.random() > 0.5 else "neutral"
        market.post_message(
            participant_id,
            f"I'm looking at the {TOKEN_SYMBOL} market. Price is sitting at {price:.6f} SOL.",
            sentiment,
        )
        summary.messages += 1

    for participant_id in initial[: config.trades]:
        amount = rng.uniform(config.min_trade, config.max_trade)
        try:
            await swap_engine.execute(participant_id, amount, True, config.slippage)
        except MarketSimulatorError as e:
            logger.warning("Bootstrap trade failed for %s: %s", participant_id, e)
            continue
        market.post_message(
            participant_id,
            f"Just bought some {TOKEN_SYMBOL}. I like the opening price.",
            "positive",
        )
        summary.trades += 1

    logger.info(
        "Bootstrap complete: %d analyses, %d messages, %d trades",
        summary.analyses, summary.messages, summary.trades,
    )
    return summary
