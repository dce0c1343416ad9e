"""Classification of provider throttling errors."""

from __future__ import annotations

from market_simulator.errors import MarketSimulatorError, RateLimitedError

RATE_LIMIT_MARKERS = ("429", "rate limit", "rate_limit", "quota", "too many requests")


def is_rate_limit_error(error: BaseException) -> bool:
    """Return True when an error signals provider throttling.

    Recognizes RateLimitedError, any error exposing ``status_code == 429``
    (e.g. pydantic_ai's ModelHTTPError) and messages containing a known marker.
    Our own errors other than RateLimitedError are never throttling; their
    messages carry ids and amounts that can contain a marker.
    """
    if isinstance(error, RateLimitedError):
        return True
    if isinstance(error, MarketSimulatorError):
        return False
    if getattr(error, "status_code", None) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def as_rate_limited(error: BaseException) -> RateLimitedError:
    """Wrap a throttling error in RateLimitedError, keeping its message."""
    if isinstance(error, RateLimitedError):
        return error
    return RateLimitedError(str(error), status_code=getattr(error, "status_code", 429))
