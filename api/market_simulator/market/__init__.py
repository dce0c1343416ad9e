"""Market statistics and the social message feed."""

from .data import MarketDataService
from .models import MarketSnapshot, Sentiment

__all__ = ["MarketDataService", "MarketSnapshot", "Sentiment"]
