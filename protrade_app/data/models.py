"""
Canonical data models for normalized market data.

This module defines immutable data structures that represent clean, validated
market data after normalization from raw provider formats.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Candle:
    """Normalized OHLCV candle."""
    ts: datetime        # Bar open time
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Ticker:
    """24h ticker for a symbol."""
    symbol: str
    price: float
    change_24h: float = 0.0      # Percent
    volume_24h: float = 0.0
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    ts: Optional[datetime] = None


@dataclass(frozen=True)
class MarketSnapshot:
    """Ticker plus candle history per timeframe for one symbol."""
    symbol: str
    ticker: Ticker
    candles: dict[str, list[Candle]] = field(default_factory=dict)
    synthetic: bool = False

    def closes(self, timeframe: str) -> list[float]:
        return [c.close for c in self.candles.get(timeframe, [])]
