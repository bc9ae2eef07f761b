"""Market-wide context shared by signal generation and exit planning"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MarketRegime(str, Enum):
    """Broad market regime."""
    BULL = "BULL"
    BEAR = "BEAR"
    SIDEWAYS = "SIDEWAYS"
    UNKNOWN = "UNKNOWN"


class Sentiment(str, Enum):
    """Aggregate market sentiment label."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"
    FEARFUL = "FEARFUL"


class Trend(str, Enum):
    """Direction of a price series."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class MarketContext:
    """Snapshot of the market regime at signal time"""
    regime: MarketRegime = MarketRegime.SIDEWAYS
    confidence: float = 50.0
    sentiment: Sentiment = Sentiment.NEUTRAL
    fear_greed: float = 50.0
    volatility: str = "MEDIUM"
    bull_score: float = 0.0
    bear_score: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "regime": self.regime.value,
            "confidence": self.confidence,
            "sentiment": self.sentiment.value,
            "fear_greed": self.fear_greed,
            "volatility": self.volatility,
            "bull_score": self.bull_score,
            "bear_score": self.bear_score,
        }
        data.update(self.extra)
        return data
