"""Data models for AI opinions and their consensus"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Recommendation(str, Enum):
    """Discrete trade recommendation, ordered from most bearish to most bullish."""
    STRONG_SELL = "STRONG_SELL"
    SELL = "SELL"
    HOLD = "HOLD"
    BUY = "BUY"
    STRONG_BUY = "STRONG_BUY"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]

    @property
    def is_bullish(self) -> bool:
        return self in (Recommendation.BUY, Recommendation.STRONG_BUY)

    @property
    def is_bearish(self) -> bool:
        return self in (Recommendation.SELL, Recommendation.STRONG_SELL)


_PRIORITY = {
    Recommendation.STRONG_SELL: 1,
    Recommendation.SELL: 2,
    Recommendation.HOLD: 3,
    Recommendation.BUY: 4,
    Recommendation.STRONG_BUY: 5,
}


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def score(self) -> int:
        return {"LOW": 1, "MEDIUM": 2, "HIGH": 3}[self.value]


class TimeHorizon(str, Enum):
    SHORT = "SHORT"
    MEDIUM = "MEDIUM"
    LONG = "LONG"


@dataclass(frozen=True)
class AIOpinion:
    """One external model's assessment of a symbol."""
    source: str
    confidence: float
    recommendation: Recommendation
    risk_level: RiskLevel = RiskLevel.MEDIUM
    time_horizon: TimeHorizon = TimeHorizon.MEDIUM
    price_target: Optional[float] = None
    stop_loss: Optional[float] = None
    reasoning: str = ""
    neutral: bool = False            # Substituted because the source failed

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence out of range: {self.confidence}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "confidence": self.confidence,
            "recommendation": self.recommendation.value,
            "risk_level": self.risk_level.value,
            "time_horizon": self.time_horizon.value,
            "price_target": self.price_target,
            "stop_loss": self.stop_loss,
            "reasoning": self.reasoning,
            "neutral": self.neutral,
        }


@dataclass(frozen=True)
class ConsensusResult:
    """Weighted combination of opinions and the technical score."""
    confidence: float
    recommendation: Recommendation
    risk_level: RiskLevel
    time_horizon: TimeHorizon
    price_target: Optional[float]
    stop_loss: Optional[float]
    reasoning: str
    breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "confidence": self.confidence,
            "recommendation": self.recommendation.value,
            "risk_level": self.risk_level.value,
            "time_horizon": self.time_horizon.value,
            "price_target": self.price_target,
            "stop_loss": self.stop_loss,
            "reasoning": self.reasoning,
            "breakdown": dict(self.breakdown),
        }
