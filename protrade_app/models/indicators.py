"""Data models for technical indicator snapshots"""

from dataclasses import dataclass, field, replace
from typing import Optional


@dataclass(frozen=True)
class MacdValues:
    """MACD line, signal line and histogram"""
    macd: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


@dataclass(frozen=True)
class BollingerBands:
    """Bollinger band envelope"""
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class SupportResistance:
    """Pivot-derived price levels"""
    support: tuple[float, ...] = ()
    resistance: tuple[float, ...] = ()


@dataclass(frozen=True)
class IndicatorSet:
    """Complete indicator snapshot for one symbol"""
    current_price: float
    change_24h: float = 0.0
    rsi: float = 50.0
    macd: MacdValues = field(default_factory=MacdValues)
    ema9: float = 0.0
    ema21: float = 0.0
    ema50: float = 0.0
    ema200_4h: float = 0.0
    bollinger: Optional[BollingerBands] = None
    volume_ratio: float = 1.0
    avg_volume: float = 0.0
    volatility: float = 2.0
    momentum: float = 0.0
    levels: SupportResistance = field(default_factory=SupportResistance)
    atr: Optional[float] = None
    technical_score: float = 0.0
    price_derived: bool = False      # True when computed from the ticker only

    def with_technical_score(self, score: float) -> "IndicatorSet":
        return replace(self, technical_score=score)

    def to_dict(self) -> dict:
        return {
            "current_price": self.current_price,
            "change_24h": self.change_24h,
            "rsi": self.rsi,
            "macd": {
                "macd": self.macd.macd,
                "signal": self.macd.signal,
                "histogram": self.macd.histogram,
            },
            "ema9": self.ema9,
            "ema21": self.ema21,
            "ema50": self.ema50,
            "ema200_4h": self.ema200_4h,
            "bollinger": (
                {"upper": self.bollinger.upper, "middle": self.bollinger.middle,
                 "lower": self.bollinger.lower}
                if self.bollinger else None
            ),
            "volume_ratio": self.volume_ratio,
            "avg_volume": self.avg_volume,
            "volatility": self.volatility,
            "momentum": self.momentum,
            "support": list(self.levels.support),
            "resistance": list(self.levels.resistance),
            "atr": self.atr,
            "technical_score": self.technical_score,
            "price_derived": self.price_derived,
        }
