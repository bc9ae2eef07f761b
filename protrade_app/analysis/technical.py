"""
Technical analysis: indicator computation and the directional vote.

Indicators degrade individually to neutral values; the whole set degrades to
a ticker-derived estimate when the hourly history is too short.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from ..config.defaults import IndicatorParams, ThresholdParams
from ..data.models import Candle, Ticker
from ..metrics.atr import calculate_atr
from ..metrics.indicators import (
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_momentum,
    calculate_rsi,
    calculate_volatility,
    find_pivot_levels,
)
from ..metrics.volume import calculate_average_volume, calculate_volume_ratio
from ..models.indicators import IndicatorSet, MacdValues, SupportResistance
from ..models.market import MarketRegime
from ..signals.models import Direction, Strength
from ..utils.result import attempt

logger = structlog.get_logger(__name__)

# Neutral defaults used when an indicator cannot be computed
NEUTRAL_RSI = 50.0
NEUTRAL_MACD = MacdValues()
NEUTRAL_VOLUME_RATIO = 1.0
NEUTRAL_VOLATILITY = 2.0
NEUTRAL_MOMENTUM = 0.0
NEUTRAL_LEVELS = SupportResistance()
PRICE_DERIVED_SCORE = 50.0

REGIME_STRATEGY = {
    MarketRegime.SIDEWAYS: "Mean reversion strategy in sideways market",
    MarketRegime.BULL: "Momentum continuation in bull market",
    MarketRegime.BEAR: "Trend following in bear market",
}


@dataclass(frozen=True)
class SubSignal:
    """One indicator's directional vote."""
    indicator: str
    direction: Direction
    weight: float


@dataclass(frozen=True)
class DirectionalSignal:
    """Outcome of the technical vote."""
    direction: Direction
    strength: Strength
    confidence: float
    entry_price: float
    reasoning: str
    votes: tuple[SubSignal, ...] = field(default_factory=tuple)

    @property
    def is_hold(self) -> bool:
        return self.direction == Direction.HOLD

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "strength": self.strength.value,
            "confidence": self.confidence,
            "entry_price": self.entry_price,
            "reasoning": self.reasoning,
            "votes": [
                {"indicator": v.indicator, "direction": v.direction.value, "weight": v.weight}
                for v in self.votes
            ],
        }


def _finite(values: list[float]) -> list[float]:
    return [v for v in values if isinstance(v, (int, float)) and math.isfinite(v)]


def _regime(value: Any) -> MarketRegime:
    if isinstance(value, MarketRegime):
        return value
    try:
        return MarketRegime(str(value).upper())
    except ValueError:
        return MarketRegime.UNKNOWN


class TechnicalAnalyzer:
    """Computes indicator sets and turns them into a directional candidate."""

    def __init__(self, params: Optional[IndicatorParams] = None,
                 thresholds: Optional[ThresholdParams] = None):
        self.params = params or IndicatorParams()
        self.thresholds = thresholds or ThresholdParams()

    def compute_indicators(self, candles: dict[str, list[Candle]], ticker: Ticker) -> IndicatorSet:
        """
        Compute the indicator set for one symbol.

        Args:
            candles: Candles per timeframe ("4h", "1h", "15m"), oldest first
            ticker: Current ticker

        Returns:
            IndicatorSet; never raises
        """
        p = self.params
        price = ticker.price
        hourly = candles.get("1h", [])
        closes_1h = _finite([c.close for c in hourly])
        closes_4h = _finite([c.close for c in candles.get("4h", [])])
        closes_15m = _finite([c.close for c in candles.get("15m", [])])
        volumes_1h = _finite([c.volume for c in hourly])

        if len(hourly) < p.min_candles or len(closes_1h) < p.rsi_period:
            logger.info(
                "Insufficient candle history, using price-derived indicators",
                symbol=ticker.symbol,
                hourly_candles=len(hourly)
            )
            return self.estimate_from_price(ticker)

        rsi = attempt("rsi", calculate_rsi, closes_1h[-50:], p.rsi_period).unwrap_or(NEUTRAL_RSI)
        macd = attempt(
            "macd", calculate_macd, closes_1h[-100:], p.macd_fast, p.macd_slow, p.macd_signal
        ).unwrap_or(NEUTRAL_MACD)

        ema9 = attempt("ema9", calculate_ema, closes_1h, p.ema_fast).unwrap_or(price)
        ema21 = attempt("ema21", calculate_ema, closes_1h, p.ema_medium).unwrap_or(price)
        ema50 = attempt("ema50", calculate_ema, closes_1h, p.ema_slow).unwrap_or(price)
        ema200 = attempt("ema200_4h", calculate_ema, closes_4h, p.ema_trend).unwrap_or(price)

        bollinger = attempt(
            "bollinger", calculate_bollinger, closes_1h[-50:], p.bb_period, p.bb_std_dev
        ).unwrap_or(None)

        avg_volume = attempt(
            "avg_volume", calculate_average_volume, volumes_1h, p.volume_sma
        ).unwrap_or(ticker.volume_24h / 24)
        volume_ratio = attempt(
            "volume_ratio", calculate_volume_ratio, ticker.volume_24h, volumes_1h, p.volume_sma
        ).unwrap_or(NEUTRAL_VOLUME_RATIO)

        volatility = attempt(
            "volatility", calculate_volatility, closes_1h, p.min_candles
        ).unwrap_or(NEUTRAL_VOLATILITY)
        momentum = attempt("momentum", calculate_momentum, closes_15m).unwrap_or(NEUTRAL_MOMENTUM)

        candles_4h = candles.get("4h", [])
        levels = attempt(
            "support_resistance", find_pivot_levels,
            [c.high for c in candles_4h], [c.low for c in candles_4h]
        ).unwrap_or(NEUTRAL_LEVELS)

        atr = attempt("atr", calculate_atr, hourly, p.atr_period).unwrap_or(None)

        return IndicatorSet(
            current_price=price,
            change_24h=ticker.change_24h,
            rsi=rsi,
            macd=macd,
            ema9=ema9,
            ema21=ema21,
            ema50=ema50,
            ema200_4h=ema200,
            bollinger=bollinger,
            volume_ratio=volume_ratio,
            avg_volume=avg_volume,
            volatility=volatility,
            momentum=momentum,
            levels=levels,
            atr=atr,
            technical_score=0.0,
        )

    def estimate_from_price(self, ticker: Ticker) -> IndicatorSet:
        """Indicator estimate from the 24h change alone."""
        price = ticker.price
        change = ticker.change_24h

        if change > 5:
            rsi = 70.0
        elif change > 2:
            rsi = 60.0
        elif change < -5:
            rsi = 30.0
        elif change < -2:
            rsi = 40.0
        else:
            rsi = NEUTRAL_RSI

        macd_value = 0.1 if change > 0 else -0.1

        return IndicatorSet(
            current_price=price,
            change_24h=change,
            rsi=rsi,
            macd=MacdValues(macd=macd_value, signal=0.0, histogram=macd_value),
            ema9=price,
            ema21=price,
            ema50=price,
            ema200_4h=price,
            bollinger=None,
            volume_ratio=NEUTRAL_VOLUME_RATIO,
            avg_volume=ticker.volume_24h / 24,
            volatility=abs(change) * 0.5,
            momentum=change,
            levels=NEUTRAL_LEVELS,
            atr=None,
            technical_score=PRICE_DERIVED_SCORE,
            price_derived=True,
        )

    # Sub-signals

    def _ema_vote(self, ind: IndicatorSet) -> Optional[SubSignal]:
        price = ind.current_price
        if ind.ema9 > ind.ema21 > ind.ema50 and price > ind.ema9:
            return SubSignal("EMA_CROSSOVER", Direction.LONG, 25)
        if ind.ema9 < ind.ema21 < ind.ema50 and price < ind.ema9:
            return SubSignal("EMA_CROSSOVER", Direction.SHORT, 25)
        if ind.ema9 > ind.ema21 and price > ind.ema21:
            return SubSignal("EMA_CROSSOVER", Direction.LONG, 15)
        if ind.ema9 < ind.ema21 and price < ind.ema21:
            return SubSignal("EMA_CROSSOVER", Direction.SHORT, 15)
        return None

    def _rsi_vote(self, ind: IndicatorSet, regime: MarketRegime) -> Optional[SubSignal]:
        rsi = ind.rsi
        oversold = self.params.rsi_oversold
        overbought = self.params.rsi_overbought

        if regime == MarketRegime.BULL and rsi < oversold:
            return SubSignal("RSI", Direction.LONG, 20)
        if regime == MarketRegime.BEAR and rsi > overbought:
            return SubSignal("RSI", Direction.SHORT, 20)
        if regime == MarketRegime.SIDEWAYS:
            if rsi < 30:
                return SubSignal("RSI", Direction.LONG, 18)
            if rsi > 70:
                return SubSignal("RSI", Direction.SHORT, 18)
            if rsi < 40:
                return SubSignal("RSI", Direction.LONG, 12)
            if rsi > 60:
                return SubSignal("RSI", Direction.SHORT, 12)
            return None
        if regime == MarketRegime.BULL and 50 < rsi < overbought:
            return SubSignal("RSI", Direction.LONG, 10)
        if regime == MarketRegime.BEAR and oversold < rsi < 50:
            return SubSignal("RSI", Direction.SHORT, 10)
        return None

    def _macd_vote(self, ind: IndicatorSet) -> Optional[SubSignal]:
        macd = ind.macd
        if macd.macd > macd.signal:
            return SubSignal("MACD", Direction.LONG, 20 if macd.histogram > 0 else 15)
        if macd.macd < macd.signal:
            return SubSignal("MACD", Direction.SHORT, 20 if macd.histogram < 0 else 15)
        return None

    def _volume_vote(self, ind: IndicatorSet) -> Optional[SubSignal]:
        if ind.volume_ratio <= self.params.volume_spike_factor:
            return None
        if ind.change_24h > 2:
            return SubSignal("VOLUME", Direction.LONG, 15)
        if ind.change_24h < -2:
            return SubSignal("VOLUME", Direction.SHORT, 15)
        return None

    def _levels_vote(self, ind: IndicatorSet) -> Optional[SubSignal]:
        price = ind.current_price
        band = self.params.sr_proximity_pct / 100
        near_support = any(abs(price - level) / price < band for level in ind.levels.support)
        near_resistance = any(abs(price - level) / price < band for level in ind.levels.resistance)

        if near_support and ind.rsi < 45:
            return SubSignal("SUPPORT_RESISTANCE", Direction.LONG, 20)
        if near_resistance and ind.rsi > 55:
            return SubSignal("SUPPORT_RESISTANCE", Direction.SHORT, 20)
        if near_support:
            return SubSignal("SUPPORT_RESISTANCE", Direction.LONG, 15)
        if near_resistance:
            return SubSignal("SUPPORT_RESISTANCE", Direction.SHORT, 15)
        return None

    def _bollinger_vote(self, ind: IndicatorSet) -> Optional[SubSignal]:
        bands = ind.bollinger
        if bands is None:
            return None

        price = ind.current_price
        if price <= bands.lower * 1.01:
            return SubSignal("BOLLINGER_BANDS", Direction.LONG, 15)
        if price >= bands.upper * 0.99:
            return SubSignal("BOLLINGER_BANDS", Direction.SHORT, 15)
        if bands.middle and abs(price - bands.middle) / bands.middle < 0.005:
            if ind.momentum > 1:
                return SubSignal("BOLLINGER_BANDS", Direction.LONG, 8)
            if ind.momentum < -1:
                return SubSignal("BOLLINGER_BANDS", Direction.SHORT, 8)
        return None

    def min_confidence_for(self, regime: MarketRegime) -> float:
        return self.thresholds.regime_min_confidence.get(
            regime.value, self.thresholds.default_min_confidence
        )

    def generate_directional_signal(self, indicators: IndicatorSet, regime: Any) -> DirectionalSignal:
        """
        Vote the six sub-signals into a directional candidate.

        The majority direction wins when the summed weight strictly exceeds the
        regime's minimum confidence; otherwise the result is HOLD.
        """
        regime = _regime(regime)
        votes = tuple(vote for vote in (
            self._ema_vote(indicators),
            self._rsi_vote(indicators, regime),
            self._macd_vote(indicators),
            self._volume_vote(indicators),
            self._levels_vote(indicators),
            self._bollinger_vote(indicators),
        ) if vote is not None)

        if not votes:
            return DirectionalSignal(
                direction=Direction.HOLD,
                strength=Strength.WEAK,
                confidence=0.0,
                entry_price=indicators.current_price,
                reasoning="No clear signals",
            )

        confidence = min(100.0, float(sum(v.weight for v in votes)))
        longs = sum(1 for v in votes if v.direction == Direction.LONG)
        shorts = sum(1 for v in votes if v.direction == Direction.SHORT)
        min_confidence = self.min_confidence_for(regime)

        direction = Direction.HOLD
        strength = Strength.WEAK
        if confidence > min_confidence and longs != shorts:
            direction = Direction.LONG if longs > shorts else Direction.SHORT
            if confidence > 80:
                strength = Strength.STRONG
            elif confidence > 65:
                strength = Strength.MEDIUM

        return DirectionalSignal(
            direction=direction,
            strength=strength,
            confidence=confidence,
            entry_price=self.entry_price(indicators, direction),
            reasoning=self._reasoning(votes, regime),
            votes=votes,
        )

    @staticmethod
    def entry_price(indicators: IndicatorSet, direction: Direction) -> float:
        """Entry nudged slightly beyond the current price or fast EMA."""
        price = indicators.current_price
        if direction == Direction.LONG:
            return max(price * 1.001, indicators.ema9 * 1.002)
        if direction == Direction.SHORT:
            return min(price * 0.999, indicators.ema9 * 0.998)
        return price

    @staticmethod
    def _reasoning(votes: tuple[SubSignal, ...], regime: MarketRegime) -> str:
        strategy = REGIME_STRATEGY.get(regime, "Technical confluence")
        names = ", ".join(v.indicator for v in votes)
        total = sum(v.weight for v in votes)
        return f"{strategy}: {names}. Total weight: {total:g}%"
