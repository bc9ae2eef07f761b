"""
Market regime classification.

Scores bullish and bearish evidence from fear/greed, sentiment, volume,
volatility and multi-timeframe trends of the major coins. A regime is only
declared when one side leads by the configured margin.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from ..config.defaults import RegimeParams
from ..metrics.indicators import calculate_ema
from ..models.market import MarketContext, MarketRegime, Sentiment, Trend

logger = structlog.get_logger(__name__)

TREND_WEIGHT = 25.0


@dataclass(frozen=True)
class RegimeInputs:
    """Raw inputs for regime scoring."""
    fear_greed: float = 50.0
    sentiment_score: float = 50.0
    volume_ratio: float = 1.0
    volatility: float = 2.0
    short_trend: Trend = Trend.NEUTRAL
    medium_trend: Trend = Trend.NEUTRAL
    long_trend: Trend = Trend.NEUTRAL
    sentiment_label: Optional[Sentiment] = None


def linear_slope(values: list[float]) -> float:
    """Least-squares slope of values against their index."""
    n = len(values)
    if n < 2:
        return 0.0
    mean_x = (n - 1) / 2
    mean_y = sum(values) / n
    numerator = sum((i - mean_x) * (v - mean_y) for i, v in enumerate(values))
    denominator = sum((i - mean_x) ** 2 for i in range(n))
    return numerator / denominator


def trend_direction(prices: list[float]) -> Trend:
    """BULLISH when price > EMA9 > EMA21 with a rising 10-bar slope, mirrored for BEARISH."""
    if len(prices) < 10:
        return Trend.NEUTRAL

    current = prices[-1]
    ema9 = calculate_ema(prices, 9)
    ema21 = calculate_ema(prices, 21)
    if ema9 is None or ema21 is None:
        return Trend.NEUTRAL

    slope = linear_slope(prices[-10:])

    if current > ema9 > ema21 and slope > 0:
        return Trend.BULLISH
    if current < ema9 < ema21 and slope < 0:
        return Trend.BEARISH
    return Trend.NEUTRAL


def trend_consensus(trends: list[Trend]) -> Trend:
    """A side wins only if it outnumbers all other votes combined."""
    bullish = trends.count(Trend.BULLISH)
    bearish = trends.count(Trend.BEARISH)
    neutral = trends.count(Trend.NEUTRAL)

    if bullish > bearish + neutral:
        return Trend.BULLISH
    if bearish > bullish + neutral:
        return Trend.BEARISH
    return Trend.NEUTRAL


def _sentiment_label(inputs: RegimeInputs) -> Sentiment:
    if inputs.sentiment_label is not None:
        return inputs.sentiment_label
    if inputs.fear_greed < 25:
        return Sentiment.FEARFUL
    if inputs.sentiment_score > 60:
        return Sentiment.BULLISH
    if inputs.sentiment_score < 40:
        return Sentiment.BEARISH
    return Sentiment.NEUTRAL


def _volatility_label(volatility: float) -> str:
    if volatility > 4:
        return "HIGH"
    if volatility < 1.5:
        return "LOW"
    return "MEDIUM"


def _confidence(inputs: RegimeInputs) -> float:
    confidence = 50.0

    if inputs.fear_greed > 80 or inputs.fear_greed < 20:
        confidence += 15
    elif inputs.fear_greed > 70 or inputs.fear_greed < 30:
        confidence += 10

    if inputs.sentiment_score > 70 or inputs.sentiment_score < 30:
        confidence += 10

    if inputs.volume_ratio > 1.5:
        confidence += 10

    distinct = len({inputs.short_trend, inputs.medium_trend, inputs.long_trend})
    consistency = {1: 1.0, 2: 0.5}.get(distinct, 0.0)
    confidence += consistency * 15

    if inputs.volatility > 6:
        confidence -= 10
    elif inputs.volatility < 1:
        confidence -= 5

    return max(20.0, min(95.0, confidence))


def classify_regime(inputs: RegimeInputs, params: Optional[RegimeParams] = None) -> MarketContext:
    """Score the inputs and classify the market regime."""
    params = params or RegimeParams()
    bull = 0.0
    bear = 0.0

    if inputs.fear_greed > 70:
        bull += params.fear_greed_weight
    elif inputs.fear_greed < 30:
        bear += params.fear_greed_weight

    if inputs.sentiment_score > 60:
        bull += params.sentiment_weight
    elif inputs.sentiment_score < 40:
        bear += params.sentiment_weight

    if inputs.volume_ratio > 1.3:
        bull += params.volume_weight
    elif inputs.volume_ratio < 0.7:
        bear += params.volume_weight

    # High volatility follows the prevailing mood
    if inputs.volatility > 4:
        if inputs.fear_greed > 50:
            bull += params.volatility_weight * 0.5
        else:
            bear += params.volatility_weight * 0.5

    if inputs.long_trend == Trend.BULLISH:
        bull += TREND_WEIGHT
    elif inputs.long_trend == Trend.BEARISH:
        bear += TREND_WEIGHT

    if inputs.medium_trend == Trend.BULLISH:
        bull += TREND_WEIGHT * 0.5
    elif inputs.medium_trend == Trend.BEARISH:
        bear += TREND_WEIGHT * 0.5

    if bull > bear + params.decision_margin:
        regime = MarketRegime.BULL
    elif bear > bull + params.decision_margin:
        regime = MarketRegime.BEAR
    else:
        regime = MarketRegime.SIDEWAYS

    context = MarketContext(
        regime=regime,
        confidence=_confidence(inputs),
        sentiment=_sentiment_label(inputs),
        fear_greed=inputs.fear_greed,
        volatility=_volatility_label(inputs.volatility),
        bull_score=bull,
        bear_score=bear,
    )

    logger.info(
        "Market regime classified",
        regime=regime.value,
        confidence=context.confidence,
        bull_score=bull,
        bear_score=bear,
        sentiment=context.sentiment.value
    )
    return context
