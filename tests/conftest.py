"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from protrade_app.analysis.technical import TechnicalAnalyzer
from protrade_app.config.defaults import get_default_config
from protrade_app.consensus.models import AIOpinion, Recommendation, RiskLevel, TimeHorizon
from protrade_app.consensus.providers import AIOpinionProvider
from protrade_app.data.models import Candle
from protrade_app.data.providers import MarketDataProvider
from protrade_app.models.indicators import IndicatorSet, MacdValues, SupportResistance
from protrade_app.signals.models import Direction, Signal, Strength
from protrade_app.utils.time import FixedClock

START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_candles(closes: List[float], start: datetime = START, step_hours: float = 1.0,
                 volume: float = 1000.0) -> List[Candle]:
    """Candles whose high/low sit 0.5% around each close."""
    candles = []
    for i, close in enumerate(closes):
        candles.append(Candle(
            ts=start + timedelta(hours=i * step_hours),
            open=closes[i - 1] if i > 0 else close,
            high=close * 1.005,
            low=close * 0.995,
            close=close,
            volume=volume,
        ))
    return candles


def make_signal(
    symbol: str = "BTC-USDT",
    direction: Direction = Direction.LONG,
    entry_price: float = 100.0,
    stop_loss: Optional[float] = None,
    strength: Strength = Strength.MEDIUM,
    final_confidence: float = 75.0,
    created_at: datetime = START,
    **kwargs: Any,
) -> Signal:
    """Minimal valid signal for guard, exit and position tests."""
    if stop_loss is None:
        stop_loss = entry_price * (0.97 if direction == Direction.LONG else 1.03)
    values = dict(
        id=f"{symbol}_{int(created_at.timestamp() * 1000)}",
        symbol=symbol,
        direction=direction,
        strength=strength,
        final_confidence=final_confidence,
        entry_price=entry_price,
        current_price=entry_price,
        stop_loss=stop_loss,
        take_profit=entry_price * (1.05 if direction == Direction.LONG else 0.95),
        position_size=15.0,
        risk_reward=5 / 3,
        max_loss=0.45,
        max_gain=0.75,
        risk_level="MEDIUM",
        time_horizon="MEDIUM",
        created_at=created_at,
    )
    values.update(kwargs)
    return Signal(**values)


def bullish_indicators(price: float = 100.0) -> IndicatorSet:
    """Indicator set on which EMA, RSI (bull), MACD, volume and support all vote LONG."""
    return IndicatorSet(
        current_price=price,
        change_24h=3.0,
        rsi=60.0,
        macd=MacdValues(macd=0.5, signal=0.2, histogram=0.3),
        ema9=price * 0.99,
        ema21=price * 0.98,
        ema50=price * 0.97,
        ema200_4h=price * 0.9,
        bollinger=None,
        volume_ratio=2.0,
        avg_volume=1000.0,
        volatility=3.0,
        momentum=1.5,
        levels=SupportResistance(support=(price * 0.99,), resistance=()),
        atr=price * 0.02,
    )


class FixedIndicatorAnalyzer(TechnicalAnalyzer):
    """Analyzer returning a prepared indicator set regardless of candles."""

    def __init__(self, indicators: IndicatorSet, **kwargs: Any):
        super().__init__(**kwargs)
        self.indicators = indicators

    def compute_indicators(self, candles, ticker) -> IndicatorSet:
        return self.indicators


class StaticMarketProvider(MarketDataProvider):
    """Market data provider serving fixed tickers and rising hourly candles."""

    def __init__(self, prices: Optional[Dict[str, float]] = None, fail: bool = False):
        self.prices = prices or {"BTC-USDT": 100.0}
        self.fail = fail
        self.ticker_calls = 0

    def get_ticker(self, symbol: str) -> Dict[str, Any]:
        self.ticker_calls += 1
        if self.fail:
            raise ConnectionError("exchange unreachable")
        return {"price": self.prices[symbol], "change24h": 3.0, "volume24h": 48000.0}

    def get_candles(self, symbol: str, timeframe: str, limit: int) -> List[List[float]]:
        if self.fail:
            raise ConnectionError("exchange unreachable")
        base = self.prices[symbol]
        start_ms = int(START.timestamp() * 1000)
        rows = []
        for i in range(limit):
            close = base * (0.9 + 0.1 * i / max(limit - 1, 1))
            rows.append([start_ms + i * 3_600_000, close, close * 1.005, close * 0.995, close, 1000.0])
        return rows


class StubOpinionProvider(AIOpinionProvider):
    """Opinion provider returning a fixed answer, or raising."""

    def __init__(self, source: str, confidence: float = 90.0,
                 recommendation: Recommendation = Recommendation.BUY,
                 error: Optional[Exception] = None, **fields: Any):
        self._source = source
        self.confidence = confidence
        self.recommendation = recommendation
        self.error = error
        self.fields = fields
        self.calls = 0

    @property
    def source_id(self) -> str:
        return self._source

    def analyze(self, symbol: str, context: Dict[str, Any]) -> AIOpinion:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return AIOpinion(
            source=self._source,
            confidence=self.confidence,
            recommendation=self.recommendation,
            risk_level=self.fields.get("risk_level", RiskLevel.MEDIUM),
            time_horizon=self.fields.get("time_horizon", TimeHorizon.MEDIUM),
            price_target=self.fields.get("price_target"),
            stop_loss=self.fields.get("stop_loss"),
            reasoning=f"{self._source} sees a setup",
        )


@pytest.fixture
def clock() -> FixedClock:
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return FixedClock(START)


@pytest.fixture
def default_config():
    return get_default_config()


@pytest.fixture
def bullish_opinions() -> List[StubOpinionProvider]:
    """Three confident BUY opinions."""
    return [
        StubOpinionProvider("gpt", 90.0),
        StubOpinionProvider("claude", 88.0),
        StubOpinionProvider("gemini", 85.0),
    ]
