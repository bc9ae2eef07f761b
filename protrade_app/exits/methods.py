"""
Take-profit methods.

Each method proposes three targets for a position. Methods whose inputs are
unusable fall back to the static percentage proposal; methods that raise are
excluded by the calculator.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config.defaults import ExitMethodParams, ExitParams
from ..metrics.atr import calculate_natr
from ..metrics.indicators import (
    calculate_annualized_volatility,
    find_price_pivots,
    find_swing_range,
)
from ..models.indicators import IndicatorSet
from ..models.market import MarketContext, MarketRegime, Sentiment
from ..signals.models import Direction

FIBONACCI_LEVELS = (0.236, 0.382, 0.618)
DEFAULT_VOLATILITY = 5.0
DEFAULT_ATR_FRACTION = 0.02


@dataclass(frozen=True)
class ExitContext:
    """Inputs shared by all take-profit methods."""
    entry_price: float
    direction: Direction
    prices: list[float] = field(default_factory=list)
    indicators: Optional[IndicatorSet] = None
    market: Optional[MarketContext] = None


@dataclass(frozen=True)
class TPCandidate:
    """Normalized proposal of one method."""
    method: str
    tp1: float
    tp2: float
    tp3: float
    weight: float
    confidence: float
    details: dict[str, Any] = field(default_factory=dict)
    fallback: bool = False

    @property
    def prices(self) -> tuple[float, float, float]:
        return (self.tp1, self.tp2, self.tp3)

    def is_finite(self) -> bool:
        return all(math.isfinite(p) for p in self.prices)


def target_price(entry: float, percent: float, direction: Direction) -> float:
    """Price ``percent`` away from entry in the profit direction."""
    if direction == Direction.LONG:
        return entry * (1 + percent / 100)
    return entry * (1 - percent / 100)


class ExitMethod(ABC):
    """Strategy interface for a take-profit method."""

    name: str = ""
    confidence: float = 0.0

    def __init__(self, params: ExitMethodParams, exit_params: ExitParams):
        self.weight = params.weight
        self.exit_params = exit_params

    @abstractmethod
    def compute(self, ctx: ExitContext) -> TPCandidate:
        """Propose targets for the context."""

    def candidate(self, ctx: ExitContext, percents: tuple[float, float, float],
                  weight: Optional[float] = None, **details: Any) -> TPCandidate:
        tp1, tp2, tp3 = (target_price(ctx.entry_price, p, ctx.direction) for p in percents)
        candidate = TPCandidate(
            method=self.name,
            tp1=tp1,
            tp2=tp2,
            tp3=tp3,
            weight=self.weight if weight is None else weight,
            confidence=self.confidence,
            details=details,
        )
        if not candidate.is_finite():
            return self.percentage_fallback(ctx)
        return candidate

    def percentage_fallback(self, ctx: ExitContext) -> TPCandidate:
        """Static percentage proposal used when this method's inputs are unusable."""
        percentage_params = self.exit_params.methods.get("percentage", ExitMethodParams(weight=20.0))
        tp1, tp2, tp3 = (
            target_price(ctx.entry_price, p, ctx.direction) for p in self.exit_params.tp_percents
        )
        return TPCandidate(
            method=PercentageMethod.name,
            tp1=tp1,
            tp2=tp2,
            tp3=tp3,
            weight=percentage_params.weight,
            confidence=PercentageMethod.confidence,
            details={"fallback_for": self.name},
            fallback=True,
        )


class PercentageMethod(ExitMethod):
    """Fixed percentage distances from entry."""

    name = "percentage"
    confidence = 100.0

    def compute(self, ctx: ExitContext) -> TPCandidate:
        return self.candidate(ctx, self.exit_params.tp_percents)


class VolatilityMethod(ExitMethod):
    """Wider targets for more volatile markets."""

    name = "volatility"
    confidence = 85.0

    TIERS = (
        (8.0, (4.0, 7.5, 12.0)),
        (5.0, (3.0, 5.5, 9.0)),
        (2.0, (2.0, 3.5, 6.0)),
    )
    CALM = (1.0, 2.0, 3.5)

    def compute(self, ctx: ExitContext) -> TPCandidate:
        volatility = calculate_annualized_volatility(ctx.prices)
        if volatility is None:
            volatility = DEFAULT_VOLATILITY
        if not math.isfinite(volatility) or volatility <= 0:
            return self.percentage_fallback(ctx)

        percents = self.CALM
        for threshold, tier in self.TIERS:
            if volatility > threshold:
                percents = tier
                break

        return self.candidate(ctx, percents, volatility=volatility)


class AtrMethod(ExitMethod):
    """Multiples of the average true range."""

    name = "atr"
    confidence = 80.0

    MULTIPLES = (1.5, 2.5, 4.0)

    def compute(self, ctx: ExitContext) -> TPCandidate:
        atr = ctx.indicators.atr if ctx.indicators is not None else None
        if atr is None or not math.isfinite(atr) or atr <= 0:
            atr = ctx.entry_price * DEFAULT_ATR_FRACTION

        atr_percent = calculate_natr(atr, ctx.entry_price)
        if not math.isfinite(atr_percent) or atr_percent <= 0:
            return self.percentage_fallback(ctx)

        percents = tuple(atr_percent * m for m in self.MULTIPLES)
        return self.candidate(ctx, percents, atr=atr, atr_percent=atr_percent)


class SupportResistanceMethod(ExitMethod):
    """Nearest pivot levels beyond entry, padded with static percentages."""

    name = "support_resistance"
    confidence = 90.0

    def compute(self, ctx: ExitContext) -> TPCandidate:
        levels = find_price_pivots(ctx.prices)
        entry = ctx.entry_price

        if ctx.direction == Direction.LONG:
            targets = sorted(level for level in levels.resistance if level > entry)
        else:
            targets = sorted((level for level in levels.support if level < entry), reverse=True)

        defaults = [target_price(entry, p, ctx.direction) for p in self.exit_params.tp_percents]
        tp1, tp2, tp3 = (targets[i] if i < len(targets) else defaults[i] for i in range(3))

        candidate = TPCandidate(
            method=self.name,
            tp1=tp1,
            tp2=tp2,
            tp3=tp3,
            weight=self.weight,
            confidence=self.confidence,
            details={"support": list(levels.support), "resistance": list(levels.resistance)},
        )
        return candidate if candidate.is_finite() else self.percentage_fallback(ctx)


class FibonacciMethod(ExitMethod):
    """Fibonacci fractions of the recent swing range projected from entry."""

    name = "fibonacci"
    confidence = 75.0

    def compute(self, ctx: ExitContext) -> TPCandidate:
        swing = find_swing_range(ctx.prices)
        if swing is None:
            return self.percentage_fallback(ctx)

        high, low = swing
        if high <= 0 or low <= 0 or high <= low:
            return self.percentage_fallback(ctx)

        price_range = high - low
        range_multiplier = max(price_range / ctx.entry_price * 100, 2.0)
        percents = tuple(level * range_multiplier for level in FIBONACCI_LEVELS)
        return self.candidate(ctx, percents, swing_high=high, swing_low=low, fib_range=price_range)


class RegimeAdaptiveMethod(ExitMethod):
    """Targets tuned to the market regime and sentiment."""

    name = "regime"
    confidence = 85.0

    PROFILES = {
        MarketRegime.BULL: ((3.5, 6.0, 10.0), 20.0),
        MarketRegime.BEAR: ((2.0, 3.5, 5.5), 25.0),
        MarketRegime.SIDEWAYS: ((1.5, 2.5, 4.0), 30.0),
    }

    def compute(self, ctx: ExitContext) -> TPCandidate:
        regime = ctx.market.regime if ctx.market is not None else MarketRegime.SIDEWAYS
        sentiment = ctx.market.sentiment if ctx.market is not None else Sentiment.NEUTRAL

        percents, weight = self.PROFILES.get(regime, (self.exit_params.tp_percents, self.weight))

        if (sentiment == Sentiment.BULLISH and ctx.direction == Direction.LONG) or \
                (sentiment == Sentiment.BEARISH and ctx.direction == Direction.SHORT):
            percents = tuple(p * 1.2 for p in percents)
        elif sentiment == Sentiment.FEARFUL:
            percents = tuple(p * 0.8 for p in percents)

        return self.candidate(ctx, percents, weight=weight,
                              regime=regime.value, sentiment=sentiment.value)


METHOD_REGISTRY: dict[str, type] = {
    PercentageMethod.name: PercentageMethod,
    VolatilityMethod.name: VolatilityMethod,
    AtrMethod.name: AtrMethod,
    SupportResistanceMethod.name: SupportResistanceMethod,
    FibonacciMethod.name: FibonacciMethod,
    RegimeAdaptiveMethod.name: RegimeAdaptiveMethod,
}


def build_methods(exit_params: ExitParams) -> list[ExitMethod]:
    """Instantiate the enabled methods in registry order."""
    methods = []
    for name, method_cls in METHOD_REGISTRY.items():
        params = exit_params.methods.get(name)
        if params is None or not params.enabled:
            continue
        methods.append(method_cls(params, exit_params))
    return methods
