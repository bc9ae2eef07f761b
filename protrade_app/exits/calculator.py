"""
Dynamic take-profit calculator.

Blends the enabled methods' proposals by ``weight * confidence / 100``,
scales the blended distances by signal strength and confidence, and clamps
the result to ordered, bounded levels. The static percentage plan is used
when dynamic exits are disabled, no method produced a usable proposal, or the
methods' mean confidence is below the configured floor.
"""

from typing import Optional

import structlog

from ..config.defaults import ExitParams
from ..errors import ExitMethodError
from ..models.indicators import IndicatorSet
from ..models.market import MarketContext
from ..signals.models import Direction, Signal, Strength, TakeProfitPlan, TakeProfitTarget
from .methods import ExitContext, ExitMethod, TPCandidate, build_methods, target_price

logger = structlog.get_logger(__name__)

STRENGTH_MULTIPLIERS = {
    Strength.STRONG: 1.2,
    Strength.MEDIUM: 1.0,
    Strength.WEAK: 0.8,
}


def confidence_multiplier(final_confidence: float) -> float:
    return max(0.8, min(1.2, final_confidence / 75))


class DynamicExitCalculator:
    """Builds the three-level take-profit plan for a signal."""

    def __init__(self, params: Optional[ExitParams] = None,
                 methods: Optional[list[ExitMethod]] = None):
        self.params = params or ExitParams()
        self.methods = methods if methods is not None else build_methods(self.params)

    def calculate(
        self,
        signal: Signal,
        prices: list[float],
        indicators: Optional[IndicatorSet] = None,
        market: Optional[MarketContext] = None,
    ) -> TakeProfitPlan:
        """Take-profit plan for an assembled signal; never raises."""
        entry = signal.entry_price
        direction = signal.direction

        if not self.params.dynamic_enabled:
            return self.static_plan(entry, direction)

        ctx = ExitContext(
            entry_price=entry,
            direction=direction,
            prices=list(prices),
            indicators=indicators,
            market=market,
        )
        candidates = self.collect_candidates(ctx)

        if not candidates:
            logger.warning("No usable take-profit proposals, using static plan", symbol=signal.symbol)
            return self.static_plan(entry, direction)

        plan_confidence = sum(c.confidence for c in candidates) / len(candidates)
        if plan_confidence < self.params.min_confidence and self.params.fallback_to_static:
            logger.info(
                "Dynamic take-profit confidence too low, using static plan",
                symbol=signal.symbol, confidence=plan_confidence
            )
            return self.static_plan(entry, direction)

        combined = self.combine(candidates, signal.strength, signal.final_confidence)
        if combined is None:
            return self.static_plan(entry, direction)

        tp1, tp2, tp3 = self.validate_levels(combined, entry, direction)
        primary = max(candidates, key=lambda c: c.weight).method

        logger.debug(
            "Dynamic take-profit plan calculated",
            symbol=signal.symbol,
            tp1=tp1, tp2=tp2, tp3=tp3,
            primary_method=primary,
            methods=[c.method for c in candidates]
        )
        return self._plan(tp1, tp2, tp3, primary, plan_confidence,
                          tuple(c.method for c in candidates), dynamic=True)

    def collect_candidates(self, ctx: ExitContext) -> list[TPCandidate]:
        candidates = []
        for method in self.methods:
            try:
                candidate = method.compute(ctx)
            except Exception as e:
                error = ExitMethodError(str(e), method=method.name)
                logger.debug("Take-profit method failed", method=error.method, error=str(error))
                continue
            if not candidate.is_finite():
                logger.debug("Take-profit method produced non-finite targets", method=method.name)
                continue
            candidates.append(candidate)
        return candidates

    @staticmethod
    def combine(
        candidates: list[TPCandidate],
        strength: Strength,
        final_confidence: float,
    ) -> Optional[tuple[float, float, float]]:
        """
        Weighted mean of the proposals, multiplied by the strength and
        confidence multipliers. The product is a price, not a distance, so
        ``validate_levels`` is what brings it back into range.

        Returns:
            Combined targets or None if no proposal carries weight
        """
        total_weight = 0.0
        sums = [0.0, 0.0, 0.0]

        for candidate in candidates:
            weight = candidate.weight * candidate.confidence / 100
            total_weight += weight
            for i, price in enumerate(candidate.prices):
                sums[i] += price * weight

        if total_weight <= 0:
            return None

        multiplier = STRENGTH_MULTIPLIERS.get(strength, 1.0) * confidence_multiplier(final_confidence)
        tp1, tp2, tp3 = (s / total_weight * multiplier for s in sums)
        return tp1, tp2, tp3

    def validate_levels(
        self,
        levels: tuple[float, float, float],
        entry: float,
        direction: Direction,
    ) -> tuple[float, float, float]:
        """Force strict ordering beyond entry and cap the distance of each level."""
        p = self.params
        tp1, tp2, tp3 = levels

        if direction == Direction.LONG:
            tp1 = max(tp1, entry * p.long_min_tp1)
            tp2 = max(tp2, tp1 * 1.01)
            tp3 = max(tp3, tp2 * 1.02)

            tp1 = min(tp1, entry * p.long_max_tp1)
            tp2 = min(tp2, entry * p.long_max_tp2)
            tp3 = min(tp3, entry * p.long_max_tp3)
        else:
            tp1 = min(tp1, entry * p.short_max_tp1)
            tp2 = min(tp2, tp1 * 0.99)
            tp3 = min(tp3, tp2 * 0.98)

            tp1 = max(tp1, entry * p.short_min_tp1)
            tp2 = max(tp2, entry * p.short_min_tp2)
            tp3 = max(tp3, entry * p.short_min_tp3)

        return tp1, tp2, tp3

    def static_plan(self, entry: float, direction: Direction) -> TakeProfitPlan:
        """Validated plan from the configured static percentages."""
        levels = tuple(target_price(entry, pct, direction) for pct in self.params.tp_percents)
        tp1, tp2, tp3 = self.validate_levels(levels, entry, direction)
        return self._plan(tp1, tp2, tp3, "percentage", 100.0, ("percentage",), dynamic=False)

    def _plan(self, tp1: float, tp2: float, tp3: float, primary: str, confidence: float,
              methods: tuple[str, ...], dynamic: bool) -> TakeProfitPlan:
        shares = self.params.allocations
        return TakeProfitPlan(
            tp1=TakeProfitTarget(price=tp1, share_pct=shares[0]),
            tp2=TakeProfitTarget(price=tp2, share_pct=shares[1]),
            tp3=TakeProfitTarget(price=tp3, share_pct=shares[2]),
            primary_method=primary,
            confidence=confidence,
            methods=methods,
            dynamic=dynamic,
        )
