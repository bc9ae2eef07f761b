"""
Weighted consensus of AI opinions and the technical score.

Each configured source contributes ``confidence * weight / 100``; the
technical score contributes with its own weight. Recommendation, risk,
targets and horizon are combined by voting rules that are deterministic for
any number of sources.
"""

import math
from collections import Counter
from typing import Optional

import structlog

from .models import AIOpinion, ConsensusResult, Recommendation, RiskLevel, TimeHorizon

logger = structlog.get_logger(__name__)


def _valid_price(value: Optional[float]) -> bool:
    return value is not None and isinstance(value, (int, float)) and math.isfinite(value) and value > 0


class ConsensusEngine:
    """Combines AI opinions with the technical score."""

    def combine(
        self,
        opinions: list[AIOpinion],
        technical_score: float,
        weights: dict[str, float],
        technical_weight: float,
        volatility: float,
    ) -> ConsensusResult:
        """
        Combine opinions into one consensus.

        Args:
            opinions: One opinion per source (neutral placeholders included)
            technical_score: Technical confidence 0..100
            weights: Percentage weight per source id
            technical_weight: Percentage weight of the technical score
            volatility: Per-bar volatility in percent, used for risk escalation

        Returns:
            ConsensusResult with confidence rounded to 2 decimals in [0, 100]
        """
        breakdown: dict[str, float] = {}
        total = 0.0

        for opinion in opinions:
            weight = weights.get(opinion.source)
            if weight is None:
                logger.warning("Opinion from unweighted source ignored", source=opinion.source)
                weight = 0.0
            contribution = opinion.confidence * weight / 100
            breakdown[opinion.source] = contribution
            total += contribution

        technical_contribution = technical_score * technical_weight / 100
        breakdown["technical"] = technical_contribution
        total += technical_contribution

        if not math.isfinite(total):
            candidates = [o.confidence for o in opinions]
            candidates.append(technical_score if math.isfinite(technical_score) else 50.0)
            total = max(c for c in candidates if math.isfinite(c))
            logger.warning("Non-finite consensus confidence, using highest input", fallback=total)

        confidence = round(max(0.0, min(100.0, total)), 2)

        result = ConsensusResult(
            confidence=confidence,
            recommendation=self.consensus_recommendation([o.recommendation for o in opinions]),
            risk_level=self.consensus_risk([o.risk_level for o in opinions], volatility),
            time_horizon=self.consensus_horizon([o.time_horizon for o in opinions]),
            price_target=self.consensus_target([o.price_target for o in opinions]),
            stop_loss=self.consensus_stop([o.stop_loss for o in opinions]),
            reasoning=self.build_reasoning(opinions),
            breakdown=breakdown,
        )

        logger.debug(
            "Consensus combined",
            confidence=result.confidence,
            recommendation=result.recommendation.value,
            risk_level=result.risk_level.value,
            sources=len(opinions)
        )
        return result

    @staticmethod
    def consensus_recommendation(recommendations: list[Recommendation]) -> Recommendation:
        """
        Unanimous vote wins; else a plurality of at least two votes; else the most
        conservative recommendation. Ties between pluralities resolve to the most
        conservative of the tied values.
        """
        if not recommendations:
            return Recommendation.HOLD

        if len(set(recommendations)) == 1:
            return recommendations[0]

        votes = Counter(recommendations)
        top = max(votes.values())

        if top >= 2:
            tied = [rec for rec, count in votes.items() if count == top]
            return min(tied, key=lambda rec: rec.priority)

        return min(recommendations, key=lambda rec: rec.priority)

    @staticmethod
    def consensus_risk(risks: list[RiskLevel], volatility: float) -> RiskLevel:
        """Average risk score, escalated to HIGH by volatility above 6%."""
        if volatility > 6:
            return RiskLevel.HIGH

        if not risks:
            return RiskLevel.MEDIUM

        average = sum(risk.score for risk in risks) / len(risks)

        if average <= 1.5:
            return RiskLevel.LOW
        if average >= 2.5:
            return RiskLevel.HIGH
        return RiskLevel.MEDIUM

    @staticmethod
    def consensus_horizon(horizons: list[TimeHorizon]) -> TimeHorizon:
        """Majority horizon (unique top with at least two votes), else MEDIUM."""
        if not horizons:
            return TimeHorizon.MEDIUM

        ranked = Counter(horizons).most_common()
        top_horizon, top_votes = ranked[0]
        if top_votes >= 2 and (len(ranked) == 1 or ranked[1][1] < top_votes):
            return top_horizon
        return TimeHorizon.MEDIUM

    @staticmethod
    def consensus_target(targets: list[Optional[float]]) -> Optional[float]:
        valid = [t for t in targets if _valid_price(t)]
        if not valid:
            return None
        return sum(valid) / len(valid)

    @staticmethod
    def consensus_stop(stops: list[Optional[float]]) -> Optional[float]:
        # Highest stop regardless of direction
        valid = [s for s in stops if _valid_price(s)]
        if not valid:
            return None
        return max(valid)

    @staticmethod
    def build_reasoning(opinions: list[AIOpinion]) -> str:
        if not opinions:
            return "No AI opinions available."

        agreements = []
        disagreements = []

        distinct = len({o.recommendation for o in opinions})
        if distinct == 1:
            agreements.append(f"All {len(opinions)} AIs agree on recommendation")
        elif distinct < len(opinions):
            agreements.append("Majority AI consensus on recommendation")
        else:
            disagreements.append("AIs have different recommendations")

        confidences = [o.confidence for o in opinions]
        if max(confidences) - min(confidences) < 20:
            agreements.append("Similar confidence levels across all models")
        else:
            disagreements.append("Varying confidence levels between models")

        reasoning = ""
        if agreements:
            reasoning += f"Consensus: {', '.join(agreements)}. "
        if disagreements:
            reasoning += f"Note: {', '.join(disagreements)}. "

        most_confident = max(opinions, key=lambda o: o.confidence)
        insight = most_confident.reasoning.split(".")[0].strip() or "no reasoning given"
        reasoning += f"Key insight: {insight}."
        return reasoning
