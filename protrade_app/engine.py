"""
Signal assembly pipeline.

For each symbol: dedup pre-checks, market data, indicators, technical vote,
AI consensus, signal construction with risk metrics, quality gates, exit
plan, then atomic registration with the deduplication store. Every rejection
is returned as an ``AssemblyResult`` with a reason; nothing here raises.
"""

import threading
from collections import Counter, deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from .analysis.regime import RegimeInputs, classify_regime, trend_consensus, trend_direction
from .analysis.technical import DirectionalSignal, TechnicalAnalyzer
from .config.defaults import AppConfig, get_default_config
from .config.validation import ConfigValidator
from .consensus.engine import ConsensusEngine
from .consensus.models import ConsensusResult, RiskLevel
from .consensus.providers import AIOpinionProvider, OpinionCollector
from .data.models import MarketSnapshot
from .data.providers import MarketDataFetcher, MarketDataProvider
from .dedup.guard import DeduplicationStore
from .delivery.base import NotificationSink
from .errors import CollaboratorError
from .exits.calculator import DynamicExitCalculator
from .logging import get_gating_logger, log_gate_decision
from .models.indicators import IndicatorSet
from .models.market import MarketContext, MarketRegime, Trend
from .signals.models import Direction, RejectionReason, Signal, SignalStatus, Strength
from .state.runtime import PositionLifecycleManager
from .utils.time import Clock, SystemClock, epoch_millis, resolve_timezone

logger = structlog.get_logger(__name__)
gating_logger = get_gating_logger(__name__)

REFERENCE_SYMBOLS = ("BTC-USDT", "ETH-USDT", "SOL-USDT", "ADA-USDT", "DOT-USDT")

RISK_SIZE_MULTIPLIERS = {
    RiskLevel.LOW: 1.2,
    RiskLevel.MEDIUM: 1.0,
    RiskLevel.HIGH: 0.7,
}


@dataclass(frozen=True)
class AssemblyResult:
    """Outcome of assembling one symbol."""
    symbol: str
    signal: Optional[Signal] = None
    reason: Optional[RejectionReason] = None
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.signal is not None

    @classmethod
    def success(cls, signal: Signal) -> "AssemblyResult":
        return cls(symbol=signal.symbol, signal=signal)

    @classmethod
    def rejected(cls, symbol: str, reason: RejectionReason, detail: str = "") -> "AssemblyResult":
        return cls(symbol=symbol, reason=reason, detail=detail)


class SignalAssembler:
    """Turns market data and opinions into gated, deduplicated signals."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        analyzer: Optional[TechnicalAnalyzer] = None,
        consensus: Optional[ConsensusEngine] = None,
        guard: Optional[DeduplicationStore] = None,
        exit_calculator: Optional[DynamicExitCalculator] = None,
        market_data: Optional[MarketDataFetcher] = None,
        opinion_providers: Optional[list[AIOpinionProvider]] = None,
        clock: Optional[Clock] = None,
        collector: Optional[OpinionCollector] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        market_provider: Optional[MarketDataProvider] = None,
    ):
        self.config = config or get_default_config()
        self.clock = clock or SystemClock()
        self.analyzer = analyzer or TechnicalAnalyzer(self.config.indicators, self.config.thresholds)
        self.consensus = consensus or ConsensusEngine()
        self.guard = guard or DeduplicationStore(
            self.config.dedup, self.clock, resolve_timezone(self.config.runtime.timezone)
        )
        self.exit_calculator = exit_calculator or DynamicExitCalculator(self.config.exits)
        self._owns_market_data = market_data is None
        self.market_data = market_data or MarketDataFetcher(
            market_provider, self.config.market_data, self.clock,
            max_workers=self.config.runtime.max_workers
        )
        self.opinion_providers = list(opinion_providers or [])
        self.collector = collector or OpinionCollector(timeout_seconds=self.config.ai.opinion_timeout_seconds)
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.config.runtime.max_workers, thread_name_prefix="signal-assembly"
        )

        # signals and rejections are written from assembly workers
        self.signals: deque[Signal] = deque(maxlen=500)
        self.rejections: Counter = Counter()
        self._mutex = threading.Lock()

    def close(self) -> None:
        """Stop the pools this assembler created, including its own market data fetcher."""
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_market_data:
            self.market_data.close()

    def __enter__(self) -> "SignalAssembler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def calculate_position_size(self, risk_level: RiskLevel) -> float:
        """Trade amount from per-trade risk, scaled by consensus risk and clamped to trade limits."""
        capital = self.config.capital
        base = capital.total_capital * capital.risk_per_trade / 100
        size = base * RISK_SIZE_MULTIPLIERS.get(risk_level, 1.0)
        return max(capital.min_trade_amount, min(capital.max_trade_amount, size))

    def classify_market(
        self,
        reference_symbols: tuple[str, ...] = REFERENCE_SYMBOLS,
        fear_greed: float = 50.0,
        sentiment_score: float = 50.0,
    ) -> MarketContext:
        """
        Market context for a generation pass, built from the reference coins.

        Fear/greed and sentiment scores come from outside this package; the
        neutral defaults leave the decision to trends, volume and volatility.
        Returns an UNKNOWN regime when no reference symbol has market data.
        """
        short, medium, long_ = [], [], []
        volume_ratios, volatilities = [], []
        for symbol in reference_symbols:
            try:
                snapshot = self.market_data.fetch_snapshot(symbol)
            except CollaboratorError as e:
                logger.warning("Reference symbol unavailable for regime", symbol=symbol, error=str(e))
                continue
            short.append(trend_direction(snapshot.closes("15m")))
            medium.append(trend_direction(snapshot.closes("1h")))
            long_.append(trend_direction(snapshot.closes("4h")))
            indicators = self.analyzer.compute_indicators(snapshot.candles, snapshot.ticker)
            volume_ratios.append(indicators.volume_ratio)
            volatilities.append(indicators.volatility)

        if not volume_ratios:
            return MarketContext(regime=MarketRegime.UNKNOWN)

        inputs = RegimeInputs(
            fear_greed=fear_greed,
            sentiment_score=sentiment_score,
            volume_ratio=sum(volume_ratios) / len(volume_ratios),
            volatility=sum(volatilities) / len(volatilities),
            short_trend=trend_consensus(short),
            medium_trend=trend_consensus(medium),
            long_trend=trend_consensus(long_),
        )
        return classify_regime(inputs, self.config.regime)

    def generate_signals(self, symbols: list[str],
                         market_context: Optional[MarketContext] = None) -> list[Signal]:
        """
        Assemble every symbol concurrently; accepted signals sorted by confidence, highest first.

        ``market_context`` is normally the result of ``classify_market``; without
        one the regime is UNKNOWN.
        """
        futures = [self.executor.submit(self.assemble, symbol, market_context) for symbol in symbols]
        results = [future.result() for future in futures]

        signals = [r.signal for r in results if r.accepted]
        signals.sort(key=lambda s: s.final_confidence, reverse=True)

        logger.info(
            "Signal generation pass complete",
            symbols=len(symbols),
            accepted=len(signals),
            rejected={r.symbol: r.reason.value for r in results if not r.accepted}
        )
        return signals

    def assemble(self, symbol: str, market_context: Optional[MarketContext] = None) -> AssemblyResult:
        """Run the full pipeline for one symbol."""
        try:
            result = self._assemble(symbol, market_context or MarketContext(regime=MarketRegime.UNKNOWN))
        except Exception as e:
            logger.exception("Signal assembly failed", symbol=symbol, error=str(e))
            result = AssemblyResult.rejected(symbol, RejectionReason.INTERNAL_ERROR, str(e))

        with self._mutex:
            if result.accepted:
                self.signals.append(result.signal)
            else:
                self.rejections[result.reason.value] += 1
        return result

    def _reject(self, symbol: str, gate: str, reason: RejectionReason, detail: str,
                context: Optional[dict[str, Any]] = None) -> AssemblyResult:
        log_gate_decision(gating_logger, gate, False, symbol, detail, context)
        return AssemblyResult.rejected(symbol, reason, detail)

    def _assemble(self, symbol: str, market: MarketContext) -> AssemblyResult:
        thresholds = self.config.thresholds

        if self.guard.too_soon(symbol):
            return self._reject(symbol, "min_gap", RejectionReason.TOO_SOON,
                                "Previous signal too recent")
        if self.guard.has_active_lock(symbol):
            return self._reject(symbol, "active_lock", RejectionReason.ACTIVE_LOCK,
                                "Symbol has an active signal lock")

        try:
            snapshot = self.market_data.fetch_snapshot(symbol)
        except CollaboratorError as e:
            return self._reject(symbol, "market_data", RejectionReason.MARKET_DATA_UNAVAILABLE, str(e))

        indicators = self.analyzer.compute_indicators(snapshot.candles, snapshot.ticker)
        technical = self.analyzer.generate_directional_signal(indicators, market.regime)
        indicators = indicators.with_technical_score(technical.confidence)

        if technical.is_hold:
            return self._reject(symbol, "technical_direction", RejectionReason.NO_DIRECTION,
                                "No directional majority", {"confidence": technical.confidence})
        if thresholds.block_weak_signals and technical.strength == Strength.WEAK:
            return self._reject(symbol, "signal_strength", RejectionReason.WEAK_SIGNAL,
                                "Weak technical signal", {"confidence": technical.confidence})
        if technical.confidence < thresholds.technical_min_confidence:
            return self._reject(
                symbol, "technical_confidence", RejectionReason.LOW_TECHNICAL_CONFIDENCE,
                f"Technical confidence {technical.confidence} below {thresholds.technical_min_confidence}"
            )

        consensus = self._consensus(symbol, snapshot, indicators, technical, market)
        required = self.config.ai.min_confidence + self.config.ai.confidence_buffer
        if consensus.confidence < required:
            return self._reject(
                symbol, "consensus_confidence", RejectionReason.LOW_CONSENSUS_CONFIDENCE,
                f"Consensus confidence {consensus.confidence} below {required}",
                {"breakdown": consensus.breakdown}
            )
        if thresholds.reject_opposing_consensus and self._consensus_opposes(technical.direction, consensus):
            return self._reject(
                symbol, "consensus_direction", RejectionReason.CONSENSUS_DISAGREES,
                f"Consensus {consensus.recommendation.value} opposes {technical.direction.value}"
            )

        signal = self.build_signal(symbol, snapshot, indicators, technical, consensus, market)

        if signal.risk_reward < thresholds.min_risk_reward:
            return self._reject(symbol, "risk_reward", RejectionReason.POOR_RISK_REWARD,
                                f"Risk/reward {signal.risk_reward:.2f} below {thresholds.min_risk_reward}")
        max_loss_cap = self.config.capital.max_trade_amount * self.config.capital.max_loss_fraction
        if signal.max_loss > max_loss_cap:
            return self._reject(symbol, "max_loss", RejectionReason.MAX_LOSS_EXCEEDED,
                                f"Max loss {signal.max_loss:.2f} above {max_loss_cap:.2f}")
        if self._counter_regime(signal.direction, market.regime) \
                and signal.final_confidence < thresholds.counter_regime_min_confidence:
            return self._reject(
                symbol, "market_regime", RejectionReason.REGIME_CONFLICT,
                f"{signal.direction.value} against {market.regime.value} regime needs "
                f"{thresholds.counter_regime_min_confidence}"
            )
        if thresholds.require_multi_timeframe and not self._timeframes_confirm(snapshot, signal.direction):
            return self._reject(symbol, "multi_timeframe", RejectionReason.TIMEFRAME_CONFLICT,
                                "Higher or lower timeframe trend opposes signal")
        if self.guard.is_duplicate(symbol, signal.direction, signal.entry_price):
            return self._reject(symbol, "duplicate", RejectionReason.DUPLICATE,
                                "Similar signal issued recently")
        if self.guard.exceeds_daily_cap(symbol):
            return self._reject(symbol, "daily_cap", RejectionReason.DAILY_CAP,
                                "Daily signal limit reached")

        plan = self.exit_calculator.calculate(signal, snapshot.closes("1h"), indicators, market)
        signal = signal.with_exit_plan(plan)

        lost_race = self.guard.try_register(signal)
        if lost_race is not None:
            return self._reject(symbol, "registration", lost_race,
                                "Registration rejected by deduplication store")

        log_gate_decision(
            gating_logger, "quality_gate", True, symbol, "All gates passed",
            {
                "signal_id": signal.id,
                "direction": signal.direction.value,
                "confidence": signal.final_confidence,
                "risk_reward": round(signal.risk_reward, 2),
            }
        )
        return AssemblyResult.success(signal)

    def _consensus(self, symbol: str, snapshot: MarketSnapshot, indicators: IndicatorSet,
                   technical: DirectionalSignal, market: MarketContext) -> ConsensusResult:
        context = {
            "symbol": symbol,
            "price": snapshot.ticker.price,
            "change_24h": snapshot.ticker.change_24h,
            "volume_24h": snapshot.ticker.volume_24h,
            "indicators": indicators.to_dict(),
            "technical": technical.to_dict(),
            "market": market.to_dict(),
        }
        opinions = self.collector.collect(self.opinion_providers, symbol, context)
        return self.consensus.combine(
            opinions,
            technical.confidence,
            self.config.ai.weights,
            self.config.ai.technical_weight,
            indicators.volatility,
        )

    @staticmethod
    def _consensus_opposes(direction: Direction, consensus: ConsensusResult) -> bool:
        if direction == Direction.LONG:
            return consensus.recommendation.is_bearish
        return consensus.recommendation.is_bullish

    @staticmethod
    def _counter_regime(direction: Direction, regime: MarketRegime) -> bool:
        return (direction == Direction.LONG and regime == MarketRegime.BEAR) or \
            (direction == Direction.SHORT and regime == MarketRegime.BULL)

    def _timeframes_confirm(self, snapshot: MarketSnapshot, direction: Direction) -> bool:
        opposing = Trend.BEARISH if direction == Direction.LONG else Trend.BULLISH
        for timeframe in self.config.market_data.timeframes:
            if trend_direction(snapshot.closes(timeframe)) == opposing:
                return False
        return True

    def _stop_and_target(self, direction: Direction, entry: float,
                         consensus: ConsensusResult) -> tuple[float, float]:
        capital = self.config.capital
        sign = direction.sign
        stop = entry * (1 - sign * capital.stop_loss_percent / 100)
        target = entry * (1 + sign * capital.take_profit_percent / 100)

        # Consensus levels are only usable on the correct side of entry
        if consensus.stop_loss is not None and (entry - consensus.stop_loss) * sign > 0:
            stop = consensus.stop_loss
        if consensus.price_target is not None and (consensus.price_target - entry) * sign > 0:
            target = consensus.price_target
        return stop, target

    def build_signal(self, symbol: str, snapshot: MarketSnapshot, indicators: IndicatorSet,
                     technical: DirectionalSignal, consensus: ConsensusResult,
                     market: MarketContext) -> Signal:
        """Signal with static stop/target, size and risk metrics; exit plan not yet attached."""
        entry = technical.entry_price
        stop, target = self._stop_and_target(technical.direction, entry, consensus)
        size = self.calculate_position_size(consensus.risk_level)

        risk = abs(entry - stop)
        reward = abs(target - entry)
        risk_reward = reward / risk if risk > 0 else 0.0

        context = market.to_dict()
        if snapshot.synthetic:
            context["synthetic_data"] = True

        now = self.clock.now()
        return Signal(
            id=f"{symbol}_{epoch_millis(now)}",
            symbol=symbol,
            direction=technical.direction,
            strength=technical.strength,
            final_confidence=consensus.confidence,
            entry_price=entry,
            current_price=indicators.current_price,
            stop_loss=stop,
            take_profit=target,
            position_size=size,
            risk_reward=risk_reward,
            max_loss=size * risk / entry,
            max_gain=size * reward / entry,
            risk_level=consensus.risk_level.value,
            time_horizon=consensus.time_horizon.value,
            created_at=now,
            market_regime=market.regime.value,
            technical={**technical.to_dict(), "indicators": indicators.to_dict()},
            consensus=consensus.to_dict(),
            market_context=context,
            reasoning=f"{technical.reasoning} {consensus.reasoning}".strip(),
        )

    def mark_executed(self, signal: Signal) -> Signal:
        executed = signal.with_status(SignalStatus.EXECUTED)
        self._replace(executed)
        logger.info("Signal executed", signal_id=signal.id, symbol=signal.symbol)
        return executed

    def expire_signal(self, signal: Signal) -> Signal:
        """Mark a signal expired and free its symbol lock."""
        expired = signal.with_status(SignalStatus.EXPIRED)
        self._replace(expired)
        self.guard.release_lock(signal.symbol)
        logger.info("Signal expired", signal_id=signal.id, symbol=signal.symbol)
        return expired

    def _replace(self, signal: Signal) -> None:
        with self._mutex:
            for index, existing in enumerate(self.signals):
                if existing.id == signal.id:
                    self.signals[index] = signal
                    return

    def get_signal_stats(self) -> dict[str, Any]:
        with self._mutex:
            signals = list(self.signals)
            rejections = dict(self.rejections)
        total = len(signals)
        return {
            "total": total,
            "by_direction": dict(Counter(s.direction.value for s in signals)),
            "by_risk_level": dict(Counter(s.risk_level for s in signals)),
            "by_status": dict(Counter(s.status.value for s in signals)),
            "average_confidence": round(sum(s.final_confidence for s in signals) / total, 2) if total else 0.0,
            "rejections": rejections,
            "recent": [s.to_dict() for s in signals[-10:]],
        }


def build_signal_assembler(
    config: AppConfig,
    provider: Optional[MarketDataProvider],
    opinion_providers: Optional[list[AIOpinionProvider]] = None,
    clock: Optional[Clock] = None,
) -> SignalAssembler:
    """
    Wire a SignalAssembler from configuration.

    Raises:
        ConfigurationError: if the configuration is invalid
    """
    ConfigValidator.ensure_valid(config)
    return SignalAssembler(
        config=config,
        market_provider=provider,
        opinion_providers=opinion_providers,
        clock=clock,
    )


def build_position_manager(
    config: AppConfig,
    market_data: Any,
    sink: Optional[NotificationSink] = None,
    clock: Optional[Clock] = None,
) -> PositionLifecycleManager:
    return PositionLifecycleManager(
        params=config.position,
        exit_params=config.exits,
        capital=config.capital,
        market_data=market_data,
        sink=sink,
        clock=clock,
    )
