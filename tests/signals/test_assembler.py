"""Tests for the signal assembly pipeline"""

import threading
from dataclasses import replace
from datetime import timezone

import pytest

from protrade_app.config.defaults import get_default_config
from protrade_app.consensus.models import AIOpinion, Recommendation, RiskLevel
from protrade_app.data.providers import MarketDataFetcher
from protrade_app.dedup.guard import DeduplicationStore
from protrade_app.engine import SignalAssembler, build_signal_assembler
from protrade_app.errors import ConfigurationError
from protrade_app.models.indicators import MacdValues, SupportResistance
from protrade_app.models.market import MarketContext, MarketRegime
from protrade_app.signals.models import Direction, RejectionReason, SignalStatus, Strength

from conftest import (
    FixedIndicatorAnalyzer,
    StaticMarketProvider,
    StubOpinionProvider,
    bullish_indicators,
    make_signal,
)


class FallingMarketProvider(StaticMarketProvider):
    """Same candles as the static provider, in falling order."""

    def get_candles(self, symbol, timeframe, limit):
        rows = super().get_candles(symbol, timeframe, limit)
        return [[row[0]] + mirrored[1:] for row, mirrored in zip(rows, reversed(rows))]


class BrokenAnalyzer(FixedIndicatorAnalyzer):
    def compute_indicators(self, candles, ticker):
        raise RuntimeError("indicator bug")


class SymbolOpinionProvider(StubOpinionProvider):
    """BUY opinion whose confidence depends on the symbol."""

    def __init__(self, source, confidences):
        super().__init__(source)
        self.confidences = confidences

    def analyze(self, symbol, context):
        self.calls += 1
        return AIOpinion(source=self.source_id, confidence=self.confidences[symbol],
                         recommendation=Recommendation.BUY)


def opinions(confidence=90.0, recommendation=Recommendation.BUY, **fields):
    return [StubOpinionProvider(source, confidence, recommendation, **fields)
            for source in ("gpt", "claude", "gemini")]


def make_assembler(clock, providers, config=None, indicators=None, market=None, analyzer=None):
    config = config or get_default_config()
    return SignalAssembler(
        config=config,
        analyzer=analyzer or FixedIndicatorAnalyzer(
            indicators or bullish_indicators(), params=config.indicators, thresholds=config.thresholds
        ),
        guard=DeduplicationStore(config.dedup, clock, tz=timezone.utc),
        market_data=MarketDataFetcher(market or StaticMarketProvider(), config.market_data, clock),
        opinion_providers=providers,
        clock=clock,
    )


def with_thresholds(**changes):
    config = get_default_config()
    return replace(config, thresholds=replace(config.thresholds, **changes))


class TestAcceptedSignal:
    """Test the full pipeline on a clean bullish setup"""

    def test_signal_fields(self, clock, bullish_opinions):
        """Test direction, confidence, stop, target and sizing"""
        assembler = make_assembler(clock, bullish_opinions)
        result = assembler.assemble("BTC-USDT")

        assert result.accepted
        signal = result.signal
        assert signal.id == f"BTC-USDT_{int(clock.now().timestamp() * 1000)}"
        assert signal.direction == Direction.LONG
        assert signal.strength == Strength.MEDIUM
        assert signal.entry_price == pytest.approx(100.1)
        assert signal.final_confidence == pytest.approx(86.15)
        assert signal.stop_loss == pytest.approx(100.1 * 0.97)
        assert signal.take_profit == pytest.approx(100.1 * 1.05)
        assert signal.position_size == 15.0
        assert signal.risk_reward == pytest.approx(5 / 3)
        assert signal.max_loss == pytest.approx(0.45)
        assert signal.status == SignalStatus.GENERATED
        assert signal.market_regime == "UNKNOWN"

    def test_exit_plan_attached(self, clock, bullish_opinions):
        """Test that the accepted signal carries an ordered take-profit plan"""
        signal = make_assembler(clock, bullish_opinions).assemble("BTC-USDT").signal
        plan = signal.take_profit_plan

        assert plan is not None
        assert signal.entry_price < plan.tp1.price < plan.tp2.price < plan.tp3.price

    def test_registered_with_guard(self, clock, bullish_opinions):
        """Test that acceptance takes the symbol lock"""
        assembler = make_assembler(clock, bullish_opinions)
        assembler.assemble("BTC-USDT")

        assert assembler.guard.has_active_lock("BTC-USDT")
        assert assembler.guard.daily_count("BTC-USDT") == 1

    def test_every_source_consulted(self, clock, bullish_opinions):
        """Test that each opinion provider is asked once"""
        make_assembler(clock, bullish_opinions).assemble("BTC-USDT")
        assert [p.calls for p in bullish_opinions] == [1, 1, 1]

    def test_strong_in_bull_regime(self, clock, bullish_opinions):
        """Test the bull regime adds the RSI vote and makes the signal strong"""
        assembler = make_assembler(clock, bullish_opinions)
        signal = assembler.assemble("BTC-USDT", MarketContext(regime=MarketRegime.BULL)).signal

        assert signal.strength == Strength.STRONG
        assert signal.technical["confidence"] == 85.0
        assert signal.market_regime == "BULL"

    def test_consensus_levels_used_when_valid(self, clock):
        """Test consensus stop and target replace the static levels on the right side of entry"""
        providers = opinions(stop_loss=96.0, price_target=110.0)
        signal = make_assembler(clock, providers).assemble("BTC-USDT").signal

        assert signal.stop_loss == 96.0
        assert signal.take_profit == 110.0

    def test_consensus_levels_ignored_on_wrong_side(self, clock):
        """Test a stop above a LONG entry is ignored"""
        providers = opinions(stop_loss=105.0)
        signal = make_assembler(clock, providers).assemble("BTC-USDT").signal

        assert signal.stop_loss == pytest.approx(100.1 * 0.97)

    def test_low_risk_increases_size(self, clock):
        """Test low consensus risk scales the base amount by 1.2"""
        providers = opinions(risk_level=RiskLevel.LOW)
        signal = make_assembler(clock, providers).assemble("BTC-USDT").signal

        assert signal.risk_level == "LOW"
        assert signal.position_size == pytest.approx(18.0)

    def test_synthetic_data_flagged(self, clock, bullish_opinions):
        """Test a failing exchange falls back to synthetic data and is marked"""
        assembler = make_assembler(clock, bullish_opinions, market=StaticMarketProvider(fail=True))
        result = assembler.assemble("BTC-USDT")

        assert result.accepted
        assert result.signal.market_context["synthetic_data"] is True


class TestPositionSize:
    """Test risk-scaled sizing"""

    def test_size_multipliers(self, clock):
        """Test 15 base scaled by risk level"""
        assembler = make_assembler(clock, [])
        assert assembler.calculate_position_size(RiskLevel.LOW) == pytest.approx(18.0)
        assert assembler.calculate_position_size(RiskLevel.MEDIUM) == pytest.approx(15.0)
        assert assembler.calculate_position_size(RiskLevel.HIGH) == pytest.approx(10.5)

    def test_size_clamped(self, clock):
        """Test trade amount limits"""
        config = get_default_config()
        config = replace(config, capital=replace(config.capital, total_capital=100000.0))
        assembler = make_assembler(clock, [], config=config)
        assert assembler.calculate_position_size(RiskLevel.MEDIUM) == 50.0


class TestRejections:
    """Test each gate's rejection reason"""

    def test_no_direction(self, clock, bullish_opinions):
        """Test neutral indicators produce no direction"""
        neutral = replace(
            bullish_indicators(),
            ema9=100.0, ema21=100.0, ema50=100.0,
            macd=MacdValues(macd=0.0, signal=0.0, histogram=0.0),
            volume_ratio=1.0,
            levels=SupportResistance(),
        )
        result = make_assembler(clock, bullish_opinions, indicators=neutral).assemble("BTC-USDT")

        assert result.reason == RejectionReason.NO_DIRECTION
        assert [p.calls for p in bullish_opinions] == [0, 0, 0]

    def test_weak_signal(self, clock, bullish_opinions):
        """Test a 55% bull-regime vote is blocked as weak"""
        weak = replace(bullish_indicators(), volume_ratio=1.0, levels=SupportResistance())
        assembler = make_assembler(clock, bullish_opinions, indicators=weak)
        result = assembler.assemble("BTC-USDT", MarketContext(regime=MarketRegime.BULL))

        assert result.reason == RejectionReason.WEAK_SIGNAL

    def test_low_technical_confidence(self, clock, bullish_opinions):
        """Test the technical confidence floor"""
        config = with_thresholds(technical_min_confidence=80.0)
        result = make_assembler(clock, bullish_opinions, config=config).assemble("BTC-USDT")

        assert result.reason == RejectionReason.LOW_TECHNICAL_CONFIDENCE

    def test_low_consensus_confidence(self, clock):
        """Test consensus below 75 is rejected"""
        result = make_assembler(clock, opinions(50.0)).assemble("BTC-USDT")
        assert result.reason == RejectionReason.LOW_CONSENSUS_CONFIDENCE

    def test_neutral_opinions_cannot_pass(self, clock):
        """Test that failing providers leave consensus below the floor"""
        providers = [StubOpinionProvider(source, error=ConnectionError("down"))
                     for source in ("gpt", "claude", "gemini")]
        result = make_assembler(clock, providers).assemble("BTC-USDT")

        assert result.reason == RejectionReason.LOW_CONSENSUS_CONFIDENCE

    def test_consensus_disagrees(self, clock):
        """Test a SELL consensus against a LONG candidate"""
        result = make_assembler(clock, opinions(90.0, Recommendation.SELL)).assemble("BTC-USDT")
        assert result.reason == RejectionReason.CONSENSUS_DISAGREES

    def test_opposing_consensus_allowed_when_disabled(self, clock):
        """Test the direction gate can be switched off"""
        config = with_thresholds(reject_opposing_consensus=False)
        result = make_assembler(clock, opinions(90.0, Recommendation.SELL), config=config).assemble("BTC-USDT")
        assert result.accepted

    def test_poor_risk_reward(self, clock):
        """Test a close consensus target fails the 1.5 risk/reward floor"""
        result = make_assembler(clock, opinions(price_target=102.0)).assemble("BTC-USDT")
        assert result.reason == RejectionReason.POOR_RISK_REWARD

    def test_max_loss_exceeded(self, clock, bullish_opinions):
        """Test the per-trade loss cap"""
        config = get_default_config()
        config = replace(config, capital=replace(config.capital, max_loss_fraction=0.005))
        result = make_assembler(clock, bullish_opinions, config=config).assemble("BTC-USDT")

        assert result.reason == RejectionReason.MAX_LOSS_EXCEEDED

    def test_counter_regime_needs_80(self, clock):
        """Test a LONG in a bear market with 79.25 consensus is rejected"""
        assembler = make_assembler(clock, opinions(80.0))
        result = assembler.assemble("BTC-USDT", MarketContext(regime=MarketRegime.BEAR))

        assert result.reason == RejectionReason.REGIME_CONFLICT

    def test_counter_regime_accepted_when_confident(self, clock, bullish_opinions):
        """Test a LONG in a bear market with 86.15 consensus passes"""
        assembler = make_assembler(clock, bullish_opinions)
        result = assembler.assemble("BTC-USDT", MarketContext(regime=MarketRegime.BEAR))

        assert result.accepted

    def test_timeframe_conflict(self, clock, bullish_opinions):
        """Test falling timeframes veto a LONG when confirmation is required"""
        config = with_thresholds(require_multi_timeframe=True)
        assembler = make_assembler(clock, bullish_opinions, config=config, market=FallingMarketProvider())

        assert assembler.assemble("BTC-USDT").reason == RejectionReason.TIMEFRAME_CONFLICT

    def test_timeframes_confirm(self, clock, bullish_opinions):
        """Test rising timeframes pass the confirmation gate"""
        config = with_thresholds(require_multi_timeframe=True)
        assert make_assembler(clock, bullish_opinions, config=config).assemble("BTC-USDT").accepted

    def test_market_data_unavailable(self, clock, bullish_opinions):
        """Test exchange failure without synthetic fallback"""
        config = get_default_config()
        config = replace(config, market_data=replace(config.market_data, synthetic_fallback=False))
        assembler = make_assembler(clock, bullish_opinions, config=config, market=StaticMarketProvider(fail=True))

        assert assembler.assemble("BTC-USDT").reason == RejectionReason.MARKET_DATA_UNAVAILABLE

    def test_internal_error_contained(self, clock, bullish_opinions):
        """Test unexpected exceptions become INTERNAL_ERROR results"""
        assembler = make_assembler(clock, bullish_opinions, analyzer=BrokenAnalyzer(bullish_indicators()))
        result = assembler.assemble("BTC-USDT")

        assert result.reason == RejectionReason.INTERNAL_ERROR
        assert "indicator bug" in result.detail


class TestDeduplicationGates:
    """Test the gates that consult the deduplication store"""

    def test_too_soon(self, clock, bullish_opinions):
        """Test an immediate second pass is too soon"""
        assembler = make_assembler(clock, bullish_opinions)
        assembler.assemble("BTC-USDT")

        assert assembler.assemble("BTC-USDT").reason == RejectionReason.TOO_SOON

    def test_active_lock(self, clock, bullish_opinions):
        """Test the lock outlives the minimum gap"""
        assembler = make_assembler(clock, bullish_opinions)
        assembler.assemble("BTC-USDT")
        clock.advance(minutes=16)

        assert assembler.assemble("BTC-USDT").reason == RejectionReason.ACTIVE_LOCK

    def test_duplicate(self, clock, bullish_opinions):
        """Test a released lock still leaves the duplicate window"""
        assembler = make_assembler(clock, bullish_opinions)
        signal = assembler.assemble("BTC-USDT").signal
        assembler.expire_signal(signal)
        clock.advance(minutes=16)

        assert assembler.assemble("BTC-USDT").reason == RejectionReason.DUPLICATE

    def test_daily_cap(self, clock, bullish_opinions):
        """Test the per-symbol daily cap"""
        config = get_default_config()
        config = replace(config, dedup=replace(config.dedup, max_daily_signals=1))
        assembler = make_assembler(clock, bullish_opinions, config=config)
        assembler.assemble("BTC-USDT")
        clock.advance(minutes=31)

        assert assembler.assemble("BTC-USDT").reason == RejectionReason.DAILY_CAP

    def test_accepted_again_after_windows(self, clock, bullish_opinions):
        """Test a new signal once lock and duplicate windows have passed"""
        assembler = make_assembler(clock, bullish_opinions)
        assembler.assemble("BTC-USDT")
        clock.advance(minutes=31)

        assert assembler.assemble("BTC-USDT").accepted


class TestGenerateSignals:
    """Test multi-symbol generation"""

    def test_sorted_by_confidence(self, clock):
        """Test signals come back highest confidence first"""
        confidences = {"BTC-USDT": 80.0, "ETH-USDT": 95.0}
        providers = [SymbolOpinionProvider(source, confidences) for source in ("gpt", "claude", "gemini")]
        market = StaticMarketProvider({"BTC-USDT": 100.0, "ETH-USDT": 100.0})
        assembler = make_assembler(clock, providers, market=market)

        signals = assembler.generate_signals(["BTC-USDT", "ETH-USDT"])

        assert [s.symbol for s in signals] == ["ETH-USDT", "BTC-USDT"]

    def test_rejections_excluded(self, clock, bullish_opinions):
        """Test rejected symbols are left out and counted"""
        assembler = make_assembler(clock, bullish_opinions)
        assembler.assemble("BTC-USDT")

        signals = assembler.generate_signals(["BTC-USDT"])

        assert signals == []
        assert assembler.rejections["too_soon"] == 1


class TestSignalTracking:
    """Test status updates and statistics"""

    def test_mark_executed(self, clock, bullish_opinions):
        """Test the stored signal is replaced with the executed copy"""
        assembler = make_assembler(clock, bullish_opinions)
        signal = assembler.assemble("BTC-USDT").signal

        executed = assembler.mark_executed(signal)

        assert executed.status == SignalStatus.EXECUTED
        assert signal.status == SignalStatus.GENERATED
        assert assembler.signals[-1].status == SignalStatus.EXECUTED

    def test_expire_releases_lock(self, clock, bullish_opinions):
        """Test expiry frees the symbol lock"""
        assembler = make_assembler(clock, bullish_opinions)
        signal = assembler.assemble("BTC-USDT").signal

        expired = assembler.expire_signal(signal)

        assert expired.status == SignalStatus.EXPIRED
        assert not assembler.guard.has_active_lock("BTC-USDT")

    def test_stats(self, clock, bullish_opinions):
        """Test aggregate statistics"""
        assembler = make_assembler(clock, bullish_opinions)
        assembler.assemble("BTC-USDT")
        assembler.assemble("BTC-USDT")

        stats = assembler.get_signal_stats()

        assert stats["total"] == 1
        assert stats["by_direction"] == {"LONG": 1}
        assert stats["by_status"] == {"GENERATED": 1}
        assert stats["average_confidence"] == pytest.approx(86.15)
        assert stats["rejections"] == {"too_soon": 1}
        assert stats["recent"][0]["symbol"] == "BTC-USDT"


class TestClassifyMarket:
    """Test regime classification from the reference coins"""

    REFERENCE = {symbol: 100.0 for symbol in ("BTC-USDT", "ETH-USDT", "SOL-USDT", "ADA-USDT", "DOT-USDT")}

    def test_rising_references_bull(self, clock, bullish_opinions):
        """Test rising candles on every timeframe with high volume classify as BULL"""
        assembler = make_assembler(clock, bullish_opinions, market=StaticMarketProvider(self.REFERENCE))

        context = assembler.classify_market()

        assert context.regime == MarketRegime.BULL
        assert context.bull_score == pytest.approx(62.5)
        assert context.bear_score == 0.0

    def test_falling_references_with_fear_bear(self, clock, bullish_opinions):
        """Test falling trends plus extreme fear classify as BEAR"""
        assembler = make_assembler(clock, bullish_opinions, market=FallingMarketProvider(self.REFERENCE))

        context = assembler.classify_market(fear_greed=20.0)

        assert context.regime == MarketRegime.BEAR
        assert context.bear_score == pytest.approx(57.5)

    def test_no_reference_data_unknown(self, clock, bullish_opinions):
        """Test that unavailable reference data leaves the regime UNKNOWN"""
        config = get_default_config()
        config = replace(config, market_data=replace(config.market_data, synthetic_fallback=False))
        assembler = make_assembler(clock, bullish_opinions, config=config,
                                   market=StaticMarketProvider(self.REFERENCE, fail=True))

        assert assembler.classify_market().regime == MarketRegime.UNKNOWN

    def test_context_drives_pass(self, clock, bullish_opinions):
        """Test a classified BULL context yields STRONG signals"""
        assembler = make_assembler(clock, bullish_opinions, market=StaticMarketProvider(self.REFERENCE))

        signals = assembler.generate_signals(["BTC-USDT"], assembler.classify_market())

        assert signals[0].strength == Strength.STRONG
        assert signals[0].market_regime == "BULL"

class TestConcurrentTracking:
    """Test bookkeeping while a generation pass runs on worker threads"""

    SYMBOLS = [f"C{i}-USDT" for i in range(40)]

    def make_busy_assembler(self, clock, bullish_opinions):
        config = get_default_config()
        config = replace(config, runtime=replace(config.runtime, max_workers=8))
        prices = {symbol: 100.0 for symbol in self.SYMBOLS + ["SEED-USDT"]}
        return make_assembler(clock, bullish_opinions, config=config, market=StaticMarketProvider(prices))

    def test_mark_executed_during_pass(self, clock, bullish_opinions):
        """Test status updates interleaved with workers appending new signals"""
        assembler = self.make_busy_assembler(clock, bullish_opinions)
        for i in range(300):
            assembler.signals.append(make_signal(symbol=f"F{i}-USDT"))
        seed = assembler.assemble("SEED-USDT").signal

        errors = []

        def run_pass():
            try:
                assembler.generate_signals(self.SYMBOLS)
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=run_pass)
        worker.start()
        while worker.is_alive():
            assembler.mark_executed(seed)
        worker.join()
        assembler.mark_executed(seed)

        assert errors == []
        stats = assembler.get_signal_stats()
        assert stats["total"] == 341
        assert stats["by_status"]["EXECUTED"] == 1

    def test_rejections_counted_under_contention(self, clock, bullish_opinions):
        """Test every rejection from a concurrent pass is counted"""
        assembler = self.make_busy_assembler(clock, bullish_opinions)
        assert len(assembler.generate_signals(self.SYMBOLS)) == 40

        assert assembler.generate_signals(self.SYMBOLS) == []

        assert assembler.get_signal_stats()["rejections"] == {"too_soon": 40}


class TestLifecycle:
    """Test worker pool ownership on close"""

    def test_close_stops_owned_pools(self, clock):
        """Test closing a factory-built assembler stops its own and its fetcher's pools"""
        with build_signal_assembler(get_default_config(), StaticMarketProvider(), [], clock) as assembler:
            assert assembler.market_data.provider is not None

        with pytest.raises(RuntimeError):
            assembler.executor.submit(int)
        with pytest.raises(RuntimeError):
            assembler.market_data.executor.submit(int)

    def test_injected_fetcher_left_open(self, clock, bullish_opinions):
        """Test closing leaves an injected fetcher usable"""
        assembler = make_assembler(clock, bullish_opinions)
        assembler.close()

        assert assembler.market_data.get_price("BTC-USDT") == 100.0
        assembler.market_data.close()


class TestFactory:
    """Test assembler construction from configuration"""

    def test_invalid_config_rejected(self):
        """Test weights outside tolerance stop startup"""
        config = get_default_config()
        config = replace(config, ai=replace(config.ai, weights={"gpt": 80.0, "claude": 30.0}))

        with pytest.raises(ConfigurationError):
            build_signal_assembler(config, StaticMarketProvider())

    def test_valid_config(self, clock):
        """Test a default configuration wires every collaborator"""
        assembler = build_signal_assembler(get_default_config(), StaticMarketProvider(), [], clock)

        assert assembler.clock is clock
        assert assembler.market_data.provider is not None
