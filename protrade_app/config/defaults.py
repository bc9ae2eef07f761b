"""Default configuration parameters for the signal and position engine."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class CapitalParams:
    """Capital allocation and per-trade risk limits."""
    total_capital: float = 1000.0
    risk_per_trade: float = 1.5                      # % of capital risked per trade
    min_trade_amount: float = 10.0
    max_trade_amount: float = 50.0
    stop_loss_percent: float = 3.0                   # Static stop distance
    take_profit_percent: float = 5.0                 # Static single target
    max_loss_fraction: float = 0.5                   # maxLoss cap as fraction of max trade amount


@dataclass(frozen=True)
class IndicatorParams:
    """Technical indicator periods and thresholds."""
    rsi_period: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    ema_fast: int = 9
    ema_medium: int = 21
    ema_slow: int = 50
    ema_trend: int = 200
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bb_period: int = 20
    bb_std_dev: float = 2.0
    volume_sma: int = 20
    volume_spike_factor: float = 1.5
    atr_period: int = 14
    min_candles: int = 20
    sr_proximity_pct: float = 2.0                    # Level "near" price band


@dataclass(frozen=True)
class AIParams:
    """AI consensus weighting and confidence floors."""
    weights: dict[str, float] = field(default_factory=lambda: {
        "gpt": 35.0,
        "claude": 30.0,
        "gemini": 20.0,
    })
    technical_weight: float = 15.0
    weight_tolerance: float = 5.0                    # Sum must be 100 +/- tolerance
    min_confidence: float = 70.0
    confidence_buffer: float = 5.0
    opinion_timeout_seconds: float = 20.0


@dataclass(frozen=True)
class ThresholdParams:
    """Signal acceptance thresholds."""
    regime_min_confidence: dict[str, float] = field(default_factory=lambda: {
        "SIDEWAYS": 45.0,
        "BULL": 50.0,
        "BEAR": 65.0,
    })
    default_min_confidence: float = 60.0
    technical_min_confidence: float = 70.0
    counter_regime_min_confidence: float = 80.0      # LONG in BEAR / SHORT in BULL
    min_risk_reward: float = 1.5
    require_multi_timeframe: bool = False
    reject_opposing_consensus: bool = True
    block_weak_signals: bool = True


@dataclass(frozen=True)
class DedupParams:
    """Duplicate suppression windows and caps."""
    lock_ttl_seconds: int = 1800
    duplicate_window_seconds: int = 1800
    duplicate_price_tolerance: float = 0.02
    min_signal_gap_seconds: int = 900
    max_daily_signals: int = 6
    max_recent_signals: int = 10
    recent_retention_hours: int = 24
    daily_retention_days: int = 7


@dataclass(frozen=True)
class ExitMethodParams:
    """Per-method switch and base weight for dynamic exits."""
    enabled: bool = True
    weight: float = 20.0


def _default_exit_methods() -> dict[str, ExitMethodParams]:
    return {
        "percentage": ExitMethodParams(weight=20.0),
        "volatility": ExitMethodParams(weight=25.0),
        "atr": ExitMethodParams(weight=20.0),
        "support_resistance": ExitMethodParams(weight=30.0),
        "fibonacci": ExitMethodParams(weight=15.0),
        "regime": ExitMethodParams(weight=15.0),
    }


@dataclass(frozen=True)
class ExitParams:
    """Take-profit plan parameters."""
    tp_percents: tuple[float, float, float] = (2.5, 4.5, 7.0)
    allocations: tuple[float, float, float] = (40.0, 35.0, 25.0)
    dynamic_enabled: bool = True
    min_confidence: float = 70.0
    fallback_to_static: bool = True
    # Hard bounds applied to every plan (fraction of entry)
    long_min_tp1: float = 1.005
    long_max_tp1: float = 1.15
    long_max_tp2: float = 1.25
    long_max_tp3: float = 1.40
    short_max_tp1: float = 0.995
    short_min_tp1: float = 0.85
    short_min_tp2: float = 0.75
    short_min_tp3: float = 0.60
    methods: dict[str, ExitMethodParams] = field(default_factory=_default_exit_methods)


@dataclass(frozen=True)
class PositionParams:
    """Open position management parameters."""
    trailing_enabled: bool = True
    trailing_percent: float = 2.0
    taker_fee: float = 0.001
    max_hold_hours: float = 24.0


@dataclass(frozen=True)
class MarketDataParams:
    """Market data fetch parameters."""
    timeframes: tuple[str, ...] = ("4h", "1h", "15m")
    candle_limit: int = 100
    request_timeout_seconds: float = 10.0
    synthetic_fallback: bool = True


@dataclass(frozen=True)
class RegimeParams:
    """Market regime scoring weights."""
    fear_greed_weight: float = 20.0
    sentiment_weight: float = 30.0
    volume_weight: float = 25.0
    volatility_weight: float = 25.0
    decision_margin: float = 20.0


@dataclass(frozen=True)
class RuntimeParams:
    """Runtime concurrency and clock settings."""
    max_workers: int = 4
    timezone: Optional[str] = None                   # None = system local time


@dataclass(frozen=True)
class LoggingParams:
    """Logging output settings."""
    level: str = "INFO"
    format_json: bool = False


@dataclass(frozen=True)
class AppConfig:
    """Complete configuration."""
    capital: CapitalParams
    indicators: IndicatorParams
    ai: AIParams
    thresholds: ThresholdParams
    dedup: DedupParams
    exits: ExitParams
    position: PositionParams
    market_data: MarketDataParams
    regime: RegimeParams
    runtime: RuntimeParams
    logging: LoggingParams


def get_default_config() -> AppConfig:
    """Get the default configuration instance."""
    return AppConfig(
        capital=CapitalParams(),
        indicators=IndicatorParams(),
        ai=AIParams(),
        thresholds=ThresholdParams(),
        dedup=DedupParams(),
        exits=ExitParams(),
        position=PositionParams(),
        market_data=MarketDataParams(),
        regime=RegimeParams(),
        runtime=RuntimeParams(),
        logging=LoggingParams(),
    )
