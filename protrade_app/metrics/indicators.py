"""
Price-series indicators: RSI, EMA, MACD, Bollinger bands, volatility,
momentum and pivot levels.

Every function returns None when the series is too short; callers choose
the neutral default.
"""

import math
from typing import Optional

from ..models.indicators import BollingerBands, MacdValues, SupportResistance


def calculate_ema_series(values: list[float], period: int) -> list[float]:
    """
    Exponential moving average series seeded with the SMA of the first ``period`` values.

    Returns:
        EMA values aligned to values[period-1:], empty if insufficient data
    """
    if period <= 0 or len(values) < period:
        return []

    k = 2.0 / (period + 1)
    ema = sum(values[:period]) / period
    series = [ema]

    for value in values[period:]:
        ema = (value - ema) * k + ema
        series.append(ema)

    return series


def calculate_ema(values: list[float], period: int) -> Optional[float]:
    """Latest EMA over the last ``period * 2`` values."""
    series = calculate_ema_series(values[-period * 2:], period)
    return series[-1] if series else None


def calculate_rsi(closes: list[float], period: int = 14) -> Optional[float]:
    """
    Relative Strength Index with Wilder smoothing.

    Returns:
        Latest RSI in [0, 100] or None if fewer than period + 1 closes
    """
    if len(closes) <= period:
        return None

    changes = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    avg_gain = sum(max(c, 0.0) for c in changes[:period]) / period
    avg_loss = sum(max(-c, 0.0) for c in changes[:period]) / period

    for change in changes[period:]:
        avg_gain = (avg_gain * (period - 1) + max(change, 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + max(-change, 0.0)) / period

    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0

    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_macd(
    closes: list[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9
) -> Optional[MacdValues]:
    """
    MACD line, signal line and histogram.

    The signal line and histogram are 0 until enough MACD values exist.
    """
    if len(closes) < slow_period:
        return None

    fast = calculate_ema_series(closes, fast_period)
    slow = calculate_ema_series(closes, slow_period)
    offset = slow_period - fast_period
    macd_line = [f - s for f, s in zip(fast[offset:], slow)]

    if not macd_line:
        return None

    signal_series = calculate_ema_series(macd_line, signal_period)
    if not signal_series:
        return MacdValues(macd=macd_line[-1], signal=0.0, histogram=0.0)

    signal = signal_series[-1]
    return MacdValues(macd=macd_line[-1], signal=signal, histogram=macd_line[-1] - signal)


def calculate_bollinger(
    closes: list[float],
    period: int = 20,
    std_dev: float = 2.0
) -> Optional[BollingerBands]:
    """Bollinger bands over the last ``period`` closes (population deviation)."""
    if len(closes) < period:
        return None

    window = closes[-period:]
    middle = sum(window) / period
    deviation = math.sqrt(sum((c - middle) ** 2 for c in window) / period)

    return BollingerBands(
        upper=middle + std_dev * deviation,
        middle=middle,
        lower=middle - std_dev * deviation,
    )


def calculate_returns_std(prices: list[float]) -> Optional[float]:
    """Population standard deviation of simple returns (as a fraction)."""
    if len(prices) < 2:
        return None

    returns = [(prices[i] - prices[i - 1]) / prices[i - 1] for i in range(1, len(prices))]
    mean = sum(returns) / len(returns)
    return math.sqrt(sum((r - mean) ** 2 for r in returns) / len(returns))


def calculate_volatility(prices: list[float], min_points: int = 20) -> Optional[float]:
    """Per-bar volatility in percent."""
    if len(prices) < min_points:
        return None
    std = calculate_returns_std(prices)
    return std * 100 if std is not None else None


def calculate_annualized_volatility(prices: list[float], min_points: int = 20) -> Optional[float]:
    """Volatility scaled by sqrt(365), in percent."""
    if len(prices) < min_points:
        return None
    std = calculate_returns_std(prices)
    return std * math.sqrt(365) * 100 if std is not None else None


def calculate_momentum(prices: list[float], window: int = 10) -> Optional[float]:
    """Percent change of the mean of the last ``window`` prices over the ``window`` before."""
    if len(prices) < window * 2:
        return None

    recent = prices[-window:]
    older = prices[-window * 2:-window]
    older_avg = sum(older) / window
    recent_avg = sum(recent) / window

    return (recent_avg - older_avg) / older_avg * 100


def find_pivot_levels(
    highs: list[float],
    lows: list[float],
    window: int = 2,
    keep: int = 3,
    min_bars: int = 10
) -> Optional[SupportResistance]:
    """
    Strict pivot highs/lows: a bar beats every neighbour within ``window`` bars.

    Returns:
        The ``keep`` most recent supports and resistances, or None if fewer
        than ``min_bars`` bars are available
    """
    if len(highs) < min_bars or len(lows) < min_bars:
        return None

    support = []
    resistance = []

    for i in range(window, len(lows) - window):
        neighbours = lows[i - window:i] + lows[i + 1:i + window + 1]
        if all(lows[i] < n for n in neighbours):
            support.append(lows[i])

    for i in range(window, len(highs) - window):
        neighbours = highs[i - window:i] + highs[i + 1:i + window + 1]
        if all(highs[i] > n for n in neighbours):
            resistance.append(highs[i])

    return SupportResistance(
        support=tuple(support[-keep:]),
        resistance=tuple(resistance[-keep:]),
    )


def find_price_pivots(prices: list[float], window: int = 10, min_points: int = 50,
                      keep: int = 5) -> SupportResistance:
    """
    Pivot levels from a single close series.

    Supports are sorted descending (nearest first below price), resistances
    ascending; duplicates removed, ``keep`` levels each.
    """
    if len(prices) < min_points:
        return SupportResistance()

    support = set()
    resistance = set()

    for i in range(window, len(prices) - window):
        current = prices[i]
        neighbours = prices[i - window:i] + prices[i + 1:i + window + 1]
        if all(n < current for n in neighbours):
            resistance.add(current)
        if all(n > current for n in neighbours):
            support.add(current)

    return SupportResistance(
        support=tuple(sorted(support, reverse=True)[:keep]),
        resistance=tuple(sorted(resistance)[:keep]),
    )


def find_swing_range(prices: list[float], lookback: int = 50) -> Optional[tuple[float, float]]:
    """Highest and lowest price of the last ``lookback`` points."""
    recent = [p for p in prices[-lookback:] if math.isfinite(p)]
    if not recent:
        return None
    return max(recent), min(recent)
