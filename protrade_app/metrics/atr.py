"""ATR (Average True Range) and NATR (Normalized ATR) calculations"""

from typing import Optional

from ..data.models import Candle


def calculate_true_range(current: Candle, previous: Optional[Candle] = None) -> float:
    """
    Calculate True Range for a single candle

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close))

    Args:
        current: Current candle
        previous: Previous candle (None for first candle)

    Returns:
        True Range value
    """
    if previous is None:
        return current.high - current.low

    range_hl = current.high - current.low
    range_hc = abs(current.high - previous.close)
    range_lc = abs(current.low - previous.close)

    return max(range_hl, range_hc, range_lc)


def calculate_atr(candles: list[Candle], period: int = 14) -> Optional[float]:
    """
    Calculate Average True Range as the simple mean of the last ``period`` TRs

    Args:
        candles: Candles in chronological order
        period: ATR period (default 14)

    Returns:
        ATR value or None if insufficient data
    """
    if period <= 0 or len(candles) < period:
        return None

    true_ranges = [
        calculate_true_range(candles[i], candles[i - 1] if i > 0 else None)
        for i in range(len(candles))
    ]

    recent_trs = true_ranges[-period:]
    return sum(recent_trs) / len(recent_trs)


def calculate_natr(atr: float, current_price: float) -> float:
    """
    Calculate Normalized Average True Range

    NATR = 100 * ATR / current_price

    Returns:
        NATR percentage value (0.0 for a non-positive price)
    """
    if current_price <= 0:
        return 0.0

    return 100.0 * atr / current_price
