"""Indicator calculations for technical analysis"""

from .atr import calculate_atr, calculate_natr, calculate_true_range
from .indicators import (
    calculate_annualized_volatility,
    calculate_bollinger,
    calculate_ema,
    calculate_ema_series,
    calculate_macd,
    calculate_momentum,
    calculate_rsi,
    calculate_volatility,
    find_pivot_levels,
    find_price_pivots,
    find_swing_range,
)
from .volume import calculate_average_volume, calculate_volume_ratio

__all__ = [
    "calculate_atr",
    "calculate_natr",
    "calculate_true_range",
    "calculate_annualized_volatility",
    "calculate_bollinger",
    "calculate_ema",
    "calculate_ema_series",
    "calculate_macd",
    "calculate_momentum",
    "calculate_rsi",
    "calculate_volatility",
    "find_pivot_levels",
    "find_price_pivots",
    "find_swing_range",
    "calculate_average_volume",
    "calculate_volume_ratio",
]
