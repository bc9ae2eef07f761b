"""Volume average and ratio calculations"""

from typing import Optional


def calculate_average_volume(volume_history: list[float], period: int = 20) -> Optional[float]:
    """
    Mean of the last ``period`` bar volumes (fewer if the history is shorter).

    Returns:
        Average volume or None if the history is empty
    """
    recent_volumes = volume_history[-period:]
    if not recent_volumes:
        return None
    return sum(recent_volumes) / len(recent_volumes)


def calculate_volume_ratio(
    volume_24h: float,
    volume_history: list[float],
    period: int = 20,
    bars_per_day: int = 24
) -> Optional[float]:
    """
    Relative volume of the last 24h against the recent hourly average.

    ratio = volume_24h / (avg_bar_volume * bars_per_day)

    Args:
        volume_24h: Rolling 24h volume from the ticker
        volume_history: Hourly bar volumes, oldest first
        period: Number of bars averaged
        bars_per_day: Bars in 24h for the history timeframe

    Returns:
        Volume ratio or None if the average is unavailable or zero
    """
    volume_average = calculate_average_volume(volume_history, period)

    if volume_average is None or volume_average <= 0 or volume_24h <= 0:
        return None

    return volume_24h / (volume_average * bars_per_day)
