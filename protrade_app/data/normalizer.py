"""
Normalization of raw provider payloads into canonical models.

Providers return plain dicts (or exchange-style arrays); rows that are
malformed or carry non-finite numbers are dropped rather than propagated.
"""

import math
from datetime import datetime, timezone
from typing import Any, Optional, Union

import structlog

from ..errors import MalformedDataError, MissingDataError
from .models import Candle, Ticker

logger = structlog.get_logger(__name__)

_CANDLE_FIELDS = ("ts", "open", "high", "low", "close", "volume")


def _to_float(value: Any) -> float:
    result = float(value)
    if not math.isfinite(result):
        raise ValueError(f"non-finite value: {value}")
    return result


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    millis = int(float(value))
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)


def parse_candle(raw: Union[dict[str, Any], list, tuple, Candle]) -> Candle:
    """
    Parse a single candle from a dict or an exchange-style array.

    Arrays follow the common [ts, open, high, low, close, volume, ...] layout.

    Raises:
        MalformedDataError: if the row cannot be parsed or has inconsistent prices
    """
    if isinstance(raw, Candle):
        return raw

    try:
        if isinstance(raw, dict):
            values = [raw.get(name, raw.get("timestamp") if name == "ts" else None)
                      for name in _CANDLE_FIELDS]
        else:
            values = list(raw[:6])

        ts = _to_datetime(values[0])
        open_, high, low, close, volume = (_to_float(v) for v in values[1:6])
    except (TypeError, ValueError, IndexError, OverflowError) as e:
        raise MalformedDataError(
            f"Invalid candle row: {e}",
            raw_data=str(raw)[:200],
            expected_format="[ts, open, high, low, close, volume]"
        ) from e

    if high < low or close <= 0 or volume < 0:
        raise MalformedDataError(
            "Inconsistent candle prices",
            raw_data=str(raw)[:200],
            expected_format="high >= low, close > 0, volume >= 0"
        )

    return Candle(ts=ts, open=open_, high=high, low=low, close=close, volume=volume)


def normalize_candles(rows: Optional[list[Any]]) -> list[Candle]:
    """Parse candle rows oldest-first, dropping malformed ones."""
    candles = []
    dropped = 0

    for row in rows or []:
        try:
            candles.append(parse_candle(row))
        except MalformedDataError as e:
            dropped += 1
            logger.debug("Dropping malformed candle", error=str(e), raw=e.raw_data)

    if dropped:
        logger.warning("Dropped malformed candles", dropped=dropped, kept=len(candles))

    candles.sort(key=lambda c: c.ts)
    return candles


def normalize_ticker(symbol: str, raw: Union[dict[str, Any], Ticker]) -> Ticker:
    """
    Parse a ticker payload.

    Accepts ``price``/``lastPrice``, ``change24h``/``priceChangePercent`` and
    ``volume24h``/``quoteVolume`` spellings.

    Raises:
        MalformedDataError: if the price is non-numeric or not positive
        MissingDataError: if the payload carries no price at all
    """
    if isinstance(raw, Ticker):
        return raw
    if isinstance(raw, dict) and raw.get("price", raw.get("lastPrice")) is None:
        raise MissingDataError(f"Ticker for {symbol} has no price", data_type="ticker_price")

    try:
        price = _to_float(raw.get("price", raw.get("lastPrice")))
        change = _to_float(raw.get("change24h", raw.get("priceChangePercent", 0.0)))
        volume = _to_float(raw.get("volume24h", raw.get("quoteVolume", 0.0)))
        high = raw.get("high24h", raw.get("highPrice"))
        low = raw.get("low24h", raw.get("lowPrice"))
        ts = raw.get("ts")
    except (AttributeError, TypeError, ValueError) as e:
        raise MalformedDataError(
            f"Invalid ticker for {symbol}: {e}",
            raw_data=str(raw)[:200],
            expected_format="{price, change24h, volume24h}"
        ) from e

    if price <= 0:
        raise MalformedDataError(
            f"Non-positive price for {symbol}",
            raw_data=str(raw)[:200],
            expected_format="price > 0"
        )

    return Ticker(
        symbol=symbol,
        price=price,
        change_24h=change,
        volume_24h=volume,
        high_24h=float(high) if high is not None else None,
        low_24h=float(low) if low is not None else None,
        ts=_to_datetime(ts) if ts is not None else None,
    )
