"""
Synthetic market data used when the market data collaborator is unavailable.

All randomness flows through an injectable ``random.Random`` so generated
series are reproducible.
"""

import random
from datetime import datetime, timedelta
from typing import Optional

from .models import Candle, MarketSnapshot, Ticker

BASE_PRICES = {
    "BTC": 65000.0,
    "ETH": 3500.0,
    "SOL": 150.0,
    "LINK": 15.0,
    "OP": 2.5,
    "ADA": 0.5,
    "DOT": 7.0,
    "AVAX": 35.0,
    "MATIC": 0.8,
    "UNI": 8.0,
}

TIMEFRAME_SECONDS = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "4h": 14400,
    "1d": 86400,
}


def base_asset(symbol: str) -> str:
    """Strip a quote-currency suffix: BTCUSDT -> BTC, ETH-USDT -> ETH."""
    for separator in ("-", "/", "_"):
        if separator in symbol:
            return symbol.split(separator)[0]
    for quote in ("USDT", "USDC", "BUSD", "USD"):
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[:-len(quote)]
    return symbol


class SyntheticMarketData:
    """Random-walk ticker and candle generator."""

    def __init__(self, rng: Optional[random.Random] = None,
                 price_variation: float = 0.02):
        self.rng = rng or random.Random()
        self.price_variation = price_variation

    def ticker(self, symbol: str, now: datetime) -> Ticker:
        base = BASE_PRICES.get(base_asset(symbol), 100.0)
        price = base * (1 + (self.rng.random() - 0.5) * 2 * self.price_variation)
        return Ticker(
            symbol=symbol,
            price=price,
            change_24h=(self.rng.random() - 0.5) * 10,
            volume_24h=self.rng.random() * 1_000_000 + 100_000,
            high_24h=price * 1.03,
            low_24h=price * 0.97,
            ts=now,
        )

    def candles(self, price: float, timeframe: str, count: int, now: datetime) -> list[Candle]:
        """Oldest-first random walk (+/-1% per bar) starting at ``price``."""
        step = timedelta(seconds=TIMEFRAME_SECONDS.get(timeframe, 3600))
        candles = []
        current = price

        for i in range(count - 1, -1, -1):
            change = (self.rng.random() - 0.5) * 0.02
            open_ = current
            close = current * (1 + change)
            candles.append(Candle(
                ts=now - i * step,
                open=open_,
                high=max(open_, close) * (1 + self.rng.random() * 0.01),
                low=min(open_, close) * (1 - self.rng.random() * 0.01),
                close=close,
                volume=self.rng.random() * 10_000 + 1000,
            ))
            current = close

        return candles

    def snapshot(self, symbol: str, timeframes: tuple[str, ...], count: int,
                 now: datetime) -> MarketSnapshot:
        ticker = self.ticker(symbol, now)
        return MarketSnapshot(
            symbol=symbol,
            ticker=ticker,
            candles={tf: self.candles(ticker.price, tf, count, now) for tf in timeframes},
            synthetic=True,
        )
