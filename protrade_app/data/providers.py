"""
Market data collaborator interface and fault-tolerant fetching.

The provider itself (exchange REST client, cache) lives outside this package;
``MarketDataFetcher`` wraps every call with a deadline and degrades to
synthetic data when the provider fails.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import structlog

from ..config.defaults import MarketDataParams
from ..errors import CollaboratorError, DataQualityError
from ..utils.time import Clock, SystemClock
from ..utils.timeouts import call_with_timeout
from .models import Candle, MarketSnapshot, Ticker
from .normalizer import normalize_candles, normalize_ticker
from .synthetic import SyntheticMarketData

logger = structlog.get_logger(__name__)


class MarketDataProvider(ABC):
    """External source of tickers and candles."""

    @abstractmethod
    def get_ticker(self, symbol: str) -> Any:
        """Return a ticker payload (dict or Ticker)."""

    @abstractmethod
    def get_candles(self, symbol: str, timeframe: str, limit: int) -> list[Any]:
        """Return candle rows oldest-first (dicts, arrays or Candles)."""


class MarketDataFetcher:
    """Fetches market snapshots with deadlines and synthetic fallback."""

    def __init__(
        self,
        provider: Optional[MarketDataProvider],
        params: Optional[MarketDataParams] = None,
        clock: Optional[Clock] = None,
        synthetic: Optional[SyntheticMarketData] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = 4,
    ):
        self.provider = provider
        self.params = params or MarketDataParams()
        self.clock = clock or SystemClock()
        self.synthetic = synthetic or SyntheticMarketData()
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="market-data")

    def close(self) -> None:
        """Stop the worker pool if this fetcher created it; injected pools belong to the caller."""
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "MarketDataFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_price(self, symbol: str) -> float:
        """
        Current price for a symbol.

        Raises:
            CollaboratorError: provider failed, timed out or returned garbage
        """
        return self._fetch_ticker(symbol).price

    def fetch_snapshot(self, symbol: str) -> MarketSnapshot:
        """
        Ticker plus candles for every configured timeframe.

        With synthetic fallback enabled this never raises: a failed ticker
        switches the whole snapshot to synthetic data, a failed candle series
        is replaced by a synthetic one anchored on the real price.
        """
        now = self.clock.now()

        try:
            ticker = self._fetch_ticker(symbol)
        except CollaboratorError as e:
            if not self.params.synthetic_fallback:
                logger.warning("Ticker unavailable, no fallback", symbol=symbol, error=str(e))
                raise
            logger.warning("Ticker unavailable, using synthetic data", symbol=symbol, error=str(e))
            return self.synthetic.snapshot(
                symbol, self.params.timeframes, self.params.candle_limit, now
            )

        candles: dict[str, list[Candle]] = {}
        synthetic = False
        for timeframe in self.params.timeframes:
            try:
                candles[timeframe] = self._fetch_candles(symbol, timeframe)
            except CollaboratorError as e:
                if not self.params.synthetic_fallback:
                    raise
                logger.warning(
                    "Candles unavailable, using synthetic series",
                    symbol=symbol, timeframe=timeframe, error=str(e)
                )
                candles[timeframe] = self.synthetic.candles(
                    ticker.price, timeframe, self.params.candle_limit, now
                )
                synthetic = True

        return MarketSnapshot(symbol=symbol, ticker=ticker, candles=candles, synthetic=synthetic)

    def _fetch_ticker(self, symbol: str) -> Ticker:
        if self.provider is None:
            raise CollaboratorError("No market data provider configured", collaborator="market_data")

        raw = call_with_timeout(
            self.executor, "market_data", self.params.request_timeout_seconds,
            self.provider.get_ticker, symbol
        )
        try:
            return normalize_ticker(symbol, raw)
        except DataQualityError as e:
            raise CollaboratorError(str(e), collaborator="market_data") from e

    def _fetch_candles(self, symbol: str, timeframe: str) -> list[Candle]:
        raw = call_with_timeout(
            self.executor, "market_data", self.params.request_timeout_seconds,
            self.provider.get_candles, symbol, timeframe, self.params.candle_limit
        )
        try:
            return normalize_candles(raw)
        except DataQualityError as e:
            raise CollaboratorError(str(e), collaborator="market_data") from e
