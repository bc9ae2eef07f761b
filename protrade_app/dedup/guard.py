"""
Deduplication store.

Tracks, per symbol, the active signal lock, a short history of recent
signals and per-day counters. Queries never mutate counters; a signal is
recorded only through ``register`` or the atomic ``try_register`` once it
has passed every other gate.
"""

import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Optional

import structlog

from ..config.defaults import DedupParams
from ..signals.models import Direction, RejectionReason, Signal
from ..utils.time import Clock, SystemClock, elapsed_seconds, local_date_key

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SignalLock:
    """Most recent accepted signal for a symbol, alive for the lock TTL."""
    symbol: str
    direction: Direction
    created_at: datetime
    confidence: float
    entry_price: float
    signal_id: str


@dataclass(frozen=True)
class RecentSignal:
    direction: Direction
    entry_price: float
    created_at: datetime


class DeduplicationStore:
    """Thread-safe duplicate guard keyed by symbol."""

    def __init__(self, params: Optional[DedupParams] = None, clock: Optional[Clock] = None,
                 tz: Optional[tzinfo] = None):
        self.params = params or DedupParams()
        self.clock = clock or SystemClock()
        self.tz = tz
        self._locks: dict[str, SignalLock] = {}
        self._recent: dict[str, deque] = defaultdict(deque)
        self._daily: dict[tuple[str, date], int] = defaultdict(int)
        self._symbol_mutexes: dict[str, threading.Lock] = {}
        self._registry_mutex = threading.Lock()

    def _mutex(self, symbol: str) -> threading.Lock:
        with self._registry_mutex:
            if symbol not in self._symbol_mutexes:
                self._symbol_mutexes[symbol] = threading.Lock()
            return self._symbol_mutexes[symbol]

    # Queries

    def has_active_lock(self, symbol: str) -> bool:
        with self._mutex(symbol):
            return self._active_lock(symbol, self.clock.now()) is not None

    def is_duplicate(self, symbol: str, direction: Direction, entry_price: float) -> bool:
        with self._mutex(symbol):
            return self._is_duplicate(symbol, direction, entry_price, self.clock.now())

    def exceeds_daily_cap(self, symbol: str) -> bool:
        with self._mutex(symbol):
            return self._exceeds_daily_cap(symbol, self.clock.now())

    def too_soon(self, symbol: str) -> bool:
        with self._mutex(symbol):
            return self._too_soon(symbol, self.clock.now())

    def daily_count(self, symbol: str, day: Optional[date] = None) -> int:
        with self._mutex(symbol):
            day = day or local_date_key(self.clock.now(), self.tz)
            return self._daily.get((symbol, day), 0)

    # Mutations

    def register(self, signal: Signal) -> None:
        """Record an accepted signal: lock, recent history and daily count."""
        with self._mutex(signal.symbol):
            self._register(signal, self.clock.now())

    def try_register(self, signal: Signal) -> Optional[RejectionReason]:
        """
        Re-check lock, duplicate and daily cap, then register, atomically per symbol.

        Returns:
            None if registered, otherwise the reason the signal lost the race
        """
        with self._mutex(signal.symbol):
            now = self.clock.now()
            if self._active_lock(signal.symbol, now) is not None:
                return RejectionReason.ACTIVE_LOCK
            if self._is_duplicate(signal.symbol, signal.direction, signal.entry_price, now):
                return RejectionReason.DUPLICATE
            if self._exceeds_daily_cap(signal.symbol, now):
                return RejectionReason.DAILY_CAP
            self._register(signal, now)
            return None

    def release_lock(self, symbol: str) -> bool:
        with self._mutex(symbol):
            released = self._locks.pop(symbol, None) is not None
        if released:
            logger.info("Signal lock released", symbol=symbol)
        return released

    def prune(self) -> None:
        """Drop expired locks, stale recent entries and old daily counters."""
        now = self.clock.now()
        with self._registry_mutex:
            symbols = list(self._symbol_mutexes)
        for symbol in symbols:
            with self._mutex(symbol):
                self._active_lock(symbol, now)
                self._prune_recent(symbol, now)
        self._prune_daily(now)

    def snapshot(self) -> dict[str, Any]:
        """Current locks and counters, for monitoring."""
        now = self.clock.now()
        today = local_date_key(now, self.tz)
        with self._registry_mutex:
            symbols = list(self._symbol_mutexes)

        locks = []
        recent_counts = {}
        daily_counts = {}
        for symbol in symbols:
            with self._mutex(symbol):
                lock = self._active_lock(symbol, now)
                if lock is not None:
                    locks.append({
                        "symbol": symbol,
                        "direction": lock.direction.value,
                        "age_minutes": round(elapsed_seconds(lock.created_at, now) / 60, 1),
                        "confidence": lock.confidence,
                        "entry_price": lock.entry_price,
                    })
                self._prune_recent(symbol, now)
                recent_counts[symbol] = len(self._recent[symbol])
                daily_counts[symbol] = self._daily.get((symbol, today), 0)

        return {
            "active_locks": locks,
            "recent_signals": recent_counts,
            "daily_counts": daily_counts,
            "total_active_locks": len(locks),
            "total_daily_signals": sum(daily_counts.values()),
        }

    # Internals, called with the symbol mutex held

    def _active_lock(self, symbol: str, now: datetime) -> Optional[SignalLock]:
        lock = self._locks.get(symbol)
        if lock is None:
            return None
        if elapsed_seconds(lock.created_at, now) >= self.params.lock_ttl_seconds:
            del self._locks[symbol]
            return None
        return lock

    def _prune_recent(self, symbol: str, now: datetime) -> None:
        recent = self._recent[symbol]
        cutoff = now - timedelta(hours=self.params.recent_retention_hours)
        while recent and recent[0].created_at < cutoff:
            recent.popleft()

    def _prune_daily(self, now: datetime) -> None:
        cutoff = local_date_key(now, self.tz) - timedelta(days=self.params.daily_retention_days)
        with self._registry_mutex:
            for key in [key for key in self._daily if key[1] < cutoff]:
                del self._daily[key]

    def _is_duplicate(self, symbol: str, direction: Direction, entry_price: float,
                      now: datetime) -> bool:
        self._prune_recent(symbol, now)
        for recent in self._recent[symbol]:
            if recent.direction != direction:
                continue
            if elapsed_seconds(recent.created_at, now) >= self.params.duplicate_window_seconds:
                continue
            if recent.entry_price <= 0:
                continue
            price_diff = abs(entry_price - recent.entry_price) / recent.entry_price
            if price_diff < self.params.duplicate_price_tolerance:
                return True
        return False

    def _exceeds_daily_cap(self, symbol: str, now: datetime) -> bool:
        key = (symbol, local_date_key(now, self.tz))
        return self._daily.get(key, 0) >= self.params.max_daily_signals

    def _too_soon(self, symbol: str, now: datetime) -> bool:
        self._prune_recent(symbol, now)
        recent = self._recent[symbol]
        if not recent:
            return False
        return elapsed_seconds(recent[-1].created_at, now) < self.params.min_signal_gap_seconds

    def _register(self, signal: Signal, now: datetime) -> None:
        self._locks[signal.symbol] = SignalLock(
            symbol=signal.symbol,
            direction=signal.direction,
            created_at=now,
            confidence=signal.final_confidence,
            entry_price=signal.entry_price,
            signal_id=signal.id,
        )

        recent = self._recent[signal.symbol]
        recent.append(RecentSignal(signal.direction, signal.entry_price, now))
        while len(recent) > self.params.max_recent_signals:
            recent.popleft()

        key = (signal.symbol, local_date_key(now, self.tz))
        with self._registry_mutex:
            self._daily[key] += 1
            count = self._daily[key]
        self._prune_daily(now)

        logger.info(
            "Signal registered",
            symbol=signal.symbol,
            signal_id=signal.id,
            direction=signal.direction.value,
            entry_price=signal.entry_price,
            daily_count=count
        )
