"""
Runtime management of open positions.

Positions are created from executed signals and advanced on every
monitoring tick until they reach STOPPED or COMPLETED, at which point they
leave the active set.
"""

import math
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import structlog

from ..config.defaults import CapitalParams, ExitParams, PositionParams
from ..delivery.base import LoggingNotificationSink, NotificationSink, notify_safely
from ..errors import CollaboratorError, PositionStateError
from ..logging import get_state_logger, log_state_transition
from ..signals.models import Signal, SignalStatus, TakeProfitPlan, TakeProfitTarget
from ..utils.time import Clock, SystemClock, elapsed_seconds
from .machine import TickEvent, apply_tick
from .models import Position, PositionStatus, StopLoss, TakeProfitLevel

logger = structlog.get_logger(__name__)
state_logger = get_state_logger(__name__)


class PositionLifecycleManager:
    """Owns every open position and its state machine."""

    def __init__(
        self,
        params: Optional[PositionParams] = None,
        exit_params: Optional[ExitParams] = None,
        capital: Optional[CapitalParams] = None,
        market_data: Any = None,
        sink: Optional[NotificationSink] = None,
        clock: Optional[Clock] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.logger = logger
        self.params = params or PositionParams()
        self.exit_params = exit_params or ExitParams()
        self.capital = capital or CapitalParams()
        self.market_data = market_data
        self.sink = sink or LoggingNotificationSink()
        self.clock = clock or SystemClock()
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="position-monitor")

        self.positions: dict[str, Position] = {}        # symbol -> open position
        self.closed_positions: list[Position] = []
        self._in_flight: dict[str, threading.Lock] = {}
        self._mutex = threading.Lock()

    def close(self) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "PositionLifecycleManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def calculate_quantity(self, signal: Signal) -> int:
        """Units to buy so that a stop-out loses roughly the per-trade risk amount."""
        risk_amount = self.capital.total_capital * self.capital.risk_per_trade / 100
        stop_distance = abs(signal.entry_price - signal.stop_loss)
        if stop_distance <= 0:
            return 1
        return max(math.floor(risk_amount / stop_distance), 1)

    def _static_plan(self, signal: Signal) -> TakeProfitPlan:
        sign = signal.direction.sign
        targets = [
            TakeProfitTarget(price=signal.entry_price * (1 + sign * pct / 100), share_pct=share)
            for pct, share in zip(self.exit_params.tp_percents, self.exit_params.allocations)
        ]
        return TakeProfitPlan(tp1=targets[0], tp2=targets[1], tp3=targets[2])

    def open_position(self, signal: Signal, quantity: Optional[int] = None) -> Position:
        """
        Create a position from an executed signal.

        Raises:
            PositionStateError: the signal is not EXECUTED, the quantity is
                not positive, or the symbol already has an open position
        """
        if signal.status != SignalStatus.EXECUTED:
            raise PositionStateError(
                f"Cannot open position from {signal.status.value} signal {signal.id}",
                current_state=signal.status.value,
                attempted_transition="open_position",
                context={"signal_id": signal.id, "status": signal.status.value}
            )

        if quantity is None:
            quantity = self.calculate_quantity(signal)
        if quantity < 1:
            raise PositionStateError(
                f"Position quantity must be positive, got {quantity}",
                attempted_transition="open_position",
                context={"signal_id": signal.id, "quantity": quantity}
            )

        plan = signal.take_profit_plan or self._static_plan(signal)
        # Flooring may leave a remainder that only the stop-loss closes
        take_profits = [
            TakeProfitLevel(
                level=index,
                price=target.price,
                share_pct=target.share_pct,
                quantity=math.floor(quantity * target.share_pct / 100)
            )
            for index, target in enumerate(plan.levels, start=1)
        ]

        now = self.clock.now()
        position = Position(
            id=f"pos_{signal.id}",
            signal_id=signal.id,
            symbol=signal.symbol,
            direction=signal.direction,
            entry_price=signal.entry_price,
            quantity=quantity,
            remaining_quantity=quantity,
            stop_loss=StopLoss(
                price=signal.stop_loss,
                trailing=self.params.trailing_enabled,
                trail_percent=self.params.trailing_percent,
                extreme_price=signal.entry_price
            ),
            take_profits=take_profits,
            opened_at=now,
            current_price=signal.entry_price,
            last_update=now
        )

        with self._mutex:
            if signal.symbol in self.positions:
                raise PositionStateError(
                    f"{signal.symbol} already has an open position",
                    current_state=self.positions[signal.symbol].status.value,
                    attempted_transition="open_position",
                    context={"symbol": signal.symbol, "open_position": self.positions[signal.symbol].id}
                )
            self.positions[signal.symbol] = position
            self._in_flight[position.id] = threading.Lock()

        log_state_transition(
            state_logger, position.id, "NONE", PositionStatus.ACTIVE.value, "signal_executed",
            context={
                "symbol": position.symbol,
                "direction": position.direction.value,
                "entry_price": position.entry_price,
                "quantity": quantity,
                "stop_loss": position.stop_loss.price,
                "take_profits": [tp.price for tp in take_profits],
            }
        )
        return position

    def process_tick(self, symbol: str, price: float) -> list[TickEvent]:
        """
        Apply one price observation to the symbol's open position.

        A tick arriving while another is still being applied to the same
        position is skipped.
        """
        with self._mutex:
            position = self.positions.get(symbol)
            lock = self._in_flight.get(position.id) if position else None
        if position is None or lock is None:
            return []

        if not lock.acquire(blocking=False):
            self.logger.debug("Tick skipped, position busy", position_id=position.id, symbol=symbol)
            return []

        try:
            previous = position.status
            events = apply_tick(position, price, self.clock.now(), self.params.taker_fee)

            for event in events:
                self._dispatch(position, event)

            if position.status != previous:
                log_state_transition(
                    state_logger, position.id, previous.value, position.status.value,
                    events[-1].kind if events else "tick",
                    context={
                        "price": price,
                        "remaining_quantity": position.remaining_quantity,
                        "realized_pnl": round(position.realized_pnl, 4),
                    }
                )

            if position.status.is_terminal:
                self._close(position)

            return events
        finally:
            lock.release()

    def _dispatch(self, position: Position, event: TickEvent) -> None:
        if event.kind == "trailing_stop":
            self.logger.info(
                "Trailing stop raised" if position.direction.sign > 0 else "Trailing stop lowered",
                position_id=position.id,
                previous_stop=event.previous_stop,
                new_stop=event.new_stop,
                price=event.price
            )
        elif event.kind == "take_profit":
            self.logger.info(
                "Take profit hit",
                position_id=position.id,
                level=event.level,
                price=event.price,
                quantity=event.quantity,
                pnl=round(event.pnl, 4)
            )
            notify_safely(self.sink.on_take_profit, position, event.level, event.pnl)
        elif event.kind == "stop_loss":
            self.logger.warning(
                "Stop loss hit",
                position_id=position.id,
                price=event.price,
                quantity=event.quantity,
                pnl=round(event.pnl, 4)
            )
            notify_safely(self.sink.on_stop_loss, position, event.pnl)

    def _close(self, position: Position) -> None:
        with self._mutex:
            if self.positions.get(position.symbol) is position:
                del self.positions[position.symbol]
            self._in_flight.pop(position.id, None)
            self.closed_positions.append(position)

        self.logger.info(
            "Position closed",
            position_id=position.id,
            symbol=position.symbol,
            status=position.status.value,
            realized_pnl=round(position.realized_pnl, 4)
        )

    def _monitor_symbol(self, symbol: str) -> list[TickEvent]:
        try:
            price = self.market_data.get_price(symbol)
        except CollaboratorError as e:
            self.logger.warning("Price unavailable, tick skipped", symbol=symbol, error=str(e))
            return []
        return self.process_tick(symbol, price)

    def monitor_positions(self) -> dict[str, list[TickEvent]]:
        """Fetch a price for every open position and apply it, one task per symbol."""
        if self.market_data is None:
            raise CollaboratorError("No market data configured for monitoring", collaborator="market_data")

        symbols = list(self.positions)
        futures = {symbol: self.executor.submit(self._monitor_symbol, symbol) for symbol in symbols}

        results = {}
        for symbol, future in futures.items():
            try:
                results[symbol] = future.result()
            except Exception as e:
                self.logger.error(
                    "Monitoring tick failed",
                    symbol=symbol,
                    error=str(e),
                    error_type=type(e).__name__
                )
                results[symbol] = []

        for position in self.active_positions():
            self.check_hold_duration(position)

        return results

    def check_hold_duration(self, position: Position) -> bool:
        """True if the position has been open longer than the maximum hold time."""
        hours = elapsed_seconds(position.opened_at, self.clock.now()) / 3600
        exceeded = hours > self.params.max_hold_hours
        if exceeded:
            self.logger.warning(
                "Position exceeded maximum hold time",
                position_id=position.id,
                symbol=position.symbol,
                hours_open=round(hours, 2),
                max_hold_hours=self.params.max_hold_hours
            )
        return exceeded

    def get_position(self, symbol: str) -> Optional[Position]:
        return self.positions.get(symbol)

    def active_positions(self) -> list[Position]:
        with self._mutex:
            return list(self.positions.values())

    def get_trade_stats(self) -> dict[str, Any]:
        with self._mutex:
            open_positions = list(self.positions.values())
            closed = list(self.closed_positions)

        wins = sum(1 for p in closed if p.realized_pnl > 0)
        return {
            "open_positions": len(open_positions),
            "closed_positions": len(closed),
            "completed": sum(1 for p in closed if p.status == PositionStatus.COMPLETED),
            "stopped": sum(1 for p in closed if p.status == PositionStatus.STOPPED),
            "realized_pnl": round(sum(p.realized_pnl for p in closed + open_positions), 4),
            "unrealized_pnl": round(sum(p.unrealized_pnl for p in open_positions), 4),
            "win_rate": round(wins / len(closed) * 100, 2) if closed else 0.0,
        }
