"""
Tick evaluation for open positions.

Pure functions over a Position; the runtime manager serializes calls per
position and handles notifications and logging of the returned events.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..signals.models import Direction
from .models import Position, PositionStatus, TakeProfitLevel


@dataclass(frozen=True)
class TickEvent:
    """Something that happened while applying a tick."""
    kind: str                            # "take_profit" | "stop_loss" | "trailing_stop"
    price: float
    quantity: int = 0
    pnl: float = 0.0
    level: Optional[int] = None
    previous_stop: Optional[float] = None
    new_stop: Optional[float] = None


def directional_pnl(direction: Direction, entry: float, price: float,
                    quantity: float, taker_fee: float) -> float:
    """PnL of ``quantity`` closed at ``price``, net of the taker fee fraction."""
    diff = price - entry if direction == Direction.LONG else entry - price
    return diff * quantity * (1 - taker_fee)


def update_trailing_stop(position: Position, price: float) -> Optional[TickEvent]:
    """
    Track the favourable extreme and ratchet the stop behind it.

    The stop only ever moves in the position's favour.
    """
    stop = position.stop_loss
    if not stop.trailing or stop.executed:
        return None

    if position.direction == Direction.LONG:
        if price <= stop.extreme_price:
            return None
        stop.extreme_price = price
        candidate = price * (1 - stop.trail_percent / 100)
        if candidate <= stop.price:
            return None
    else:
        if price >= stop.extreme_price:
            return None
        stop.extreme_price = price
        candidate = price * (1 + stop.trail_percent / 100)
        if candidate >= stop.price:
            return None

    previous = stop.price
    stop.price = candidate
    return TickEvent(kind="trailing_stop", price=price, previous_stop=previous, new_stop=candidate)


def _level_reached(direction: Direction, level: TakeProfitLevel, price: float) -> bool:
    if direction == Direction.LONG:
        return price >= level.price
    return price <= level.price


def evaluate_take_profits(position: Position, price: float, now: datetime,
                          taker_fee: float) -> list[TickEvent]:
    """Execute every reached, unexecuted level in order TP1, TP2, TP3."""
    events = []
    for level in position.take_profits:
        if level.executed or not _level_reached(position.direction, level, price):
            continue

        quantity = min(level.quantity, position.remaining_quantity)
        pnl = directional_pnl(position.direction, position.entry_price, price, quantity, taker_fee)

        level.executed = True
        level.executed_at = now
        level.executed_price = price
        position.remaining_quantity -= quantity
        position.realized_pnl += pnl

        events.append(TickEvent(kind="take_profit", price=price, quantity=quantity,
                                pnl=pnl, level=level.level))
    return events


def evaluate_stop_loss(position: Position, price: float, now: datetime,
                       taker_fee: float) -> Optional[TickEvent]:
    """Close the remaining quantity if the stop is breached."""
    stop = position.stop_loss
    if stop.executed or position.remaining_quantity <= 0:
        return None

    if position.direction == Direction.LONG:
        breached = price <= stop.price
    else:
        breached = price >= stop.price
    if not breached:
        return None

    quantity = position.remaining_quantity
    pnl = directional_pnl(position.direction, position.entry_price, price, quantity, taker_fee)

    stop.executed = True
    stop.executed_at = now
    stop.executed_price = price
    position.remaining_quantity = 0
    position.realized_pnl += pnl

    return TickEvent(kind="stop_loss", price=price, quantity=quantity, pnl=pnl)


def derive_status(position: Position) -> PositionStatus:
    if position.remaining_quantity <= 0:
        if all(tp.executed for tp in position.take_profits):
            return PositionStatus.COMPLETED
        return PositionStatus.STOPPED
    if any(tp.executed for tp in position.take_profits):
        return PositionStatus.PARTIAL
    return PositionStatus.ACTIVE


def apply_tick(position: Position, price: float, now: datetime,
               taker_fee: float) -> list[TickEvent]:
    """
    Advance a position by one price observation.

    Order: unrealized PnL, trailing stop, take-profits, stop-loss, status.
    Terminal positions are left untouched.
    """
    if position.status.is_terminal:
        return []

    position.current_price = price
    position.last_update = now
    position.unrealized_pnl = directional_pnl(
        position.direction, position.entry_price, price, position.remaining_quantity, taker_fee
    )

    events: list[TickEvent] = []

    trailing = update_trailing_stop(position, price)
    if trailing is not None:
        events.append(trailing)

    events.extend(evaluate_take_profits(position, price, now, taker_fee))

    stopped = evaluate_stop_loss(position, price, now, taker_fee)
    if stopped is not None:
        events.append(stopped)

    position.status = derive_status(position)
    if position.status.is_terminal:
        position.closed_at = now
        position.unrealized_pnl = 0.0

    return events
