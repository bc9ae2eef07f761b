"""Tests for position data models."""

import orjson

from protrade_app.signals.models import Direction
from protrade_app.state.models import Position, PositionStatus, StopLoss, TakeProfitLevel

from conftest import START


def sample_position() -> Position:
    return Position(
        id="pos_BTC-USDT_1",
        signal_id="BTC-USDT_1",
        symbol="BTC-USDT",
        direction=Direction.SHORT,
        entry_price=100.0,
        quantity=10,
        remaining_quantity=10,
        stop_loss=StopLoss(price=103.0, trailing=True, extreme_price=100.0),
        take_profits=[
            TakeProfitLevel(level=1, price=97.5, share_pct=40.0, quantity=4),
            TakeProfitLevel(level=2, price=95.5, share_pct=35.0, quantity=3),
            TakeProfitLevel(level=3, price=93.0, share_pct=25.0, quantity=2),
        ],
        opened_at=START,
    )


class TestPositionStatus:
    """Test status helpers."""

    def test_terminal_states(self):
        """Test only COMPLETED and STOPPED are terminal."""
        assert PositionStatus.COMPLETED.is_terminal
        assert PositionStatus.STOPPED.is_terminal
        assert not PositionStatus.ACTIVE.is_terminal
        assert not PositionStatus.PARTIAL.is_terminal


class TestPosition:
    """Test position defaults and serialization."""

    def test_defaults(self):
        """Test a new position starts active with no PnL."""
        position = sample_position()
        assert position.status == PositionStatus.ACTIVE
        assert position.realized_pnl == 0.0
        assert position.closed_at is None
        assert position.stop_loss.executed is False

    def test_to_dict(self):
        """Test the dictionary form is JSON serializable."""
        data = orjson.loads(orjson.dumps(sample_position().to_dict()))

        assert data["direction"] == "SHORT"
        assert data["status"] == "ACTIVE"
        assert data["opened_at"] == START.isoformat()
        assert data["closed_at"] is None
        assert data["stop_loss"]["trailing"] is True
        assert [tp["quantity"] for tp in data["take_profits"]] == [4, 3, 2]
