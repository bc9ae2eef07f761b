"""Tests for signal data models"""

import orjson
import pytest

from protrade_app.signals.models import (
    Direction,
    SignalStatus,
    TakeProfitPlan,
    TakeProfitTarget,
)

from conftest import START, make_signal


class TestDirection:
    """Test direction helpers"""

    def test_sign(self):
        """Test LONG is +1 and SHORT is -1"""
        assert Direction.LONG.sign == 1
        assert Direction.SHORT.sign == -1


class TestSignalValidation:
    """Test construction invariants"""

    def test_hold_not_allowed(self):
        """Test a signal must have a tradeable direction"""
        with pytest.raises(ValueError):
            make_signal(direction=Direction.HOLD, stop_loss=97.0)

    def test_confidence_range(self):
        """Test final confidence outside 0..100 is rejected"""
        with pytest.raises(ValueError):
            make_signal(final_confidence=101.0)


class TestSignalUpdates:
    """Test immutable updates"""

    def test_with_status_copies(self):
        """Test status changes return a new signal"""
        signal = make_signal()
        executed = signal.with_status(SignalStatus.EXECUTED)

        assert executed.status == SignalStatus.EXECUTED
        assert signal.status == SignalStatus.GENERATED
        assert executed.id == signal.id

    def test_with_exit_plan(self):
        """Test attaching a plan"""
        plan = TakeProfitPlan(
            tp1=TakeProfitTarget(102.5, 40.0),
            tp2=TakeProfitTarget(104.5, 35.0),
            tp3=TakeProfitTarget(107.0, 25.0),
        )
        signal = make_signal().with_exit_plan(plan)

        assert signal.take_profit_plan.levels[2].price == 107.0


class TestSerialization:
    """Test dictionary and JSON output"""

    def test_to_json(self):
        """Test JSON output decodes to the dictionary form"""
        signal = make_signal(technical={"confidence": 75.0}, reasoning="EMA and MACD agree")
        data = orjson.loads(signal.to_json())

        assert data["id"] == signal.id
        assert data["direction"] == "LONG"
        assert data["status"] == "GENERATED"
        assert data["created_at"] == START.isoformat()
        assert data["take_profit_plan"] is None
        assert data["technical"] == {"confidence": 75.0}

    def test_plan_serialized(self):
        """Test the take-profit plan appears in the dictionary"""
        plan = TakeProfitPlan(
            tp1=TakeProfitTarget(102.5, 40.0),
            tp2=TakeProfitTarget(104.5, 35.0),
            tp3=TakeProfitTarget(107.0, 25.0),
            primary_method="support_resistance",
            methods=("support_resistance", "atr"),
            dynamic=True,
        )
        data = make_signal(take_profit_plan=plan).to_dict()

        assert data["take_profit_plan"]["tp2"] == {"price": 104.5, "share_pct": 35.0}
        assert data["take_profit_plan"]["methods"] == ["support_resistance", "atr"]
        assert data["take_profit_plan"]["dynamic"] is True
