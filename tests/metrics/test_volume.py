"""Tests for volume average and ratio"""

import pytest

from protrade_app.metrics.volume import calculate_average_volume, calculate_volume_ratio


class TestAverageVolume:
    """Test average volume calculation"""

    def test_average_of_last_period(self):
        """Test that only the last period bars are averaged"""
        history = [100.0] * 10 + [200.0] * 20
        assert calculate_average_volume(history, period=20) == 200.0

    def test_short_history(self):
        """Test averaging a history shorter than the period"""
        assert calculate_average_volume([100.0, 300.0], period=20) == 200.0

    def test_empty_history(self):
        """Test empty history"""
        assert calculate_average_volume([]) is None


class TestVolumeRatio:
    """Test 24h volume against hourly average"""

    def test_normal_volume(self):
        """Test that 24 average bars of volume give a ratio of 1"""
        assert calculate_volume_ratio(24_000.0, [1000.0] * 20) == pytest.approx(1.0)

    def test_volume_spike(self):
        """Test a doubled 24h volume"""
        assert calculate_volume_ratio(48_000.0, [1000.0] * 20) == pytest.approx(2.0)

    def test_zero_average(self):
        """Test that a zero average yields None"""
        assert calculate_volume_ratio(1000.0, [0.0] * 20) is None

    def test_zero_volume_24h(self):
        """Test that a missing 24h volume yields None"""
        assert calculate_volume_ratio(0.0, [1000.0] * 20) is None
