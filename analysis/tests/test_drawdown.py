"""
Tests for drawdown calculation utilities.
"""

import pytest

from analysis.calculations.drawdown import drawdown_series


class TestDrawdownSeries:
    """Tests for drawdown_series function."""

    def test_known_values(self):
        series = drawdown_series([100.0, 110.0, 88.0, 99.0, 120.0])

        assert [dd for dd, _ in series] == pytest.approx([0.0, 0.0, 20.0, 10.0, 0.0])
        assert [peak for _, peak in series] == [100.0, 110.0, 110.0, 110.0, 120.0]

    def test_monotonic_increase_has_no_drawdown(self):
        assert all(dd == 0.0 for dd, _ in drawdown_series([1.0, 2.0, 3.0, 4.0]))

    def test_non_positive_peak(self):
        assert drawdown_series([0.0, 0.0]) == [(0.0, 0.0), (0.0, 0.0)]

    def test_empty(self):
        assert drawdown_series([]) == []
