"""
Tests for ATR, ADX and Bollinger Bands indicator modules.
"""

import math
import pytest
from datetime import date, timedelta

from indicators.base import Bar
from indicators.trend import ATRIndicator, ADXIndicator, BollingerIndicator


def make_bars(closes, spread=0.0, start=date(2024, 1, 1)):
    """Daily bars with high/low spread around the close."""
    return [
        Bar(t=start + timedelta(days=i), open=c, high=c + spread, low=c - spread, close=c, volume=1000.0)
        for i, c in enumerate(closes)
    ]


class TestATRIndicator:
    """Tests for ATRIndicator."""

    def test_flat_bars_are_zero(self):
        """Test ATR(14) is 0.0 everywhere on 30 flat bars at 50."""
        rows = ATRIndicator().compute(make_bars([50.0] * 30), {'period': 14})

        assert len(rows) == 17
        assert all(r.value == 0.0 for r in rows)
        assert rows[0].t == date(2024, 1, 14)

    def test_constant_range(self):
        rows = ATRIndicator().compute(make_bars([10.0] * 20, spread=1.0), {'period': 5})
        assert all(r.value == pytest.approx(2.0) for r in rows)
        assert rows[0].indicator == 'atr_5'

    def test_wilder_smoothing_with_gap(self):
        """Test that a gap enters the true range through the previous close."""
        bars = make_bars([10.0, 10.0, 14.0], spread=0.5)
        rows = ATRIndicator().compute(bars, {'period': 2})
        # TR = [1.0, 1.0, 4.5]; seed mean(1, 1) = 1, then (1 * 1 + 4.5) / 2
        assert [r.value for r in rows] == pytest.approx([1.0, 2.75])

    def test_look_back_floor(self):
        bars = make_bars([float(i) for i in range(1, 20)], spread=0.5)
        assert len(ATRIndicator().compute(bars[:14])) == 1
        assert len(ATRIndicator().compute(bars[:13])) == 0


class TestADXIndicator:
    """Tests for ADXIndicator."""

    def test_flat_bars_do_not_divide_by_zero(self):
        rows = ADXIndicator().compute(make_bars([50.0] * 30))

        assert len(rows) == 16
        assert all(r.value == 0.0 for r in rows)
        assert all(math.isfinite(r.meta['+DI']) for r in rows)

    def test_steady_uptrend_is_100(self):
        rows = ADXIndicator().compute(make_bars([float(i) for i in range(10, 40)], spread=0.5), {'period': 5})

        assert all(r.value == 100.0 for r in rows)
        assert all(r.meta['-DI'] == 0.0 for r in rows)

    def test_first_row_timestamp(self):
        """Test that the first row lands on bar index period."""
        bars = make_bars([float(i) for i in range(10, 40)], spread=0.5)
        rows = ADXIndicator().compute(bars, {'period': 5})
        assert rows[0].t == bars[5].t
        assert rows[0].indicator == 'adx_5'

    def test_needs_more_than_period_bars(self):
        assert ADXIndicator().compute(make_bars([1.0, 2.0, 3.0]), {'period': 3}) == []


class TestBollingerIndicator:
    """Tests for BollingerIndicator."""

    def test_bands(self):
        rows = BollingerIndicator().compute(make_bars([1.0, 2.0, 3.0]), {'period': 3})

        std = math.sqrt(2.0 / 3.0)
        assert len(rows) == 1
        assert rows[0].indicator == 'bb_3_2'
        assert rows[0].value == pytest.approx(2.0)
        assert rows[0].meta['upper'] == pytest.approx(2.0 + 2 * std)
        assert rows[0].meta['lower'] == pytest.approx(2.0 - 2 * std)
        assert rows[0].meta['stdev'] == pytest.approx(std)

    def test_custom_stdevs_in_key(self):
        rows = BollingerIndicator().compute(make_bars([1.0, 2.0, 3.0]), {'period': 3, 'stdevs': 2.5})
        assert rows[0].indicator == 'bb_3_2.5'

    def test_flat_bands_collapse(self):
        rows = BollingerIndicator().compute(make_bars([5.0] * 25))
        assert all(r.meta['upper'] == r.meta['lower'] == 5.0 for r in rows)

    def test_flat_bands_collapse_on_inexact_close(self):
        rows = BollingerIndicator().compute(make_bars([1234.567] * 25))

        assert len(rows) == 6
        assert all(r.meta['stdev'] == 0.0 for r in rows)
        assert all(r.meta['upper'] == r.meta['lower'] for r in rows)

    def test_look_back_floor(self):
        bars = make_bars([float(i) for i in range(1, 30)])
        assert len(BollingerIndicator().compute(bars[:20])) == 1
        assert len(BollingerIndicator().compute(bars[:19])) == 0
