"""
Tests for RSI, Stochastic, CCI, MFI and Momentum indicator modules.
"""

import math
import pytest
from datetime import date, timedelta

from indicators.base import Bar, IndicatorError
from indicators.oscillators import (
    RSIIndicator, StochasticIndicator, CCIIndicator, MFIIndicator, MomentumIndicator
)


def make_bars(closes, spread=0.0, volume=1000.0, start=date(2024, 1, 1)):
    """Daily bars with high/low spread around the close."""
    return [
        Bar(t=start + timedelta(days=i), open=c, high=c + spread, low=c - spread, close=c, volume=volume)
        for i, c in enumerate(closes)
    ]


def wavy_closes(n=120):
    return [100.0 + 10.0 * math.sin(i / 3.0) + 0.1 * i for i in range(n)]


class TestRSIIndicator:
    """Tests for RSIIndicator."""

    def test_known_values(self):
        """Test seed over period-1 changes, then Wilder smoothing."""
        rows = RSIIndicator().compute(make_bars([1.0, 2.0, 1.0, 2.0]), {'period': 3})

        assert [r.indicator for r in rows] == ['rsi_3', 'rsi_3']
        assert rows[0].value == pytest.approx(50.0)
        assert rows[1].value == pytest.approx(100.0 - 100.0 / 3.0)

    def test_bounded(self):
        rows = RSIIndicator().compute(make_bars(wavy_closes()))
        assert rows
        assert all(0.0 <= r.value <= 100.0 for r in rows)

    def test_no_losses_is_100(self):
        rows = RSIIndicator().compute(make_bars([float(i) for i in range(1, 30)]))
        assert all(r.value == 100.0 for r in rows)

    def test_look_back_floor(self):
        closes = wavy_closes(20)
        assert len(RSIIndicator().compute(make_bars(closes[:14]))) == 1
        assert len(RSIIndicator().compute(make_bars(closes[:13]))) == 0

    def test_periods_list(self):
        rows = RSIIndicator().compute(make_bars(wavy_closes(30)), {'periods': [7, 14]})
        assert {r.indicator for r in rows} == {'rsi_7', 'rsi_14'}


class TestStochasticIndicator:
    """Tests for StochasticIndicator."""

    def test_k_value(self):
        """Test %K against the highest high / lowest low range."""
        rows = StochasticIndicator().compute(make_bars([10.0, 11.0, 12.0], spread=1.0), {'period': 3})

        assert len(rows) == 1
        assert rows[0].indicator == 'stoch_k_3'
        # range 9..13, close 12
        assert rows[0].value == 75.0

    def test_d_is_sma_of_k(self):
        bars = make_bars(wavy_closes(30), spread=0.5)

        rows = StochasticIndicator().compute(bars, {'period': 5, 'd_period': 3})
        k = [r for r in rows if r.indicator == 'stoch_k_5']
        d = [r for r in rows if r.indicator == 'stoch_d_5']

        assert len(d) == len(k) - 2
        assert d[0].t == k[2].t
        assert d[0].value == pytest.approx(sum(r.value for r in k[:3]) / 3, abs=1e-5)

    def test_flat_range_is_zero(self):
        rows = StochasticIndicator().compute(make_bars([50.0] * 20))
        assert all(r.value == 0.0 for r in rows)

    def test_look_back_floor(self):
        closes = wavy_closes(20)
        assert len(StochasticIndicator().compute(make_bars(closes[:14], spread=1.0))) == 1
        assert len(StochasticIndicator().compute(make_bars(closes[:13], spread=1.0))) == 0


class TestCCIIndicator:
    """Tests for CCIIndicator."""

    def test_known_value(self):
        """Test CCI over typical prices 1, 2, 3."""
        rows = CCIIndicator().compute(make_bars([1.0, 2.0, 3.0]), {'period': 3})
        # mean 2, mean deviation 2/3
        assert rows[0].value == pytest.approx(round((3.0 - 2.0) / (0.015 * (2.0 / 3.0)), 6))

    def test_zero_deviation(self):
        rows = CCIIndicator().compute(make_bars([7.0] * 25))
        assert len(rows) == 6
        assert all(r.value == 0.0 for r in rows)

    def test_look_back_floor(self):
        closes = wavy_closes(30)
        assert len(CCIIndicator().compute(make_bars(closes[:20]))) == 1
        assert len(CCIIndicator().compute(make_bars(closes[:19]))) == 0


class TestMFIIndicator:
    """Tests for MFIIndicator."""

    def test_no_negative_flow_is_100(self):
        rows = MFIIndicator().compute(make_bars([float(i) for i in range(1, 20)]), {'period': 5})
        assert rows
        assert all(r.value == 100.0 for r in rows)
        assert all(r.meta['neg_mf'] == 0.0 for r in rows)

    def test_balanced_flow(self):
        """Test equal positive and negative flow gives 50."""
        bars = make_bars([10.0, 11.0, 10.0], volume=1.0)
        rows = MFIIndicator().compute(bars, {'period': 2})
        assert len(rows) == 1
        # positive flow 11, negative flow 10
        assert rows[0].value == pytest.approx(round(100.0 - 100.0 / (1.0 + 11.0 / 10.0), 6))

    def test_bounded(self):
        rows = MFIIndicator().compute(make_bars(wavy_closes(), spread=0.5))
        assert all(0.0 <= r.value <= 100.0 for r in rows)


class TestMomentumIndicator:
    """Tests for MomentumIndicator."""

    def test_percent_mode(self):
        """Test close[10] = 110 against close[0] = 100."""
        closes = [100.0 + i for i in range(11)]

        rows = MomentumIndicator().compute(make_bars(closes), {'window': 10, 'percent': True})

        assert len(rows) == 1
        assert rows[0].indicator == 'momentum_10'
        assert rows[0].t == date(2024, 1, 11)
        assert rows[0].value == pytest.approx(10.0)

    def test_absolute_mode(self):
        rows = MomentumIndicator().compute(make_bars([1.0, 3.0, 6.0]), {'window': 1})
        assert [r.value for r in rows] == [2.0, 3.0]

    def test_multiple_windows(self):
        rows = MomentumIndicator().compute(make_bars([float(i) for i in range(1, 8)]), {'windows': [2, 5]})
        assert {r.indicator for r in rows} == {'momentum_2', 'momentum_5'}

    def test_zero_base_keeps_row_with_none(self):
        rows = MomentumIndicator().compute(make_bars([0.0, 5.0]), {'window': 1, 'percent': True})
        assert len(rows) == 1
        assert rows[0].value is None

    def test_invalid_window(self):
        with pytest.raises(IndicatorError):
            MomentumIndicator().compute(make_bars([1.0, 2.0]), {'window': 0})
