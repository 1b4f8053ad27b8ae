"""
Tests for derived analytics - Sharpe, volatility, drawdown and beta per day.
"""

import logging
import math
import numpy as np
import pytest
import sqlite3
from datetime import date, timedelta

from analysis.analytics_calculator import AnalyticsCalculator, align_closes_to_days
from analysis.settings import IndicatorSettings
from storage.loaders import init_database, upsert_instruments, upsert_bars
from storage.market_store import MarketDataStore

START = date(2024, 1, 1)

SETTINGS = {
    'storage': {},
    'analytics': {'benchmark_symbol': 'SPY', 'sharpe_window': 5, 'volatility_window': 5,
                  'beta_window': 5, 'momentum_window': 3, 'risk_free': 0.0252},
}


def _closes(n, scale=1.0, offset=100.0):
    return [offset + scale * (4.0 * math.sin(i / 2.0) + 0.3 * i) for i in range(n)]


def _bars(closes, start=START):
    return [
        {'t': start + timedelta(days=i), 'open': c, 'high': c, 'low': c, 'close': c, 'volume': 100.0}
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def in_memory_db():
    """Create in-memory SQLite database for testing."""
    conn = sqlite3.connect(':memory:')
    init_database(conn)
    return conn


@pytest.fixture
def calculator(in_memory_db):
    return AnalyticsCalculator(MarketDataStore(in_memory_db), IndicatorSettings.from_dict(SETTINGS))


class TestComputeDerivedAnalytics:
    """Tests for AnalyticsCalculator.compute_derived_analytics."""

    def test_keys_and_values(self, in_memory_db, calculator):
        closes = _closes(20)
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}, {'symbol': 'SPY'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(closes))
        upsert_bars(in_memory_db, ids['SPY'], _bars(_closes(20, scale=0.5, offset=400.0)))

        result = calculator.compute_derived_analytics(ids['AAPL'])

        assert list(result) == [START + timedelta(days=i) for i in range(20)]
        returns = np.diff(np.log(closes))
        last = result[START + timedelta(days=19)]
        window = returns[-5:]

        assert last['sharpe_5']['value'] == pytest.approx(
            round((window.mean() - 0.0001) / window.std(ddof=1), 6)
        )
        assert last['volatility_5']['value'] == pytest.approx(
            round(window.std(ddof=1) * math.sqrt(252) * 100, 6)
        )
        peak = max(closes)
        assert last['drawdown']['value'] == pytest.approx(round((peak - closes[-1]) / peak * 100, 6))
        assert last['beta_5']['meta'] == {'benchmark': 'SPY'}
        assert last['beta_5']['value'] is not None

    def test_warm_up_days(self, in_memory_db, calculator):
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}, {'symbol': 'SPY'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(_closes(20)))
        upsert_bars(in_memory_db, ids['SPY'], _bars(_closes(20, scale=0.5)))

        result = calculator.compute_derived_analytics(ids['AAPL'])

        # Five returns are needed, the first lands on day index 5
        assert 'sharpe_5' not in result[START + timedelta(days=4)]
        assert 'sharpe_5' in result[START + timedelta(days=5)]
        assert result[START]['drawdown']['value'] == 0.0
        assert result[START]['beta_5']['value'] is None

    def test_beta_against_itself_is_one(self, in_memory_db, calculator):
        closes = _closes(20)
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}, {'symbol': 'SPY'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(closes))
        upsert_bars(in_memory_db, ids['SPY'], _bars(closes))

        result = calculator.compute_derived_analytics(ids['AAPL'])

        assert result[START + timedelta(days=19)]['beta_5']['value'] == pytest.approx(1.0)

    def test_benchmark_forward_filled(self, in_memory_db, calculator):
        """Test that benchmark gaps take the previous close, so beta still covers every day."""
        closes = _closes(20)
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}, {'symbol': 'SPY'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(closes))
        spy = [bar for i, bar in enumerate(_bars(_closes(20, scale=0.7))) if i % 4 != 2]
        upsert_bars(in_memory_db, ids['SPY'], spy)

        result = calculator.compute_derived_analytics(ids['AAPL'])

        assert result[START + timedelta(days=19)]['beta_5']['value'] is not None

    def test_missing_benchmark(self, in_memory_db, calculator, caplog):
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(_closes(20)))

        with caplog.at_level(logging.WARNING):
            result = calculator.compute_derived_analytics(ids['AAPL'])

        assert all(day['beta_5']['value'] is None for day in result.values())
        assert all('sharpe_5' in result[d] for d in list(result)[5:])
        assert "Benchmark SPY not found" in caplog.text

    def test_benchmark_without_bars(self, in_memory_db, calculator, caplog):
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}, {'symbol': 'SPY'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(_closes(20)))

        with caplog.at_level(logging.WARNING):
            result = calculator.compute_derived_analytics(ids['AAPL'])

        assert all(day['beta_5']['value'] is None for day in result.values())
        assert "has no bars" in caplog.text

    def test_zero_close_only_affects_its_own_returns(self, in_memory_db, calculator):
        closes = _closes(30)
        closes[2] = 0.0
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}, {'symbol': 'SPY'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(closes))
        upsert_bars(in_memory_db, ids['SPY'], _bars(_closes(30, scale=0.5, offset=400.0)))

        result = calculator.compute_derived_analytics(ids['AAPL'])

        assert len(result) == 30
        assert result[START + timedelta(days=2)]['drawdown']['value'] == 100.0
        last = result[START + timedelta(days=29)]
        assert last['sharpe_5']['value'] is not None
        assert last['beta_5']['value'] is not None

    def test_zero_benchmark_close_keeps_beta(self, in_memory_db, calculator):
        spy = _closes(30, scale=0.5, offset=400.0)
        spy[1] = 0.0
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}, {'symbol': 'SPY'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(_closes(30)))
        upsert_bars(in_memory_db, ids['SPY'], _bars(spy))

        result = calculator.compute_derived_analytics(ids['AAPL'])

        betas = [day['beta_5']['value'] for day in result.values()]
        assert all(b is not None for b in betas[10:])

    def test_insufficient_bars(self, in_memory_db, calculator, caplog):
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars([100.0]))

        with caplog.at_level(logging.WARNING):
            assert calculator.compute_derived_analytics(ids['AAPL']) == {}
        assert "Insufficient bars" in caplog.text

    def test_date_range(self, in_memory_db, calculator):
        ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}])
        upsert_bars(in_memory_db, ids['AAPL'], _bars(_closes(20)))

        result = calculator.compute_derived_analytics(
            ids['AAPL'], START + timedelta(days=5), START + timedelta(days=9)
        )

        assert list(result) == [START + timedelta(days=i) for i in range(5, 10)]


class TestAlignClosesToDays:
    """Tests for align_closes_to_days function."""

    def test_forward_fill_and_leading_days(self):
        closes = {date(2024, 1, 2): 10.0, date(2024, 1, 4): 12.0}
        days = [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4), date(2024, 1, 5)]

        assert align_closes_to_days(days, closes) == [10.0, 10.0, 10.0, 12.0, 12.0]
