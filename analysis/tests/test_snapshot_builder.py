"""
Tests for the feature snapshot builder - merging, flattening and preview.
"""

import json
import logging
import math
import pytest
import sqlite3
from datetime import date, datetime, timedelta
from unittest.mock import Mock

from analysis.feature_pipeline import DateRange, FeaturePipeline
from analysis.settings import IndicatorSettings
from analysis.snapshot_builder import FeatureSnapshotBuilder, METRIC_COLUMNS
from storage.loaders import init_database, upsert_instruments, upsert_bars
from storage.market_store import MarketDataStore

START = date(2024, 1, 1)

SNAPSHOT_CONFIG = {
    'storage': {
        'ticker_indicators': ['atr'],
        'feature_snapshots': ['atr', 'momentum', 'beta', 'sharpe', 'drawdown', 'volatility'],
        'cache_only': [],
    },
    'defaults': {
        'atr': {'period': 5},
        'momentum': {'windows': [3]},
    },
    'ai_features': ['atr', 'momentum', 'rsi'],
    'analytics': {'benchmark_symbol': 'SPY', 'sharpe_window': 5, 'volatility_window': 5,
                  'beta_window': 5, 'momentum_window': 3, 'risk_free': 0.0},
    'snapshots': {'lookback_buffer_days': 30},
}


def _bars(n, scale=1.0, offset=0.0):
    bars = []
    for i in range(n):
        close = 100.0 + offset + scale * (5.0 * math.sin(i / 3.0) + 0.2 * i)
        bars.append({'t': START + timedelta(days=i), 'open': close - 0.3, 'high': close + 1.0,
                     'low': close - 1.0, 'close': close, 'volume': 1000.0 + i})
    return bars


@pytest.fixture
def in_memory_db():
    """Create in-memory SQLite database for testing."""
    conn = sqlite3.connect(':memory:')
    init_database(conn)
    return conn


@pytest.fixture
def settings():
    return IndicatorSettings.from_dict(SNAPSHOT_CONFIG)


@pytest.fixture
def prepared(in_memory_db, settings):
    """AAPL and SPY with 40 bars each and persisted atr_5 rows for AAPL."""
    ids = upsert_instruments(in_memory_db, [{'symbol': 'AAPL'}, {'symbol': 'SPY'}, {'symbol': 'NEW'}])
    upsert_bars(in_memory_db, ids['AAPL'], _bars(40, scale=1.5))
    upsert_bars(in_memory_db, ids['SPY'], _bars(40, offset=300.0))
    upsert_bars(in_memory_db, ids['NEW'], _bars(10))

    store = MarketDataStore(in_memory_db)
    FeaturePipeline(store, settings).run_for_ticker(ids['AAPL'], ['atr'])
    return store, ids


def _count(conn, table):
    return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class TestSnapshotOnly:
    """Tests for the snapshot-only indicator set."""

    def test_excludes_core_and_derived(self, in_memory_db, settings):
        builder = FeatureSnapshotBuilder(MarketDataStore(in_memory_db), settings)
        assert builder.snapshot_only == ['momentum']


class TestBuildForTicker:
    """Tests for FeatureSnapshotBuilder.build_for_ticker."""

    def test_builds_and_flattens(self, prepared, settings):
        """Test one snapshot per core or snapshot-only day, mirrored into feature_metrics."""
        store, ids = prepared
        builder = FeatureSnapshotBuilder(store, settings)

        result = builder.build_for_ticker(ids['AAPL'])

        # atr_5 covers days 4..39, momentum_3 days 3..39
        assert result == {'snapshots': 37, 'metrics': 37}
        assert _count(store.conn, 'feature_snapshots') == 37
        assert _count(store.conn, 'feature_metrics') == 37

    def test_snapshot_contents(self, prepared, settings):
        store, ids = prepared
        FeatureSnapshotBuilder(store, settings).build_for_ticker(ids['AAPL'])

        raw = store.conn.execute(
            "SELECT indicators FROM feature_snapshots WHERE ticker_id = ? AND t = ?",
            (ids['AAPL'], (START + timedelta(days=20)).isoformat())
        ).fetchone()[0]
        snapshot = json.loads(raw)

        for key in ['atr_5', 'momentum_3', 'sharpe_5', 'volatility_5', 'drawdown', 'beta_5']:
            assert key in snapshot
        assert snapshot['beta_5']['meta'] == {'benchmark': 'SPY'}
        assert snapshot['beta_5']['value'] is not None

    def test_early_day_without_core_row(self, prepared, settings):
        """Test that a snapshot-only day carries no core keys."""
        store, ids = prepared
        snapshots = FeatureSnapshotBuilder(store, settings).collect(ids['AAPL'], DateRange())

        first = snapshots[START + timedelta(days=3)]
        assert 'atr_5' not in first
        assert 'momentum_3' in first
        assert 'drawdown' in first

    def test_every_day_has_every_derived_key_once_warm(self, prepared, settings):
        store, ids = prepared
        snapshots = FeatureSnapshotBuilder(store, settings).collect(ids['AAPL'], DateRange())

        for day, snapshot in snapshots.items():
            assert 'drawdown' in snapshot
            assert 'beta_5' in snapshot
            if day >= START + timedelta(days=5):
                assert 'sharpe_5' in snapshot
                assert 'volatility_5' in snapshot

    def test_metric_columns(self, prepared, settings):
        store, ids = prepared
        FeatureSnapshotBuilder(store, settings).build_for_ticker(ids['AAPL'])

        row = store.conn.execute(
            f"SELECT {', '.join(METRIC_COLUMNS)} FROM feature_metrics WHERE ticker_id = ? AND t = ?",
            (ids['AAPL'], (START + timedelta(days=39)).isoformat())
        ).fetchone()

        assert all(value is not None for value in row)
        assert row[2] >= 0  # drawdown

    def test_preview_writes_nothing(self, prepared, settings):
        store, ids = prepared

        result = FeatureSnapshotBuilder(store, settings).build_for_ticker(ids['AAPL'], preview=True)

        assert result == {'snapshots': 37, 'metrics': 0}
        assert _count(store.conn, 'feature_snapshots') == 0
        assert _count(store.conn, 'feature_metrics') == 0

    def test_rebuild_is_idempotent(self, prepared, settings):
        store, ids = prepared
        builder = FeatureSnapshotBuilder(store, settings)

        builder.build_for_ticker(ids['AAPL'])
        first = store.conn.execute("SELECT ticker_id, t, indicators FROM feature_snapshots").fetchall()
        builder.build_for_ticker(ids['AAPL'])
        second = store.conn.execute("SELECT ticker_id, t, indicators FROM feature_snapshots").fetchall()

        assert first == second

    def test_date_range(self, prepared, settings):
        store, ids = prepared

        result = FeatureSnapshotBuilder(store, settings).build_for_ticker(
            ids['AAPL'], DateRange(START + timedelta(days=10), START + timedelta(days=19))
        )

        assert result['snapshots'] == 10

    def test_no_core_rows(self, prepared, settings, caplog):
        store, ids = prepared

        with caplog.at_level(logging.WARNING):
            result = FeatureSnapshotBuilder(store, settings).build_for_ticker(ids['NEW'])

        assert result == {'snapshots': 0, 'metrics': 0}
        assert "No core indicator rows" in caplog.text

    def test_injected_analytics(self, prepared, settings):
        """Test that an injected calculator supplies the derived values."""
        store, ids = prepared
        analytics = Mock()
        analytics.compute_derived_analytics.return_value = {
            START + timedelta(days=4): {'sharpe_5': {'value': 1.25, 'meta': None}},
            date(2023, 1, 1): {'sharpe_5': {'value': 9.0, 'meta': None}},
        }
        builder = FeatureSnapshotBuilder(store, settings, analytics=analytics)

        snapshots = builder.collect(ids['AAPL'], DateRange())

        assert snapshots[START + timedelta(days=4)]['sharpe_5']['value'] == 1.25
        # Analytics never add days of their own
        assert date(2023, 1, 1) not in snapshots


class TestFlattenAndFeatures:
    """Tests for flatten and ai_features."""

    def test_flatten_missing_keys_are_null(self, in_memory_db, settings):
        builder = FeatureSnapshotBuilder(MarketDataStore(in_memory_db), settings)
        snapshots = {date(2024, 1, 2): {'momentum_3': {'value': 2.5, 'meta': None},
                                        'drawdown': {'value': float('nan'), 'meta': None}}}

        rows = builder.flatten(1, snapshots, datetime(2024, 1, 2))

        assert rows == [{
            'ticker_id': 1, 't': date(2024, 1, 2), 'sharpe': None, 'volatility': None,
            'drawdown': None, 'beta': None, 'momentum': 2.5, 'updated_at': datetime(2024, 1, 2)
        }]

    def test_ai_features(self, in_memory_db, settings):
        builder = FeatureSnapshotBuilder(MarketDataStore(in_memory_db), settings)
        snapshot = {
            'atrx_5': {'value': 9.9},
            'atr_5': {'value': 1.2},
            'momentum_3': {'value': -0.5},
        }

        assert builder.ai_features(snapshot) == {'atr': 1.2, 'momentum': -0.5, 'rsi': None}
