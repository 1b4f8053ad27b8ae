"""
Database loaders - schema setup and idempotent upsert functions for SQLite.
Thin IO layer with focus on data integrity and idempotence.
"""

import re
import sqlite3
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Sequence


DEFAULT_BATCH_SIZE = 1000

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class UpsertError(Exception):
    """Raised when an upsert request is malformed."""
    pass


def init_database(conn: sqlite3.Connection) -> None:
    """
    Initialize database with required tables.
    Idempotent - safe to call multiple times.

    Args:
        conn: SQLite connection
    """
    conn.execute("PRAGMA foreign_keys = ON")

    # Instruments (tickers)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS instruments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            symbol TEXT NOT NULL UNIQUE,
            name TEXT,
            active INTEGER NOT NULL DEFAULT 1
        )
    """)

    # OHLCV bars per resolution
    conn.execute("""
        CREATE TABLE IF NOT EXISTS price_bars (
            ticker_id INTEGER NOT NULL,
            resolution TEXT NOT NULL,
            t DATETIME NOT NULL,
            open REAL,
            high REAL,
            low REAL,
            close REAL,
            volume REAL,
            vwap REAL,
            PRIMARY KEY (ticker_id, resolution, t),
            FOREIGN KEY (ticker_id) REFERENCES instruments(id)
        )
    """)

    # Core-tier indicator rows
    conn.execute("""
        CREATE TABLE IF NOT EXISTS ticker_indicators (
            ticker_id INTEGER NOT NULL,
            resolution TEXT NOT NULL,
            t DATETIME NOT NULL,
            indicator TEXT NOT NULL,
            value REAL,
            meta TEXT,
            updated_at DATETIME NOT NULL,
            PRIMARY KEY (ticker_id, resolution, t, indicator)
        )
    """)

    # Per-day feature vectors
    conn.execute("""
        CREATE TABLE IF NOT EXISTS feature_snapshots (
            ticker_id INTEGER NOT NULL,
            t DATE NOT NULL,
            indicators TEXT NOT NULL,
            updated_at DATETIME NOT NULL,
            PRIMARY KEY (ticker_id, t)
        )
    """)

    # Flattened numeric projection of snapshots
    conn.execute("""
        CREATE TABLE IF NOT EXISTS feature_metrics (
            ticker_id INTEGER NOT NULL,
            t DATE NOT NULL,
            sharpe REAL,
            volatility REAL,
            drawdown REAL,
            beta REAL,
            momentum REAL,
            updated_at DATETIME NOT NULL,
            PRIMARY KEY (ticker_id, t)
        )
    """)

    # Pairwise correlations, canonical order only
    conn.execute("""
        CREATE TABLE IF NOT EXISTS ticker_correlations (
            ticker_id_a INTEGER NOT NULL,
            ticker_id_b INTEGER NOT NULL,
            as_of_date DATE NOT NULL,
            corr REAL NOT NULL,
            beta REAL,
            r2 REAL,
            updated_at DATETIME NOT NULL,
            PRIMARY KEY (ticker_id_a, ticker_id_b, as_of_date),
            CHECK (ticker_id_a < ticker_id_b)
        )
    """)

    # Run registry
    conn.execute("""
        CREATE TABLE IF NOT EXISTS runs (
            run_id INTEGER PRIMARY KEY AUTOINCREMENT,
            dag_name TEXT NOT NULL,
            started_at DATETIME NOT NULL,
            finished_at DATETIME,
            status TEXT NOT NULL CHECK(status IN ('running', 'completed', 'failed')),
            rows_in INTEGER,
            rows_out INTEGER,
            error_message TEXT
        )
    """)

    # Create indices for performance
    conn.execute("CREATE INDEX IF NOT EXISTS idx_instruments_active ON instruments(active)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_bars_t ON price_bars(t)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_indicators_name ON ticker_indicators(indicator)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_snapshots_t ON feature_snapshots(t)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_correlations_date ON ticker_correlations(as_of_date)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status)")

    conn.commit()


def get_connection(db_path: str = './data/research.db') -> sqlite3.Connection:
    """
    Get SQLite connection with proper configuration.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Configured SQLite connection
    """
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")  # Better concurrency
    return conn


def upsert_rows(
    conn: sqlite3.Connection,
    table: str,
    rows: List[Dict[str, Any]],
    unique_keys: Sequence[str],
    update_columns: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE
) -> int:
    """
    Bulk upsert rows into a table.
    Idempotent - conflicting rows on unique_keys get update_columns overwritten.

    Args:
        conn: SQLite connection
        table: Target table name
        rows: Row dictionaries; every row must carry the same columns
        unique_keys: Columns forming the conflict target
        update_columns: Columns overwritten on conflict
        batch_size: Rows per executemany/commit

    Returns:
        Number of rows written

    Raises:
        UpsertError: If the request is malformed
    """
    if not rows:
        return 0

    if batch_size <= 0:
        raise UpsertError("batch_size must be positive")

    columns = list(rows[0].keys())
    for name in [table, *columns, *unique_keys, *update_columns]:
        if not _IDENTIFIER.match(name):
            raise UpsertError(f"Invalid identifier: {name!r}")

    missing = [k for k in unique_keys if k not in columns]
    if missing:
        raise UpsertError(f"Unique key columns missing from rows: {missing}")

    placeholders = ', '.join('?' for _ in columns)
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
    sql += f" ON CONFLICT ({', '.join(unique_keys)})"
    if update_columns:
        assignments = ', '.join(f"{c} = excluded.{c}" for c in update_columns)
        sql += f" DO UPDATE SET {assignments}"
    else:
        sql += " DO NOTHING"

    written = 0
    for start in range(0, len(rows), batch_size):
        chunk = rows[start:start + batch_size]
        try:
            params = [tuple(_to_sql_value(row[c]) for c in columns) for row in chunk]
        except KeyError as e:
            raise UpsertError(f"Row missing column {e} for table {table}")
        conn.executemany(sql, params)
        conn.commit()
        written += len(chunk)

    return written


def upsert_instruments(conn: sqlite3.Connection, rows: List[Dict[str, Any]]) -> Dict[str, int]:
    """
    Upsert instruments by symbol.

    Args:
        conn: SQLite connection
        rows: Dictionaries with 'symbol' and optional 'name', 'active'

    Returns:
        Mapping of symbol to instrument id
    """
    canonical = [
        {
            'symbol': row['symbol'].upper(),
            'name': row.get('name'),
            'active': 1 if row.get('active', True) else 0
        }
        for row in rows
    ]
    upsert_rows(conn, 'instruments', canonical, ['symbol'], ['name', 'active'])

    symbols = [row['symbol'] for row in canonical]
    if not symbols:
        return {}
    cursor = conn.execute(
        f"SELECT symbol, id FROM instruments WHERE symbol IN ({', '.join('?' for _ in symbols)})",
        symbols
    )
    return {symbol: instrument_id for symbol, instrument_id in cursor.fetchall()}


def upsert_bars(
    conn: sqlite3.Connection,
    ticker_id: int,
    bars: List[Dict[str, Any]],
    resolution: str = '1d'
) -> int:
    """
    Upsert OHLCV bars for one instrument.

    Args:
        conn: SQLite connection
        ticker_id: Instrument id
        bars: Dictionaries with 't', 'open', 'high', 'low', 'close', 'volume', optional 'vwap'
        resolution: Bar resolution

    Returns:
        Number of bars written
    """
    canonical = [
        {
            'ticker_id': ticker_id,
            'resolution': resolution,
            't': bar['t'],
            'open': bar.get('open'),
            'high': bar.get('high'),
            'low': bar.get('low'),
            'close': bar.get('close'),
            'volume': bar.get('volume'),
            'vwap': bar.get('vwap')
        }
        for bar in bars
    ]
    return upsert_rows(
        conn, 'price_bars', canonical,
        unique_keys=['ticker_id', 'resolution', 't'],
        update_columns=['open', 'high', 'low', 'close', 'volume', 'vwap']
    )


def format_timestamp(value: Any) -> Optional[str]:
    """Render a date/datetime the way it is stored in SQLite."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d %H:%M:%S')
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _to_sql_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return format_timestamp(value)
    return value
