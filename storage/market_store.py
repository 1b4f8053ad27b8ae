"""
Market data store - read side of the SQLite database plus the upsert sink.
Thin IO layer: queries return plain Python values, never raw cursors.
"""

import json
import sqlite3
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Sequence

import pandas as pd

from indicators.base import Bar
from storage.loaders import upsert_rows, format_timestamp, DEFAULT_BATCH_SIZE


class MarketDataStore:
    """
    Bar source, instrument resolver and persistent upsert sink over one connection.

    Every method propagates sqlite3 errors to the caller.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # Instrument resolver

    def find_instrument(self, instrument_id: int) -> Optional[Dict[str, Any]]:
        """
        Look up an instrument by id.

        Args:
            instrument_id: Instrument id

        Returns:
            Dictionary with 'id' and 'symbol', or None if not found
        """
        row = self.conn.execute(
            "SELECT id, symbol FROM instruments WHERE id = ?", (instrument_id,)
        ).fetchone()
        if row is None:
            return None
        return {'id': row[0], 'symbol': row[1]}

    def find_instrument_by_symbol(self, symbol: str) -> Optional[int]:
        """Return the id for a symbol (case-insensitive), or None."""
        if not symbol:
            return None
        row = self.conn.execute(
            "SELECT id FROM instruments WHERE symbol = ?", (symbol.strip().upper(),)
        ).fetchone()
        return row[0] if row else None

    def list_instruments(
        self,
        symbols: Optional[Sequence[str]] = None,
        include_inactive: bool = False,
        limit: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Select instruments ordered by id.

        Args:
            symbols: Restrict to these symbols (optional)
            include_inactive: Include instruments flagged inactive
            limit: Maximum number of instruments (0 = no cap)

        Returns:
            List of dictionaries with 'id' and 'symbol'
        """
        query = "SELECT id, symbol FROM instruments WHERE 1 = 1"
        params: List[Any] = []

        if symbols:
            normalized = [s.strip().upper() for s in symbols if s and s.strip()]
            query += f" AND symbol IN ({', '.join('?' for _ in normalized)})"
            params.extend(normalized)

        if not include_inactive:
            query += " AND active = 1"

        query += " ORDER BY id ASC"
        if limit and limit > 0:
            query += " LIMIT ?"
            params.append(int(limit))

        return [{'id': r[0], 'symbol': r[1]} for r in self.conn.execute(query, params).fetchall()]

    # Bar source

    def get_bars(
        self,
        instrument_id: int,
        resolution: str = '1d',
        from_date: Optional[date] = None,
        to_date: Optional[date] = None
    ) -> List[Bar]:
        """
        Load bars for an instrument in ascending chronological order.

        Args:
            instrument_id: Instrument id
            resolution: Bar resolution ('1d', '1h', ...)
            from_date: Inclusive start date (optional)
            to_date: Inclusive end date (optional)

        Returns:
            List of Bar objects
        """
        query = """
            SELECT t, open, high, low, close, volume, vwap
            FROM price_bars
            WHERE ticker_id = ? AND resolution = ?
        """
        params: List[Any] = [instrument_id, resolution]
        query, params = _add_date_bounds(query, params, 't', from_date, to_date)
        query += " ORDER BY t ASC"

        df = pd.read_sql_query(query, self.conn, params=params)
        return [
            Bar(
                t=parse_timestamp(row.t),
                open=_nullable_float(row.open),
                high=_nullable_float(row.high),
                low=_nullable_float(row.low),
                close=_nullable_float(row.close),
                volume=_nullable_float(row.volume) or 0.0,
                vwap=_nullable_float(row.vwap)
            )
            for row in df.itertuples(index=False)
        ]

    def get_universe_closes(
        self,
        instrument_ids: Sequence[int],
        from_date: date,
        to_date: Optional[date] = None,
        resolution: str = '1d'
    ) -> Dict[int, Dict[date, float]]:
        """
        Bulk load daily closes for many instruments.

        Args:
            instrument_ids: Instrument ids to load
            from_date: Inclusive start date
            to_date: Inclusive end date (optional)
            resolution: Bar resolution

        Returns:
            Mapping instrument id -> {day: close}
        """
        result: Dict[int, Dict[date, float]] = {int(i): {} for i in instrument_ids}
        if not result:
            return result

        query = f"""
            SELECT ticker_id, t, close
            FROM price_bars
            WHERE resolution = ? AND close IS NOT NULL
              AND ticker_id IN ({', '.join('?' for _ in result)})
        """
        params: List[Any] = [resolution, *result.keys()]
        query, params = _add_date_bounds(query, params, 't', from_date, to_date)
        query += " ORDER BY ticker_id ASC, t ASC"

        df = pd.read_sql_query(query, self.conn, params=params)
        for row in df.itertuples(index=False):
            result[int(row.ticker_id)][as_day(parse_timestamp(row.t))] = float(row.close)
        return result

    def get_indicator_rows(
        self,
        instrument_id: int,
        indicators: Optional[Sequence[str]] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        resolution: str = '1d'
    ) -> List[Dict[str, Any]]:
        """
        Load persisted core-tier indicator rows.

        Args:
            instrument_id: Instrument id
            indicators: Restrict to indicator keys or base names (prefix match on '<base>_')
            from_date: Inclusive start date (optional)
            to_date: Inclusive end date (optional)
            resolution: Bar resolution

        Returns:
            List of dictionaries with 't', 'indicator', 'value', 'meta'
        """
        query = """
            SELECT t, indicator, value, meta
            FROM ticker_indicators
            WHERE ticker_id = ? AND resolution = ?
        """
        params: List[Any] = [instrument_id, resolution]

        if indicators:
            clauses = []
            for name in indicators:
                clauses.append("(indicator = ? OR indicator LIKE ? ESCAPE '\\')")
                params.extend([name, f"{name}\\_%"])
            query += " AND (" + " OR ".join(clauses) + ")"

        query, params = _add_date_bounds(query, params, 't', from_date, to_date)
        query += " ORDER BY t ASC, indicator ASC"

        df = pd.read_sql_query(query, self.conn, params=params)
        rows = []
        for row in df.itertuples(index=False):
            rows.append({
                't': parse_timestamp(row.t),
                'indicator': row.indicator,
                'value': _nullable_float(row.value),
                'meta': json.loads(row.meta) if isinstance(row.meta, str) and row.meta else None
            })
        return rows

    # Upsert sink

    def upsert(
        self,
        table: str,
        rows: List[Dict[str, Any]],
        unique_keys: Sequence[str],
        update_columns: Sequence[str],
        batch_size: int = DEFAULT_BATCH_SIZE
    ) -> int:
        """Idempotent bulk write; see storage.loaders.upsert_rows."""
        return upsert_rows(self.conn, table, rows, unique_keys, update_columns, batch_size)


def parse_timestamp(value: Any) -> Any:
    """Parse a stored timestamp: 'YYYY-MM-DD' becomes a date, anything longer a datetime."""
    if value is None or isinstance(value, (date, datetime)):
        return value
    text = str(value)
    if len(text) <= 10:
        return date.fromisoformat(text)
    return datetime.fromisoformat(text.replace(' ', 'T'))


def as_day(value: Any) -> date:
    """Truncate a date/datetime to its trading day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def _add_date_bounds(query: str, params: List[Any], column: str,
                     from_date: Optional[date], to_date: Optional[date]):
    if from_date is not None:
        query += f" AND {column} >= ?"
        params.append(format_timestamp(as_day(from_date)))
    if to_date is not None:
        # Compare the day part so intraday timestamps on to_date are included
        query += f" AND substr({column}, 1, 10) <= ?"
        params.append(format_timestamp(as_day(to_date)))
    return query, params


def _nullable_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)
