"""
Correlation matrix engine - pairwise correlation, beta and R² across the instrument universe.
Block-tiled pair iteration with buffered idempotent upserts into ticker_correlations.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Dict, Any, List, Optional

import numpy as np

from analysis.calculations.relative import beta, pearson
from analysis.calculations.returns import dated_log_returns
from analysis.settings import CorrelationConfig
from storage.market_store import MarketDataStore

CORRELATION_KEYS = ['ticker_id_a', 'ticker_id_b', 'as_of_date']


def correlate_pair(
    returns_a: Dict[date, float],
    returns_b: Dict[date, float],
    window: int,
    required_overlap: int
) -> Optional[Dict[str, float]]:
    """
    Correlation statistics for two dated return series.

    The series are intersected on date; the most recent window aligned
    observations are used when at least required_overlap dates are shared.

    Args:
        returns_a: Day -> return for instrument A
        returns_b: Day -> return for instrument B (the regressor for beta)
        window: Number of most recent aligned observations
        required_overlap: Minimum shared dates

    Returns:
        Dictionary with 'corr', 'beta', 'r2', or None when the pair is skipped
        (short overlap, flat series or non-finite correlation)
    """
    shared = sorted(set(returns_a) & set(returns_b))
    if len(shared) < required_overlap or len(shared) < window:
        return None

    recent = shared[-window:]
    a = np.array([returns_a[d] for d in recent], dtype=float)
    b = np.array([returns_b[d] for d in recent], dtype=float)

    if np.std(a, ddof=1) == 0 or np.std(b, ddof=1) == 0:
        return None

    corr = pearson(a, b)
    if corr is None:
        return None

    return {'corr': corr, 'beta': beta(a, b, ddof=1), 'r2': corr * corr}


class CorrelationMatrixEngine:
    """
    Compute the canonical-order correlation matrix for one as-of date.

    Instrument ids are walked in chunk_size × chunk_size tiles (inner tile start
    >= outer tile start) and only pairs with id_a < id_b are evaluated.
    """

    def __init__(
        self,
        store: MarketDataStore,
        config: Optional[CorrelationConfig] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store
        self.config = config or CorrelationConfig()
        self.log = logger or logging.getLogger(__name__)

    def compute_matrix(
        self,
        lookback_days: Optional[int] = None,
        window_size: Optional[int] = None,
        chunk_size: Optional[int] = None,
        instrument_limit: Optional[int] = None,
        min_overlap: Optional[int] = None,
        as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Compute and persist pairwise correlations.

        Arguments left as None fall back to the engine's CorrelationConfig.

        Args:
            lookback_days: Calendar days of closes to load before as_of
            window_size: Aligned returns used per pair
            chunk_size: Tile edge length
            instrument_limit: Cap on the universe size (0 = all active)
            min_overlap: Minimum shared return dates per pair
            as_of: As-of date stored with each pair (defaults to today)

        Returns:
            Counters: tickers, pairs_considered, pairs_written, skipped_overlap
            (fewer shared return dates than max(window, min_overlap)),
            skipped_degenerate (flat or non-finite), flushes, duration_seconds
        """
        overrides = {
            'lookback_days': lookback_days,
            'window': window_size,
            'chunk_size': chunk_size,
            'limit': instrument_limit,
            'min_overlap': min_overlap,
        }
        config = replace(self.config, **{k: v for k, v in overrides.items() if v is not None})
        as_of = as_of or date.today()
        start_time = datetime.now()

        stats = {
            'as_of_date': as_of,
            'tickers': 0,
            'pairs_considered': 0,
            'pairs_written': 0,
            'skipped_overlap': 0,
            'skipped_degenerate': 0,
            'flushes': 0,
        }

        instruments = self.store.list_instruments(limit=config.limit)
        ids = sorted(i['id'] for i in instruments)
        if len(ids) < 2:
            self.log.warning(f"Correlation matrix needs at least 2 instruments, found {len(ids)}")
            stats['duration_seconds'] = (datetime.now() - start_time).total_seconds()
            return stats

        closes = self.store.get_universe_closes(ids, as_of - timedelta(days=config.lookback_days), as_of)
        returns = {i: dated_log_returns(closes.get(i, {})) for i in ids}
        stats['tickers'] = sum(1 for i in ids if returns[i])

        self.log.info(
            f"Correlation matrix as of {as_of}: {len(ids)} instruments, window {config.window}, "
            f"lookback {config.lookback_days}d, chunk {config.chunk_size}"
        )

        buffer: List[Dict[str, Any]] = []
        required = config.required_overlap
        chunk = config.chunk_size

        for a_start in range(0, len(ids), chunk):
            block_a = ids[a_start:a_start + chunk]
            for b_start in range(a_start, len(ids), chunk):
                block_b = ids[b_start:b_start + chunk]

                for id_a in block_a:
                    for id_b in block_b:
                        if id_a >= id_b:
                            continue
                        stats['pairs_considered'] += 1

                        shared = returns[id_a].keys() & returns[id_b].keys()
                        if len(shared) < required:
                            stats['skipped_overlap'] += 1
                            continue

                        pair = correlate_pair(returns[id_a], returns[id_b], config.window, required)
                        if pair is None:
                            stats['skipped_degenerate'] += 1
                            continue

                        buffer.append({
                            'ticker_id_a': id_a,
                            'ticker_id_b': id_b,
                            'as_of_date': as_of,
                            'corr': pair['corr'],
                            'beta': pair['beta'],
                            'r2': pair['r2'],
                            'updated_at': datetime.now()
                        })

                        if len(buffer) >= config.flush_every:
                            stats['pairs_written'] += self._flush(buffer)
                            stats['flushes'] += 1
                            buffer = []

        if buffer:
            stats['pairs_written'] += self._flush(buffer)
            stats['flushes'] += 1

        stats['duration_seconds'] = (datetime.now() - start_time).total_seconds()
        self.log.info(
            f"Correlation matrix done: {stats['pairs_considered']} pairs considered, "
            f"{stats['pairs_written']} written, {stats['tickers']} tickers processed"
        )
        return stats

    def _flush(self, rows: List[Dict[str, Any]]) -> int:
        written = self.store.upsert(
            'ticker_correlations', rows,
            unique_keys=CORRELATION_KEYS,
            update_columns=['corr', 'beta', 'r2', 'updated_at'],
            batch_size=len(rows)
        )
        self.log.debug(f"Flushed {written} correlation pairs")
        return written
