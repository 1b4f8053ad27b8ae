"""
Correlation DAG - runs the correlation matrix engine with run tracking.
"""

import logging
import sqlite3
from datetime import date, datetime
from typing import Dict, Any, Optional

from analysis.correlation_matrix import CorrelationMatrixEngine
from analysis.settings import CorrelationConfig
from storage.market_store import MarketDataStore
from storage.run_registry import start_run, finish_run, RunStatus

logger = logging.getLogger(__name__)


def run_correlation_matrix(
    config: CorrelationConfig,
    conn: sqlite3.Connection,
    as_of: Optional[date] = None
) -> Dict[str, Any]:
    """
    Compute the correlation matrix for one as-of date.

    Args:
        config: Engine configuration
        conn: SQLite database connection
        as_of: As-of date (defaults to today)

    Returns:
        Engine counters plus run_id and status

    Raises:
        Exception: Infrastructure errors are recorded as a failed run and re-raised
    """
    run_id = start_run(conn, 'correlation_matrix')
    engine = CorrelationMatrixEngine(MarketDataStore(conn), config)

    try:
        stats = engine.compute_matrix(as_of=as_of)
    except Exception as e:
        logger.exception(
            f"Correlation matrix failed (as_of={as_of}, window={config.window}, "
            f"lookback={config.lookback_days}): {e}"
        )
        finish_run(conn, run_id, RunStatus.FAILED, finished_at=datetime.now(), error_message=str(e))
        raise

    finish_run(
        conn=conn,
        run_id=run_id,
        status=RunStatus.COMPLETED,
        rows_in=stats['pairs_considered'],
        rows_out=stats['pairs_written']
    )
    return {**stats, 'run_id': run_id, 'status': 'completed'}
