"""
Feature DAGs - compute indicators and build snapshots across many instruments.
Composes: Select instruments → FeaturePipeline / FeatureSnapshotBuilder → Track.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Any, List, Optional

from analysis.feature_pipeline import DateRange, FeaturePipeline
from analysis.settings import IndicatorSettings, load_indicator_settings
from analysis.snapshot_builder import FeatureSnapshotBuilder
from storage.market_store import MarketDataStore
from storage.run_registry import start_run, finish_run, RunStatus

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Raised when a DAG is configured incorrectly."""
    pass


@dataclass
class FeatureJobConfig:
    """Instrument selection and options shared by the feature DAGs."""
    tickers: List[str] = field(default_factory=list)
    indicators: List[str] = field(default_factory=list)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    include_inactive: bool = False
    params: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    write_core: bool = True
    build_snapshots: bool = True
    prime_cache: bool = False
    preview: bool = False

    def __post_init__(self):
        """Normalize lists and validate the date range."""
        self.tickers = [t.strip().upper() for t in self.tickers if t and t.strip()]
        self.indicators = [i.strip().lower() for i in self.indicators if i and i.strip()]

        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise PipelineError("start_date must be <= end_date")

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)


def run_compute_indicators(
    config: FeatureJobConfig,
    conn: sqlite3.Connection,
    settings: Optional[IndicatorSettings] = None,
    cache: Optional[Any] = None
) -> Dict[str, Any]:
    """
    Run the feature pipeline for every selected instrument.

    Args:
        config: Job configuration
        conn: SQLite database connection
        settings: Indicator settings (loaded from YAML when omitted)
        cache: Ephemeral cache for cache-tier indicators (optional)

    Returns:
        Dictionary with run results and counts

    Raises:
        Exception: Infrastructure errors are logged with context, recorded as a
            failed run and re-raised
    """
    settings = settings or load_indicator_settings()
    store = MarketDataStore(conn)
    pipeline = FeaturePipeline(store, settings, cache=cache)

    run_id = start_run(conn, 'compute_indicators')
    start_time = datetime.now()
    result = {
        'run_id': run_id,
        'status': 'running',
        'instruments': 0,
        'inserted': 0,
        'snapshots': 0,
        'cache_primed': 0,
        'error_message': None
    }

    current = None
    try:
        instruments = store.list_instruments(config.tickers or None, config.include_inactive)
        for instrument in instruments:
            current = instrument
            counts = pipeline.run_for_ticker(
                instrument['id'],
                indicator_names=config.indicators,
                date_range=config.date_range,
                param_overrides=config.params,
                write_core=config.write_core,
                build_snapshots=config.build_snapshots,
                prime_cache=config.prime_cache
            )
            result['instruments'] += 1
            for key in ('inserted', 'snapshots', 'cache_primed'):
                result[key] += counts[key]

    except Exception as e:
        _record_failure(conn, run_id, result, e, current, config)
        raise

    finish_run(
        conn=conn,
        run_id=run_id,
        status=RunStatus.COMPLETED,
        rows_in=result['instruments'],
        rows_out=result['inserted'] + result['snapshots']
    )
    result['status'] = 'completed'
    result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
    return result


def run_build_snapshots(
    config: FeatureJobConfig,
    conn: sqlite3.Connection,
    settings: Optional[IndicatorSettings] = None
) -> Dict[str, Any]:
    """
    Build feature snapshots for every selected instrument.

    Args:
        config: Job configuration (preview skips writes)
        conn: SQLite database connection
        settings: Indicator settings (loaded from YAML when omitted)

    Returns:
        Dictionary with run results and counts
    """
    settings = settings or load_indicator_settings()
    store = MarketDataStore(conn)
    builder = FeatureSnapshotBuilder(store, settings)

    run_id = start_run(conn, 'build_snapshots')
    start_time = datetime.now()
    result = {
        'run_id': run_id,
        'status': 'running',
        'instruments': 0,
        'snapshots': 0,
        'metrics': 0,
        'preview': config.preview,
        'error_message': None
    }

    current = None
    try:
        instruments = store.list_instruments(config.tickers or None, config.include_inactive)
        for instrument in instruments:
            current = instrument
            counts = builder.build_for_ticker(
                instrument['id'],
                date_range=config.date_range,
                param_overrides=config.params,
                preview=config.preview
            )
            result['instruments'] += 1
            result['snapshots'] += counts['snapshots']
            result['metrics'] += counts['metrics']

    except Exception as e:
        _record_failure(conn, run_id, result, e, current, config)
        raise

    finish_run(
        conn=conn,
        run_id=run_id,
        status=RunStatus.COMPLETED,
        rows_in=result['instruments'],
        rows_out=0 if config.preview else result['snapshots']
    )
    result['status'] = 'completed'
    result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
    return result


def _record_failure(
    conn: sqlite3.Connection,
    run_id: int,
    result: Dict[str, Any],
    error: Exception,
    instrument: Optional[Dict[str, Any]],
    config: FeatureJobConfig
) -> None:
    symbol = instrument['symbol'] if instrument else None
    logger.exception(
        f"Feature job failed on instrument {symbol} "
        f"(indicators={config.indicators or 'all'}, range={config.start_date}..{config.end_date}): {error}"
    )
    result['status'] = 'failed'
    result['error_message'] = str(error)
    finish_run(
        conn=conn,
        run_id=run_id,
        status=RunStatus.FAILED,
        rows_in=result['instruments'],
        error_message=str(error)
    )
