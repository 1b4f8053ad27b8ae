"""
Feature snapshot builder - one consolidated feature vector per instrument and trading day.
Merges persisted core indicators, snapshot-only indicators and derived analytics,
then keeps the flattened feature_metrics table in sync.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Any, List, Optional

from analysis.analytics_calculator import AnalyticsCalculator, DERIVED_ANALYTICS
from analysis.feature_pipeline import (
    DateRange, SNAPSHOT_KEYS, finite_or_none, rows_by_day, snapshot_rows
)
from analysis.settings import IndicatorSettings
from indicators.base import IndicatorError, normalize_bars
from indicators.params import resolve_params
from indicators.registry import IndicatorRegistry
from storage.market_store import MarketDataStore, as_day

# feature_metrics columns, resolved to snapshot keys through AnalyticsSettings.keys
METRIC_COLUMNS = ('sharpe', 'volatility', 'drawdown', 'beta', 'momentum')


class FeatureSnapshotBuilder:
    """Build and persist daily feature snapshots for one instrument at a time."""

    def __init__(
        self,
        store: MarketDataStore,
        settings: IndicatorSettings,
        registry: Optional[IndicatorRegistry] = None,
        analytics: Optional[AnalyticsCalculator] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store
        self.settings = settings
        self.registry = registry or IndicatorRegistry()
        self.log = logger or logging.getLogger(__name__)
        self.analytics = analytics or AnalyticsCalculator(store, settings, logger=self.log)

    @property
    def snapshot_only(self) -> List[str]:
        """Snapshot-tier names that are neither core indicators nor derived analytics."""
        policy = self.settings.storage
        return sorted(policy.snapshot - policy.core - set(DERIVED_ANALYTICS))

    def build_for_ticker(
        self,
        instrument_id: int,
        date_range: Optional[DateRange] = None,
        param_overrides: Optional[Dict[str, Dict[str, Any]]] = None,
        preview: bool = False
    ) -> Dict[str, int]:
        """
        Build feature snapshots for one instrument.

        Args:
            instrument_id: Instrument id
            date_range: Inclusive day range (optional bounds)
            param_overrides: Mapping of base name -> parameter overrides
            preview: Count rows without writing

        Returns:
            Dictionary with 'snapshots' (and 'metrics' when written)
        """
        date_range = date_range or DateRange()
        result = {'snapshots': 0, 'metrics': 0}

        snapshots = self.collect(instrument_id, date_range, param_overrides)
        if not snapshots:
            return result

        result['snapshots'] = len(snapshots)
        if preview:
            self.log.info(
                f"Preview: {len(snapshots)} snapshots for instrument {instrument_id} "
                f"between {date_range.start} and {date_range.end}, nothing written"
            )
            return result

        updated_at = datetime.now()
        self.store.upsert(
            'feature_snapshots',
            snapshot_rows(instrument_id, snapshots, updated_at),
            unique_keys=SNAPSHOT_KEYS,
            update_columns=['indicators', 'updated_at'],
            batch_size=self.settings.batch_size
        )
        result['metrics'] = self.store.upsert(
            'feature_metrics',
            self.flatten(instrument_id, snapshots, updated_at),
            unique_keys=SNAPSHOT_KEYS,
            update_columns=[*METRIC_COLUMNS, 'updated_at'],
            batch_size=self.settings.batch_size
        )

        self.log.info(f"Built {result['snapshots']} snapshots for instrument {instrument_id}")
        return result

    def collect(
        self,
        instrument_id: int,
        date_range: DateRange,
        param_overrides: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> Dict[date, Dict[str, Any]]:
        """
        Assemble the per-day indicator maps without writing anything.

        Returns:
            Mapping day -> {indicator key: {'value', 'meta'}}, empty when no core
            indicator rows exist in the range
        """
        core_names = sorted(self.settings.storage.core)
        core_rows = self.store.get_indicator_rows(
            instrument_id, core_names, date_range.start, date_range.end, self.settings.resolution
        )
        if not core_rows:
            self.log.warning(
                f"No core indicator rows for instrument {instrument_id} "
                f"between {date_range.start} and {date_range.end}"
            )
            return {}

        days: Dict[date, Dict[str, Any]] = defaultdict(dict)
        for row in core_rows:
            days[as_day(row['t'])][row['indicator']] = {
                'value': finite_or_none(row['value']),
                'meta': row['meta']
            }

        for day, values in self._snapshot_only_rows(instrument_id, date_range, param_overrides).items():
            days[day].update(values)

        analytics = self.analytics.compute_derived_analytics(
            instrument_id, date_range.start, date_range.end
        )
        for day, values in analytics.items():
            if day in days:
                days[day].update(values)

        return {day: days[day] for day in sorted(days) if date_range.contains(day)}

    def flatten(
        self,
        instrument_id: int,
        snapshots: Dict[date, Dict[str, Any]],
        updated_at: datetime
    ) -> List[Dict[str, Any]]:
        """Project snapshots onto the fixed feature_metrics columns."""
        keys = self.settings.analytics.keys
        rows = []
        for day in sorted(snapshots):
            row: Dict[str, Any] = {'ticker_id': instrument_id, 't': day}
            for column in METRIC_COLUMNS:
                entry = snapshots[day].get(keys[column]) or {}
                row[column] = finite_or_none(entry.get('value'))
            row['updated_at'] = updated_at
            rows.append(row)
        return rows

    def ai_features(self, snapshot: Dict[str, Any]) -> Dict[str, Optional[float]]:
        """
        Values of the configured AI feature base names from one snapshot.

        A base name matches its own key or any '<base>_<suffix>' key; the first
        match in key order wins.
        """
        features: Dict[str, Optional[float]] = {}
        for base in self.settings.ai_features:
            features[base] = None
            for key in sorted(snapshot):
                if key == base or key.startswith(f"{base}_"):
                    features[base] = (snapshot[key] or {}).get('value')
                    break
        return features

    def _snapshot_only_rows(
        self,
        instrument_id: int,
        date_range: DateRange,
        param_overrides: Optional[Dict[str, Dict[str, Any]]]
    ) -> Dict[date, Dict[str, Any]]:
        names = self.snapshot_only
        modules = self.registry.select(names)
        if not modules:
            return {}

        # Extra history so windows are warm at the start of the range
        load_from = None
        if date_range.start is not None:
            load_from = date_range.start - timedelta(days=self.settings.lookback_buffer_days)

        bars = normalize_bars(self.store.get_bars(
            instrument_id, self.settings.resolution, load_from, date_range.end
        ))
        if not bars:
            self.log.warning(f"No bars for snapshot-only indicators on instrument {instrument_id}")
            return {}

        overrides = {str(k).lower(): v for k, v in (param_overrides or {}).items()}
        rows = []
        for module in modules:
            params = resolve_params(self.settings.defaults_for(module.name), overrides.get(module.name))
            try:
                rows.extend(module.compute(bars, params))
            except IndicatorError as e:
                self.log.warning(f"Skipping {module.name} snapshot rows for instrument {instrument_id}: {e}")

        return {
            day: values for day, values in rows_by_day(rows).items()
            if date_range.contains(day)
        }
