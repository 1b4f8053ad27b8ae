"""
Feature pipeline - computes indicators for one instrument and routes the rows.
Store -> Registry -> Indicator modules -> {core table | daily snapshots | cache}.
"""

import json
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Sequence

from analysis.analytics_calculator import align_closes_to_days
from analysis.settings import IndicatorSettings
from indicators.base import Bar, IndicatorError, IndicatorRow, normalize_bars
from indicators.params import LIST_KEYS, merge_params, parse_indicator_name, resolve_params
from indicators.registry import IndicatorRegistry
from storage.cache import indicator_cache_key
from storage.market_store import MarketDataStore, as_day

INDICATOR_KEYS = ['ticker_id', 'resolution', 't', 'indicator']
SNAPSHOT_KEYS = ['ticker_id', 't']


@dataclass
class DateRange:
    """Inclusive day range; either bound may be open."""
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self):
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must be <= end")

    def contains(self, day: date) -> bool:
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


@dataclass
class IndicatorRequest:
    """One requested indicator: the name as asked, its base module and per-call params."""
    name: str
    base: str
    params: Dict[str, Any] = field(default_factory=dict)


class FeaturePipeline:
    """
    Compute and route indicator rows for single instruments.

    Routing is driven entirely by the injected StoragePolicy: a row goes to the
    core table when its module is in the core tier and write_core is set, to the
    per-day snapshot when in the snapshot tier and build_snapshots is set, and
    to the cache when in the cache tier, prime_cache is set and a cache exists.
    """

    def __init__(
        self,
        store: MarketDataStore,
        settings: IndicatorSettings,
        registry: Optional[IndicatorRegistry] = None,
        cache: Optional[Any] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store
        self.settings = settings
        self.registry = registry or IndicatorRegistry()
        self.cache = cache
        self.log = logger or logging.getLogger(__name__)

    def parse_requests(
        self,
        names: Sequence[str],
        param_overrides: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> List[IndicatorRequest]:
        """
        Turn requested names into IndicatorRequests.

        Overrides are looked up by base name; a numeric suffix ('sma_50') wins
        over them for window/period.

        Args:
            names: Requested indicator names
            param_overrides: Mapping of base name -> parameter overrides

        Returns:
            Requests, de-duplicated by name, in request order
        """
        overrides = {str(k).lower(): v for k, v in (param_overrides or {}).items()}

        requests = []
        seen = set()
        for raw in names:
            base, suffix_params = parse_indicator_name(raw)
            if not base or raw.strip().lower() in seen:
                continue
            seen.add(raw.strip().lower())

            module = self.registry.get(base)
            canonical = module.name if module else base
            user_params = overrides.get(canonical, overrides.get(base, {}))
            if suffix_params:
                # The suffix names the single window, so list overrides give way
                user_params = {k: v for k, v in user_params.items() if k not in LIST_KEYS}
            requests.append(IndicatorRequest(
                name=raw.strip().lower(),
                base=canonical,
                params=merge_params(user_params, suffix_params)
            ))
        return requests

    def run_for_ticker(
        self,
        instrument_id: int,
        indicator_names: Optional[Sequence[str]] = None,
        date_range: Optional[DateRange] = None,
        param_overrides: Optional[Dict[str, Dict[str, Any]]] = None,
        write_core: bool = True,
        build_snapshots: bool = False,
        prime_cache: bool = False
    ) -> Dict[str, int]:
        """
        Compute indicators for one instrument and route every row.

        Args:
            instrument_id: Instrument id
            indicator_names: Names to compute (empty = every configured tier)
            date_range: Bar range to load (optional)
            param_overrides: Mapping of base name -> parameter overrides
            write_core: Persist core-tier rows
            build_snapshots: Fold snapshot-tier rows into daily snapshots
            prime_cache: Put cache-tier rows into the cache

        Returns:
            Dictionary with 'inserted', 'snapshots' and 'cache_primed' counts
        """
        date_range = date_range or DateRange()
        result = {'inserted': 0, 'snapshots': 0, 'cache_primed': 0}

        instrument = self.store.find_instrument(instrument_id)
        if instrument is None:
            self.log.warning(f"Instrument {instrument_id} not found, nothing to compute")
            return result

        policy = self.settings.storage
        names = list(indicator_names) if indicator_names else policy.all_names()
        requests = self.parse_requests(names, param_overrides)

        unknown = [r.name for r in requests if r.base not in self.registry]
        if unknown:
            self.log.warning(f"Unknown indicators for {instrument['symbol']}: {', '.join(unknown)}")

        modules = self.registry.select([r.base for r in requests])
        if not modules:
            self.log.warning(f"No indicator modules resolved for {instrument['symbol']} from {names}")
            return result

        bars = normalize_bars(self.store.get_bars(
            instrument_id, self.settings.resolution, date_range.start, date_range.end
        ))
        if not bars:
            self.log.warning(
                f"No bars for {instrument['symbol']} between {date_range.start} and {date_range.end}"
            )
            return result

        if prime_cache and self.cache is None:
            self.log.debug("No cache configured, skipping cache priming")

        core_rows: List[Dict[str, Any]] = []
        snapshot_days: Dict[date, Dict[str, Any]] = defaultdict(dict)
        benchmark: Optional[List[float]] = None
        updated_at = datetime.now()

        for request in requests:
            module = self.registry.get(request.base)
            if module is None:
                continue

            to_core = write_core and module.name in policy.core
            to_snapshot = build_snapshots and module.name in policy.snapshot
            to_cache = prime_cache and self.cache is not None and module.name in policy.cache
            if not (to_core or to_snapshot or to_cache):
                self.log.debug(f"{request.name} has no active destination, skipped")
                continue

            params = resolve_params(self.settings.defaults_for(module.name), request.params)
            if module.requires_benchmark and not params.get('benchmark'):
                if benchmark is None:
                    benchmark = self.benchmark_closes(bars) or []
                params['benchmark'] = benchmark

            try:
                rows = module.compute(bars, params)
            except IndicatorError as e:
                self.log.warning(f"Skipping {request.name} for {instrument['symbol']}: {e}")
                continue

            if not rows:
                self.log.debug(f"{request.name} produced no rows for {instrument['symbol']} ({len(bars)} bars)")
                continue

            for row in rows:
                value = finite_or_none(row.value)
                if to_core:
                    core_rows.append({
                        'ticker_id': instrument_id,
                        'resolution': self.settings.resolution,
                        't': row.t,
                        'indicator': row.indicator,
                        'value': value,
                        'meta': encode_meta(row.meta),
                        'updated_at': updated_at
                    })
                if to_snapshot:
                    snapshot_days[as_day(row.t)][row.indicator] = {'value': value, 'meta': row.meta}
                if to_cache:
                    self.cache.put(
                        indicator_cache_key(instrument_id, row.indicator, row.t),
                        {'value': value, 'meta': row.meta},
                        self.settings.ttl_for('cache_only')
                    )
                    result['cache_primed'] += 1

        if core_rows:
            result['inserted'] = self.store.upsert(
                'ticker_indicators', core_rows,
                unique_keys=INDICATOR_KEYS,
                update_columns=['value', 'meta', 'updated_at'],
                batch_size=self.settings.batch_size
            )

        if snapshot_days:
            result['snapshots'] = self.store.upsert(
                'feature_snapshots',
                snapshot_rows(instrument_id, snapshot_days, updated_at),
                unique_keys=SNAPSHOT_KEYS,
                update_columns=['indicators', 'updated_at'],
                batch_size=self.settings.batch_size
            )

        self.log.info(
            f"Indicators for {instrument['symbol']}: {result['inserted']} core rows, "
            f"{result['snapshots']} snapshots, {result['cache_primed']} cached"
        )
        return result

    def benchmark_closes(self, bars: List[Bar]) -> Optional[List[float]]:
        """
        Benchmark closes forward filled onto the days of bars.

        Returns:
            Closes aligned to bars, or None when the benchmark is unavailable
        """
        symbol = self.settings.analytics.benchmark_symbol
        benchmark_id = self.store.find_instrument_by_symbol(symbol)
        if benchmark_id is None:
            self.log.warning(f"Benchmark {symbol} not found, relative indicators skipped")
            return None

        days = [as_day(b.t) for b in bars]
        closes = self.store.get_universe_closes(
            [benchmark_id], days[0], days[-1], self.settings.resolution
        )[benchmark_id]
        if not closes:
            self.log.warning(f"Benchmark {symbol} has no bars between {days[0]} and {days[-1]}")
            return None

        return align_closes_to_days(days, closes)


def snapshot_rows(
    instrument_id: int,
    days: Dict[date, Dict[str, Any]],
    updated_at: datetime
) -> List[Dict[str, Any]]:
    """Serialize per-day indicator maps into feature_snapshots rows."""
    return [
        {
            'ticker_id': instrument_id,
            't': day,
            'indicators': json.dumps(days[day], sort_keys=True, default=str),
            'updated_at': updated_at
        }
        for day in sorted(days)
    ]


def encode_meta(meta: Optional[Dict[str, Any]]) -> Optional[str]:
    if not meta:
        return None
    return json.dumps(meta, sort_keys=True, default=str)


def finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def rows_by_day(rows: Sequence[IndicatorRow]) -> Dict[date, Dict[str, Any]]:
    """Group indicator rows into {day: {indicator: {value, meta}}}."""
    grouped: Dict[date, Dict[str, Any]] = defaultdict(dict)
    for row in rows:
        grouped[as_day(row.t)][row.indicator] = {'value': finite_or_none(row.value), 'meta': row.meta}
    return grouped
