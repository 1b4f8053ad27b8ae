"""
Derived analytics - rolling Sharpe, volatility, drawdown and beta per trading day.
Queries closes from the store, calls pure calculation functions, returns a day map.
"""

import logging
from bisect import bisect_right
from datetime import date
from typing import Dict, Any, List, Optional, Sequence

from analysis.calculations.drawdown import drawdown_series
from analysis.calculations.relative import rolling_beta
from analysis.calculations.returns import safe_log_returns
from analysis.calculations.volatility import rolling_sharpe, rolling_volatility
from analysis.settings import IndicatorSettings
from indicators.base import normalize_bars
from storage.market_store import MarketDataStore, as_day

# Base names produced here rather than by the snapshot-only indicator pass
DERIVED_ANALYTICS = ('sharpe', 'volatility', 'drawdown', 'beta')


class AnalyticsCalculator:
    """
    Compute derived analytics for one instrument over a date range.

    Log returns are computed once and shared by every metric. Sharpe and beta use
    sample statistics (ddof=1); volatility is annualized and in percent; drawdown
    is percent below the running peak.
    """

    def __init__(
        self,
        store: MarketDataStore,
        settings: IndicatorSettings,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store
        self.settings = settings
        self.log = logger or logging.getLogger(__name__)

    def compute_derived_analytics(
        self,
        instrument_id: int,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None
    ) -> Dict[date, Dict[str, Dict[str, Any]]]:
        """
        Derived analytics per trading day.

        Args:
            instrument_id: Instrument id
            from_date: Inclusive start (optional)
            to_date: Inclusive end (optional)

        Returns:
            Mapping day -> {key: {'value', 'meta'}} with keys sharpe_<w>,
            volatility_<w>, drawdown and beta_<w>. Empty when fewer than 2 bars.
        """
        analytics = self.settings.analytics
        keys = analytics.keys

        bars = normalize_bars(self.store.get_bars(
            instrument_id, self.settings.resolution, from_date, to_date
        ))
        if len(bars) < 2:
            self.log.warning(
                f"Insufficient bars for analytics on instrument {instrument_id}: "
                f"{len(bars)} between {from_date} and {to_date}"
            )
            return {}

        days = [as_day(b.t) for b in bars]
        closes = [b.close for b in bars]

        # Non-positive prints give a 0 return for the pairs they touch
        returns = safe_log_returns(closes)

        # Return k belongs to day k + 1
        sharpe = [None] + rolling_sharpe(
            returns, analytics.sharpe_window, risk_free=analytics.risk_free, ddof=1
        )
        volatility = [None] + rolling_volatility(returns, analytics.volatility_window, ddof=1)
        drawdown = drawdown_series(closes)
        beta = [None] + self._rolling_beta(instrument_id, days, returns)

        result: Dict[date, Dict[str, Dict[str, Any]]] = {}
        for i, day in enumerate(days):
            entry: Dict[str, Dict[str, Any]] = {}

            if sharpe[i] is not None:
                entry[keys['sharpe']] = {
                    'value': round(sharpe[i]['sharpe'], 6),
                    'meta': {'mean_return': sharpe[i]['mean'], 'std': sharpe[i]['std']}
                }
            if volatility[i] is not None:
                entry[keys['volatility']] = {'value': round(volatility[i], 6), 'meta': None}

            dd, peak = drawdown[i]
            entry[keys['drawdown']] = {'value': round(dd, 6), 'meta': {'peak': peak}}

            entry[keys['beta']] = {
                'value': round(beta[i], 6) if beta[i] is not None else None,
                'meta': {'benchmark': analytics.benchmark_symbol}
            }
            result[day] = entry

        return result

    def _rolling_beta(self, instrument_id: int, days: List[date], returns: List[float]) -> List[Optional[float]]:
        """Beta of asset log returns on benchmark log returns; all None when no benchmark."""
        symbol = self.settings.analytics.benchmark_symbol
        window = self.settings.analytics.beta_window
        missing = [None] * len(returns)

        benchmark_id = self.store.find_instrument_by_symbol(symbol)
        if benchmark_id is None:
            self.log.warning(f"Benchmark {symbol} not found, beta unavailable for instrument {instrument_id}")
            return missing

        # Span of the asset's own days, not the returns-aligned span
        closes_by_day = self.store.get_universe_closes(
            [benchmark_id], days[0], days[-1], self.settings.resolution
        )[benchmark_id]
        if not closes_by_day:
            self.log.warning(
                f"Benchmark {symbol} has no bars between {days[0]} and {days[-1]}, "
                f"beta unavailable for instrument {instrument_id}"
            )
            return missing

        bench_returns = safe_log_returns(align_closes_to_days(days, closes_by_day))
        return rolling_beta(returns, bench_returns, window, ddof=1)


def align_closes_to_days(days: Sequence[date], closes_by_day: Dict[date, float]) -> List[float]:
    """
    Benchmark closes for each day, forward filled.

    Days before the first benchmark bar take the first benchmark close.

    Args:
        days: Target days in ascending order
        closes_by_day: Benchmark closes keyed by day (non-empty)

    Returns:
        List of closes, one per day
    """
    ordered = sorted(closes_by_day)

    aligned = []
    for day in days:
        idx = bisect_right(ordered, day) - 1
        aligned.append(closes_by_day[ordered[max(idx, 0)]])
    return aligned
