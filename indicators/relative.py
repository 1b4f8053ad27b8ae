"""
Benchmark-relative indicators: Beta, Rolling Beta, Rolling Correlation and R².

Each needs params['benchmark']: benchmark closes aligned one-to-one with the
instrument's bars after sorting (extra leading values are ignored).
"""

from typing import Dict, Any, List, Optional, Sequence

from analysis.calculations.relative import rolling_beta, rolling_correlation
from analysis.calculations.returns import simple_returns
from indicators.base import BaseIndicator, Bar, IndicatorRow, positive_int


class _BenchmarkIndicator(BaseIndicator):
    """Shared alignment of asset and benchmark simple returns."""

    requires_benchmark = True
    window_key = 'window'

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        window = positive_int(opts[self.window_key], self.window_key)

        benchmark = align_benchmark(bars, opts.get('benchmark'))
        if benchmark is None:
            return []

        asset_returns = simple_returns([b.close for b in bars])
        bench_returns = simple_returns(benchmark)

        rows = []
        for k, value in enumerate(self.series(asset_returns, bench_returns, window)):
            if value is None:
                continue
            rows.append(IndicatorRow(bars[k + 1].t, f"{self.name}_{window}", round(value, 6)))
        return rows

    def series(self, asset: List[float], bench: List[float], window: int) -> List[Optional[float]]:
        raise NotImplementedError


class BetaIndicator(_BenchmarkIndicator):
    """Rolling beta keyed by period: cov(asset, benchmark) / var(benchmark)."""

    name = 'beta'
    display_name = 'Beta'
    defaults = {'period': 60, 'benchmark': []}
    window_key = 'period'

    def series(self, asset, bench, window):
        return rolling_beta(asset, bench, window)


class RollingBetaIndicator(_BenchmarkIndicator):
    """Rolling beta keyed by window."""

    name = 'rolling_beta'
    display_name = 'Rolling Beta'
    defaults = {'window': 60, 'benchmark': []}

    def series(self, asset, bench, window):
        return rolling_beta(asset, bench, window)


class RollingCorrelationIndicator(_BenchmarkIndicator):
    """Rolling Pearson correlation with the benchmark."""

    name = 'rolling_corr'
    display_name = 'Rolling Correlation'
    defaults = {'window': 20, 'benchmark': []}

    def series(self, asset, bench, window):
        return rolling_correlation(asset, bench, window)


class R2Indicator(_BenchmarkIndicator):
    """Rolling coefficient of determination: correlation squared."""

    name = 'r2'
    display_name = 'Rolling R²'
    defaults = {'window': 60, 'benchmark': []}

    def series(self, asset, bench, window):
        return [c * c if c is not None else None for c in rolling_correlation(asset, bench, window)]


def align_benchmark(bars: List[Bar], benchmark: Optional[Sequence[Any]]) -> Optional[List[float]]:
    """
    Trim benchmark closes to the bar count and fill gaps.

    Missing values are forward filled; leading gaps take the first known close.

    Returns:
        Closes aligned to bars, or None if the benchmark is absent or too short
    """
    if not benchmark or len(benchmark) < len(bars) or not bars:
        return None

    tail = list(benchmark)[-len(bars):]
    known = [float(v) for v in tail if v is not None]
    if not known:
        return None

    aligned = []
    last = known[0]
    for value in tail:
        if value is not None:
            last = float(value)
        aligned.append(last)
    return aligned
