"""
Oscillator indicators: RSI, Stochastic, CCI, MFI and Momentum.
"""

import math
from typing import Dict, Any, List, Optional, Sequence

from analysis.calculations.rolling import rsi_series, rolling_max, rolling_min, rolling_mean
from indicators.base import BaseIndicator, IndicatorRow, positive_int, window_list


class RSIIndicator(BaseIndicator):
    """Relative Strength Index with Wilder smoothing; optional 'periods' list."""

    name = 'rsi'
    display_name = 'Relative Strength Index'
    defaults = {'period': 14}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        closes = [b.close for b in bars]

        rows = []
        for period in window_list(opts, 'periods', 'period'):
            for i, value in enumerate(rsi_series(closes, period)):
                if value is not None:
                    rows.append(IndicatorRow(bars[i].t, f"rsi_{period}", value))
        return rows


class StochasticIndicator(BaseIndicator):
    """
    Stochastic oscillator.

    %K = 100 × (close - lowest low) / (highest high - lowest low), 0 on a flat range.
    %D = d_period SMA of %K, emitted as a second sub-series.
    """

    name = 'stochastic'
    display_name = 'Stochastic Oscillator'
    defaults = {'period': 14, 'd_period': 3}
    multi_series = True

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        period = positive_int(opts['period'], 'period')
        d_period = positive_int(opts['d_period'], 'd_period')

        highest = rolling_max([b.high for b in bars], period)
        lowest = rolling_min([b.low for b in bars], period)

        k_values = []
        k_rows = []
        for i in range(period - 1, len(bars)):
            span = highest[i] - lowest[i]
            k = 100.0 * (bars[i].close - lowest[i]) / span if span != 0 else 0.0
            k_values.append(k)
            k_rows.append(IndicatorRow(bars[i].t, f"stoch_k_{period}", round(k, 6)))

        d_rows = []
        for j, d in enumerate(rolling_mean(k_values, d_period)):
            if d is not None:
                d_rows.append(IndicatorRow(bars[j + period - 1].t, f"stoch_d_{period}", round(d, 6)))

        return k_rows + d_rows


class CCIIndicator(BaseIndicator):
    """Commodity Channel Index over the typical price."""

    name = 'cci'
    display_name = 'Commodity Channel Index'
    defaults = {'period': 20}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        period = positive_int(opts['period'], 'period')

        typical = [(b.high + b.low + b.close) / 3.0 for b in bars]

        rows = []
        for i in range(period - 1, len(typical)):
            window = typical[i - period + 1:i + 1]
            mean = sum(window) / period
            mean_dev = sum(abs(v - mean) for v in window) / period
            cci = (typical[i] - mean) / (0.015 * mean_dev) if mean_dev != 0 else 0.0
            rows.append(IndicatorRow(bars[i].t, f"cci_{period}", round(cci, 6)))
        return rows


class MFIIndicator(BaseIndicator):
    """
    Money Flow Index.

    Money flow = typical price × volume, split into positive/negative by the
    day-over-day direction of the typical price. MFI is 100 when negative flow is 0.
    """

    name = 'mfi'
    display_name = 'Money Flow Index'
    defaults = {'period': 14}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        period = positive_int(opts['period'], 'period')

        typical = [(b.high + b.low + b.close) / 3.0 for b in bars]
        flow = [tp * b.volume for tp, b in zip(typical, bars)]

        rows = []
        for i in range(period, len(bars)):
            pos_mf = 0.0
            neg_mf = 0.0
            for j in range(i - period + 1, i + 1):
                if typical[j] > typical[j - 1]:
                    pos_mf += flow[j]
                elif typical[j] < typical[j - 1]:
                    neg_mf += flow[j]

            if neg_mf == 0:
                mfi = 100.0
            else:
                mfi = 100.0 - 100.0 / (1.0 + pos_mf / neg_mf)

            rows.append(IndicatorRow(
                bars[i].t, f"mfi_{period}", round(mfi, 6),
                {'pos_mf': pos_mf, 'neg_mf': neg_mf}
            ))
        return rows


class MomentumIndicator(BaseIndicator):
    """
    Price momentum over one or more windows.

    Absolute: close_t - close_{t-N}. Percent: (close_t / close_{t-N} - 1) × 100.
    The row is kept with a None value when the base close is 0.
    """

    name = 'momentum'
    display_name = 'Momentum'
    defaults = {'windows': [10], 'percent': False}
    multi_series = True

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        percent = bool(opts.get('percent', False))
        closes = [b.close for b in bars]

        rows = []
        for window in window_list(opts, 'windows', 'window'):
            for i in range(window, len(closes)):
                base = closes[i - window]
                if base == 0:
                    value = None
                elif percent:
                    value = (closes[i] / base - 1.0) * 100.0
                else:
                    value = closes[i] - base
                if value is not None and not math.isfinite(value):
                    value = None
                rows.append(IndicatorRow(
                    bars[i].t, f"momentum_{window}",
                    round(value, 6) if value is not None else None
                ))
        return rows
