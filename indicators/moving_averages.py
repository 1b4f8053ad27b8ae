"""
Moving-average indicators: SMA, EMA and MACD.
"""

from typing import Dict, Any, List, Optional, Sequence

from analysis.calculations.rolling import rolling_mean, ema_series
from indicators.base import BaseIndicator, IndicatorRow, positive_int, window_list


class SMAIndicator(BaseIndicator):
    """Simple moving average of close over one or more windows."""

    name = 'sma'
    display_name = 'Simple Moving Average'
    defaults = {'windows': [20, 50, 200]}
    multi_series = True

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        closes = [b.close for b in bars]

        rows = []
        for window in window_list(opts, 'windows', 'window'):
            for i, value in enumerate(rolling_mean(closes, window)):
                if value is not None:
                    rows.append(IndicatorRow(bars[i].t, f"sma_{window}", value))
        return rows


class EMAIndicator(BaseIndicator):
    """Exponential moving average seeded with the simple mean."""

    name = 'ema'
    display_name = 'Exponential Moving Average'
    defaults = {'windows': [12, 26, 50, 200]}
    multi_series = True

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        closes = [b.close for b in bars]

        rows = []
        for window in window_list(opts, 'windows', 'window'):
            for i, value in enumerate(ema_series(closes, window)):
                if value is not None:
                    rows.append(IndicatorRow(bars[i].t, f"ema_{window}", value))
        return rows


class MACDIndicator(BaseIndicator):
    """
    Moving Average Convergence Divergence.

    value = EMA(fast) - EMA(slow); the signal line is an EMA of MACD computed
    over the valid-MACD suffix only; histogram = macd - signal. Signal and
    histogram are None until the signal EMA has enough MACD history.
    """

    name = 'macd'
    display_name = 'MACD'
    defaults = {'fast': 12, 'slow': 26, 'signal': 9}
    multi_series = True

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        fast = positive_int(opts['fast'], 'fast')
        slow = positive_int(opts['slow'], 'slow')
        signal_period = positive_int(opts['signal'], 'signal')

        closes = [b.close for b in bars]
        ema_fast = ema_series(closes, fast)
        ema_slow = ema_series(closes, slow)

        valid_idx = []
        macd_values = []
        for i in range(len(closes)):
            if ema_fast[i] is None or ema_slow[i] is None:
                continue
            valid_idx.append(i)
            macd_values.append(ema_fast[i] - ema_slow[i])

        signal = ema_series(macd_values, signal_period)

        rows = []
        for j, i in enumerate(valid_idx):
            macd = macd_values[j]
            sig = signal[j]
            rows.append(IndicatorRow(
                bars[i].t,
                'macd',
                macd,
                {
                    'signal': sig,
                    'histogram': macd - sig if sig is not None else None
                }
            ))
        return rows
