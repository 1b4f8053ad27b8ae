"""
Range and trend indicators: ATR, ADX and Bollinger Bands.
"""

import logging
from typing import Dict, Any, List, Optional, Sequence

from analysis.calculations.rolling import (
    rolling_mean, rolling_std, true_range_series, wilder_average
)
from indicators.base import BaseIndicator, IndicatorRow, positive_int

logger = logging.getLogger(__name__)

# Floor for true range sums on flat bars
ADX_EPSILON = 1e-10


class ATRIndicator(BaseIndicator):
    """
    Average True Range with Wilder smoothing.

    The first value is the mean of the first period true ranges (TR_0 = H - L),
    then atr = (atr_prev × (period - 1) + tr) / period. Flat bars give 0.0.
    """

    name = 'atr'
    display_name = 'Average True Range'
    defaults = {'period': 14}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        period = positive_int(opts['period'], 'period')

        tr = true_range_series(
            [b.high for b in bars], [b.low for b in bars], [b.close for b in bars]
        )
        return [
            IndicatorRow(bars[i].t, f"atr_{period}", value)
            for i, value in enumerate(wilder_average(tr, period))
            if value is not None
        ]


class ADXIndicator(BaseIndicator):
    """
    Directional movement index.

    +DM/-DM come from consecutive high/low moves (mutually exclusive, floored at 0);
    +DI/-DI = 100 × sum(DM) / sum(TR) over the window and the emitted value is
    DX = 100 × |+DI - -DI| / (+DI + -DI), without a second smoothing pass.
    """

    name = 'adx'
    display_name = 'Average Directional Index'
    defaults = {'period': 14}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        period = positive_int(opts['period'], 'period')

        if len(bars) <= period:
            return []

        tr = []
        plus_dm = []
        minus_dm = []
        for i in range(1, len(bars)):
            up_move = bars[i].high - bars[i - 1].high
            down_move = bars[i - 1].low - bars[i].low
            plus_dm.append(up_move if up_move > down_move and up_move > 0 else 0.0)
            minus_dm.append(down_move if down_move > up_move and down_move > 0 else 0.0)

            tr_value = max(
                bars[i].high - bars[i].low,
                abs(bars[i].high - bars[i - 1].close),
                abs(bars[i].low - bars[i - 1].close)
            )
            if tr_value <= 0:
                logger.debug(f"ADX zero true range at {bars[i].t}, using epsilon")
                tr_value = ADX_EPSILON
            tr.append(tr_value)

        rows = []
        for i in range(period - 1, len(tr)):
            start = i - period + 1
            tr_sum = max(ADX_EPSILON, sum(tr[start:i + 1]))
            plus_di = 100.0 * sum(plus_dm[start:i + 1]) / tr_sum
            minus_di = 100.0 * sum(minus_dm[start:i + 1]) / tr_sum
            di_sum = plus_di + minus_di
            dx = abs(plus_di - minus_di) / di_sum * 100.0 if di_sum > ADX_EPSILON else 0.0

            # tr[i] describes the move into bar i + 1
            rows.append(IndicatorRow(
                bars[i + 1].t, f"adx_{period}", round(dx, 6),
                {'+DI': round(plus_di, 6), '-DI': round(minus_di, 6)}
            ))
        return rows


class BollingerIndicator(BaseIndicator):
    """Bollinger Bands: value is the mid SMA, bands in metadata (population stdev)."""

    name = 'bb'
    display_name = 'Bollinger Bands'
    defaults = {'period': 20, 'stdevs': 2.0}
    multi_series = True

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        period = positive_int(opts['period'], 'period')
        k = float(opts['stdevs'])

        closes = [b.close for b in bars]
        mids = rolling_mean(closes, period)
        stds = rolling_std(closes, period, ddof=0)
        key = f"bb_{period}_{k:g}"

        rows = []
        for i, mid in enumerate(mids):
            if mid is None or stds[i] is None:
                continue
            std = stds[i]
            rows.append(IndicatorRow(bars[i].t, key, mid, {
                'mid': mid,
                'upper': mid + k * std,
                'lower': mid - k * std,
                'stdev': std
            }))
        return rows
