"""
Volume indicators: On-Balance Volume and VWAP.
"""

from typing import Dict, Any, List, Optional, Sequence

from indicators.base import BaseIndicator, IndicatorRow


class OBVIndicator(BaseIndicator):
    """On-Balance Volume, accumulated from the second bar."""

    name = 'obv'
    display_name = 'On-Balance Volume'
    defaults: Dict[str, Any] = {}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)

        rows = []
        obv = 0.0
        for prev, bar in zip(bars, bars[1:]):
            if bar.close > prev.close:
                obv += bar.volume
            elif bar.close < prev.close:
                obv -= bar.volume
            rows.append(IndicatorRow(bar.t, 'obv', obv))
        return rows


class VWAPIndicator(BaseIndicator):
    """
    Volume-weighted average price.

    A positive vendor vwap on the bar is used as is; otherwise the value is the
    running sum of typical price × volume over the running volume of those bars.
    """

    name = 'vwap'
    display_name = 'Volume Weighted Average Price'
    defaults: Dict[str, Any] = {}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)

        rows = []
        cum_pv = 0.0
        cum_v = 0.0
        for bar in bars:
            if bar.vwap is not None and bar.vwap > 0:
                value: Optional[float] = bar.vwap
            else:
                typical = (bar.high + bar.low + bar.close) / 3.0
                cum_pv += typical * bar.volume
                cum_v += bar.volume
                value = cum_pv / cum_v if cum_v > 0 else None

            if value is not None:
                rows.append(IndicatorRow(bar.t, 'vwap', value))
        return rows
