"""
Performance indicators: Drawdown, Sharpe Ratio and Volatility.
Returns are simple day-over-day returns; return k belongs to bar k + 1.
"""

import math
from typing import Dict, Any, List, Optional, Sequence

from analysis.calculations.drawdown import drawdown_series
from analysis.calculations.returns import simple_returns
from analysis.calculations.volatility import rolling_sharpe, rolling_volatility, TRADING_DAYS
from indicators.base import BaseIndicator, IndicatorRow, positive_int


class DrawdownIndicator(BaseIndicator):
    """Percent below the running peak close at every bar; the peak is in metadata."""

    name = 'drawdown'
    display_name = 'Drawdown'
    defaults: Dict[str, Any] = {}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        series = drawdown_series([b.close for b in bars])
        return [
            IndicatorRow(bar.t, 'drawdown', round(dd, 6), {'peak': peak})
            for bar, (dd, peak) in zip(bars, series)
        ]


class SharpeRatioIndicator(BaseIndicator):
    """Rolling Sharpe ratio: (mean - risk_free / 252) / stdev over period returns."""

    name = 'sharpe'
    display_name = 'Sharpe Ratio'
    defaults = {'period': 60, 'risk_free': 0.02}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        period = positive_int(opts['period'], 'period')
        risk_free = float(opts.get('risk_free', 0.02))

        returns = simple_returns([b.close for b in bars])
        rows = []
        for k, stats in enumerate(rolling_sharpe(returns, period, risk_free=risk_free)):
            if stats is None:
                continue
            rows.append(IndicatorRow(
                bars[k + 1].t, f"sharpe_{period}", round(stats['sharpe'], 6),
                {'mean_return': stats['mean'], 'std': stats['std']}
            ))
        return rows


class VolatilityIndicator(BaseIndicator):
    """Rolling annualized volatility in percent: stdev × √252 × 100."""

    name = 'volatility'
    display_name = 'Volatility'
    defaults = {'period': 20}

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        bars = self.prepare(bars)
        opts = self.opts(params)
        period = positive_int(opts['period'], 'period')

        returns = simple_returns([b.close for b in bars])
        rows = []
        daily_std = rolling_volatility(returns, period, annualize=1, percent=False)
        for k, std in enumerate(daily_std):
            if std is None:
                continue
            vol = std * math.sqrt(TRADING_DAYS) * 100.0
            rows.append(IndicatorRow(
                bars[k + 1].t, f"volatility_{period}", round(vol, 6), {'std': std}
            ))
        return rows
