"""
Volatility and risk-adjusted return utilities.
Pure functions for rolling annualized volatility and rolling Sharpe ratio.
"""

import math
from typing import List, Optional, Sequence

import numpy as np


TRADING_DAYS = 252


def rolling_volatility(
    returns: Sequence[float],
    window: int,
    ddof: int = 0,
    annualize: int = TRADING_DAYS,
    percent: bool = True
) -> List[Optional[float]]:
    """
    Rolling annualized volatility.

    Formula: std(returns over window) × √annualize (× 100 when percent)

    Args:
        returns: Return series
        window: Rolling window size
        ddof: 0 for population, 1 for sample deviation
        annualize: Annualization factor
        percent: Scale the result to percent

    Returns:
        List aligned to returns, None until the window is full
    """
    out: List[Optional[float]] = [None] * len(returns)
    if window <= ddof:
        return out

    scale = math.sqrt(annualize) * (100.0 if percent else 1.0)
    values = np.asarray(returns, dtype=float)
    for i in range(window - 1, len(values)):
        std_dev = float(np.std(values[i - window + 1:i + 1], ddof=ddof))
        out[i] = std_dev * scale

    return out


def rolling_sharpe(
    returns: Sequence[float],
    window: int,
    risk_free: float = 0.02,
    ddof: int = 0,
    annualize: int = TRADING_DAYS
) -> List[Optional[dict]]:
    """
    Rolling Sharpe ratio of daily returns.

    Formula: (mean(returns) - risk_free / annualize) / std(returns)
    The annual risk-free rate is converted by simple division.

    Args:
        returns: Return series
        window: Rolling window size
        risk_free: Annual risk-free rate as decimal
        ddof: 0 for population, 1 for sample deviation
        annualize: Periods per year used to de-annualize risk_free

    Returns:
        List aligned to returns holding {'sharpe', 'mean', 'std'} or None.
        Windows with zero deviation yield None.
    """
    out: List[Optional[dict]] = [None] * len(returns)
    if window <= ddof:
        return out

    daily_rf = risk_free / annualize
    values = np.asarray(returns, dtype=float)
    for i in range(window - 1, len(values)):
        window_returns = values[i - window + 1:i + 1]
        std_dev = float(np.std(window_returns, ddof=ddof))
        if std_dev == 0 or not math.isfinite(std_dev):
            continue
        mean = float(np.mean(window_returns))
        out[i] = {'sharpe': (mean - daily_rf) / std_dev, 'mean': mean, 'std': std_dev}

    return out
