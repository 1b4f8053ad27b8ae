"""
Drawdown calculation utilities.
Pure functions for running peak-to-close drawdown.
"""

from typing import List, Sequence, Tuple

import numpy as np


def drawdown_series(prices: Sequence[float]) -> List[Tuple[float, float]]:
    """
    Running drawdown at every bar.

    Formula: drawdown_t = (peak_t - P_t) / peak_t × 100, peak_t = max(P_0..P_t)
    A non-positive peak yields a drawdown of 0.

    Args:
        prices: List of prices in chronological order

    Returns:
        List of (drawdown_pct, peak) tuples; drawdown is always >= 0
    """
    if len(prices) == 0:
        return []

    price_array = np.asarray(prices, dtype=float)
    running_max = np.maximum.accumulate(price_array)

    series = []
    for price, peak in zip(price_array, running_max):
        if peak > 0:
            series.append((float((peak - price) / peak * 100.0), float(peak)))
        else:
            series.append((0.0, float(peak)))
    return series

