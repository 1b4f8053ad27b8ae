"""
Relative statistics between an asset and a benchmark.
Pure functions for covariance, Pearson correlation and beta, plain and rolling.
"""

import math
from typing import List, Optional, Sequence

import numpy as np


def variance(values: Sequence[float], ddof: int = 0) -> Optional[float]:
    """Variance, or None if there are not more than ddof observations."""
    if len(values) <= ddof:
        return None
    return float(np.var(np.asarray(values, dtype=float), ddof=ddof))


def covariance(a: Sequence[float], b: Sequence[float], ddof: int = 0) -> Optional[float]:
    """Covariance of two equal-length series, or None if too short or mismatched."""
    n = len(a)
    if n != len(b) or n <= ddof:
        return None
    x = np.asarray(a, dtype=float)
    y = np.asarray(b, dtype=float)
    return float(np.sum((x - x.mean()) * (y - y.mean())) / (n - ddof))


def pearson(a: Sequence[float], b: Sequence[float]) -> Optional[float]:
    """
    Pearson correlation clamped to [-1, 1].

    Returns None when either series has zero deviation or the result is not finite.
    """
    if len(a) != len(b) or len(a) < 2:
        return None

    x = np.asarray(a, dtype=float)
    y = np.asarray(b, dtype=float)
    std_x = float(np.std(x))
    std_y = float(np.std(y))
    if std_x == 0 or std_y == 0:
        return None

    corr = float(np.mean((x - x.mean()) * (y - y.mean())) / (std_x * std_y))
    if not math.isfinite(corr):
        return None
    return max(-1.0, min(1.0, corr))


def beta(asset: Sequence[float], benchmark: Sequence[float], ddof: int = 0) -> Optional[float]:
    """
    Beta of asset returns regressed on benchmark returns.

    Formula: cov(asset, benchmark) / var(benchmark); None if benchmark variance is 0
    """
    var_b = variance(benchmark, ddof)
    cov = covariance(asset, benchmark, ddof)
    if var_b is None or cov is None or var_b == 0:
        return None
    result = cov / var_b
    return result if math.isfinite(result) else None


def rolling_beta(
    asset: Sequence[float],
    benchmark: Sequence[float],
    window: int,
    ddof: int = 0
) -> List[Optional[float]]:
    """Beta over each trailing window; aligned to the inputs, None when undefined."""
    out: List[Optional[float]] = [None] * len(asset)
    if len(asset) != len(benchmark) or window <= ddof:
        return out
    for i in range(window - 1, len(asset)):
        out[i] = beta(asset[i - window + 1:i + 1], benchmark[i - window + 1:i + 1], ddof)
    return out


def rolling_correlation(
    asset: Sequence[float],
    benchmark: Sequence[float],
    window: int
) -> List[Optional[float]]:
    """Pearson correlation over each trailing window; None when undefined."""
    out: List[Optional[float]] = [None] * len(asset)
    if len(asset) != len(benchmark) or window < 2:
        return out
    for i in range(window - 1, len(asset)):
        out[i] = pearson(asset[i - window + 1:i + 1], benchmark[i - window + 1:i + 1])
    return out
