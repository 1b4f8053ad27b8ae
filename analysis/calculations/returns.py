"""
Returns calculation utilities.
Pure functions for simple and log return series.
"""

import math
from datetime import date
from typing import Dict, List, Sequence

import numpy as np


class ReturnsError(Exception):
    """Raised when returns calculation fails."""
    pass


def simple_returns(prices: Sequence[float]) -> List[float]:
    """
    Calculate period-over-period simple returns.

    Formula: R_t = (P_t / P_{t-1}) - 1, defined as 0 when P_{t-1} is 0

    Args:
        prices: List of prices in chronological order

    Returns:
        List of returns (length = len(prices) - 1, empty if fewer than 2 prices)
    """
    returns = []
    for i in range(1, len(prices)):
        prev = prices[i - 1]
        returns.append((prices[i] - prev) / prev if prev != 0 else 0.0)
    return returns


def log_returns(prices: Sequence[float]) -> np.ndarray:
    """
    Calculate log returns from a price series.

    Formula: r_t = ln(P_t / P_{t-1})

    Args:
        prices: List of prices in chronological order

    Returns:
        Numpy array of log returns (length = len(prices) - 1)

    Raises:
        ReturnsError: If insufficient data or non-positive prices
    """
    if len(prices) < 2:
        raise ReturnsError("Insufficient data: need at least 2 prices")

    if any(p <= 0 for p in prices):
        raise ReturnsError("Zero or negative prices not allowed")

    return np.diff(np.log(np.asarray(prices, dtype=float)))


def safe_log_returns(prices: Sequence[float]) -> List[float]:
    """
    Log returns that never fail on bad prints.

    Formula: r_t = ln(P_t / P_{t-1}), or 0 when either price is not positive

    Args:
        prices: List of prices in chronological order

    Returns:
        List of returns (length = len(prices) - 1, empty if fewer than 2 prices)
    """
    returns = []
    for prev, price in zip(prices, prices[1:]):
        returns.append(math.log(price / prev) if prev > 0 and price > 0 else 0.0)
    return returns


def dated_log_returns(closes_by_date: Dict[date, float]) -> Dict[date, float]:
    """
    Log returns keyed by the later date of each consecutive pair.

    Pairs involving a non-positive close are skipped.

    Args:
        closes_by_date: Mapping of day -> close (any order)

    Returns:
        Mapping of day -> log return, aligned to dates[1:]
    """
    dates = sorted(closes_by_date)
    returns = {}
    for prev_day, day in zip(dates, dates[1:]):
        prev_close = closes_by_date[prev_day]
        close = closes_by_date[day]
        if prev_close > 0 and close > 0:
            returns[day] = math.log(close / prev_close)
    return returns
