"""
Rolling window utilities.
Pure functions returning series aligned to their input: None until the window is full.
"""

import numpy as np
from typing import List, Optional, Sequence


Series = List[Optional[float]]


def rolling_mean(values: Sequence[float], window: int) -> Series:
    """
    Simple moving average with a running sum (O(1) per step).

    Args:
        values: Input values in chronological order
        window: Window size (>= 1)

    Returns:
        Series of means, None for the first window-1 positions
    """
    out: Series = [None] * len(values)
    if window <= 0 or len(values) < window:
        return out

    running = 0.0
    for i, value in enumerate(values):
        running += value
        if i >= window:
            running -= values[i - window]
        if i >= window - 1:
            out[i] = running / window

    return out


def rolling_std(values: Sequence[float], window: int, ddof: int = 0) -> Series:
    """
    Rolling standard deviation computed over each window.

    Args:
        values: Input values
        window: Window size
        ddof: 0 for population, 1 for sample deviation

    Returns:
        Series of deviations; exactly 0.0 for a window of equal values
    """
    out: Series = [None] * len(values)
    if window <= ddof or len(values) < window:
        return out

    arr = np.asarray(values, dtype=float)
    for i in range(window - 1, len(arr)):
        chunk = arr[i - window + 1:i + 1]
        # np.std of a flat window can leave residue when the value isn't representable
        if chunk.max() == chunk.min():
            out[i] = 0.0
        else:
            out[i] = float(np.std(chunk, ddof=ddof))

    return out


def rolling_max(values: Sequence[float], window: int) -> Series:
    out: Series = [None] * len(values)
    for i in range(window - 1, len(values)):
        out[i] = max(values[i - window + 1:i + 1])
    return out


def rolling_min(values: Sequence[float], window: int) -> Series:
    out: Series = [None] * len(values)
    for i in range(window - 1, len(values)):
        out[i] = min(values[i - window + 1:i + 1])
    return out


def ema_series(values: Sequence[float], window: int) -> Series:
    """
    Exponential moving average seeded with the simple mean of the first window values.

    Formula: ema_t = (x_t - ema_{t-1}) * k + ema_{t-1}, k = 2 / (window + 1)

    Args:
        values: Input values
        window: EMA span

    Returns:
        Series with the first value at index window-1; all None if too short
    """
    out: Series = [None] * len(values)
    if window <= 0 or len(values) < window:
        return out

    k = 2.0 / (window + 1)
    ema = sum(values[:window]) / window
    out[window - 1] = ema

    for i in range(window, len(values)):
        ema = (values[i] - ema) * k + ema
        out[i] = ema

    return out


def rsi_series(values: Sequence[float], period: int) -> Series:
    """
    Relative Strength Index with Wilder smoothing.

    The seed averages the period-1 changes inside the first period values, so the
    first RSI lands on index period-1. Later values use
    avg = (avg_prev * (period - 1) + change) / period.
    RSI is 100 whenever the average loss is zero.

    Args:
        values: Closing prices
        period: Look-back period (>= 2)

    Returns:
        Series of RSI values in [0, 100]
    """
    out: Series = [None] * len(values)
    if period < 2 or len(values) < period:
        return out

    gains = []
    losses = []
    for i in range(1, period):
        change = values[i] - values[i - 1]
        gains.append(max(change, 0.0))
        losses.append(max(-change, 0.0))

    avg_gain = sum(gains) / (period - 1)
    avg_loss = sum(losses) / (period - 1)
    out[period - 1] = _rsi_value(avg_gain, avg_loss)

    for i in range(period, len(values)):
        change = values[i] - values[i - 1]
        avg_gain = (avg_gain * (period - 1) + max(change, 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + max(-change, 0.0)) / period
        out[i] = _rsi_value(avg_gain, avg_loss)

    return out


def true_range_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> List[float]:
    """
    True range per bar.

    TR_0 = H - L; TR_t = max(H - L, |H - C_{t-1}|, |L - C_{t-1}|)
    """
    tr = []
    for i in range(len(closes)):
        high_low = highs[i] - lows[i]
        if i == 0:
            tr.append(high_low)
            continue
        prev_close = closes[i - 1]
        tr.append(max(high_low, abs(highs[i] - prev_close), abs(lows[i] - prev_close)))
    return tr


def wilder_average(values: Sequence[float], period: int) -> Series:
    """
    Wilder's recursive average: first value is the simple mean of the first period
    values, then avg = (avg_prev * (period - 1) + x) / period.
    """
    out: Series = [None] * len(values)
    if period <= 0 or len(values) < period:
        return out

    avg = sum(values[:period]) / period
    out[period - 1] = avg
    for i in range(period, len(values)):
        avg = (avg * (period - 1) + values[i]) / period
        out[i] = avg
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)
