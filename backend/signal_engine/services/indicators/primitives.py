"""
Primitive Transforms

Moving averages and rolling statistics shared by every indicator.

All transforms return compact arrays: the first element corresponds to input
index ``period - 1``, so the output length is ``len(values) - period + 1``.
An empty input, a non-positive period, or a period longer than the input
yields an empty array.
"""

from typing import Optional, Sequence, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

ArrayLike = Union[np.ndarray, Sequence[float]]

EMPTY = np.array([], dtype=float)


def as_array(values: ArrayLike) -> np.ndarray:
    """Float array view of the input (never copied back or mutated)."""
    return np.asarray(values, dtype=float)


def _windows(values: ArrayLike, period: int) -> Optional[np.ndarray]:
    data = as_array(values)
    if period <= 0 or len(data) == 0 or len(data) < period:
        return None
    return sliding_window_view(data, int(period))


# =============================================================================
# MOVING AVERAGES
# =============================================================================


def sma(values: ArrayLike, period: int) -> np.ndarray:
    """Simple Moving Average."""
    windows = _windows(values, period)
    if windows is None:
        return EMPTY.copy()
    return windows.mean(axis=1)


def ema(values: ArrayLike, period: int) -> np.ndarray:
    """Exponential Moving Average seeded with the SMA of the first period."""
    data = as_array(values)
    if period <= 0 or len(data) == 0 or len(data) < period:
        return EMPTY.copy()

    period = int(period)
    multiplier = 2 / (period + 1)
    result = np.empty(len(data) - period + 1)

    # Start with SMA
    result[0] = np.mean(data[:period])

    for i in range(1, len(result)):
        prev = result[i - 1]
        result[i] = prev + multiplier * (data[period - 1 + i] - prev)

    return result


def wma(values: ArrayLike, period: int) -> np.ndarray:
    """Weighted Moving Average, most recent point weighted highest."""
    windows = _windows(values, period)
    if windows is None:
        return EMPTY.copy()
    weights = np.arange(1, int(period) + 1, dtype=float)
    return windows @ weights / weights.sum()


def smma(values: ArrayLike, period: int) -> np.ndarray:
    """Smoothed Moving Average (Wilder smoothing)."""
    data = as_array(values)
    if period <= 0 or len(data) == 0 or len(data) < period:
        return EMPTY.copy()

    period = int(period)
    result = np.empty(len(data) - period + 1)
    result[0] = np.mean(data[:period])

    for i in range(1, len(result)):
        result[i] = (result[i - 1] * (period - 1) + data[period - 1 + i]) / period

    return result


# =============================================================================
# ROLLING STATISTICS
# =============================================================================


def rolling_std(values: ArrayLike, period: int) -> np.ndarray:
    """Population standard deviation over each trailing window."""
    windows = _windows(values, period)
    if windows is None:
        return EMPTY.copy()
    return windows.std(axis=1)


def rolling_max(values: ArrayLike, period: int) -> np.ndarray:
    windows = _windows(values, period)
    if windows is None:
        return EMPTY.copy()
    return windows.max(axis=1)


def rolling_min(values: ArrayLike, period: int) -> np.ndarray:
    windows = _windows(values, period)
    if windows is None:
        return EMPTY.copy()
    return windows.min(axis=1)


# =============================================================================
# OHLCV HELPERS
# =============================================================================


def true_range(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike) -> np.ndarray:
    """True range for every candle after the first (length n - 1)."""
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    if len(closes) < 2:
        return EMPTY.copy()
    prev_close = closes[:-1]
    return np.maximum.reduce(
        [
            highs[1:] - lows[1:],
            np.abs(highs[1:] - prev_close),
            np.abs(lows[1:] - prev_close),
        ]
    )


def typical_price(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike) -> np.ndarray:
    return (as_array(highs) + as_array(lows) + as_array(closes)) / 3


def median_price(highs: ArrayLike, lows: ArrayLike) -> np.ndarray:
    return (as_array(highs) + as_array(lows)) / 2


def lookback_change(values: ArrayLike, lookback: int) -> float:
    """% change of the last value against the one ``lookback`` points back (or the first)."""
    data = as_array(values)
    base = float(data[-(lookback + 1)]) if len(data) > lookback else float(data[0])
    return safe_div(float(data[-1]) - base, base) * 100


def last_vs_average(values: ArrayLike, lookback: int) -> float:
    """% difference of the last value from the average of the last ``lookback`` values."""
    data = as_array(values)
    average = float(np.mean(data[-lookback:]))
    return safe_div(float(data[-1]) - average, average) * 100


# =============================================================================
# GUARDED ARITHMETIC
# =============================================================================


def safe_div(numerator: float, denominator: float, fallback: float = 0.0) -> float:
    """Division that returns fallback instead of dividing by zero."""
    if denominator == 0:
        return fallback
    return float(numerator) / float(denominator)


def safe_divide(
    numerator: ArrayLike, denominator: ArrayLike, fallback: float = 0.0
) -> np.ndarray:
    """Element-wise division with fallback wherever the denominator is zero."""
    num, den = as_array(numerator), as_array(denominator)
    result = np.full(np.broadcast(num, den).shape, float(fallback))
    np.divide(num, den, out=result, where=den != 0)
    return result


def pct_change(values: ArrayLike, period: int = 1) -> np.ndarray:
    """Percent change against the value ``period`` steps back (length n - period)."""
    data = as_array(values)
    if period <= 0 or len(data) <= period:
        return EMPTY.copy()
    return safe_divide(data[period:] - data[:-period], data[:-period]) * 100
