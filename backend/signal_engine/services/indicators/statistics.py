"""
Statistics and Price Action

Candle-pressure measures (Balance of Power, Bull/Bear Power, Elder Ray),
cycle measures (Center of Gravity, Detrended Price) and regression
statistics (correlation, R-squared).
"""

from typing import Optional

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from signal_engine.services.indicators.classifier import (
    change_direction,
    classify,
    threshold,
    zero_cross,
)
from signal_engine.services.indicators.primitives import (
    EMPTY,
    ArrayLike,
    as_array,
    ema,
    pct_change,
    safe_div,
    safe_divide,
    sma,
    wma,
)


# =============================================================================
# CANDLE PRESSURE
# =============================================================================


def balance_of_power(
    opens: ArrayLike, highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 14
) -> Optional[dict]:
    """
    Balance of Power: (close - open) / (high - low), smoothed by an SMA.

    A candle without range contributes 0.
    """
    opens, highs, lows, closes = as_array(opens), as_array(highs), as_array(lows), as_array(closes)
    raw = safe_divide(closes - opens, highs - lows)
    smoothed = sma(raw, period)
    if len(smoothed) == 0:
        return None

    value = float(smoothed[-1])
    window = raw[-period:]
    buyers = int((window > 0).sum())
    sellers = int((window < 0).sum())
    if buyers > sellers * threshold("bop_dominance"):
        control = "buyers"
    elif sellers > buyers * threshold("bop_dominance"):
        control = "sellers"
    else:
        control = "balanced"

    return {
        "value": value,
        "raw": float(raw[-1]),
        "signal": classify("bop", value),
        "control": control,
        "trend": change_direction(value, float(smoothed[-2])) if len(smoothed) > 1 else None,
    }


def bull_bear_power(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    volumes: ArrayLike,
    period: int = 13,
) -> Optional[dict]:
    """
    Bull/Bear Power as percent of the EMA baseline.

    The power ratio with no bear power is +2 when bulls push and -2
    otherwise. Volume confirms a reading when the last candle keeps at least
    90% of the previous candle's volume.
    """
    highs, lows, volumes = as_array(highs), as_array(lows), as_array(volumes)
    baseline = ema(closes, period)
    if len(baseline) == 0 or len(highs) < 2:
        return None

    base = float(baseline[-1])
    bull = safe_div(float(highs[-1]) - base, base) * 100
    bear = safe_div(float(lows[-1]) - base, base) * 100
    ratio = bull / abs(bear) if bear != 0 else (2.0 if bull > 0 else -2.0)

    dominance = threshold("bull_bear_dominance")
    if bull > abs(bear) * dominance and bull > 0:
        trend = "bullish"
    elif abs(bear) > bull * dominance and bear < 0:
        trend = "bearish"
    else:
        trend = "neutral"

    strength = min(100.0, max(abs(bull), abs(bear)) * 10)
    confirmed = bool(volumes[-1] > volumes[-2] * threshold("bull_bear_volume_confirm"))

    signal = "neutral"
    if confirmed and strength > threshold("bull_bear_signal_strength"):
        signal = {"bullish": "buy", "bearish": "sell"}.get(trend, "neutral")

    return {
        "bull_power": bull,
        "bear_power": bear,
        "net_power": bull + bear,
        "power_ratio": ratio,
        "pressure": classify("bull_bear_pressure", ratio),
        "trend": trend,
        "strength": strength,
        "volume_confirmed": confirmed,
        "signal": signal,
    }


def elder_ray(
    highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 13
) -> Optional[dict]:
    """
    Elder Ray: bull power = high - EMA, bear power = low - EMA.

    Buy when the EMA rises while bear power is negative but rising; sell when
    the EMA falls while bull power is positive but falling.
    """
    highs, lows = as_array(highs), as_array(lows)
    baseline = ema(closes, period)
    if len(baseline) < 2:
        return None

    aligned_highs = highs[period - 1 :]
    aligned_lows = lows[period - 1 :]
    bull = aligned_highs - baseline
    bear = aligned_lows - baseline

    ema_trend = change_direction(float(baseline[-1]), float(baseline[-2]))
    bear_trend = change_direction(float(bear[-1]), float(bear[-2]))
    bull_trend = change_direction(float(bull[-1]), float(bull[-2]))

    signal = "neutral"
    if ema_trend == "rising" and bear[-1] < 0 and bear_trend == "rising":
        signal = "buy"
    elif ema_trend == "falling" and bull[-1] > 0 and bull_trend == "falling":
        signal = "sell"

    return {
        "bull_power": float(bull[-1]),
        "bear_power": float(bear[-1]),
        "ema": float(baseline[-1]),
        "ema_trend": ema_trend,
        "bull_trend": bull_trend,
        "bear_trend": bear_trend,
        "signal": signal,
    }


# =============================================================================
# CYCLES
# =============================================================================


def cog_series(closes: ArrayLike, period: int = 10) -> np.ndarray:
    """Ehlers Center of Gravity: -sum((i + 1) * p[t - i]) / sum(p[t - i]), 0 on a zero sum."""
    closes = as_array(closes)
    if period <= 0 or len(closes) < period:
        return EMPTY.copy()
    windows = sliding_window_view(closes, period)
    weights = np.arange(period, 0, -1, dtype=float)
    return -safe_divide(windows @ weights, windows.sum(axis=1))


def center_of_gravity(closes: ArrayLike, current_price: float, period: int = 10) -> Optional[dict]:
    """
    Center of Gravity with its one-bar signal line.

    Price is overbought when it sits more than a fixed band above the
    recency-weighted average of the window and oversold below it.
    """
    series = cog_series(closes, period)
    if len(series) == 0:
        return None

    value = float(series[-1])
    previous = float(series[-2]) if len(series) > 1 else None
    weighted = float(wma(closes, period)[-1])
    deviation = safe_div(current_price - weighted, weighted)

    band = threshold("cog_band")
    if deviation > band:
        signal = "overbought"
    elif deviation < -band:
        signal = "oversold"
    else:
        signal = "neutral"

    crossover = "none"
    if len(series) > 2:
        if series[-2] <= series[-3] and value > previous:
            crossover = "bullish"
        elif series[-2] >= series[-3] and value < previous:
            crossover = "bearish"

    return {
        "value": value,
        "signal_line": previous,
        "weighted_price": weighted,
        "signal": signal,
        "trend": {"rising": "bullish", "falling": "bearish"}.get(
            change_direction(value, previous), "neutral"
        ),
        "crossover": crossover,
    }


def dpo_series(closes: ArrayLike, period: int = 20) -> np.ndarray:
    """Detrended Price: close minus the SMA displaced period/2 + 1 candles back."""
    closes = as_array(closes)
    displacement = period // 2 + 1
    averages = sma(closes, period)
    if len(averages) <= displacement:
        return EMPTY.copy()
    return closes[period - 1 + displacement :] - averages[: len(averages) - displacement]


def detrended_price(closes: ArrayLike, period: int = 20) -> Optional[dict]:
    """
    Detrended Price Oscillator.

    Overbought/oversold are the 80th/20th percentiles of the oscillator's own
    history once 20 readings exist.
    """
    series = dpo_series(closes, period)
    if len(series) == 0:
        return None

    value = float(series[-1])
    previous = float(series[-2]) if len(series) > 1 else None

    cycle = "neutral"
    if len(series) > 2:
        before = float(series[-3])
        if value > previous > before:
            cycle = "rising"
        elif value < previous < before:
            cycle = "falling"
        elif value < previous > before:
            cycle = "peak"
        elif value > previous < before:
            cycle = "trough"

    overbought = oversold = False
    if len(series) >= 20:
        lower, upper = np.percentile(series, [20, 80])
        overbought, oversold = value > upper, value < lower

    crossing = zero_cross(previous, value)
    if oversold and (crossing == "bullish" or cycle == "trough"):
        signal = "buy"
    elif overbought and (crossing == "bearish" or cycle == "peak"):
        signal = "sell"
    else:
        signal = {"bullish": "buy", "bearish": "sell"}.get(crossing, "neutral")

    return {
        "value": value,
        "cycle_position": cycle,
        "overbought": bool(overbought),
        "oversold": bool(oversold),
        "zero_cross": crossing,
        "signal": signal,
    }


# =============================================================================
# REGRESSION STATISTICS
# =============================================================================


def pearson(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson correlation; 0 when either side has no variance."""
    dx, dy = x - x.mean(), y - y.mean()
    return safe_div(float((dx * dy).sum()), float(np.sqrt((dx**2).sum() * (dy**2).sum())))


def correlation(closes: ArrayLike, volumes: ArrayLike, period: int = 20) -> Optional[dict]:
    """Correlation between price changes and volume changes over ``period`` candles."""
    price_changes = pct_change(closes, 1)
    volume_changes = pct_change(volumes, 1)
    if period < 2 or len(price_changes) < period:
        return None

    value = pearson(price_changes[-period:], volume_changes[-period:])
    return {
        "value": value,
        "strength": classify("correlation_strength", value),
        "direction": classify("correlation_direction", value),
        "volume_confirms_price": value > 0,
    }


def r_squared(closes: ArrayLike, period: int = 20) -> Optional[dict]:
    """
    Coefficient of determination of a least-squares line through the window.

    A flat window has R-squared 0. The F statistic is None when the fit is
    exact (no residual variance) and such a fit is highly significant.
    """
    closes = as_array(closes)
    if period < 3 or len(closes) < period:
        return None

    window = closes[-period:]
    x = np.arange(period, dtype=float)
    slope, intercept = np.polyfit(x, window, 1)
    fitted = slope * x + intercept
    ss_res = float(((window - fitted) ** 2).sum())
    ss_tot = float(((window - window.mean()) ** 2).sum())
    value = 1 - safe_div(ss_res, ss_tot, 1.0)

    if ss_res == 0 and ss_tot > 0:
        f_statistic, significance = None, "highly_significant"
    else:
        f_statistic = safe_div(value * (period - 2), 1 - value)
        significance = classify("f_significance", f_statistic)

    return {
        "value": value,
        "slope": float(slope),
        "strength": classify("r_squared_strength", value),
        "trend": classify("linear_regression_trend", safe_div(float(slope), float(window.mean()))),
        "f_statistic": f_statistic,
        "significance": significance,
    }
