"""
Trend Indicators

Direction and strength of the prevailing trend: ADX/DI, Parabolic SAR,
Aroon, SuperTrend, Vortex, Ichimoku, linear regression, and two composite
reads (EMA stack and swing structure).

Stateful-looking indicators (SAR, SuperTrend) replay their recurrence from
the first candle on every call.
"""

from typing import Optional

import numpy as np

from signal_engine.services.indicators.classifier import (
    classify,
    classify_adx,
    direction_from_difference,
    line_cross,
    signal_from_trend,
)
from signal_engine.services.indicators.primitives import (
    EMPTY,
    ArrayLike,
    as_array,
    ema,
    median_price,
    safe_div,
    safe_divide,
    smma,
    true_range,
)
from signal_engine.services.indicators.resolver import ParameterResolver, active_resolver


# =============================================================================
# ADX
# =============================================================================


def adx_series(
    highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 14
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Average Directional Index.

    Returns: (adx, plus_di, minus_di) as compact arrays. The DI arrays start at
    candle ``period``; ADX needs ``period`` more DX values.
    """
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    if period <= 0 or len(closes) < period + 1:
        return EMPTY.copy(), EMPTY.copy(), EMPTY.copy()

    up_move = np.diff(highs)
    down_move = -np.diff(lows)
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    smoothed_tr = smma(true_range(highs, lows, closes), period)
    plus_di = safe_divide(smma(plus_dm, period), smoothed_tr) * 100
    minus_di = safe_divide(smma(minus_dm, period), smoothed_tr) * 100

    dx = safe_divide(np.abs(plus_di - minus_di), plus_di + minus_di) * 100
    return smma(dx, period), plus_di, minus_di


def adx(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    period: int = 14,
    adaptive: bool = False,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """ADX with the DI pair; trend from +DI vs -DI, strength from ADX."""
    length = len(closes)
    if adaptive:
        period = active_resolver(resolver).resolve_period("adx", length, period, 2 * period)
        if period is None:
            return None
        period = min(period, length // 2)

    adx_line, plus_di, minus_di = adx_series(highs, lows, closes, period)
    if len(adx_line) == 0:
        return None

    value = float(adx_line[-1])
    plus, minus = float(plus_di[-1]), float(minus_di[-1])
    return {
        "adx": value,
        "plus_di": plus,
        "minus_di": minus,
        **classify_adx(value, plus, minus),
        "period": period,
    }


# =============================================================================
# STOP-AND-REVERSE SYSTEMS
# =============================================================================


def parabolic_sar(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    current_price: float,
    af_start: float = 0.02,
    af_increment: float = 0.02,
    af_max: float = 0.2,
) -> Optional[dict]:
    """Parabolic SAR replayed from the first two candles."""
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    if len(closes) < 3:
        return None

    if closes[1] > closes[0]:
        uptrend, extreme, sar = True, highs[1], lows[0]
    else:
        uptrend, extreme, sar = False, lows[1], highs[0]
    af = af_start
    reversed_on_last = False

    for i in range(2, len(closes)):
        sar = sar + af * (extreme - sar)
        reversed_on_last = False
        if uptrend:
            sar = min(sar, lows[i - 1], lows[i - 2])
            if sar >= lows[i]:
                uptrend, extreme, af = False, lows[i], af_start
                sar = max(highs[i - 1], highs[i - 2])
                reversed_on_last = True
            elif highs[i] > extreme:
                extreme = highs[i]
                af = min(af + af_increment, af_max)
        else:
            sar = max(sar, highs[i - 1], highs[i - 2])
            if sar <= highs[i]:
                uptrend, extreme, af = True, highs[i], af_start
                sar = min(lows[i - 1], lows[i - 2])
                reversed_on_last = True
            elif lows[i] < extreme:
                extreme = lows[i]
                af = min(af + af_increment, af_max)

    trend = "bullish" if current_price > sar else "bearish"
    return {
        "value": float(sar),
        "trend": trend,
        "signal": signal_from_trend(trend),
        "acceleration": af,
        "extreme_point": float(extreme),
        "reversal": reversed_on_last,
    }


def supertrend(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    atr_period: int = 10,
    multiplier: float = 3.0,
) -> Optional[dict]:
    """
    SuperTrend on Wilder ATR.

    Bands ratchet toward price while the trend holds; the line flips between
    the final upper and lower band when the close crosses it.
    """
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    atr_line = smma(true_range(highs, lows, closes), atr_period)
    if len(atr_line) == 0:
        return None

    # atr_line[j] belongs to candle j + atr_period
    hl2 = median_price(highs, lows)
    final_upper = final_lower = line = None
    for j, atr_value in enumerate(atr_line):
        i = j + atr_period
        basic_upper = hl2[i] + multiplier * atr_value
        basic_lower = hl2[i] - multiplier * atr_value

        if final_upper is None:
            final_upper, final_lower = basic_upper, basic_lower
            line = final_lower if closes[i] > final_upper else final_upper
            continue

        prev_upper, prev_close = final_upper, closes[i - 1]
        if basic_upper < final_upper or prev_close > final_upper:
            final_upper = basic_upper
        if basic_lower > final_lower or prev_close < final_lower:
            final_lower = basic_lower

        if line == prev_upper:
            line = final_lower if closes[i] > final_upper else final_upper
        else:
            line = final_upper if closes[i] < final_lower else final_lower

    trend = "bullish" if closes[-1] > line else "bearish"
    return {
        "value": float(line),
        "upper_band": float(final_upper),
        "lower_band": float(final_lower),
        "atr": float(atr_line[-1]),
        "trend": trend,
        "signal": signal_from_trend(trend),
    }


# =============================================================================
# DIRECTIONAL OSCILLATORS
# =============================================================================


def aroon(highs: ArrayLike, lows: ArrayLike, period: int = 14) -> Optional[dict]:
    """Aroon Up/Down: recency of the window's extreme high and low."""
    highs, lows = as_array(highs), as_array(lows)
    if period < 2 or len(highs) < period:
        return None

    window_highs, window_lows = highs[-period:], lows[-period:]
    # Most recent occurrence of each extreme
    since_high = period - 1 - int(np.flatnonzero(window_highs == window_highs.max())[-1])
    since_low = period - 1 - int(np.flatnonzero(window_lows == window_lows.min())[-1])

    up = (period - 1 - since_high) / (period - 1) * 100
    down = (period - 1 - since_low) / (period - 1) * 100
    return {
        "up": up,
        "down": down,
        "oscillator": up - down,
        "trend": classify("aroon_oscillator", up - down),
    }


def vortex(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    period: int = 14,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """
    Vortex Indicator (VI+ / VI-).

    The period shrinks on short series; a window without true range reads 1.0
    on both lines.
    """
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    period = active_resolver(resolver).resolve_period("vortex", len(closes), period, period + 1)
    if period is None:
        return None
    period = min(period, len(closes) - 1)

    plus_vm = np.abs(highs[1:] - lows[:-1])
    minus_vm = np.abs(lows[1:] - highs[:-1])
    ranges = true_range(highs, lows, closes)

    def lines(end: int) -> tuple[float, float]:
        total = float(ranges[end - period : end].sum())
        return (
            safe_div(float(plus_vm[end - period : end].sum()), total, 1.0),
            safe_div(float(minus_vm[end - period : end].sum()), total, 1.0),
        )

    plus, minus = lines(len(ranges))
    crossover = "none"
    if len(ranges) > period:
        prev_plus, prev_minus = lines(len(ranges) - 1)
        crossover = line_cross(prev_plus, prev_minus, plus, minus)

    direction = direction_from_difference(plus, minus)
    return {
        "plus": plus,
        "minus": minus,
        "trend": {"bullish": "uptrend", "bearish": "downtrend"}.get(direction, "neutral"),
        "strength": classify("vortex_strength", abs(plus - minus)),
        "crossover": crossover,
        "period": period,
    }


# =============================================================================
# ICHIMOKU
# =============================================================================


def ichimoku(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    current_price: float,
    tenkan: int = 9,
    kijun: int = 26,
    senkou_b: int = 52,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """Ichimoku Kinko Hyo evaluated at the latest candle (periods shrink on short series)."""
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    periods = active_resolver(resolver).resolve(
        "ichimoku",
        len(closes),
        {"tenkan": tenkan, "kijun": kijun, "senkou_b": senkou_b},
        senkou_b,
    )
    if periods is None:
        return None

    def midpoint(period: int) -> float:
        return (float(highs[-period:].max()) + float(lows[-period:].min())) / 2

    tenkan_sen = midpoint(periods["tenkan"])
    kijun_sen = midpoint(periods["kijun"])
    span_a = (tenkan_sen + kijun_sen) / 2
    span_b = midpoint(periods["senkou_b"])
    cloud_top, cloud_bottom = max(span_a, span_b), min(span_a, span_b)

    if current_price > cloud_top:
        position = "above_cloud"
    elif current_price < cloud_bottom:
        position = "below_cloud"
    else:
        position = "in_cloud"

    tk_cross = direction_from_difference(tenkan_sen, kijun_sen)
    if position == "above_cloud" and tk_cross == "bullish":
        signal = "bullish"
    elif position == "below_cloud" and tk_cross == "bearish":
        signal = "bearish"
    else:
        signal = "neutral"

    lag = min(periods["kijun"], len(closes) - 1)
    return {
        "tenkan": tenkan_sen,
        "kijun": kijun_sen,
        "senkou_a": span_a,
        "senkou_b": span_b,
        "chikou": float(closes[-1]),
        "chikou_vs_price": direction_from_difference(float(closes[-1]), float(closes[-1 - lag])),
        "cloud": "green" if span_a > span_b else "red" if span_a < span_b else "flat",
        "position": position,
        "tk_cross": tk_cross,
        "signal": signal,
        "periods": periods,
    }


# =============================================================================
# REGRESSION
# =============================================================================


def linear_regression(closes: ArrayLike, current_price: float, period: int = 20) -> Optional[dict]:
    """Least-squares line through the last ``period`` closes with a 2-sigma channel."""
    closes = as_array(closes)
    if period < 2 or len(closes) < period:
        return None

    window = closes[-period:]
    x = np.arange(period, dtype=float)
    slope, intercept = np.polyfit(x, window, 1)
    fitted = slope * x + intercept
    residuals = window - fitted

    total = float(np.sum((window - window.mean()) ** 2))
    r_squared = 1 - safe_div(float(np.sum(residuals**2)), total, 1.0)
    value = float(fitted[-1])
    deviation = float(np.std(residuals))
    upper, lower = value + 2 * deviation, value - 2 * deviation

    if current_price > upper:
        position = "above_channel"
    elif current_price < lower:
        position = "below_channel"
    else:
        position = "inside_channel"

    return {
        "value": value,
        "slope": float(slope),
        "intercept": float(intercept),
        "r_squared": r_squared,
        "forecast": float(slope * period + intercept),
        "upper": upper,
        "lower": lower,
        "position": position,
        "trend": classify("linear_regression_trend", safe_div(float(slope), value)),
    }


# =============================================================================
# COMPOSITE TREND READS
# =============================================================================


def trend_detection(closes: ArrayLike, current_price: float) -> Optional[dict]:
    """
    Trend from the EMA20/50/200 stack.

    Strength counts the confirmations available for the winning direction
    (price vs EMA20, EMA20 vs EMA50, EMA50 vs EMA200).
    """
    closes = as_array(closes)
    stack = [current_price]
    for period in (20, 50, 200):
        line = ema(closes, period)
        if len(line) == 0:
            break
        stack.append(float(line[-1]))
    if len(stack) < 2:
        return None

    pairs = list(zip(stack, stack[1:]))
    names = ["price", "ema20", "ema50", "ema200"]
    if all(faster > slower for faster, slower in pairs):
        trend, strength = "uptrend", len(pairs)
        reason = " > ".join(names[: len(stack)])
    elif all(faster < slower for faster, slower in pairs):
        trend, strength = "downtrend", len(pairs)
        reason = " < ".join(names[: len(stack)])
    else:
        trend, strength = "neutral", 0
        reason = "averages not aligned"

    return {
        "trend": trend,
        "strength": strength,
        "reason": reason,
        "ema20": stack[1],
        "ema50": stack[2] if len(stack) > 2 else None,
        "ema200": stack[3] if len(stack) > 3 else None,
    }


def market_structure(highs: ArrayLike, lows: ArrayLike, period: int = 20) -> Optional[dict]:
    """Swing structure: new extremes on the last candle and half-window drift."""
    highs, lows = as_array(highs), as_array(lows)
    if period < 4 or len(highs) < period:
        return None

    window_highs, window_lows = highs[-period:], lows[-period:]
    half = period // 2
    higher_highs = bool(window_highs[-1] >= window_highs.max())
    lower_lows = bool(window_lows[-1] <= window_lows.min())
    rising_lows = window_lows[half:].mean() > window_lows[:half].mean()
    falling_highs = window_highs[half:].mean() < window_highs[:half].mean()
    rising_highs = window_highs[half:].mean() > window_highs[:half].mean()
    falling_lows = window_lows[half:].mean() < window_lows[:half].mean()

    if higher_highs and rising_lows:
        structure = "uptrend"
    elif lower_lows and falling_highs:
        structure = "downtrend"
    elif rising_highs and rising_lows:
        structure = "bullish"
    elif falling_highs and falling_lows:
        structure = "bearish"
    else:
        structure = "neutral"

    return {
        "structure": structure,
        "higher_highs": higher_highs,
        "lower_lows": lower_lows,
        "swing_high": float(window_highs.max()),
        "swing_low": float(window_lows.min()),
    }
