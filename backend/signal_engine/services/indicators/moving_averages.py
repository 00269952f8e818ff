"""
Moving Average Indicators

Plain averages (EMA, WMA, HMA, DEMA, TEMA, SMMA) report the latest value as
a float. The adaptive and price-relative averages (KAMA, VWMA, McGinley,
Rainbow, Envelope) report a record that includes where price sits.
"""

import math
from typing import Optional, Sequence

import numpy as np

from signal_engine.services.indicators.classifier import (
    change_direction,
    classify,
    classify_position,
    threshold,
)
from signal_engine.services.indicators.primitives import (
    ArrayLike,
    as_array,
    ema,
    safe_div,
    smma,
    wma,
)
from signal_engine.services.indicators.resolver import ParameterResolver, active_resolver

_POSITION_TREND = {"above": "bullish", "below": "bearish", "equal": "neutral"}


def _last(values: np.ndarray) -> Optional[float]:
    return float(values[-1]) if len(values) else None


# =============================================================================
# PLAIN AVERAGES
# =============================================================================


def ema_value(
    closes: ArrayLike,
    period: int = 20,
    adaptive: bool = False,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[float]:
    """Latest EMA; with ``adaptive`` the period shrinks to the series length."""
    closes = as_array(closes)
    if adaptive:
        period = active_resolver(resolver).resolve_period("ema", len(closes), period, period)
        if period is None:
            return None
    return _last(ema(closes, period))


def wma_value(closes: ArrayLike, period: int = 14) -> Optional[float]:
    return _last(wma(closes, period))


def smma_value(closes: ArrayLike, period: int = 14) -> Optional[float]:
    return _last(smma(closes, period))


def hma(closes: ArrayLike, period: int = 16) -> Optional[float]:
    """Hull Moving Average: WMA(sqrt n) of 2*WMA(n/2) - WMA(n)."""
    half = max(1, period // 2)
    root = max(1, int(round(math.sqrt(period))))
    full = wma(closes, period)
    if len(full) == 0:
        return None
    raw = 2 * wma(closes, half)[period - half :] - full
    return _last(wma(raw, root))


def dema(closes: ArrayLike, period: int = 20) -> Optional[float]:
    """Double EMA: 2*EMA - EMA(EMA)."""
    single = ema(closes, period)
    double = ema(single, period)
    if len(double) == 0:
        return None
    return float(2 * single[-1] - double[-1])


def tema(closes: ArrayLike, period: int = 20) -> Optional[float]:
    """Triple EMA: 3*EMA - 3*EMA(EMA) + EMA(EMA(EMA))."""
    single = ema(closes, period)
    double = ema(single, period)
    triple = ema(double, period)
    if len(triple) == 0:
        return None
    return float(3 * single[-1] - 3 * double[-1] + triple[-1])


# =============================================================================
# ADAPTIVE AVERAGES
# =============================================================================


def kama(
    closes: ArrayLike,
    current_price: float,
    efficiency_period: int = 10,
    fast: int = 2,
    slow: int = 30,
) -> Optional[dict]:
    """
    Kaufman Adaptive Moving Average.

    Seeded with the SMA of ``slow`` closes once ``slow + efficiency_period``
    candles exist, then smoothed forward with the efficiency-driven constant.
    """
    closes = as_array(closes)
    start = slow + efficiency_period - 1
    if efficiency_period <= 0 or slow <= 0 or len(closes) <= start:
        return None

    fast_sc = 2 / (fast + 1)
    slow_sc = 2 / (slow + 1)
    changes = np.abs(np.diff(closes))

    value = float(np.mean(closes[start - slow + 1 : start + 1]))
    efficiency = 0.0
    constant = slow_sc**2
    for i in range(start + 1, len(closes)):
        direction = abs(closes[i] - closes[i - efficiency_period])
        volatility = float(changes[i - efficiency_period : i].sum())
        efficiency = safe_div(direction, volatility)
        constant = (efficiency * (fast_sc - slow_sc) + slow_sc) ** 2
        value += constant * (closes[i] - value)

    position = classify_position(current_price, value, threshold("kama_band"))
    return {
        "value": value,
        "efficiency_ratio": efficiency,
        "smoothing_constant": constant,
        "position": position,
        "trend": _POSITION_TREND[position],
        "market_condition": classify("kama_efficiency", efficiency),
        "price_vs_kama": safe_div(current_price - value, value) * 100,
    }


def vwma(
    closes: ArrayLike, volumes: ArrayLike, current_price: float, period: int = 20
) -> Optional[dict]:
    """
    Volume Weighted Moving Average.

    A window without volume falls back to the plain average of its closes.
    """
    closes, volumes = as_array(closes), as_array(volumes)
    if period <= 0 or len(closes) < period:
        return None

    def window_value(end: int) -> float:
        prices = closes[end - period : end]
        weights = volumes[end - period : end]
        total = float(weights.sum())
        if total == 0:
            return float(prices.mean())
        return float((prices * weights).sum() / total)

    value = window_value(len(closes))
    previous = window_value(len(closes) - 1) if len(closes) > period else None

    average_volume = float(volumes[-period:].mean())
    efficiency = safe_div(volumes[-1], average_volume, 1.0)
    price_vs = safe_div(current_price - value, value) * 100
    position = classify_position(current_price, value, threshold("vwma_tolerance"))

    return {
        "value": value,
        "position": position,
        "trend": change_direction(value, previous),
        "price_vs_vwma": price_vs,
        "volume_efficiency": efficiency,
        "strength": min(100.0, abs(price_vs) * 2 + min(efficiency, 2.0) * 25),
        "signal": _POSITION_TREND[position],
    }


def mcginley_dynamic(closes: ArrayLike, current_price: float, period: int = 20) -> Optional[dict]:
    """
    McGinley Dynamic.

    The tracking constant k adapts to the coefficient of variation of the last
    ``period`` closes. A zero previous value or zero price keeps the previous
    value unchanged.
    """
    closes = as_array(closes)
    if period <= 0 or len(closes) < period:
        return None

    window = closes[-period:]
    variation = safe_div(float(np.std(window)), float(np.mean(window)))
    k = min(threshold("mcginley_k_max"), max(threshold("mcginley_k_min"), 0.6 + variation * 0.4))

    value = float(np.mean(closes[:period]))
    previous = None
    for price in closes[period:]:
        previous = value
        if value == 0 or price == 0:
            continue
        value += (price - value) / (k * period * (price / value) ** 4)

    position = classify_position(current_price, value)
    return {
        "value": value,
        "k": k,
        "position": position,
        "trend": change_direction(value, previous),
        "signal": _POSITION_TREND[position],
    }


def rainbow_ma(
    closes: ArrayLike, current_price: float, periods: Sequence[int] = (2, 3, 4, 5, 6, 7, 8, 9)
) -> Optional[dict]:
    """Rainbow of simple averages, fastest first."""
    closes = as_array(closes)
    if len(periods) < 2 or len(closes) < max(periods):
        return None

    averages = [float(np.mean(closes[-period:])) for period in periods]
    pairs = list(zip(averages, averages[1:]))
    bullish_pairs = sum(1 for fast, slow in pairs if fast > slow)
    bearish_pairs = sum(1 for fast, slow in pairs if fast < slow)
    required = len(pairs) - 1

    fastest, slowest = averages[0], averages[-1]
    if bullish_pairs >= required:
        alignment = "bullish_alignment"
        trend = "strong_bullish" if current_price > fastest * threshold("rainbow_strong_up") else "bullish"
    elif bearish_pairs >= required:
        alignment = "bearish_alignment"
        trend = "strong_bearish" if current_price < slowest * threshold("rainbow_strong_down") else "bearish"
    else:
        alignment = "mixed"
        trend = "neutral"

    if current_price > max(averages):
        position = "above_rainbow"
    elif current_price < min(averages):
        position = "below_rainbow"
    else:
        position = "in_rainbow"

    strength = 50.0
    if alignment == "bullish_alignment":
        strength += bullish_pairs * 5 + (20 if position == "above_rainbow" else 0)
    elif alignment == "bearish_alignment":
        strength -= bearish_pairs * 5 + (20 if position == "below_rainbow" else 0)

    mean = float(np.mean(averages))
    return {
        "averages": {f"ma{period}": value for period, value in zip(periods, averages)},
        "alignment": alignment,
        "trend": trend,
        "position": position,
        "strength": max(0.0, min(100.0, strength)),
        "spread": safe_div(fastest - slowest, slowest) * 100,
        "compression": safe_div(float(np.std(averages)), mean) < threshold("rainbow_compression"),
    }


def ma_envelope(
    closes: ArrayLike, current_price: float, period: int = 20, percent: float = 2.5
) -> Optional[dict]:
    """SMA with bands ``percent`` above and below."""
    closes = as_array(closes)
    if period <= 0 or len(closes) < period:
        return None

    middle = float(np.mean(closes[-period:]))
    upper = middle * (1 + percent / 100)
    lower = middle * (1 - percent / 100)

    if current_price > upper:
        position, signal = "above_upper", "overbought"
    elif current_price < lower:
        position, signal = "below_lower", "oversold"
    else:
        position, signal = "inside", "neutral"

    return {
        "upper": upper,
        "middle": middle,
        "lower": lower,
        "position": position,
        "signal": signal,
        "percent_position": safe_div(current_price - lower, upper - lower, 0.5) * 100,
    }
