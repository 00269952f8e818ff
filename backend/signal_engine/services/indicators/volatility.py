"""
Volatility Indicators

Range and dispersion measures: ATR, Bollinger family, Keltner/Donchian/price
channels, standard and historical volatility, Chaikin volatility, Mass Index
and the Ulcer Index.
"""

import math
from typing import Optional

import numpy as np

from signal_engine.schemas.indicators import VolatilityZone
from signal_engine.services.indicators.classifier import (
    change_direction,
    classify,
    threshold,
)
from signal_engine.services.indicators.primitives import (
    ArrayLike,
    as_array,
    ema,
    rolling_std,
    safe_div,
    safe_divide,
    sma,
    smma,
    true_range,
)
from signal_engine.services.indicators.resolver import ParameterResolver, active_resolver


# =============================================================================
# AVERAGE TRUE RANGE
# =============================================================================


def atr_series(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 14) -> np.ndarray:
    """Wilder-smoothed true range, first value at candle ``period``."""
    return smma(true_range(highs, lows, closes), period)


def atr(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    current_price: float,
    period: int = 14,
    adaptive: bool = False,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """Average True Range with its percent of price and volatility zone."""
    length = len(closes)
    if adaptive:
        period = active_resolver(resolver).resolve_period("atr", length, period, period + 1)
        if period is None:
            return None
        period = min(period, length - 1)

    line = atr_series(highs, lows, closes, period)
    if len(line) == 0:
        return None

    value = float(line[-1])
    percent = safe_div(value, current_price) * 100
    return {
        "value": value,
        "percent": percent,
        "zone": VolatilityZone(classify("volatility_zone", percent)).value,
        "period": period,
    }


# =============================================================================
# BOLLINGER FAMILY
# =============================================================================


def _bands(closes: np.ndarray, period: int, std_mult: float) -> tuple[float, float, float]:
    window = closes[-period:]
    middle = float(np.mean(window))
    deviation = float(np.std(window))
    return middle + std_mult * deviation, middle, middle - std_mult * deviation


def bollinger_bands(
    closes: ArrayLike,
    current_price: float,
    period: int = 20,
    std_mult: float = 2.0,
    adaptive: bool = False,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """
    Bollinger Bands.

    Width is (upper - lower) / middle (0 when middle is 0); %B on zero-width
    bands is 0.5.
    """
    closes = as_array(closes)
    if adaptive:
        period = active_resolver(resolver).resolve_period(
            "bollinger_bands", len(closes), period, period
        )
        if period is None:
            return None
    if period <= 0 or len(closes) < period:
        return None

    upper, middle, lower = _bands(closes, period, std_mult)
    width = safe_div(upper - lower, middle)
    percent_b = safe_div(current_price - lower, upper - lower, 0.5)
    return {
        "upper": upper,
        "middle": middle,
        "lower": lower,
        "width": width,
        "percent_b": percent_b,
        "position": classify("percent_b_position", percent_b),
        "squeeze": classify("bb_squeeze", width),
        "period": period,
    }


def bb_percent_b(
    closes: ArrayLike,
    current_price: float,
    period: int = 20,
    std_mult: float = 2.0,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """%B: price position within the Bollinger Bands (0.5 on a flat series)."""
    closes = as_array(closes)
    period = active_resolver(resolver).resolve_period("bb_percent_b", len(closes), period, period)
    if period is None:
        return None

    upper, _, lower = _bands(closes, period, std_mult)
    value = safe_div(current_price - lower, upper - lower, 0.5)
    return {
        "value": value,
        "position": classify("percent_b_position", value),
        "signal": classify("percent_b_signal", value),
        "period": period,
    }


def bb_width(closes: ArrayLike, period: int = 20, std_mult: float = 2.0) -> Optional[dict]:
    """Bollinger Band Width against its own recent average."""
    closes = as_array(closes)
    middles = sma(closes, period)
    if len(middles) == 0:
        return None

    widths = safe_divide(2 * std_mult * rolling_std(closes, period), middles)
    value = float(widths[-1])
    average = float(np.mean(widths[-period:]))
    ratio = safe_div(value, average, 1.0)

    if ratio > threshold("bbw_expanding"):
        trend = "expanding"
    elif ratio < threshold("bbw_contracting"):
        trend = "contracting"
    else:
        trend = "stable"

    return {
        "value": value,
        "average": average,
        "trend": trend,
        "squeeze": classify("bb_squeeze", value),
    }


# =============================================================================
# CHANNELS
# =============================================================================


def keltner_channels(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    current_price: float,
    ema_period: int = 20,
    atr_period: int = 10,
    multiplier: float = 2.0,
) -> Optional[dict]:
    """Keltner Channels: EMA middle line with ATR-scaled bands."""
    middles = ema(closes, ema_period)
    atr_line = atr_series(highs, lows, closes, atr_period)
    if len(middles) == 0 or len(atr_line) == 0:
        return None

    middle, atr_value = float(middles[-1]), float(atr_line[-1])
    upper, lower = middle + multiplier * atr_value, middle - multiplier * atr_value

    if current_price > upper:
        position = "above_upper"
    elif current_price < lower:
        position = "below_lower"
    else:
        position = "inside"

    volatility = "stable"
    if len(atr_line) > atr_period:
        change = safe_div(atr_value - float(atr_line[-1 - atr_period]), float(atr_line[-1 - atr_period]))
        if change > threshold("keltner_atr_change"):
            volatility = "expanding"
        elif change < -threshold("keltner_atr_change"):
            volatility = "contracting"

    return {
        "upper": upper,
        "middle": middle,
        "lower": lower,
        "atr": atr_value,
        "width_pct": safe_div(upper - lower, middle) * 100,
        "position": position,
        "volatility": volatility,
    }


def donchian_channels(
    highs: ArrayLike,
    lows: ArrayLike,
    current_price: float,
    period: int = 20,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """
    Donchian Channels (highest high / lowest low).

    Breakouts compare price with the channel of the candles before the last.
    """
    highs, lows = as_array(highs), as_array(lows)
    period = active_resolver(resolver).resolve_period(
        "donchian_channels", len(highs), period, period
    )
    if period is None:
        return None

    upper = float(highs[-period:].max())
    lower = float(lows[-period:].min())

    breakout = "none"
    if len(highs) > period:
        prior_upper = float(highs[-period - 1 : -1].max())
        prior_lower = float(lows[-period - 1 : -1].min())
        if current_price > prior_upper:
            breakout = "bullish"
        elif current_price < prior_lower:
            breakout = "bearish"

    return {
        "upper": upper,
        "middle": (upper + lower) / 2,
        "lower": lower,
        "width": upper - lower,
        "position": safe_div(current_price - lower, upper - lower, 0.5),
        "breakout": breakout,
        "period": period,
    }


def price_channel(
    highs: ArrayLike, lows: ArrayLike, current_price: float, period: int = 20
) -> Optional[dict]:
    """Price channel with thirds-based position and drift against the prior window."""
    highs, lows = as_array(highs), as_array(lows)
    if period <= 0 or len(highs) < period:
        return None

    upper = float(highs[-period:].max())
    lower = float(lows[-period:].min())
    middle = (upper + lower) / 2
    ratio = safe_div(current_price - lower, upper - lower, 0.5)

    if current_price > upper:
        position = "above_channel"
    elif current_price < lower:
        position = "below_channel"
    elif ratio > threshold("price_channel_upper_third"):
        position = "upper_third"
    elif ratio < threshold("price_channel_lower_third"):
        position = "lower_third"
    else:
        position = "middle_third"

    trend = None
    if len(highs) > period:
        prior_middle = (float(highs[-period - 1 : -1].max()) + float(lows[-period - 1 : -1].min())) / 2
        trend = change_direction(middle, prior_middle)

    band = threshold("price_channel_breakout")
    if current_price >= upper * (1 - band):
        breakout = "bullish"
    elif current_price <= lower * (1 + band):
        breakout = "bearish"
    else:
        breakout = "none"

    return {
        "upper": upper,
        "middle": middle,
        "lower": lower,
        "width_pct": safe_div(upper - lower, middle) * 100,
        "position": position,
        "trend": trend,
        "breakout": breakout,
    }


# =============================================================================
# DISPERSION
# =============================================================================


def std_dev(closes: ArrayLike, period: int = 20) -> Optional[dict]:
    """Population standard deviation of closes, absolute and relative to the mean."""
    closes = as_array(closes)
    deviations = rolling_std(closes, period)
    if len(deviations) == 0:
        return None

    value = float(deviations[-1])
    relative = safe_div(value, float(np.mean(closes[-period:])))
    return {
        "value": value,
        "relative": relative,
        "volatility": classify("std_dev_volatility", relative),
    }


def historical_volatility(
    closes: ArrayLike, period: int = 20, annualization: int = 365
) -> Optional[dict]:
    """Annualised standard deviation of log returns, in percent."""
    closes = as_array(closes)
    if period < 2 or len(closes) < period + 1:
        return None

    window = closes[-(period + 1) :]
    ratios = safe_divide(window[1:], window[:-1], 1.0)
    returns = np.log(np.where(ratios > 0, ratios, 1.0))
    daily = float(np.std(returns, ddof=1))
    value = daily * math.sqrt(annualization) * 100

    return {
        "value": value,
        "period_volatility": daily * 100,
        "level": classify("historical_volatility", value),
    }


def ulcer_index(closes: ArrayLike, period: int = 14) -> Optional[dict]:
    """Ulcer Index: RMS of percent drawdowns from the running high of the window."""
    closes = as_array(closes)
    if period <= 0 or len(closes) < period:
        return None

    window = closes[-period:]
    peaks = np.maximum.accumulate(window)
    drawdowns = safe_divide(window - peaks, peaks) * 100
    value = float(np.sqrt(np.mean(drawdowns**2)))

    return {
        "value": value,
        "max_drawdown": float(drawdowns.min()),
        "risk": classify("ulcer_risk", value),
        "stress": classify("ulcer_stress", value),
    }


# =============================================================================
# RANGE EXPANSION
# =============================================================================


def chaikin_volatility(
    highs: ArrayLike,
    lows: ArrayLike,
    ema_period: int = 10,
    roc_period: int = 10,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """Chaikin Volatility: percent change of the EMA of high-low ranges."""
    highs, lows = as_array(highs), as_array(lows)
    periods = active_resolver(resolver).resolve(
        "chaikin_volatility",
        len(highs),
        {"ema": ema_period, "roc": roc_period},
        ema_period + roc_period,
    )
    if periods is None:
        return None

    smoothed = ema(highs - lows, periods["ema"])
    lag = min(periods["roc"], len(smoothed) - 1)
    if lag < 1:
        return None

    base = float(smoothed[-1 - lag])
    value = safe_div(float(smoothed[-1]) - base, base) * 100
    return {
        "value": value,
        "trend": classify("chaikin_volatility_trend", value),
        "phase": classify("chaikin_volatility_phase", value),
        "breakout": value > threshold("chaikin_volatility_breakout"),
        "extended": abs(value) > threshold("chaikin_volatility_extended"),
        "periods": {"ema": periods["ema"], "roc": lag},
    }


def mass_index(
    highs: ArrayLike,
    lows: ArrayLike,
    ema_period: int = 9,
    sum_period: int = 25,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """Mass Index: summed ratio of single to double EMA of the high-low range."""
    highs, lows = as_array(highs), as_array(lows)
    periods = active_resolver(resolver).resolve(
        "mass_index",
        len(highs),
        {"ema": ema_period, "sum": sum_period},
        2 * ema_period + sum_period - 2,
    )
    if periods is None:
        return None

    span = periods["ema"]
    single = ema(highs - lows, span)
    double = ema(single, span)
    if len(double) == 0:
        return None

    ratios = safe_divide(single[span - 1 :], double, 1.0)
    window = min(periods["sum"], len(ratios))
    value = float(ratios[-window:].sum())

    return {
        "value": value,
        "reversal": classify("mass_index_reversal", value),
        "trend": classify("mass_index_trend", value),
        "periods": {"ema": span, "sum": window},
    }
