"""
Volume Indicators

Volume-flow and volume-weighted measures. A candle without volume or without
range never causes a division by zero: each guard's fallback is stated in the
function docstring.
"""

from typing import Optional

import numpy as np

from signal_engine.services.indicators.classifier import (
    change_direction,
    classify,
    classify_position,
    line_cross,
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
    typical_price,
)
from signal_engine.services.indicators.resolver import ParameterResolver, active_resolver

EMV_VOLUME_SCALE = 100_000_000
TREND_LOOKBACK = 10

_POSITION_TREND = {"above": "bullish", "below": "bearish", "equal": "neutral"}


def _trend_over(series: np.ndarray, lookback: int = TREND_LOOKBACK) -> Optional[str]:
    if len(series) < 2:
        return None
    start = series[-min(lookback, len(series))]
    return change_direction(float(series[-1]), float(start))


def money_flow_volume(
    highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, volumes: ArrayLike
) -> np.ndarray:
    """Close-location multiplier times volume; a candle without range contributes 0."""
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    multiplier = safe_divide((closes - lows) - (highs - closes), highs - lows)
    return multiplier * as_array(volumes)


def accumulation_distribution(
    highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, volumes: ArrayLike
) -> np.ndarray:
    """Accumulation/Distribution line (cumulative money-flow volume)."""
    return np.cumsum(money_flow_volume(highs, lows, closes, volumes))


# =============================================================================
# CUMULATIVE FLOW
# =============================================================================


def obv_series(closes: ArrayLike, volumes: ArrayLike) -> np.ndarray:
    """On-Balance Volume starting from the first candle's volume."""
    closes, volumes = as_array(closes), as_array(volumes)
    if len(closes) == 0:
        return EMPTY.copy()
    direction = np.sign(np.diff(closes))
    return volumes[0] + np.concatenate([[0.0], np.cumsum(direction * volumes[1:])])


def obv(closes: ArrayLike, volumes: ArrayLike) -> Optional[dict]:
    series = obv_series(closes, volumes)
    if len(series) < 2:
        return None
    return {"value": float(series[-1]), "trend": _trend_over(series)}


def ad_line(
    highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, volumes: ArrayLike
) -> Optional[dict]:
    """Accumulation/Distribution line."""
    line = accumulation_distribution(highs, lows, closes, volumes)
    if len(line) < 2:
        return None
    flow = money_flow_volume(highs, lows, closes, volumes)
    return {
        "value": float(line[-1]),
        "last_flow": float(flow[-1]),
        "trend": _trend_over(line),
    }


def price_volume_trend(closes: ArrayLike, volumes: ArrayLike) -> Optional[dict]:
    """Price Volume Trend: cumulative percent change times volume."""
    closes, volumes = as_array(closes), as_array(volumes)
    if len(closes) < 2:
        return None
    pvt = np.cumsum(pct_change(closes, 1) / 100 * volumes[1:])
    return {
        "value": float(pvt[-1]),
        "trend": _trend_over(pvt),
        "signal": classify("sign", float(pvt[-1] - pvt[-2])) if len(pvt) > 1 else "neutral",
    }


def positive_volume_index(
    closes: ArrayLike, volumes: ArrayLike, initial: float = 1000.0
) -> Optional[dict]:
    """
    Positive Volume Index: compounds price changes only on rising-volume candles.

    A zero previous close leaves the index unchanged.
    """
    closes, volumes = as_array(closes), as_array(volumes)
    if len(closes) < 2:
        return None

    changes = pct_change(closes, 1) / 100
    rising = volumes[1:] > volumes[:-1]
    history = initial * np.cumprod(np.where(rising, 1 + changes, 1.0))
    history = np.concatenate([[initial], history])

    window = history[-min(5, len(history)) :]
    slope = (float(window[-1]) - float(window[0])) / (len(window) - 1)
    trend = classify("pvi_slope", slope)
    strength = min(100.0, abs(slope) * 10)

    signal = "neutral"
    if bool(rising[-1]) and strength > threshold("pvi_signal_strength"):
        signal = {"bullish": "buy", "bearish": "sell"}.get(trend, "neutral")

    return {
        "value": float(history[-1]),
        "slope": slope,
        "trend": trend,
        "strength": strength,
        "volume_increasing": bool(rising[-1]),
        "signal": signal,
    }


# =============================================================================
# VOLUME-WEIGHTED PRICE
# =============================================================================


def vwap(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    volumes: ArrayLike,
    current_price: float,
) -> Optional[dict]:
    """Volume Weighted Average Price over the whole series (typical price when volume is 0)."""
    tp = typical_price(highs, lows, closes)
    volumes = as_array(volumes)
    if len(tp) == 0:
        return None

    total = float(volumes.sum())
    value = float((tp * volumes).sum() / total) if total > 0 else float(tp[-1])
    position = classify_position(current_price, value)
    return {
        "value": value,
        "deviation_pct": safe_div(current_price - value, value) * 100,
        "position": position,
        "trend": _POSITION_TREND[position],
    }


def anchored_vwap(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    volumes: ArrayLike,
    current_price: float,
    anchor_fraction: float = 0.7,
    band_std: float = 1.0,
) -> Optional[dict]:
    """
    VWAP anchored ``anchor_fraction`` of the way into the series, with
    standard-deviation bands. Without volume the VWAP is 0 and price-relative
    readings fall back to 0.
    """
    tp = typical_price(highs, lows, closes)
    volumes = as_array(volumes)
    anchor = int(len(tp) * anchor_fraction)
    if anchor < 0 or anchor >= len(tp):
        return None

    anchored_tp, anchored_volume = tp[anchor:], volumes[anchor:]
    total_volume = float(anchored_volume.sum())
    value = safe_div(float((anchored_tp * anchored_volume).sum()), total_volume)

    deviation = float(np.std(anchored_tp - value))
    upper, lower = value + band_std * deviation, value - band_std * deviation
    price_vs = safe_div(current_price - value, value) * 100
    position = classify_position(current_price, value)
    trend = _POSITION_TREND[position]

    if current_price > upper:
        band_position = "above_upper"
    elif current_price < lower:
        band_position = "below_lower"
    elif abs(safe_div(current_price - value, value)) < threshold("anchored_vwap_at_vwap"):
        band_position = "at_vwap"
    else:
        band_position = "between_bands"

    if position == "above" and abs(price_vs) > threshold("anchored_vwap_signal_pct"):
        signal = "buy"
    elif position == "below" and abs(price_vs) > threshold("anchored_vwap_signal_pct"):
        signal = "sell"
    else:
        signal = "neutral"

    institutional = "neutral"
    if total_volume > anchored_volume[-1] * threshold("institutional_volume_multiple"):
        institutional = {"above": "bullish", "below": "bearish"}.get(position, "neutral")

    return {
        "value": value,
        "anchor_index": anchor,
        "anchor_price": float(as_array(closes)[anchor]),
        "price_vs_vwap": price_vs,
        "upper_band": upper,
        "lower_band": lower,
        "position": position,
        "band_position": band_position,
        "trend": trend,
        "strength": min(100.0, abs(price_vs) * 2),
        "signal": signal,
        "institutional_bias": institutional,
    }


# =============================================================================
# MONEY FLOW OSCILLATORS
# =============================================================================


def chaikin_money_flow(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    volumes: ArrayLike,
    period: int = 21,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """Chaikin Money Flow (0 when the window has no volume); the period shrinks to 5 candles."""
    volumes = as_array(volumes)
    period = active_resolver(resolver).resolve_period(
        "chaikin_money_flow", len(volumes), period, period
    )
    if period is None:
        return None

    flow = money_flow_volume(highs, lows, closes, volumes)
    value = safe_div(float(flow[-period:].sum()), float(volumes[-period:].sum()))
    return {"value": value, "signal": classify("cmf", value), "period": period}


def mfi(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    volumes: ArrayLike,
    period: int = 14,
) -> Optional[dict]:
    """
    Money Flow Index.

    No negative flow reads 100 when there is positive flow and 50 when there
    is no flow at all.
    """
    tp = typical_price(highs, lows, closes)
    if period <= 0 or len(tp) < period + 1:
        return None

    raw_flow = tp * as_array(volumes)
    change = np.diff(tp)[-period:]
    flow = raw_flow[1:][-period:]
    positive = float(flow[change > 0].sum())
    negative = float(flow[change < 0].sum())

    if negative == 0:
        value = 100.0 if positive > 0 else 50.0
    else:
        value = 100 - (100 / (1 + positive / negative))

    return {"value": value, "signal": classify("mfi", value)}


def chaikin_oscillator(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    volumes: ArrayLike,
    fast: int = 3,
    slow: int = 10,
) -> Optional[dict]:
    """Chaikin Oscillator: EMA(fast) - EMA(slow) of the A/D line."""
    line = accumulation_distribution(highs, lows, closes, volumes)
    slow_ema = ema(line, slow)
    if len(slow_ema) == 0 or fast >= slow:
        return None

    oscillator = ema(line, fast)[slow - fast :] - slow_ema
    value = float(oscillator[-1])
    previous = float(oscillator[-2]) if len(oscillator) > 1 else None
    return {
        "value": value,
        "signal": classify("sign", value),
        "crossover": zero_cross(previous, value),
    }


def force_index(closes: ArrayLike, volumes: ArrayLike, period: int = 13) -> Optional[dict]:
    """Elder's Force Index: EMA of price change times volume."""
    closes, volumes = as_array(closes), as_array(volumes)
    raw = np.diff(closes) * volumes[1:]
    smoothed = ema(raw, period)
    if len(smoothed) == 0:
        return None

    value = float(smoothed[-1])
    return {
        "value": value,
        "raw": float(raw[-1]),
        "trend": classify("sign", value),
        "strength": classify("force_index_strength", value),
    }


def ease_of_movement(
    highs: ArrayLike, lows: ArrayLike, volumes: ArrayLike, period: int = 14
) -> Optional[dict]:
    """
    Ease of Movement: midpoint move per unit of volume-scaled range.

    Candles without volume contribute 0.
    """
    highs, lows, volumes = as_array(highs), as_array(lows), as_array(volumes)
    if len(highs) < 2:
        return None

    midpoint = (highs + lows) / 2
    distance = np.diff(midpoint)
    box_ratio = volumes[1:] / EMV_VOLUME_SCALE
    raw = safe_divide(distance * (highs[1:] - lows[1:]), box_ratio)
    smoothed = sma(raw, period)
    if len(smoothed) == 0:
        return None

    value = float(smoothed[-1])
    return {"value": value, "raw": float(raw[-1]), "signal": classify("emv", value)}


def klinger_oscillator(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    volumes: ArrayLike,
    fast: int = 34,
    slow: int = 55,
    signal: int = 13,
) -> Optional[dict]:
    """
    Klinger Volume Oscillator.

    Volume force is volume times trend times (2 * close location - 1); a
    candle without range has close location 0.5.
    """
    highs, lows, closes, volumes = (
        as_array(highs), as_array(lows), as_array(closes), as_array(volumes)
    )
    if len(closes) < slow or fast >= slow:
        return None

    hlc = highs + lows + closes
    trend = np.where(np.diff(hlc) > 0, 1.0, -1.0)
    location = safe_divide(closes[1:] - lows[1:], highs[1:] - lows[1:], 0.5)
    force = volumes[1:] * trend * (2 * location - 1)

    slow_ema = ema(force, slow)
    if len(slow_ema) == 0:
        return None
    kvo = ema(force, fast)[slow - fast :] - slow_ema
    signal_line = sma(kvo, signal)

    value = float(kvo[-1])
    signal_value = float(signal_line[-1]) if len(signal_line) else None
    crossover = "none"
    if len(signal_line) > 1:
        crossover = line_cross(float(kvo[-2]), float(signal_line[-2]), value, signal_value)

    return {
        "value": value,
        "signal_line": signal_value,
        "histogram": value - signal_value if signal_value is not None else None,
        "trend": classify("sign", value),
        "crossover": crossover,
    }


# =============================================================================
# VOLUME MOMENTUM
# =============================================================================


def volume_oscillator(volumes: ArrayLike, fast: int = 14, slow: int = 28) -> Optional[dict]:
    """Percent difference between fast and slow volume EMAs."""
    slow_ema = ema(volumes, slow)
    if len(slow_ema) == 0 or fast >= slow:
        return None

    fast_value = float(ema(volumes, fast)[-1])
    value = safe_div(fast_value - float(slow_ema[-1]), float(slow_ema[-1])) * 100
    return {
        "value": value,
        "trend": classify("volume_oscillator_trend", value),
        "momentum": classify("volume_oscillator_momentum", value),
    }


def volume_roc(volumes: ArrayLike, period: int = 12) -> Optional[dict]:
    """Volume Rate of Change (0 against a zero-volume base)."""
    changes = pct_change(volumes, period)
    if len(changes) == 0:
        return None

    value = float(changes[-1])
    return {
        "value": value,
        "trend": classify("volume_roc_trend", value),
        "momentum": classify("volume_roc_momentum", value),
    }


def volume_zone_oscillator(
    closes: ArrayLike, volumes: ArrayLike, period: int = 14
) -> Optional[dict]:
    """
    Volume Zone Oscillator.

    EMA of signed volume (positive on up closes, negative on down closes,
    zero on unchanged closes) as a percent of the EMA of total volume, so the
    value stays within +-100. A series without volume reads 0.
    """
    closes, volumes = as_array(closes), as_array(volumes)
    if period <= 0 or len(closes) < period + 1:
        return None

    direction = np.sign(np.diff(closes))
    traded = volumes[1:]
    flows = direction * traded
    line = safe_divide(ema(flows, period), ema(traded, period)) * 100

    value = float(line[-1])
    previous = float(line[-2]) if len(line) > 1 else None
    crossover = zero_cross(previous, value)
    extreme = threshold("vzo_extreme")
    overbought, oversold = value > extreme, value < -extreme
    accumulation_zone = value > threshold("vzo_zone")
    distribution_zone = value < -threshold("vzo_zone")

    signal = "neutral"
    if crossover == "bullish" and accumulation_zone:
        signal = "buy"
    elif crossover == "bearish" and distribution_zone:
        signal = "sell"
    elif overbought:
        signal = "sell"
    elif oversold:
        signal = "buy"

    return {
        "value": value,
        "volume_flow": float(flows[-1]),
        "buying_pressure": float(traded[direction > 0].sum()),
        "selling_pressure": float(traded[direction < 0].sum()),
        "trend": classify("vzo_trend", value),
        "condition": classify("vzo_condition", value),
        "strength": min(100.0, abs(value) * threshold("vzo_strength_scale")),
        "overbought": overbought,
        "oversold": oversold,
        "crossover": crossover,
        "accumulation_zone": accumulation_zone,
        "distribution_zone": distribution_zone,
        "signal": signal,
    }


# =============================================================================
# VOLUME PROFILE
# =============================================================================


def volume_profile(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    volumes: ArrayLike,
    current_price: float,
    bins: int = 20,
    value_area: float = 0.7,
) -> Optional[dict]:
    """
    Volume-at-price histogram with point of control and value area.

    Each candle's volume is spread over the bins its high-low range overlaps,
    in proportion to the overlap; a candle without range puts its volume in
    its close's bin. The value area grows from the point of control toward the
    heavier neighbour until it holds ``value_area`` of all volume.
    """
    highs, lows, closes, volumes = (
        as_array(highs), as_array(lows), as_array(closes), as_array(volumes)
    )
    if bins <= 0 or len(closes) < 10:
        return None

    low_price = float(min(highs.min(), lows.min(), closes.min()))
    high_price = float(max(highs.max(), lows.max(), closes.max()))
    price_range = high_price - low_price
    if price_range == 0:
        return None

    size = price_range / bins
    edges = low_price + size * np.arange(bins + 1)
    centers = edges[:-1] + size / 2
    profile = np.zeros(bins)

    for high, low, close, volume in zip(highs, lows, closes, volumes):
        if high == low:
            profile[min(bins - 1, int((close - low_price) / size))] += volume
            continue
        overlap = np.clip(np.minimum(edges[1:], high) - np.maximum(edges[:-1], low), 0, None)
        profile += volume * overlap / (high - low)

    total = float(profile.sum())
    poc_index = int(np.argmax(profile))
    poc = float(centers[poc_index])

    low_index = high_index = poc_index
    covered = float(profile[poc_index])
    while covered < total * value_area and (low_index > 0 or high_index < bins - 1):
        below = profile[low_index - 1] if low_index > 0 else -1.0
        above = profile[high_index + 1] if high_index < bins - 1 else -1.0
        if above >= below:
            high_index += 1
            covered += float(profile[high_index])
        else:
            low_index -= 1
            covered += float(profile[low_index])

    value_area_low, value_area_high = float(centers[low_index]), float(centers[high_index])
    if abs(safe_div(current_price - poc, poc)) < threshold("volume_profile_poc_band"):
        position = "at_poc"
    elif current_price > value_area_high:
        position = "above_value_area"
    elif current_price < value_area_low:
        position = "below_value_area"
    else:
        position = "in_value_area"

    average = total / bins
    return {
        "point_of_control": poc,
        "value_area_high": value_area_high,
        "value_area_low": value_area_low,
        "position": position,
        "high_volume_nodes": [
            float(price) for price in centers[profile > average * threshold("volume_node_high")]
        ],
        "low_volume_nodes": [
            float(price)
            for price in centers[(profile > 0) & (profile < average * threshold("volume_node_low"))]
        ],
        "volume_above_poc": float(profile[poc_index + 1 :].sum()),
        "volume_below_poc": float(profile[:poc_index].sum()),
    }
