"""
Price Levels

Support/resistance from local extremes, Fibonacci retracements, pivot points
and ZigZag swings.
"""

from typing import Optional

import numpy as np

from signal_engine.services.indicators.classifier import threshold
from signal_engine.services.indicators.primitives import ArrayLike, as_array, safe_div


# =============================================================================
# SUPPORT/RESISTANCE
# =============================================================================


def local_extremes(values: np.ndarray, span: int = 2, highs: bool = True) -> list[float]:
    """Values strictly beyond their ``span`` neighbours on each side."""
    found = []
    for i in range(span, len(values) - span):
        neighbours = np.r_[values[i - span : i], values[i + 1 : i + span + 1]]
        if (highs and np.all(values[i] > neighbours)) or (
            not highs and np.all(values[i] < neighbours)
        ):
            found.append(float(values[i]))
    return found


def support_resistance(
    highs: ArrayLike, lows: ArrayLike, current_price: float, lookback: int = 20
) -> Optional[dict]:
    """
    Support and resistance levels using local minima/maxima.

    Levels are sorted by proximity to price (nearest first, at most five).
    Without a swing on one side, the window extreme is used as that side's
    nearest level.
    """
    highs, lows = as_array(highs), as_array(lows)
    if lookback <= 0 or len(highs) < lookback:
        return None

    recent_highs = highs[-lookback:]
    recent_lows = lows[-lookback:]

    resistance = sorted({level for level in local_extremes(recent_highs) if level > current_price})[:5]
    support = sorted(
        {level for level in local_extremes(recent_lows, highs=False) if level < current_price},
        reverse=True,
    )[:5]

    nearest_resistance = resistance[0] if resistance else float(recent_highs.max())
    nearest_support = support[0] if support else float(recent_lows.min())

    return {
        "support": support,
        "resistance": resistance,
        "nearest_support": nearest_support,
        "nearest_resistance": nearest_resistance,
        "distance_to_support_pct": safe_div(current_price - nearest_support, current_price) * 100,
        "distance_to_resistance_pct": safe_div(nearest_resistance - current_price, current_price) * 100,
        "position": safe_div(
            current_price - nearest_support, nearest_resistance - nearest_support, 0.5
        ),
    }


# =============================================================================
# FIBONACCI
# =============================================================================

RETRACEMENTS = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
EXTENSIONS = (1.272, 1.618, 2.0)

# Signal strength when price sits on a level, by level ratio
_LEVEL_STRENGTH = {0.236: 50, 0.382: 60, 0.5: 70, 0.618: 80, 0.786: 75, 1.0: 75}


def _level_name(ratio: float) -> str:
    return f"{ratio * 100:g}%"


def fibonacci(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    current_price: float,
    lookback: int = 50,
) -> Optional[dict]:
    """
    Fibonacci retracement of the ``lookback`` swing range.

    Levels are measured down from the swing high in an uptrend and up from
    the swing low otherwise. Absent when the range is 0.
    """
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    if lookback <= 0 or len(closes) < lookback:
        return None

    swing_high = float(highs[-lookback:].max())
    swing_low = float(lows[-lookback:].min())
    price_range = swing_high - swing_low
    if price_range <= 0:
        return None

    first, last = float(closes[-lookback]), float(closes[-1])
    direction = "uptrend" if last > first else "downtrend" if last < first else "neutral"
    uptrend = direction == "uptrend"
    base, sign = (swing_high, -1) if uptrend else (swing_low, 1)

    levels = {
        _level_name(ratio): base + sign * ratio * price_range
        for ratio in RETRACEMENTS + EXTENSIONS
    }
    ratio_of = {_level_name(ratio): ratio for ratio in RETRACEMENTS + EXTENSIONS}

    nearest = min(levels, key=lambda name: abs(current_price - levels[name]))
    distance = abs(current_price - levels[nearest]) / price_range * 100
    near_level = distance < threshold("fibonacci_near_level_pct")

    signal, strength = "neutral", 0.0
    if near_level:
        ratio = ratio_of[nearest]
        if ratio == 0.0 and uptrend:
            signal, strength = "sell", 60.0
        elif ratio in _LEVEL_STRENGTH:
            signal = "buy" if uptrend else "sell"
            strength = float(_LEVEL_STRENGTH[ratio])
        strength = max(0.0, strength - distance * 10)

    return {
        "levels": levels,
        "swing_high": swing_high,
        "swing_low": swing_low,
        "range": price_range,
        "direction": direction,
        "nearest_level": nearest,
        "nearest_level_price": levels[nearest],
        "distance_from_level": distance,
        "near_level": near_level,
        "signal": signal,
        "strength": strength,
    }


# =============================================================================
# PIVOT POINTS
# =============================================================================


def find_pivot_points(high: float, low: float, close: float, pivot_type: str = "standard") -> dict:
    """
    Calculate pivot points from one candle.

    Types: standard, fibonacci, camarilla
    """
    pivot = (high + low + close) / 3
    diff = high - low

    if pivot_type == "standard":
        r1 = (2 * pivot) - low
        r2 = pivot + diff
        r3 = high + 2 * (pivot - low)
        s1 = (2 * pivot) - high
        s2 = pivot - diff
        s3 = low - 2 * (high - pivot)

    elif pivot_type == "fibonacci":
        r1 = pivot + (0.382 * diff)
        r2 = pivot + (0.618 * diff)
        r3 = pivot + diff
        s1 = pivot - (0.382 * diff)
        s2 = pivot - (0.618 * diff)
        s3 = pivot - diff

    elif pivot_type == "camarilla":
        r1 = close + (diff * 1.1 / 12)
        r2 = close + (diff * 1.1 / 6)
        r3 = close + (diff * 1.1 / 4)
        s1 = close - (diff * 1.1 / 12)
        s2 = close - (diff * 1.1 / 6)
        s3 = close - (diff * 1.1 / 4)

    else:
        raise ValueError(f"Unknown pivot type: {pivot_type}")

    return {"pivot": pivot, "r1": r1, "r2": r2, "r3": r3, "s1": s1, "s2": s2, "s3": s3}


def pivot_points(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    current_price: float,
    pivot_type: str = "standard",
) -> Optional[dict]:
    """Pivot levels from the previous completed candle and where price sits among them."""
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    if len(closes) < 2:
        return None

    levels = find_pivot_points(float(highs[-2]), float(lows[-2]), float(closes[-2]), pivot_type)
    ordered = sorted(levels.items(), key=lambda item: item[1])

    if current_price < ordered[0][1]:
        zone = f"below_{ordered[0][0]}"
    elif current_price > ordered[-1][1]:
        zone = f"above_{ordered[-1][0]}"
    else:
        zone = next(
            f"{lower}_{upper}"
            for (lower, low_price), (upper, high_price) in zip(ordered, ordered[1:])
            if low_price <= current_price <= high_price
        )

    return {
        **levels,
        "type": pivot_type,
        "zone": zone,
        "bias": "bullish" if current_price > levels["pivot"] else "bearish"
        if current_price < levels["pivot"] else "neutral",
    }


# =============================================================================
# ZIGZAG
# =============================================================================


def zigzag(closes: ArrayLike, deviation_pct: Optional[float] = None) -> Optional[dict]:
    """
    ZigZag swing points from a single forward pass.

    A swing is confirmed when price reverses at least ``deviation_pct`` from
    the running extreme; the last, still-forming swing is reported as
    ``last_swing``.
    """
    closes = as_array(closes)
    if len(closes) < 3:
        return None
    deviation = (threshold("zigzag_deviation_pct") if deviation_pct is None else deviation_pct) / 100

    swings: list[dict] = []
    direction = None
    extreme_index, extreme = 0, float(closes[0])

    for i in range(1, len(closes)):
        price = float(closes[i])
        if direction is None:
            if price >= extreme * (1 + deviation):
                swings.append({"index": extreme_index, "value": extreme, "type": "low"})
                direction, extreme_index, extreme = "up", i, price
            elif price <= extreme * (1 - deviation):
                swings.append({"index": extreme_index, "value": extreme, "type": "high"})
                direction, extreme_index, extreme = "down", i, price
        elif direction == "up":
            if price > extreme:
                extreme_index, extreme = i, price
            elif price <= extreme * (1 - deviation):
                swings.append({"index": extreme_index, "value": extreme, "type": "high"})
                direction, extreme_index, extreme = "down", i, price
        else:
            if price < extreme:
                extreme_index, extreme = i, price
            elif price >= extreme * (1 + deviation):
                swings.append({"index": extreme_index, "value": extreme, "type": "low"})
                direction, extreme_index, extreme = "up", i, price

    last_swing = None
    if direction is not None:
        last_swing = {
            "index": extreme_index,
            "value": extreme,
            "type": "high" if direction == "up" else "low",
        }

    return {
        "swings": swings[-10:],
        "last_swing": last_swing,
        "direction": direction or "sideways",
        "swing_count": len(swings),
    }
