"""
Market Breadth

Advance/decline measures over the market a symbol trades in. Breadth is an
explicit input: every function returns None when no BreadthData is supplied.
"""

from typing import Optional

import numpy as np

from signal_engine.schemas.market import BreadthData
from signal_engine.services.indicators.classifier import (
    classify,
    threshold,
    zero_cross,
)
from signal_engine.services.indicators.primitives import (
    ArrayLike,
    as_array,
    ema,
    safe_div,
    safe_divide,
)


def advance_decline(
    breadth: Optional[BreadthData], closes: Optional[ArrayLike] = None
) -> Optional[dict]:
    """
    Advance/Decline line.

    When closes cover the breadth history, a divergence is reported when the
    A/D line and price moved in opposite directions over that history.
    """
    if breadth is None:
        return None

    advances, declines = as_array(breadth.advances), as_array(breadth.declines)
    net = advances - declines
    line = np.cumsum(net)
    latest_net = float(net[-1])
    ratio = safe_div(latest_net, float(advances[-1] + declines[-1]))
    strength_label = classify("breadth_strength", ratio)
    trend = classify("sign", latest_net)

    divergence = "none"
    if closes is not None and len(closes) >= len(line) > 1:
        prices = as_array(closes)[-len(line) :]
        line_change = float(line[-1] - line[0])
        price_change = float(prices[-1] - prices[0])
        if price_change > 0 and line_change < 0:
            divergence = "bearish"
        elif price_change < 0 and line_change > 0:
            divergence = "bullish"

    signal = "neutral"
    if strength_label in ("strong", "very_strong"):
        if trend == "bullish" and divergence != "bearish":
            signal = "buy"
        elif trend == "bearish" and divergence != "bullish":
            signal = "sell"

    return {
        "value": float(line[-1]),
        "net_advances": latest_net,
        "breadth_ratio": ratio,
        "breadth_strength": strength_label,
        "trend": trend,
        "divergence": divergence,
        "strength": min(100.0, abs(ratio) * 100 + abs(latest_net) / 10),
        "signal": signal,
    }


def mcclellan(breadth: Optional[BreadthData], fast: int = 19, slow: int = 39) -> Optional[dict]:
    """
    McClellan Oscillator on ratio-adjusted net advances
    ((A - D) / (A + D) * 1000, 0 on a day without issues).
    """
    if breadth is None or fast >= slow:
        return None

    advances, declines = as_array(breadth.advances), as_array(breadth.declines)
    adjusted = safe_divide(advances - declines, advances + declines) * 1000
    slow_ema = ema(adjusted, slow)
    if len(slow_ema) == 0:
        return None

    oscillator = ema(adjusted, fast)[slow - fast :] - slow_ema
    value = float(oscillator[-1])
    previous = float(oscillator[-2]) if len(oscillator) > 1 else None
    crossing = zero_cross(previous, value)
    extreme = threshold("mcclellan_extreme")
    overbought, oversold = value > extreme, value < -extreme

    if crossing == "bullish" and not overbought:
        signal = "buy"
    elif crossing == "bearish" and not oversold:
        signal = "sell"
    elif oversold:
        signal = "buy"
    elif overbought:
        signal = "sell"
    else:
        signal = "neutral"

    return {
        "value": value,
        "ratio_adjusted": float(adjusted[-1]),
        "trend": classify("mcclellan_trend", value),
        "breadth_condition": classify("mcclellan_breadth", value),
        "strength": min(100.0, abs(value) / 2),
        "overbought": overbought,
        "oversold": oversold,
        "zero_cross": crossing,
        "signal": signal,
    }


def arms_index(breadth: Optional[BreadthData]) -> Optional[dict]:
    """
    Arms Index (TRIN): advance/decline ratio over advancing/declining volume ratio.

    Needs volume breadth and non-zero counts on the latest day.
    """
    if breadth is None or not breadth.advancing_volume or not breadth.declining_volume:
        return None

    advances, declines = breadth.advances[-1], breadth.declines[-1]
    up_volume, down_volume = breadth.advancing_volume[-1], breadth.declining_volume[-1]
    if min(advances, declines, up_volume, down_volume) <= 0:
        return None

    ad_ratio = advances / declines
    volume_ratio = up_volume / down_volume
    value = ad_ratio / volume_ratio

    if value < threshold("trin_overbought"):
        signal = "buy"
    elif value > threshold("trin_oversold"):
        signal = "sell"
    elif value < threshold("trin_buy"):
        signal = "buy"
    elif value > threshold("trin_sell"):
        signal = "sell"
    else:
        signal = "neutral"

    return {
        "value": value,
        "ad_ratio": ad_ratio,
        "volume_ratio": volume_ratio,
        "condition": classify("trin_condition", value),
        "sentiment": classify("trin_sentiment", value),
        "strength": min(100.0, abs(value - 1) * 100),
        "overbought": value < threshold("trin_overbought"),
        "oversold": value > threshold("trin_oversold"),
        "signal": signal,
    }
