"""
Pattern Analysis

Divergences between price and an oscillator, candlestick patterns and the
market regime (trend strength plus relative volatility).
"""

from typing import Optional

import numpy as np

from signal_engine.services.indicators.classifier import classify, threshold
from signal_engine.services.indicators.momentum import macd_series, rsi_series
from signal_engine.services.indicators.primitives import ArrayLike, as_array, safe_div
from signal_engine.services.indicators.trend import adx_series
from signal_engine.services.indicators.volatility import atr_series


# =============================================================================
# DIVERGENCE
# =============================================================================


def detect_divergence(
    prices: ArrayLike, indicator: ArrayLike, lookback: int = 20
) -> Optional[dict]:
    """
    Detect bullish or bearish divergence.

    The window is split in two halves and the extreme of each half compared:
    a lower price low with a higher indicator low is a regular bullish
    divergence, a higher price high with a lower indicator high a regular
    bearish one. The hidden variants swap which side makes the new extreme.
    """
    prices, indicator = as_array(prices), as_array(indicator)
    if lookback < 4 or len(prices) < lookback or len(indicator) < lookback:
        return None

    recent_prices = prices[-lookback:]
    recent_indicator = indicator[-lookback:]
    half = lookback // 2

    first_low = int(np.argmin(recent_prices[:half]))
    second_low = half + int(np.argmin(recent_prices[half:]))
    first_high = int(np.argmax(recent_prices[:half]))
    second_high = half + int(np.argmax(recent_prices[half:]))

    lower_low = recent_prices[second_low] < recent_prices[first_low]
    higher_indicator_low = recent_indicator[second_low] > recent_indicator[first_low]
    higher_high = recent_prices[second_high] > recent_prices[first_high]
    lower_indicator_high = recent_indicator[second_high] < recent_indicator[first_high]

    divergence, kind = "none", None
    if lower_low and higher_indicator_low:
        divergence, kind = "bullish", "regular"
    elif higher_high and lower_indicator_high:
        divergence, kind = "bearish", "regular"
    elif not lower_low and recent_indicator[second_low] < recent_indicator[first_low]:
        divergence, kind = "bullish", "hidden"
    elif not higher_high and recent_indicator[second_high] > recent_indicator[first_high]:
        divergence, kind = "bearish", "hidden"

    return {
        "divergence": divergence,
        "type": kind,
        "price_trend": classify("sign", float(recent_prices[-1] - recent_prices[0])),
        "indicator_trend": classify("sign", float(recent_indicator[-1] - recent_indicator[0])),
    }


def rsi_divergence(closes: ArrayLike, period: int = 14, lookback: int = 20) -> Optional[dict]:
    values = rsi_series(closes, period)
    if len(values) < lookback:
        return None
    result = detect_divergence(as_array(closes)[-len(values) :], values, lookback)
    if result is None:
        return None
    return {**result, "rsi": float(values[-1])}


def macd_divergence(
    closes: ArrayLike, fast: int = 12, slow: int = 26, signal: int = 9, lookback: int = 20
) -> Optional[dict]:
    macd_line, _, _ = macd_series(closes, fast, slow, signal)
    if len(macd_line) < lookback:
        return None
    result = detect_divergence(as_array(closes)[-len(macd_line) :], macd_line, lookback)
    if result is None:
        return None
    return {**result, "macd": float(macd_line[-1])}


# =============================================================================
# CANDLESTICK PATTERNS
# =============================================================================


def candlestick_patterns(
    opens: ArrayLike,
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    lookback: int = 5,
) -> Optional[dict]:
    """
    Doji, hammer, shooting star and engulfing patterns in the last ``lookback``
    candles. Candles without range never form a pattern.
    """
    opens, highs, lows, closes = as_array(opens), as_array(highs), as_array(lows), as_array(closes)
    if lookback < 2 or len(closes) < lookback:
        return None

    start = len(closes) - lookback
    patterns = []
    for i in range(start + 1, len(closes)):
        body = abs(closes[i] - opens[i])
        upper_shadow = highs[i] - max(opens[i], closes[i])
        lower_shadow = min(opens[i], closes[i]) - lows[i]
        total = highs[i] - lows[i]
        if total <= 0:
            continue

        if body < total * threshold("doji_body_ratio") and (
            upper_shadow > total * threshold("doji_shadow_ratio")
            or lower_shadow > total * threshold("doji_shadow_ratio")
        ):
            patterns.append({"type": "doji", "index": i - start, "bullish": bool(closes[i] > opens[i])})

        if body < total * threshold("hammer_body_ratio"):
            long_shadow = body * threshold("hammer_shadow_multiple")
            short_shadow = body * threshold("hammer_opposite_shadow_ratio")
            if lower_shadow > long_shadow and upper_shadow < short_shadow:
                patterns.append({"type": "hammer", "index": i - start, "bullish": True})
            elif upper_shadow > long_shadow and lower_shadow < short_shadow:
                patterns.append({"type": "shooting_star", "index": i - start, "bullish": False})

        previous_body = abs(closes[i - 1] - opens[i - 1])
        larger = body > previous_body * threshold("engulfing_body_ratio")
        if (
            closes[i - 1] < opens[i - 1]
            and closes[i] > opens[i]
            and opens[i] < closes[i - 1]
            and closes[i] > opens[i - 1]
            and larger
        ):
            patterns.append({"type": "bullish_engulfing", "index": i - start, "bullish": True})
        if (
            closes[i - 1] > opens[i - 1]
            and closes[i] < opens[i]
            and opens[i] > closes[i - 1]
            and closes[i] < opens[i - 1]
            and larger
        ):
            patterns.append({"type": "bearish_engulfing", "index": i - start, "bullish": False})

    bullish = sum(1 for pattern in patterns if pattern["bullish"])
    bearish = len(patterns) - bullish
    return {
        "patterns": patterns,
        "latest": patterns[-1]["type"] if patterns else None,
        "bias": "bullish" if bullish > bearish else "bearish" if bearish > bullish else "neutral",
    }


# =============================================================================
# MARKET REGIME
# =============================================================================

_REGIME_SCORE = {"trending": 50, "choppy": 20, "neutral": 30}
_VOLATILITY_SCORE = {"normal": 20, "low": 10, "high": 5}


def market_regime(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    current_price: float,
    period: int = 14,
    lookback: int = 20,
) -> Optional[dict]:
    """
    Trending / choppy / neutral regime from ADX, with volatility judged by the
    latest ATR against its own ``lookback`` average (fixed ATR-percent bands
    while that history is shorter than ``lookback``).
    """
    adx_line, _, _ = adx_series(highs, lows, closes, period)
    atr_line = atr_series(highs, lows, closes, period)
    if len(adx_line) == 0 or len(atr_line) == 0:
        return None

    adx_value = float(adx_line[-1])
    atr_value = float(atr_line[-1])
    regime = classify("market_regime", adx_value)
    atr_percent = safe_div(atr_value, current_price) * 100

    if len(atr_line) >= lookback:
        ratio = safe_div(atr_value, float(np.mean(atr_line[-lookback:])), 1.0)
        high, low = threshold("market_regime_atr_high"), threshold("market_regime_atr_low")
    else:
        ratio = atr_percent
        high, low = threshold("market_regime_atr_pct_high"), threshold("market_regime_atr_pct_low")
    volatility = "high" if ratio > high else "low" if ratio < low else "normal"

    score = _REGIME_SCORE[regime] + _VOLATILITY_SCORE[volatility]
    if regime == "trending":
        score += threshold("market_regime_trending_bonus")
    return {
        "regime": regime,
        "volatility": volatility,
        "adx": adx_value,
        "atr_percent": atr_percent,
        "score": min(100, score),
    }
