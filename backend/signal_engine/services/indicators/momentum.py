"""
Momentum Indicators

Oscillators measuring the speed and direction of price changes.

Each public function evaluates the latest candle and returns a small record,
or None when the series is too short for the requested periods. Series helpers
(``*_series``) return compact arrays so other families can reuse them.
"""

from typing import Optional, Sequence

import numpy as np

from signal_engine.services.indicators.classifier import (
    change_direction,
    classify,
    direction_from_difference,
    line_cross,
    threshold,
    zero_cross,
)
from signal_engine.services.indicators.primitives import (
    EMPTY,
    ArrayLike,
    as_array,
    ema,
    median_price,
    pct_change,
    rolling_max,
    rolling_min,
    safe_div,
    safe_divide,
    sma,
    typical_price,
    wma,
)
from signal_engine.services.indicators.resolver import ParameterResolver, active_resolver


# =============================================================================
# RSI
# =============================================================================


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    # Flat window: no gains and no losses reads neutral
    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0
    return 100 - (100 / (1 + avg_gain / avg_loss))


def rsi_series(closes: ArrayLike, period: int = 14) -> np.ndarray:
    """RSI for every candle from index ``period`` onward (Wilder smoothing)."""
    closes = as_array(closes)
    if period <= 0 or len(closes) < period + 1:
        return EMPTY.copy()

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    # First average
    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))

    result = np.empty(len(deltas) - period + 1)
    result[0] = _rsi_from_averages(avg_gain, avg_loss)

    # Subsequent RSI values using smoothed averages
    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result[i - period + 1] = _rsi_from_averages(avg_gain, avg_loss)

    return result


def rsi(
    closes: ArrayLike,
    period: int = 14,
    adaptive: bool = False,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """
    Relative Strength Index.

    With ``adaptive`` the period shrinks on short series (needs period + 1 closes).
    """
    closes = as_array(closes)
    if adaptive:
        period = active_resolver(resolver).resolve_period("rsi", len(closes), period, period + 1)
        if period is None:
            return None
        period = min(period, len(closes) - 1)

    values = rsi_series(closes, period)
    if len(values) == 0:
        return None

    value = float(values[-1])
    return {
        "value": value,
        "period": period,
        "signal": classify("rsi", value),
    }


# =============================================================================
# MACD / PPO
# =============================================================================


def macd_series(
    closes: ArrayLike, fast: int = 12, slow: int = 26, signal: int = 9
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    MACD line, signal line and histogram as compact arrays.

    The MACD line starts at index ``slow - 1``; signal and histogram start
    ``signal - 1`` candles later.
    """
    fast_ema = ema(closes, fast)
    slow_ema = ema(closes, slow)
    if len(slow_ema) == 0 or fast >= slow:
        return EMPTY.copy(), EMPTY.copy(), EMPTY.copy()

    macd_line = fast_ema[slow - fast :] - slow_ema
    signal_line = ema(macd_line, signal)
    if len(signal_line) == 0:
        return macd_line, EMPTY.copy(), EMPTY.copy()

    histogram = macd_line[signal - 1 :] - signal_line
    return macd_line, signal_line, histogram


def macd(
    closes: ArrayLike,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
    adaptive: bool = False,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """MACD (Moving Average Convergence Divergence)."""
    closes = as_array(closes)
    if adaptive:
        periods = active_resolver(resolver).resolve(
            "macd", len(closes), {"fast": fast, "slow": slow, "signal": signal}, slow + signal
        )
        if periods is None:
            return None
        fast, slow, signal = periods["fast"], periods["slow"], periods["signal"]

    if fast >= slow:
        return None

    macd_line, signal_line, histogram = macd_series(closes, fast, slow, signal)
    if len(histogram) == 0:
        return None

    crossover = "none"
    if len(histogram) >= 2:
        crossover = zero_cross(float(histogram[-2]), float(histogram[-1]))

    return {
        "macd": float(macd_line[-1]),
        "signal": float(signal_line[-1]),
        "histogram": float(histogram[-1]),
        "crossover": crossover,
        "trend": classify("sign", float(histogram[-1])),
        "periods": {"fast": fast, "slow": slow, "signal": signal},
    }


def ppo(closes: ArrayLike, fast: int = 12, slow: int = 26, signal: int = 9) -> Optional[dict]:
    """Percentage Price Oscillator: MACD expressed as a percent of the slow EMA."""
    fast_ema = ema(closes, fast)
    slow_ema = ema(closes, slow)
    if len(slow_ema) == 0 or fast >= slow:
        return None

    ppo_line = safe_divide(fast_ema[slow - fast :] - slow_ema, slow_ema) * 100
    signal_line = ema(ppo_line, signal)
    if len(signal_line) == 0:
        return None

    histogram = ppo_line[signal - 1 :] - signal_line
    value = float(ppo_line[-1])
    return {
        "ppo": value,
        "signal": float(signal_line[-1]),
        "histogram": float(histogram[-1]),
        "trend": classify("sign", float(histogram[-1])),
        "crossover": zero_cross(float(histogram[-2]), float(histogram[-1]))
        if len(histogram) >= 2
        else "none",
    }


# =============================================================================
# RANGE OSCILLATORS
# =============================================================================


def stochastic_k_series(
    highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 14
) -> np.ndarray:
    """%K for every full window; a zero-range window reads 50."""
    highest = rolling_max(highs, period)
    lowest = rolling_min(lows, period)
    if len(highest) == 0:
        return EMPTY.copy()
    current = as_array(closes)[period - 1 :]
    return safe_divide(current - lowest, highest - lowest, 0.5) * 100


def stochastic(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    k_period: int = 14,
    d_period: int = 3,
) -> Optional[dict]:
    """Stochastic Oscillator (%K with its %D average)."""
    k = stochastic_k_series(highs, lows, closes, k_period)
    d = sma(k, d_period)
    if len(d) == 0:
        return None

    k_value, d_value = float(k[-1]), float(d[-1])
    return {
        "k": k_value,
        "d": d_value,
        "signal": classify("stochastic", k_value),
        "trend": direction_from_difference(k_value, d_value),
    }


def stoch_rsi(
    closes: ArrayLike,
    rsi_period: int = 14,
    stoch_period: int = 14,
    k_smooth: int = 3,
    d_smooth: int = 3,
) -> Optional[dict]:
    """Stochastic applied to RSI values."""
    rsi_values = rsi_series(closes, rsi_period)
    highest = rolling_max(rsi_values, stoch_period)
    lowest = rolling_min(rsi_values, stoch_period)
    if len(highest) == 0:
        return None

    raw = safe_divide(rsi_values[stoch_period - 1 :] - lowest, highest - lowest, 0.5) * 100
    k = sma(raw, k_smooth)
    d = sma(k, d_smooth)
    if len(d) == 0:
        return None

    k_value = float(k[-1])
    return {
        "k": k_value,
        "d": float(d[-1]),
        "rsi": float(rsi_values[-1]),
        "signal": classify("stoch_rsi", k_value),
    }


def williams_r(
    highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 14
) -> Optional[dict]:
    """Williams %R; a zero-range window reads -50."""
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    if period <= 0 or len(closes) < period:
        return None

    highest_high = float(np.max(highs[-period:]))
    lowest_low = float(np.min(lows[-period:]))
    value = safe_div(highest_high - closes[-1], highest_high - lowest_low, 0.5) * -100

    return {"value": value, "signal": classify("williams_r", value)}


def cci(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 20) -> Optional[dict]:
    """Commodity Channel Index; zero mean deviation reads 0."""
    tp = typical_price(highs, lows, closes)
    if period <= 0 or len(tp) < period:
        return None

    window = tp[-period:]
    mean = float(np.mean(window))
    mean_dev = float(np.mean(np.abs(window - mean)))
    value = safe_div(tp[-1] - mean, 0.015 * mean_dev)

    return {"value": value, "signal": classify("cci", value)}


def ultimate_oscillator(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    short: int = 7,
    medium: int = 14,
    long: int = 28,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """
    Ultimate Oscillator over three buying-pressure windows (weights 4/2/1).

    Periods shrink on short series; a window without range counts as 0.5.
    """
    highs, lows, closes = as_array(highs), as_array(lows), as_array(closes)
    periods = active_resolver(resolver).resolve(
        "ultimate_oscillator",
        len(closes),
        {"short": short, "medium": medium, "long": long},
        long + 1,
    )
    if periods is None:
        return None

    prev_close = closes[:-1]
    buying_pressure = closes[1:] - np.minimum(lows[1:], prev_close)
    true_ranges = np.maximum(highs[1:], prev_close) - np.minimum(lows[1:], prev_close)

    def average(period: int) -> float:
        period = min(period, len(buying_pressure))
        return safe_div(
            buying_pressure[-period:].sum(), true_ranges[-period:].sum(), 0.5
        )

    value = 100 * (
        4 * average(periods["short"]) + 2 * average(periods["medium"]) + average(periods["long"])
    ) / 7
    return {
        "value": value,
        "signal": classify("ultimate_oscillator", value),
        "periods": periods,
    }


# =============================================================================
# RATE OF CHANGE
# =============================================================================


def momentum(closes: ArrayLike, period: int = 14) -> Optional[dict]:
    """Price difference against ``period`` candles back."""
    closes = as_array(closes)
    if period <= 0 or len(closes) < period + 1:
        return None

    base = float(closes[-1 - period])
    value = float(closes[-1]) - base
    return {
        "value": value,
        "percent": safe_div(value, base) * 100,
        "trend": classify("sign", value),
    }


def roc(closes: ArrayLike, period: int = 14) -> Optional[dict]:
    """Rate of Change in percent."""
    changes = pct_change(closes, period)
    if len(changes) == 0:
        return None

    value = float(changes[-1])
    return {"value": value, "signal": classify("roc", value)}


def trix(
    closes: ArrayLike,
    period: int = 15,
    signal: int = 9,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """
    TRIX: percent change of a triple-smoothed EMA.

    Falls back to the one-candle percent change when the triple EMA has fewer
    than two points after shrinking.
    """
    closes = as_array(closes)
    periods = active_resolver(resolver).resolve(
        "trix", len(closes), {"period": period, "signal": signal}, 3 * period + signal
    )
    if periods is None:
        return None
    period, signal = periods["period"], periods["signal"]

    triple = ema(ema(ema(closes, period), period), period)
    if len(triple) < 2:
        value = float(pct_change(closes, 1)[-1])
        return {
            "value": value,
            "signal_line": value,
            "signal": "neutral",
            "trend": None,
            "period": period,
        }

    trix_line = safe_divide(np.diff(triple), triple[:-1]) * 100
    value = float(trix_line[-1])
    signal_line = float(np.mean(trix_line[-signal:]))

    trend = None
    if len(trix_line) >= 3:
        last = trix_line[-3:]
        if last[2] > last[1] > last[0]:
            trend = "rising"
        elif last[2] < last[1] < last[0]:
            trend = "falling"
        else:
            trend = "flat"

    return {
        "value": value,
        "signal_line": signal_line,
        "signal": direction_from_difference(value, signal_line),
        "trend": trend,
        "period": period,
    }


def kst(
    closes: ArrayLike,
    roc_periods: Sequence[int] = (10, 15, 20, 30),
    sma_periods: Sequence[int] = (10, 10, 10, 15),
    signal: int = 9,
) -> Optional[dict]:
    """Know Sure Thing: weighted sum of four smoothed ROCs (weights 1..4)."""
    closes = as_array(closes)
    components = []
    for weight, (roc_period, sma_period) in enumerate(zip(roc_periods, sma_periods), start=1):
        smoothed = sma(pct_change(closes, roc_period), sma_period)
        if len(smoothed) == 0:
            return None
        components.append(weight * smoothed)

    length = min(len(component) for component in components)
    kst_line = np.sum([component[-length:] for component in components], axis=0)
    signal_line = sma(kst_line, signal)

    value = float(kst_line[-1])
    signal_value = float(signal_line[-1]) if len(signal_line) else None
    return {
        "value": value,
        "signal_line": signal_value,
        "histogram": value - signal_value if signal_value is not None else None,
        "trend": direction_from_difference(value, signal_value)
        if signal_value is not None
        else classify("sign", value),
    }


def coppock_curve(
    closes: ArrayLike, long_roc: int = 14, short_roc: int = 11, wma_period: int = 10
) -> Optional[dict]:
    """Coppock Curve: WMA of the sum of two ROCs."""
    closes = as_array(closes)
    start = max(long_roc, short_roc)
    count = len(closes) - start
    if long_roc <= 0 or short_roc <= 0 or count <= 0:
        return None

    roc_sums = pct_change(closes, long_roc)[-count:] + pct_change(closes, short_roc)[-count:]
    curve = wma(roc_sums, wma_period)
    if len(curve) == 0:
        return None

    value = float(curve[-1])
    previous = float(curve[-2]) if len(curve) > 1 else None
    direction = change_direction(value, previous)
    cross = zero_cross(previous, value)

    if cross == "bullish" or (value < 0 and direction == "rising"):
        signal = "buy"
    elif cross == "bearish" or (value > 0 and direction == "falling"):
        signal = "sell"
    else:
        signal = "neutral"

    return {
        "value": value,
        "phase": classify("coppock_phase", value),
        "direction": direction,
        "signal": signal,
    }


def chande_momentum(
    closes: ArrayLike, period: int = 14, resolver: Optional[ParameterResolver] = None
) -> Optional[dict]:
    """Chande Momentum Oscillator; a window without movement reads 0."""
    closes = as_array(closes)
    period = active_resolver(resolver).resolve_period(
        "chande_momentum", len(closes), period, period + 1
    )
    if period is None:
        return None
    period = min(period, len(closes) - 1)

    deltas = np.diff(closes[-(period + 1) :])
    up = float(deltas[deltas > 0].sum())
    down = float(-deltas[deltas < 0].sum())
    value = safe_div(100 * (up - down), up + down)

    return {
        "value": value,
        "signal": classify("chande_momentum", value),
        "trend": classify("sign", value),
        "strength": min(100.0, abs(value) * 2),
        "period": period,
    }


def true_strength_index(
    closes: ArrayLike, long: int = 25, short: int = 13, signal: int = 7
) -> Optional[dict]:
    """True Strength Index: double-smoothed momentum over double-smoothed |momentum|."""
    changes = np.diff(as_array(closes))
    numerator = ema(ema(changes, long), short)
    denominator = ema(ema(np.abs(changes), long), short)
    if len(numerator) == 0:
        return None

    tsi_line = safe_divide(numerator, denominator) * 100
    signal_line = ema(tsi_line, signal)

    value = float(tsi_line[-1])
    signal_value = float(signal_line[-1]) if len(signal_line) else None
    return {
        "value": value,
        "signal_line": signal_value,
        "signal": classify("tsi", value),
        "trend": direction_from_difference(value, signal_value)
        if signal_value is not None
        else classify("sign", value),
    }


# =============================================================================
# OSCILLATORS ON MEDIAN PRICE
# =============================================================================


def awesome_oscillator_series(
    highs: ArrayLike, lows: ArrayLike, fast: int = 5, slow: int = 34
) -> np.ndarray:
    """SMA(fast) - SMA(slow) of the median price, from index ``slow - 1``."""
    median = median_price(highs, lows)
    slow_ma = sma(median, slow)
    if len(slow_ma) == 0 or fast >= slow:
        return EMPTY.copy()
    return sma(median, fast)[slow - fast :] - slow_ma


def awesome_oscillator(
    highs: ArrayLike,
    lows: ArrayLike,
    fast: int = 5,
    slow: int = 34,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """Awesome Oscillator (periods shrink down to a 10-candle series)."""
    periods = active_resolver(resolver).resolve(
        "awesome_oscillator", len(highs), {"fast": fast, "slow": slow}, slow
    )
    if periods is None:
        return None

    series = awesome_oscillator_series(highs, lows, periods["fast"], periods["slow"])
    if len(series) == 0:
        return None

    value = float(series[-1])
    previous = float(series[-2]) if len(series) > 1 else None
    direction = change_direction(value, previous)

    return {
        "value": value,
        "histogram": {"rising": "green", "falling": "red"}.get(direction, "flat"),
        "zero_cross": zero_cross(previous, value),
        "signal": classify("sign", value),
        "periods": periods,
    }


def accelerator_oscillator(
    highs: ArrayLike,
    lows: ArrayLike,
    fast: int = 5,
    slow: int = 34,
    signal: int = 5,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """Accelerator Oscillator: AO minus its SMA."""
    periods = active_resolver(resolver).resolve(
        "accelerator_oscillator",
        len(highs),
        {"fast": fast, "slow": slow, "signal": signal},
        slow + signal - 1,
    )
    if periods is None:
        return None

    ao = awesome_oscillator_series(highs, lows, periods["fast"], periods["slow"])
    ao_average = sma(ao, periods["signal"])
    if len(ao_average) == 0:
        return None

    ac = ao[periods["signal"] - 1 :] - ao_average
    value = float(ac[-1])
    previous = float(ac[-2]) if len(ac) > 1 else None
    return {
        "value": value,
        "direction": change_direction(value, previous),
        "signal": classify("sign", value),
        "periods": periods,
    }


def fisher_transform(
    highs: ArrayLike, lows: ArrayLike, period: int = 10, trigger: int = 5
) -> Optional[dict]:
    """
    Fisher Transform of the median price's position in its trailing range.

    The position is clamped to +/-0.999; a zero-range window maps to 0.
    The trigger is an EMA of the Fisher history (the last value when too short).
    """
    highest = rolling_max(highs, period)
    lowest = rolling_min(lows, period)
    if len(highest) == 0:
        return None

    median = median_price(highs, lows)[period - 1 :]
    position = np.clip(2 * safe_divide(median - lowest, highest - lowest, 0.5) - 1, -0.999, 0.999)
    history = 0.5 * np.log((1 + position) / (1 - position))

    def trigger_at(values: np.ndarray) -> float:
        smoothed = ema(values, trigger)
        return float(smoothed[-1]) if len(smoothed) else float(values[-1])

    value = float(history[-1])
    trigger_value = trigger_at(history)
    crossover = "none"
    if len(history) >= 2:
        crossover = line_cross(
            float(history[-2]), trigger_at(history[:-1]), value, trigger_value
        )

    return {
        "value": value,
        "trigger": trigger_value,
        "trend": classify("fisher_trend", value),
        "extreme": classify("fisher_extreme", value),
        "crossover": crossover,
        "strength": min(100.0, abs(value) * 20),
    }


# =============================================================================
# CANDLE-BODY OSCILLATORS
# =============================================================================


def relative_vigor_index(
    opens: ArrayLike,
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    period: int = 10,
    signal: int = 4,
) -> Optional[dict]:
    """
    Relative Vigor Index: weighted average of (close - open) / (high - low).

    A candle without range contributes 0.
    """
    ratios = safe_divide(
        as_array(closes) - as_array(opens), as_array(highs) - as_array(lows)
    )
    rvi_line = wma(ratios, period)
    signal_line = sma(rvi_line, signal)
    if len(signal_line) == 0:
        return None

    value, signal_value = float(rvi_line[-1]), float(signal_line[-1])
    crossover = "none"
    if len(signal_line) >= 2:
        crossover = line_cross(
            float(rvi_line[-2]), float(signal_line[-2]), value, signal_value
        )

    return {
        "value": value,
        "signal_line": signal_value,
        "trend": classify("rvi", value),
        "extreme": classify("rvi_extreme", value),
        "crossover": crossover,
    }


# =============================================================================
# CYCLE OSCILLATORS
# =============================================================================


def _stochastic_smoothed(values: np.ndarray, cycle: int, factor: float) -> np.ndarray:
    """
    Stochastic of a series, smoothed with ``factor``.

    A window without range repeats the previous %K (50 at the start).
    """
    highest = rolling_max(values, cycle)
    lowest = rolling_min(values, cycle)
    result = np.empty(len(highest))

    previous_k = 50.0
    smoothed = None
    for i in range(len(highest)):
        span = highest[i] - lowest[i]
        k = (values[i + cycle - 1] - lowest[i]) / span * 100 if span > 0 else previous_k
        previous_k = k
        smoothed = k if smoothed is None else smoothed + factor * (k - smoothed)
        result[i] = smoothed

    return result


def schaff_trend_cycle(
    closes: ArrayLike,
    fast: int = 23,
    slow: int = 50,
    cycle: int = 10,
    factor: float = 0.5,
) -> Optional[dict]:
    """Schaff Trend Cycle: double-smoothed stochastic of the MACD line."""
    macd_line, _, _ = macd_series(closes, fast, slow, 1)
    if len(macd_line) < 2 * cycle - 1:
        return None

    stc = _stochastic_smoothed(_stochastic_smoothed(macd_line, cycle, factor), cycle, factor)
    value = float(stc[-1])
    previous = float(stc[-2]) if len(stc) > 1 else None

    signal = "neutral"
    if previous is not None:
        if previous <= threshold("schaff_oversold") < value:
            signal = "buy"
        elif previous >= threshold("schaff_overbought") > value:
            signal = "sell"

    return {
        "value": value,
        "zone": classify("schaff", value),
        "direction": change_direction(value, previous),
        "signal": signal,
    }
