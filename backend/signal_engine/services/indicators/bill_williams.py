"""
Bill Williams Indicators

Alligator, Gator Oscillator and Fractals. The Alligator lines are Wilder
averages of the median price, each shifted forward: the value plotted at the
last candle is the average as of ``shift`` candles earlier.
"""

from typing import Optional

import numpy as np

from signal_engine.services.indicators.classifier import threshold
from signal_engine.services.indicators.primitives import (
    ArrayLike,
    as_array,
    median_price,
    safe_div,
    smma,
)
from signal_engine.services.indicators.resolver import ParameterResolver, active_resolver

LINES = ("jaw", "teeth", "lips")


def _shifted(values: np.ndarray, period: int, shift: int) -> np.ndarray:
    line = smma(values, period)
    return line[: len(line) - shift] if shift else line


def alligator_lines(
    highs: ArrayLike,
    lows: ArrayLike,
    family: str = "alligator",
    jaw: int = 13,
    teeth: int = 8,
    lips: int = 5,
    jaw_shift: int = 8,
    teeth_shift: int = 5,
    lips_shift: int = 3,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict[str, np.ndarray]]:
    """
    Shifted jaw/teeth/lips histories aligned on their common tail.

    All six parameters shrink together through the resolver; None when the
    series is below the family's floor or too short for any line.
    """
    prices = median_price(highs, lows)
    periods = active_resolver(resolver).resolve(
        family,
        len(prices),
        {
            "jaw": jaw,
            "teeth": teeth,
            "lips": lips,
            "jaw_shift": jaw_shift,
            "teeth_shift": teeth_shift,
            "lips_shift": lips_shift,
        },
        jaw + jaw_shift,
    )
    if periods is None:
        return None

    lines = {
        name: _shifted(prices, periods[name], periods[f"{name}_shift"]) for name in LINES
    }
    common = min(len(line) for line in lines.values())
    if common == 0:
        return None
    return {name: line[-common:] for name, line in lines.items()}


def _arrangement(jaw: float, teeth: float, lips: float) -> str:
    if lips > teeth > jaw:
        return "bullish"
    if jaw > teeth > lips:
        return "bearish"
    return "neutral"


def alligator(
    highs: ArrayLike,
    lows: ArrayLike,
    current_price: float,
    jaw: int = 13,
    teeth: int = 8,
    lips: int = 5,
    jaw_shift: int = 8,
    teeth_shift: int = 5,
    lips_shift: int = 3,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """
    Williams Alligator.

    Phase is ``sleeping`` when all three lines sit within a narrow band of
    their mean, ``eating`` when stacked lips > teeth > jaw, ``satiated`` when
    stacked the other way and ``waking`` otherwise.
    """
    lines = alligator_lines(
        highs, lows, "alligator", jaw, teeth, lips, jaw_shift, teeth_shift, lips_shift,
        resolver,
    )
    if lines is None:
        return None

    jaw_value, teeth_value, lips_value = (float(lines[name][-1]) for name in LINES)
    band = abs((jaw_value + teeth_value + lips_value) / 3) * threshold("alligator_sleep_band")
    spread = max(jaw_value, teeth_value, lips_value) - min(jaw_value, teeth_value, lips_value)
    trend = _arrangement(jaw_value, teeth_value, lips_value)

    if spread < band:
        phase, trend = "sleeping", "neutral"
    elif trend == "bullish":
        phase = "eating"
    elif trend == "bearish":
        phase = "satiated"
    else:
        phase = "waking"

    if current_price > max(jaw_value, teeth_value, lips_value):
        position = "above_mouth"
    elif current_price < min(jaw_value, teeth_value, lips_value):
        position = "below_mouth"
    else:
        position = "inside_mouth"

    return {
        "jaw": jaw_value,
        "teeth": teeth_value,
        "lips": lips_value,
        "phase": phase,
        "trend": trend,
        "position": position,
        "spread_pct": safe_div(spread, teeth_value) * 100,
    }


def gator_oscillator(
    highs: ArrayLike,
    lows: ArrayLike,
    jaw: int = 13,
    teeth: int = 8,
    lips: int = 5,
    jaw_shift: int = 8,
    teeth_shift: int = 5,
    lips_shift: int = 3,
    resolver: Optional[ParameterResolver] = None,
) -> Optional[dict]:
    """
    Gator Oscillator: |jaw - teeth| above zero, -|teeth - lips| below.

    A bar is green when its magnitude grew since the previous candle and red
    when it shrank; the first bar of a history is gray.
    """
    lines = alligator_lines(
        highs, lows, "gator_oscillator", jaw, teeth, lips, jaw_shift, teeth_shift, lips_shift,
        resolver,
    )
    if lines is None:
        return None

    upper = np.abs(lines["jaw"] - lines["teeth"])
    lower = -np.abs(lines["teeth"] - lines["lips"])

    def colour(bars: np.ndarray) -> str:
        if len(bars) < 2 or abs(bars[-1]) == abs(bars[-2]):
            return "gray"
        return "green" if abs(bars[-1]) > abs(bars[-2]) else "red"

    upper_colour, lower_colour = colour(upper), colour(lower)
    spread = float(upper[-1] - lower[-1])
    state = "neutral"
    if len(upper) > 1:
        previous_spread = float(upper[-2] - lower[-2])
        if spread > previous_spread * threshold("gator_expanding"):
            state = "diverging"
        elif spread < previous_spread * threshold("gator_contracting"):
            state = "converging"

    if upper_colour == "green" and lower_colour == "green":
        phase = "eating"
    elif upper_colour == "red" and lower_colour == "red":
        phase = "sleeping"
    elif upper_colour != lower_colour:
        phase = "awakening" if "green" in (upper_colour, lower_colour) else "sated"
    else:
        phase = "neutral"

    trend = _arrangement(*(float(lines[name][-1]) for name in LINES))
    signal = "neutral"
    if state == "diverging":
        signal = {"bullish": "buy", "bearish": "sell"}.get(trend, "neutral")

    return {
        "upper": float(upper[-1]),
        "lower": float(lower[-1]),
        "upper_color": upper_colour,
        "lower_color": lower_colour,
        "state": state,
        "phase": phase,
        "trend": trend,
        "signal": signal,
    }


def fractals(
    highs: ArrayLike, lows: ArrayLike, current_price: float, span: int = 2
) -> Optional[dict]:
    """
    Williams Fractals.

    An up fractal is a high strictly above the ``span`` highs on each side; a
    down fractal is a low strictly below its neighbours. The signal compares
    price with the most recent of each.
    """
    highs, lows = as_array(highs), as_array(lows)
    window = 2 * span + 1
    if span <= 0 or len(highs) < window:
        return None

    up, down = [], []
    for i in range(span, len(highs) - span):
        neighbours = np.r_[i - span : i, i + 1 : i + span + 1]
        if np.all(highs[i] > highs[neighbours]):
            up.append((i, float(highs[i])))
        if np.all(lows[i] < lows[neighbours]):
            down.append((i, float(lows[i])))

    last_up = up[-1][1] if up else None
    last_down = down[-1][1] if down else None

    signal = "neutral"
    if last_up is not None and current_price > last_up:
        signal = "bullish_breakout"
    elif last_down is not None and current_price < last_down:
        signal = "bearish_breakout"

    return {
        "up_fractals": [{"index": index, "value": value} for index, value in up[-5:]],
        "down_fractals": [{"index": index, "value": value} for index, value in down[-5:]],
        "last_up": last_up,
        "last_down": last_down,
        "signal": signal,
    }
