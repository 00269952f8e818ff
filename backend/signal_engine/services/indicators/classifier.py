"""
Signal Classifier

Declarative threshold tables mapping numeric indicator values to categorical
states. Indicator functions never hard-code a classification threshold; they
call ``classify(table, value)`` or read ``THRESHOLDS``.

A table is an ordered list of rules; the first matching rule wins and the
table's default applies when none match.
"""

import operator
from dataclasses import dataclass
from typing import Callable, Optional

from signal_engine.schemas.indicators import SignalType, TrendDirection

_OPS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class Rule:
    op: str
    threshold: float
    label: str

    def matches(self, value: float) -> bool:
        return _OPS[self.op](value, self.threshold)


@dataclass(frozen=True)
class ThresholdTable:
    """Ordered first-match classification of one numeric value."""

    name: str
    rules: tuple[Rule, ...]
    default: str
    use_abs: bool = False

    def classify(self, value: Optional[float]) -> Optional[str]:
        if value is None:
            return None
        subject = abs(value) if self.use_abs else value
        for rule in self.rules:
            if rule.matches(subject):
                return rule.label
        return self.default


def _table(name: str, *rules: tuple[str, float, str], default: str, use_abs: bool = False):
    return ThresholdTable(
        name=name,
        rules=tuple(Rule(op, threshold, label) for op, threshold, label in rules),
        default=default,
        use_abs=use_abs,
    )


# =============================================================================
# TABLES
# =============================================================================

_TABLE_LIST = [
    # Oscillator zones
    _table("rsi", ("<", 30, "oversold"), (">", 70, "overbought"), default="neutral"),
    _table("stochastic", ("<", 20, "oversold"), (">", 80, "overbought"), default="neutral"),
    _table("stoch_rsi", ("<", 20, "oversold"), (">", 80, "overbought"), default="neutral"),
    _table("williams_r", ("<", -80, "oversold"), (">", -20, "overbought"), default="neutral"),
    _table("cci", ("<", -100, "oversold"), (">", 100, "overbought"), default="neutral"),
    _table("mfi", ("<", 20, "oversold"), (">", 80, "overbought"), default="neutral"),
    _table(
        "ultimate_oscillator", ("<=", 30, "oversold"), (">=", 70, "overbought"),
        default="neutral",
    ),
    _table(
        "roc",
        (">", 10, "overbought"), ("<", -10, "oversold"),
        (">", 0, "bullish"), ("<", 0, "bearish"),
        default="neutral",
    ),
    _table("chande_momentum", ("<", -50, "oversold"), (">", 50, "overbought"), default="neutral"),
    _table("fisher_extreme", (">", 4, "overbought"), ("<", -4, "oversold"), default="neutral"),
    _table("fisher_trend", (">", 0.5, "bullish"), ("<", -0.5, "bearish"), default="neutral"),
    _table(
        "coppock_phase",
        (">", 10, "strong_bullish"), (">", 0, "bullish"),
        ("<", -10, "strong_bearish"), ("<", 0, "bearish"),
        default="neutral",
    ),
    _table("tsi", (">", 25, "overbought"), ("<", -25, "oversold"), default="neutral"),
    _table("schaff", (">", 75, "overbought"), ("<", 25, "oversold"), default="neutral"),
    _table("rvi", (">", 0.1, "bullish"), ("<", -0.1, "bearish"), default="neutral"),
    _table("rvi_extreme", (">", 0.8, "overbought"), ("<", -0.8, "oversold"), default="neutral"),
    # Sign of a centred oscillator
    _table("sign", (">", 0, "bullish"), ("<", 0, "bearish"), default="neutral"),
    # Trend strength
    _table(
        "adx_strength",
        ("<", 20, "weak"), ("<", 25, "moderate"), ("<", 50, "strong"),
        default="very_strong",
    ),
    _table("aroon_oscillator", (">", 50, "bullish"), ("<", -50, "bearish"), default="neutral"),
    _table(
        "kama_efficiency", (">", 0.6, "trending"), ("<", 0.3, "ranging"),
        default="neutral",
    ),
    _table("market_regime", (">", 25, "trending"), ("<", 20, "choppy"), default="neutral"),
    _table(
        "vortex_strength", (">", 0.15, "strong"), (">", 0.08, "moderate"),
        default="weak",
    ),
    # Bollinger family
    _table(
        "percent_b_position",
        ("<", 0, "below_lower"), ("<", 0.2, "near_lower"), ("<", 0.8, "middle"),
        ("<", 1, "near_upper"),
        default="above_upper",
    ),
    _table("percent_b_signal", ("<", 0.1, "oversold"), (">", 0.9, "overbought"), default="neutral"),
    _table(
        "bb_squeeze",
        ("<", 0.02, "extreme"), ("<", 0.05, "tight"), (">", 0.15, "wide"),
        default="normal",
    ),
    # Volatility
    _table(
        "volatility_zone",
        ("<", 1.0, "LOW"), ("<", 2.5, "NORMAL"), ("<", 4.0, "HIGH"),
        default="EXTREME",
    ),
    _table(
        "historical_volatility",
        ("<", 15, "low"), ("<", 25, "normal"), ("<", 40, "high"),
        default="extreme",
    ),
    _table("std_dev_volatility", ("<", 0.02, "low"), (">", 0.05, "high"), default="normal"),
    _table(
        "ulcer_risk", (">", 20, "extreme"), (">", 15, "high"), (">", 10, "moderate"),
        default="low",
    ),
    _table(
        "ulcer_stress", (">", 25, "crisis"), (">", 18, "high"), (">", 12, "moderate"),
        default="low",
    ),
    _table(
        "chaikin_volatility_trend", (">", 5, "increasing"), ("<", -5, "decreasing"),
        default="stable",
    ),
    _table(
        "chaikin_volatility_phase", (">", 10, "expansion"), ("<", -10, "contraction"),
        default="stable",
    ),
    _table(
        "mass_index_reversal", (">", 27, "high"), (">", 26.5, "moderate"),
        default="low",
    ),
    _table(
        "mass_index_trend", (">", 26.5, "rising"), ("<", 26.0, "falling"),
        default="stable",
    ),
    # Volume
    _table("cmf", (">", 0.1, "accumulation"), ("<", -0.1, "distribution"), default="neutral"),
    _table(
        "force_index_strength", (">", 1_000_000, "strong"), (">", 100_000, "moderate"),
        default="weak", use_abs=True,
    ),
    _table(
        "volume_oscillator_trend", (">", 2, "increasing"), ("<", -2, "decreasing"),
        default="stable",
    ),
    _table(
        "volume_oscillator_momentum", (">", 15, "strong"), (">", 5, "moderate"),
        default="weak", use_abs=True,
    ),
    _table(
        "volume_roc_trend", (">", 10, "increasing"), ("<", -10, "decreasing"),
        default="stable",
    ),
    _table(
        "volume_roc_momentum", (">", 100, "strong"), (">", 25, "moderate"),
        default="weak", use_abs=True,
    ),
    _table("emv", (">", 0.001, "bullish"), ("<", -0.001, "bearish"), default="neutral"),
    _table("pvi_slope", (">", 1, "bullish"), ("<", -1, "bearish"), default="neutral"),
    _table(
        "vzo_trend", (">", 15, "accumulation"), ("<", -15, "distribution"), default="neutral",
    ),
    _table("vzo_condition", (">", 20, "bullish"), ("<", -20, "bearish"), default="sideways"),
    # Price action
    _table("bop", (">", 0.2, "bullish"), ("<", -0.2, "bearish"), default="neutral"),
    _table(
        "bull_bear_pressure",
        (">", 2, "strong_buying"), (">", 1, "buying"),
        ("<", -2, "strong_selling"), ("<", -1, "selling"),
        default="balanced",
    ),
    _table(
        "linear_regression_trend", (">", 0.001, "bullish"), ("<", -0.001, "bearish"),
        default="neutral",
    ),
    # Statistics
    _table(
        "correlation_strength",
        (">=", 0.8, "very_strong"), (">=", 0.6, "strong"), (">=", 0.3, "moderate"),
        (">=", 0.1, "weak"),
        default="very_weak", use_abs=True,
    ),
    _table(
        "correlation_direction", (">", 0.1, "positive"), ("<", -0.1, "negative"),
        default="none",
    ),
    _table(
        "r_squared_strength",
        (">=", 0.8, "very_strong"), (">=", 0.6, "strong"), (">=", 0.4, "moderate"),
        (">=", 0.2, "weak"),
        default="very_weak",
    ),
    _table(
        "f_significance",
        (">", 10.0, "highly_significant"), (">", 4.0, "significant"),
        (">", 2.0, "marginally_significant"),
        default="not_significant",
    ),
    # Breadth
    _table(
        "breadth_strength",
        (">=", 0.4, "very_strong"), (">=", 0.3, "strong"), (">=", 0.2, "moderate"),
        (">=", 0.1, "weak"),
        default="very_weak", use_abs=True,
    ),
    _table(
        "mcclellan_trend",
        (">", 70, "overbought"), (">", 0, "bullish"), (">", -70, "neutral"),
        default="oversold",
    ),
    _table(
        "mcclellan_breadth",
        (">", 100, "extremely_bullish"), (">", 20, "bullish"), (">", -20, "neutral"),
        (">", -100, "bearish"),
        default="extremely_bearish",
    ),
    _table(
        "trin_condition",
        ("<", 0.5, "extremely_bullish"), ("<", 0.8, "bullish"), ("<=", 1.2, "neutral"),
        ("<=", 1.5, "bearish"),
        default="extremely_bearish",
    ),
    _table(
        "trin_sentiment",
        ("<", 0.4, "euphoria"), ("<", 0.7, "optimism"), ("<=", 1.3, "neutral"),
        ("<=", 1.6, "pessimism"),
        default="panic",
    ),
    # Derivatives positioning
    _table(
        "funding_level", (">", 0.001, "extreme_high"), ("<", -0.001, "extreme_low"),
        default="normal",
    ),
    _table(
        "long_short_sentiment",
        (">", 70, "extreme_long"), (">", 55, "moderate_long"),
        ("<", 30, "extreme_short"), ("<", 45, "moderate_short"),
        default="balanced",
    ),
    _table("long_short_side", (">", 55, "long"), ("<", 45, "short"), default="balanced"),
    _table(
        "long_short_extreme", (">", 70, "extreme_long"), ("<", 30, "extreme_short"),
        default="normal",
    ),
    _table(
        "open_interest_trend", (">", 2, "rising"), ("<", -2, "falling"), default="neutral",
    ),
    _table(
        "open_interest_concentration", (">", 0.7, "high"), (">", 0.5, "medium"),
        default="low",
    ),
    _table(
        "premium_level", (">", 0.0005, "high"), ("<", -0.0005, "low"), default="normal",
    ),
    _table("premium_deviation", (">", 1, "bullish"), ("<", -1, "bearish"), default="neutral"),
    _table(
        "liquidation_cascade", (">", 0.05, "high"), (">", 0.02, "medium"), default="low",
    ),
]

TABLES: dict[str, ThresholdTable] = {table.name: table for table in _TABLE_LIST}

# Scalar thresholds used in comparisons that are not a single-value lookup
THRESHOLDS: dict[str, float] = {
    "alligator_sleep_band": 0.001,  # lines within 0.1% of their mean
    "position_tolerance": 0.0001,  # price vs average "equal" band
    "bbw_expanding": 1.1,
    "bbw_contracting": 0.9,
    "bop_dominance": 1.2,
    "bull_bear_dominance": 0.7,
    "bull_bear_signal_strength": 20,
    "bull_bear_volume_confirm": 0.9,
    "cog_band": 0.02,
    "keltner_atr_change": 0.05,
    "funding_extreme": 0.001,
    "funding_mean_reversion_rate": 0.0005,
    "funding_mean_reversion_strength": 0.5,
    "funding_squeeze_rate": 0.0003,
    "funding_squeeze_band": 0.3,  # |current - 24h| vs |7d|
    "funding_trend_rising": 1.05,
    "funding_trend_falling": 0.95,
    "funding_divergence_signal": 0.3,
    "funding_reversal_deviation": 0.5,  # |current - 7d| vs |7d|
    "contrarian_long_pct": 70,
    "contrarian_short_pct": 30,
    "contrarian_span": 20,
    "retail_pro_divergence": 0.1,
    "retail_pro_agreement": 0.05,
    "open_interest_span": 10,  # % change that scores 1.0
    "open_interest_momentum_span": 100,
    "open_interest_breakout": 50,
    "open_interest_divergence": 3,
    "open_interest_price_move": 0,
    "open_interest_volume_move": 10,
    "open_interest_correlation_signal": 0.3,
    "premium_arbitrage": 0.002,
    "premium_mean_reversion_strength": 0.5,
    "premium_mean_reversion_rate": 0.0005,
    "premium_reversion_high": 1.2,
    "premium_reversion_low": 0.8,
    "liquidation_grab_distance_pct": 2,
    "liquidation_grab_size": 0.05,  # share of 24h liquidations
    "liquidation_grab_band": 0.005,
    "liquidation_hunt_distance_pct": 5,
    "liquidation_hunt_size": 0.03,
    "liquidation_cascade_distance_pct": 3,
    "liquidation_oi_multiple": 20,  # open interest per unit of 24h liquidations
    "liquidation_safe_distance_pct": 10,
    "liquidation_safe_min_distance_pct": 3,
    "liquidation_safe_band": 0.01,
    "vzo_extreme": 60,
    "vzo_zone": 40,
    "vzo_strength_scale": 1.5,
    "fibonacci_near_level_pct": 1.0,
    "gator_expanding": 1.05,
    "gator_contracting": 0.95,
    "market_regime_atr_high": 1.5,
    "market_regime_atr_low": 0.5,
    "market_regime_atr_pct_high": 3.0,
    "market_regime_atr_pct_low": 1.0,
    "market_regime_trending_bonus": 30,
    "mcclellan_extreme": 70,
    "trin_buy": 0.8,
    "trin_sell": 1.2,
    "trin_overbought": 0.5,
    "trin_oversold": 1.5,
    "vwma_tolerance": 0.0001,
    "zigzag_deviation_pct": 5.0,
    "schaff_oversold": 25,
    "schaff_overbought": 75,
    "kama_band": 0.001,
    "mcginley_k_min": 0.1,
    "mcginley_k_max": 0.9,
    "rainbow_strong_up": 1.02,
    "rainbow_strong_down": 0.98,
    "rainbow_compression": 0.01,
    "price_channel_upper_third": 0.67,
    "price_channel_lower_third": 0.33,
    "price_channel_breakout": 0.001,
    "chaikin_volatility_breakout": 15,
    "chaikin_volatility_extended": 30,
    "pvi_signal_strength": 20,
    "anchored_vwap_at_vwap": 0.001,
    "anchored_vwap_signal_pct": 0.5,
    "institutional_volume_multiple": 10,
    "volume_profile_poc_band": 0.001,
    "volume_node_high": 2.0,
    "volume_node_low": 0.5,
    "doji_body_ratio": 0.1,
    "doji_shadow_ratio": 0.3,
    "hammer_body_ratio": 0.3,
    "hammer_shadow_multiple": 2.0,  # long shadow vs body
    "hammer_opposite_shadow_ratio": 0.5,  # short shadow vs body
    "engulfing_body_ratio": 1.1,
}


def get_table(name: str) -> ThresholdTable:
    if name not in TABLES:
        raise KeyError(f"Unknown threshold table '{name}'")
    return TABLES[name]


def classify(name: str, value: Optional[float]) -> Optional[str]:
    """Classify a value with the named table (None stays None)."""
    return get_table(name).classify(value)


def threshold(name: str) -> float:
    return THRESHOLDS[name]


# =============================================================================
# COMPOSITE CLASSIFICATIONS
# =============================================================================


def direction_from_difference(
    positive: Optional[float], negative: Optional[float]
) -> Optional[str]:
    """bullish/bearish/neutral from two opposing readings (e.g. +DI vs -DI)."""
    if positive is None or negative is None:
        return None
    if positive > negative:
        return "bullish"
    if negative > positive:
        return "bearish"
    return "neutral"


def classify_adx(
    adx: Optional[float], plus_di: Optional[float], minus_di: Optional[float]
) -> dict[str, Optional[str]]:
    """Trend direction from the DI pair, strength from the ADX level."""
    return {
        "trend": direction_from_difference(plus_di, minus_di),
        "strength": classify("adx_strength", adx),
    }


def classify_position(
    price: float, reference: float, tolerance: Optional[float] = None
) -> str:
    """above / below / equal relative to a reference, with a relative tolerance band."""
    band = THRESHOLDS["position_tolerance"] if tolerance is None else tolerance
    if price > reference * (1 + band):
        return "above"
    if price < reference * (1 - band):
        return "below"
    return "equal"


def signal_from_trend(trend: Optional[str]) -> Optional[str]:
    """Map bullish/bearish to buy/sell."""
    if trend is None:
        return None
    signals = {
        TrendDirection.BULLISH.value: SignalType.BUY.value,
        TrendDirection.BEARISH.value: SignalType.SELL.value,
    }
    return signals.get(trend, SignalType.NEUTRAL.value)


def change_direction(current: Optional[float], previous: Optional[float]) -> Optional[str]:
    """rising / falling / flat between two consecutive readings."""
    if current is None or previous is None:
        return None
    if current > previous:
        return "rising"
    if current < previous:
        return "falling"
    return "flat"


def zero_cross(previous: Optional[float], current: Optional[float]) -> str:
    """bullish when a centred oscillator crosses above zero, bearish below."""
    if previous is None or current is None:
        return "none"
    if previous <= 0 < current:
        return "bullish"
    if previous >= 0 > current:
        return "bearish"
    return "none"


def line_cross(
    previous_line: Optional[float],
    previous_signal: Optional[float],
    line: Optional[float],
    signal: Optional[float],
) -> str:
    """bullish when a line crosses above its signal line, bearish below."""
    if None in (previous_line, previous_signal, line, signal):
        return "none"
    if previous_line <= previous_signal and line > signal:
        return "bullish"
    if previous_line >= previous_signal and line < signal:
        return "bearish"
    return "none"
