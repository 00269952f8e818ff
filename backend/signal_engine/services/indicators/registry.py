"""
Indicator Registry

Every derived indicator the aggregator runs, as (name, function, inputs,
default parameters). Adding or removing an indicator is an edit to
``REGISTRY``; the aggregator itself is a fold over this table.

``evaluate`` is the failure boundary: whatever an indicator function does,
the caller gets back an IndicatorResult.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from signal_engine.services.base import FailureKind
from signal_engine.services.indicators import (
    analysis,
    bill_williams,
    breadth,
    derivatives,
    levels,
    momentum,
    moving_averages,
    statistics,
    trend,
    volatility,
    volume,
)
from signal_engine.services.indicators.result import (
    IndicatorResult,
    find_non_finite,
    to_builtin,
)

logger = logging.getLogger(__name__)

# Inputs the function receives positionally, in this order
SERIES_INPUTS = ("open", "high", "low", "close", "volume")
MARKET_INPUTS = ("breadth", "funding", "long_short", "open_interest", "premium", "liquidation")
VALID_INPUTS = SERIES_INPUTS + ("price",) + MARKET_INPUTS


@dataclass(frozen=True)
class IndicatorDefinition:
    """One registered indicator."""

    name: str
    func: Callable[..., Any]
    inputs: tuple[str, ...]
    category: str
    params: dict[str, Any] = field(default_factory=dict)
    core: bool = False
    takes_resolver: bool = field(init=False, default=False)

    def __post_init__(self):
        unknown = [key for key in self.inputs if key not in VALID_INPUTS]
        if unknown:
            raise ValueError(f"{self.name}: unknown inputs {unknown}")
        # Adaptive functions accept the aggregation's resolver as a keyword
        takes_resolver = "resolver" in inspect.signature(self.func).parameters
        object.__setattr__(self, "takes_resolver", takes_resolver)


def _define(name, func, inputs, category, core=False, **params) -> IndicatorDefinition:
    return IndicatorDefinition(
        name=name,
        func=func,
        inputs=tuple(inputs.split()),
        category=category,
        params=params,
        core=core,
    )


# =============================================================================
# REGISTRY
# =============================================================================

REGISTRY: tuple[IndicatorDefinition, ...] = (
    # Moving averages
    _define("ema_8", moving_averages.ema_value, "close", "moving_average", period=8),
    _define(
        "ema_20", moving_averages.ema_value, "close", "moving_average",
        core=True, period=20, adaptive=True,
    ),
    _define("ema_50", moving_averages.ema_value, "close", "moving_average", period=50),
    _define("ema_200", moving_averages.ema_value, "close", "moving_average", period=200),
    _define("wma", moving_averages.wma_value, "close", "moving_average", period=14),
    _define("hma", moving_averages.hma, "close", "moving_average", period=16),
    _define("dema", moving_averages.dema, "close", "moving_average", period=20),
    _define("tema", moving_averages.tema, "close", "moving_average", period=20),
    _define("smma", moving_averages.smma_value, "close", "moving_average", period=14),
    _define(
        "kama", moving_averages.kama, "close price", "moving_average",
        efficiency_period=10, fast=2, slow=30,
    ),
    _define("vwma", moving_averages.vwma, "close volume price", "moving_average", period=20),
    _define(
        "mcginley_dynamic", moving_averages.mcginley_dynamic, "close price", "moving_average",
        period=20,
    ),
    _define(
        "rainbow_ma", moving_averages.rainbow_ma, "close price", "moving_average",
        periods=(2, 3, 4, 5, 6, 7, 8, 9),
    ),
    _define(
        "ma_envelope", moving_averages.ma_envelope, "close price", "moving_average",
        period=20, percent=2.5,
    ),
    # Momentum
    _define("rsi_14", momentum.rsi, "close", "momentum", core=True, period=14, adaptive=True),
    _define("rsi_7", momentum.rsi, "close", "momentum", period=7),
    _define(
        "macd", momentum.macd, "close", "momentum",
        core=True, fast=12, slow=26, signal=9, adaptive=True,
    ),
    _define("stochastic", momentum.stochastic, "high low close", "momentum", k_period=14, d_period=3),
    _define(
        "stoch_rsi", momentum.stoch_rsi, "close", "momentum",
        rsi_period=14, stoch_period=14, k_smooth=3, d_smooth=3,
    ),
    _define("cci", momentum.cci, "high low close", "momentum", period=20),
    _define("williams_r", momentum.williams_r, "high low close", "momentum", period=14),
    _define("momentum", momentum.momentum, "close", "momentum", period=14),
    _define("roc", momentum.roc, "close", "momentum", period=14),
    _define("awesome_oscillator", momentum.awesome_oscillator, "high low", "momentum", fast=5, slow=34),
    _define(
        "accelerator_oscillator", momentum.accelerator_oscillator, "high low", "momentum",
        fast=5, slow=34, signal=5,
    ),
    _define("ppo", momentum.ppo, "close", "momentum", fast=12, slow=26, signal=9),
    _define("trix", momentum.trix, "close", "momentum", period=15, signal=9),
    _define(
        "ultimate_oscillator", momentum.ultimate_oscillator, "high low close", "momentum",
        short=7, medium=14, long=28,
    ),
    _define(
        "kst", momentum.kst, "close", "momentum",
        roc_periods=(10, 15, 20, 30), sma_periods=(10, 10, 10, 15), signal=9,
    ),
    _define(
        "coppock_curve", momentum.coppock_curve, "close", "momentum",
        long_roc=14, short_roc=11, wma_period=10,
    ),
    _define("fisher_transform", momentum.fisher_transform, "high low", "momentum", period=10, trigger=5),
    _define(
        "relative_vigor_index", momentum.relative_vigor_index, "open high low close", "momentum",
        period=10, signal=4,
    ),
    _define("chande_momentum", momentum.chande_momentum, "close", "momentum", period=14),
    _define(
        "true_strength_index", momentum.true_strength_index, "close", "momentum",
        long=25, short=13, signal=7,
    ),
    _define(
        "schaff_trend_cycle", momentum.schaff_trend_cycle, "close", "momentum",
        fast=23, slow=50, cycle=10, factor=0.5,
    ),
    # Trend
    _define("adx", trend.adx, "high low close", "trend", core=True, period=14, adaptive=True),
    _define(
        "parabolic_sar", trend.parabolic_sar, "high low close price", "trend",
        af_start=0.02, af_increment=0.02, af_max=0.2,
    ),
    _define("aroon", trend.aroon, "high low", "trend", period=14),
    _define("supertrend", trend.supertrend, "high low close", "trend", atr_period=10, multiplier=3.0),
    _define("vortex", trend.vortex, "high low close", "trend", period=14),
    _define(
        "ichimoku", trend.ichimoku, "high low close price", "trend",
        tenkan=9, kijun=26, senkou_b=52,
    ),
    _define("linear_regression", trend.linear_regression, "close price", "trend", period=20),
    _define("trend_detection", trend.trend_detection, "close price", "trend"),
    _define("market_structure", trend.market_structure, "high low", "trend", period=20),
    # Volatility
    _define(
        "atr", volatility.atr, "high low close price", "volatility",
        core=True, period=14, adaptive=True,
    ),
    _define(
        "bollinger_bands", volatility.bollinger_bands, "close price", "volatility",
        core=True, period=20, std_mult=2.0, adaptive=True,
    ),
    _define("bb_percent_b", volatility.bb_percent_b, "close price", "volatility", period=20, std_mult=2.0),
    _define("bb_width", volatility.bb_width, "close", "volatility", period=20, std_mult=2.0),
    _define(
        "keltner_channels", volatility.keltner_channels, "high low close price", "volatility",
        ema_period=20, atr_period=10, multiplier=2.0,
    ),
    _define(
        "donchian_channels", volatility.donchian_channels, "high low price", "volatility",
        period=20,
    ),
    _define("std_dev", volatility.std_dev, "close", "volatility", period=20),
    _define(
        "historical_volatility", volatility.historical_volatility, "close", "volatility",
        period=20, annualization=365,
    ),
    _define(
        "chaikin_volatility", volatility.chaikin_volatility, "high low", "volatility",
        ema_period=10, roc_period=10,
    ),
    _define("mass_index", volatility.mass_index, "high low", "volatility", ema_period=9, sum_period=25),
    _define("ulcer_index", volatility.ulcer_index, "close", "volatility", period=14),
    _define("price_channel", volatility.price_channel, "high low price", "volatility", period=20),
    # Volume
    _define("obv", volume.obv, "close volume", "volume"),
    _define("vwap", volume.vwap, "high low close volume price", "volume"),
    _define(
        "anchored_vwap", volume.anchored_vwap, "high low close volume price", "volume",
        anchor_fraction=0.7, band_std=1.0,
    ),
    _define(
        "chaikin_money_flow", volume.chaikin_money_flow, "high low close volume", "volume",
        period=21,
    ),
    _define("mfi", volume.mfi, "high low close volume", "volume", period=14),
    _define("ad_line", volume.ad_line, "high low close volume", "volume"),
    _define(
        "chaikin_oscillator", volume.chaikin_oscillator, "high low close volume", "volume",
        fast=3, slow=10,
    ),
    _define("force_index", volume.force_index, "close volume", "volume", period=13),
    _define("ease_of_movement", volume.ease_of_movement, "high low volume", "volume", period=14),
    _define("price_volume_trend", volume.price_volume_trend, "close volume", "volume"),
    _define("volume_oscillator", volume.volume_oscillator, "volume", "volume", fast=14, slow=28),
    _define("volume_roc", volume.volume_roc, "volume", "volume", period=12),
    _define(
        "volume_zone_oscillator", volume.volume_zone_oscillator, "close volume", "volume",
        period=14,
    ),
    _define(
        "klinger_oscillator", volume.klinger_oscillator, "high low close volume", "volume",
        fast=34, slow=55, signal=13,
    ),
    _define(
        "volume_profile", volume.volume_profile, "high low close volume price", "volume",
        bins=20, value_area=0.7,
    ),
    _define(
        "positive_volume_index", volume.positive_volume_index, "close volume", "volume",
        initial=1000.0,
    ),
    # Bill Williams
    _define(
        "alligator", bill_williams.alligator, "high low price", "bill_williams",
        jaw=13, teeth=8, lips=5, jaw_shift=8, teeth_shift=5, lips_shift=3,
    ),
    _define(
        "gator_oscillator", bill_williams.gator_oscillator, "high low", "bill_williams",
        jaw=13, teeth=8, lips=5, jaw_shift=8, teeth_shift=5, lips_shift=3,
    ),
    _define("fractals", bill_williams.fractals, "high low price", "bill_williams", span=2),
    # Levels
    _define("support_resistance", levels.support_resistance, "high low price", "levels", lookback=20),
    _define("fibonacci", levels.fibonacci, "high low close price", "levels", lookback=50),
    _define(
        "pivot_points", levels.pivot_points, "high low close price", "levels",
        pivot_type="standard",
    ),
    _define("zigzag", levels.zigzag, "close", "levels", deviation_pct=5.0),
    # Statistics / price action
    _define(
        "balance_of_power", statistics.balance_of_power, "open high low close", "price_action",
        period=14,
    ),
    _define(
        "bull_bear_power", statistics.bull_bear_power, "high low close volume", "price_action",
        period=13,
    ),
    _define("elder_ray", statistics.elder_ray, "high low close", "price_action", period=13),
    _define(
        "center_of_gravity", statistics.center_of_gravity, "close price", "price_action",
        period=10,
    ),
    _define("detrended_price", statistics.detrended_price, "close", "price_action", period=20),
    _define("correlation", statistics.correlation, "close volume", "statistics", period=20),
    _define("r_squared", statistics.r_squared, "close", "statistics", period=20),
    _define("rsi_divergence", analysis.rsi_divergence, "close", "analysis", period=14, lookback=20),
    _define(
        "macd_divergence", analysis.macd_divergence, "close", "analysis",
        fast=12, slow=26, signal=9, lookback=20,
    ),
    _define(
        "candlestick_patterns", analysis.candlestick_patterns, "open high low close", "analysis",
        lookback=5,
    ),
    _define(
        "market_regime", analysis.market_regime, "high low close price", "analysis",
        period=14, lookback=20,
    ),
    # Breadth
    _define("advance_decline", breadth.advance_decline, "breadth close", "breadth"),
    _define("mcclellan", breadth.mcclellan, "breadth", "breadth", fast=19, slow=39),
    _define("arms_index", breadth.arms_index, "breadth", "breadth"),
    # Derivatives
    _define("funding_rate", derivatives.funding_rate, "funding", "derivatives"),
    _define("long_short_ratio", derivatives.long_short_ratio, "long_short", "derivatives"),
    _define(
        "open_interest", derivatives.open_interest, "close volume open_interest", "derivatives",
        lookback=24,
    ),
    _define("spot_futures_divergence", derivatives.spot_futures_divergence, "premium", "derivatives"),
    _define("liquidation", derivatives.liquidation, "price liquidation", "derivatives"),
)

_BY_NAME = {definition.name: definition for definition in REGISTRY}

CORE_INDICATORS: tuple[str, ...] = tuple(d.name for d in REGISTRY if d.core)


def get_definition(name: str) -> IndicatorDefinition:
    if name not in _BY_NAME:
        raise KeyError(f"Unknown indicator '{name}'")
    return _BY_NAME[name]


# =============================================================================
# FAILURE BOUNDARY
# =============================================================================


def evaluate(
    definition: IndicatorDefinition,
    context: dict[str, Any],
    overrides: Optional[dict[str, Any]] = None,
) -> IndicatorResult:
    """
    Run one indicator against an input context and wrap the outcome.

    - None from the function, or a missing market-wide input: INSUFFICIENT_DATA
    - Any exception, or a NaN/Infinity anywhere in the value: COMPUTATION_FAILURE

    Guarded degenerate inputs never reach this boundary; the function itself
    returns its documented neutral fallback.
    """
    name = definition.name

    missing = [key for key in definition.inputs if key in MARKET_INPUTS and context.get(key) is None]
    if missing:
        logger.debug(f"{name} skipped: no {missing[0]} input")
        return IndicatorResult.failure(
            name, FailureKind.INSUFFICIENT_DATA, f"no {missing[0]} input supplied"
        )

    params = {**definition.params, **(overrides or {})}
    if definition.takes_resolver and context.get("resolver") is not None:
        params["resolver"] = context["resolver"]
    args = [context[key] for key in definition.inputs]

    try:
        value = definition.func(*args, **params)
    except Exception as e:
        logger.warning(f"{name} failed: {e}")
        return IndicatorResult.failure(
            name, FailureKind.COMPUTATION_FAILURE, f"{type(e).__name__}: {e}"
        )

    if value is None:
        logger.debug(f"{name} absent: insufficient data")
        return IndicatorResult.failure(
            name, FailureKind.INSUFFICIENT_DATA, "not enough candles"
        )

    value = to_builtin(value)
    bad_path = find_non_finite(value)
    if bad_path is not None:
        logger.warning(f"{name} failed: non-finite value at {bad_path}")
        return IndicatorResult.failure(
            name, FailureKind.COMPUTATION_FAILURE, f"non-finite value at {bad_path}"
        )

    return IndicatorResult.success(name, value)
