"""
Derivatives Positioning

Funding-rate, long/short-ratio, open-interest, spot-futures premium and
liquidation reads for perpetual futures. Each needs its explicit input;
missing inputs yield None, and a sub-read whose optional field is missing is
None rather than estimated.
"""

from typing import Optional

from signal_engine.schemas.market import (
    FundingData,
    LiquidationCluster,
    LiquidationData,
    LongShortData,
    OpenInterestData,
    PremiumData,
)
from signal_engine.services.indicators.classifier import classify, threshold
from signal_engine.services.indicators.primitives import (
    ArrayLike,
    last_vs_average,
    lookback_change,
    safe_div,
)

# Smallest reference rate used when scaling a change by a historical rate
MIN_REFERENCE_RATE = 0.0001


def _relative_change(current: float, reference: float) -> float:
    return abs(current - reference) / max(MIN_REFERENCE_RATE, abs(reference))


def _clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# =============================================================================
# FUNDING RATE
# =============================================================================


def _funding_momentum(funding: FundingData) -> Optional[dict]:
    if funding.rate_24h is None or funding.rate_7d is None:
        return None

    short = min(1.0, _relative_change(funding.current, funding.rate_24h) * 10)
    medium = min(1.0, _relative_change(funding.rate_24h, funding.rate_7d) * 5)
    long = min(1.0, _relative_change(funding.current, funding.rate_7d) * 3)

    trend = "neutral"
    if funding.current > funding.rate_24h * threshold("funding_trend_rising"):
        trend = "rising"
    elif funding.current < funding.rate_24h * threshold("funding_trend_falling"):
        trend = "falling"

    return {
        "short": short,
        "medium": medium,
        "long": long,
        "overall": short * 0.5 + medium * 0.3 + long * 0.2,
        "trend": trend,
    }


def _funding_divergence(funding: FundingData) -> Optional[dict]:
    if funding.rate_24h is None:
        return None

    # Funding change in basis points against percentage moves
    change = (funding.current - funding.rate_24h) * 10000
    vs_oi = 0.0
    if funding.open_interest_change:
        vs_oi = _clamp((change - funding.open_interest_change) / 10)
    vs_price = 0.0
    if funding.price_change:
        vs_price = _clamp((change - funding.price_change) / 10)

    limit = threshold("funding_divergence_signal")
    signal = "neutral"
    if vs_oi < -limit or vs_price < -limit:
        signal = "bearish"
    elif vs_oi > limit or vs_price > limit:
        signal = "bullish"

    return {"vs_open_interest": vs_oi, "vs_price": vs_price, "signal": signal}


def funding_rate(funding: Optional[FundingData]) -> Optional[dict]:
    """
    Funding-rate extremity, momentum, divergence, mean reversion and squeeze.

    Extreme funding (beyond +-0.1%) flags a contrarian reversal when it also
    strays from the 7-day average by more than half that average.
    """
    if funding is None:
        return None

    current = funding.current
    level = classify("funding_level", current)
    extreme = abs(current) > threshold("funding_extreme")

    reversal = None
    mean_reversion = None
    squeeze = None
    if funding.rate_7d is not None:
        deviation = abs(current - funding.rate_7d)
        reversal = extreme and deviation > abs(funding.rate_7d) * threshold(
            "funding_reversal_deviation"
        )

        strength = min(1.0, _relative_change(current, funding.rate_7d))
        active = (
            strength > threshold("funding_mean_reversion_strength")
            and abs(current) > threshold("funding_mean_reversion_rate")
        )
        direction = "neutral"
        if active and level == "extreme_high":
            direction = "short"
        elif active and level == "extreme_low":
            direction = "long"
        mean_reversion = {"signal": active, "strength": strength, "direction": direction}

        if funding.rate_24h is not None:
            squeezed = abs(current - funding.rate_24h) < abs(funding.rate_7d) * threshold(
                "funding_squeeze_band"
            )
            phase = "none"
            if squeezed and current < -threshold("funding_squeeze_rate"):
                phase = "accumulation"
            elif squeezed and current > threshold("funding_squeeze_rate"):
                phase = "distribution"
            squeeze = {"detected": squeezed, "phase": phase}

    signal = "neutral"
    if reversal:
        signal = "sell" if level == "extreme_high" else "buy"

    return {
        "current": current,
        "current_pct": current * 100,
        "level": level,
        "extreme": extreme,
        "reversal_signal": reversal,
        "momentum": _funding_momentum(funding),
        "divergence": _funding_divergence(funding),
        "mean_reversion": mean_reversion,
        "squeeze": squeeze,
        "signal": signal,
    }


# =============================================================================
# LONG/SHORT RATIO
# =============================================================================


def long_short_ratio(long_short: Optional[LongShortData]) -> Optional[dict]:
    """
    Long/short positioning with contrarian and retail-vs-pro reads.

    The contrarian read fades crowded retail positioning (beyond 70/30) and
    falls back to the overall long share when no retail split is given.
    """
    if long_short is None:
        return None

    long_pct = long_short.long_pct
    retail = long_short.retail_long_pct
    pro = long_short.pro_long_pct
    crowd = long_pct if retail is None else retail

    contrarian_direction, contrarian_strength = "neutral", 0.0
    span = threshold("contrarian_span")
    if crowd > threshold("contrarian_long_pct"):
        contrarian_direction = "short"
        contrarian_strength = min(1.0, (crowd - threshold("contrarian_long_pct")) / span)
    elif crowd < threshold("contrarian_short_pct"):
        contrarian_direction = "long"
        contrarian_strength = min(1.0, (threshold("contrarian_short_pct") - crowd) / span)

    divergence = None
    if retail is not None and pro is not None:
        spread = _clamp((retail - pro) / 100)
        if abs(spread) > threshold("retail_pro_divergence"):
            follow = "fade_retail"
        elif abs(spread) < threshold("retail_pro_agreement"):
            follow = "follow_pro"
        else:
            follow = "neutral"
        divergence = {"retail_vs_pro": spread, "signal": follow}

    extreme = classify("long_short_extreme", long_pct)
    return {
        "long_pct": long_pct,
        "short_pct": 100 - long_pct,
        "ratio": long_pct / (100 - long_pct) if long_pct < 100 else None,
        "sentiment": classify("long_short_sentiment", long_pct),
        "retail": classify("long_short_side", retail),
        "pro": classify("long_short_side", pro),
        "extreme": extreme,
        "reversal_signal": extreme != "normal",
        "contrarian": {
            "signal": contrarian_direction != "neutral",
            "direction": contrarian_direction,
            "strength": contrarian_strength,
        },
        "divergence": divergence,
    }


# =============================================================================
# OPEN INTEREST
# =============================================================================


def _open_interest_divergence(oi_change: float, other_change: float, key: str) -> dict:
    """Bearish when open interest falls against a rising measure, bullish the reverse."""
    limit = threshold("open_interest_divergence")
    other_limit = threshold(key)
    detected, kind = False, "none"
    if oi_change < -limit and other_change > other_limit:
        detected, kind = True, "bearish"
    elif oi_change > limit and other_change < -other_limit:
        detected, kind = True, "bullish"
    strength = min(1.0, abs(oi_change) / threshold("open_interest_span")) if detected else 0.0
    return {"detected": detected, "type": kind, "strength": strength}


def open_interest(
    closes: ArrayLike,
    volumes: ArrayLike,
    data: Optional[OpenInterestData],
    lookback: int = 24,
) -> Optional[dict]:
    """
    Open interest trend, divergence against price and volume, momentum,
    concentration and volume correlation.

    Price and volume changes are measured over the last ``lookback`` candles:
    rising price on falling open interest is a bearish divergence, falling
    price on rising open interest a bullish one. Rising open interest on
    falling volume reads as quiet accumulation.
    """
    if data is None:
        return None

    change = data.change_24h
    price_change = lookback_change(closes, lookback)
    volume_change = last_vs_average(volumes, lookback)
    span = threshold("open_interest_span")

    momentum = None
    if data.momentum is not None:
        momentum = {
            "score": min(1.0, abs(data.momentum) / threshold("open_interest_momentum_span")),
            "breakout": abs(data.momentum) > threshold("open_interest_breakout"),
        }

    concentration = None
    if data.concentration is not None:
        concentration = {
            "level": data.concentration,
            "risk": classify("open_interest_concentration", data.concentration),
        }

    correlation = 0.0
    if change != 0 and volume_change != 0:
        magnitude = min(1.0, (abs(change / span) + abs(volume_change / 100)) / 2)
        correlation = magnitude if (change > 0) == (volume_change > 0) else -magnitude
    limit = threshold("open_interest_correlation_signal")
    correlation_signal = "neutral"
    if correlation > limit and change > 0:
        correlation_signal = "bullish"
    elif correlation < -limit and change < 0:
        correlation_signal = "bearish"

    return {
        "change_24h": change,
        "price_change": price_change,
        "volume_change": volume_change,
        "trend": classify("open_interest_trend", change),
        "strength": min(1.0, abs(change) / span),
        "divergence": {
            "vs_price": _open_interest_divergence(
                change, price_change, "open_interest_price_move"
            ),
            "vs_volume": _open_interest_divergence(
                change, volume_change, "open_interest_volume_move"
            ),
        },
        "momentum": momentum,
        "concentration": concentration,
        "correlation": {"vs_volume": correlation, "signal": correlation_signal},
    }


# =============================================================================
# SPOT-FUTURES PREMIUM
# =============================================================================


def spot_futures_divergence(data: Optional[PremiumData]) -> Optional[dict]:
    """
    Futures premium level, convergence arbitrage, mean reversion toward the
    7-day average and deviation from the premium's own average.

    A premium beyond +-0.2% flags a convergence trade whose expected profit is
    the excess over that band.
    """
    if data is None:
        return None

    premium = data.premium
    band = threshold("premium_arbitrage")
    arbitrage = {"opportunity": False, "type": "none", "profit": 0.0}
    if premium > band:
        arbitrage = {
            "opportunity": True,
            "type": "long_spot_short_futures",
            "profit": premium - band,
        }
    elif premium < -band:
        arbitrage = {
            "opportunity": True,
            "type": "short_spot_long_futures",
            "profit": abs(premium) - band,
        }

    mean_reversion = None
    if data.premium_7d is not None:
        average = data.premium_7d
        strength = 0.0
        if average != 0:
            strength = min(1.0, _relative_change(premium, average))
        active = (
            strength > threshold("premium_mean_reversion_strength")
            and abs(premium) > threshold("premium_mean_reversion_rate")
        )
        direction = "neutral"
        if active and premium > average * threshold("premium_reversion_high"):
            direction = "short"
        elif active and premium < average * threshold("premium_reversion_low"):
            direction = "long"
        mean_reversion = {"signal": active, "direction": direction, "strength": strength}

    divergence = None
    if data.deviation is not None:
        divergence = {
            "from_average": data.deviation,
            "signal": classify("premium_deviation", data.deviation),
        }

    return {
        "premium": premium,
        "premium_pct": premium * 100,
        "level": classify("premium_level", premium),
        "trend": data.trend,
        "arbitrage": arbitrage,
        "mean_reversion": mean_reversion,
        "divergence": divergence,
    }


# =============================================================================
# LIQUIDATION LEVELS
# =============================================================================


def _distance_pct(price: float, current_price: float) -> float:
    return abs(price - current_price) / current_price * 100


def _nearest(clusters: list[LiquidationCluster], current_price: float) -> LiquidationCluster:
    return min(clusters, key=lambda cluster: _distance_pct(cluster.price, current_price))


def _zone(center: float, band: float) -> dict:
    return {"low": center * (1 - band), "high": center * (1 + band)}


def liquidation(current_price: float, data: Optional[LiquidationData]) -> Optional[dict]:
    """
    Liquidation clusters, liquidity-grab zone, stop-hunt target, cascade risk
    and safe entry zones around the current price.

    Cluster sizes are judged against the last 24h of liquidations; open
    interest is estimated as a fixed multiple of those liquidations.
    """
    if data is None:
        return None

    clusters = data.clusters
    recent = data.long_liquidations_24h + data.short_liquidations_24h

    nearest = _nearest(clusters, current_price) if clusters else None
    distance = _distance_pct(nearest.price, current_price) if nearest else None

    grab = {"detected": False, "zone": None, "side": "none"}
    for cluster in clusters:
        if (
            _distance_pct(cluster.price, current_price) < threshold("liquidation_grab_distance_pct")
            and cluster.size > recent * threshold("liquidation_grab_size")
        ):
            grab = {
                "detected": True,
                "zone": _zone(cluster.price, threshold("liquidation_grab_band")),
                "side": cluster.side,
            }
            break

    hunt = {"predicted": False, "target_price": None, "side": "none"}
    in_range = [
        cluster
        for cluster in clusters
        if _distance_pct(cluster.price, current_price) < threshold("liquidation_hunt_distance_pct")
    ]
    if in_range:
        largest = max(in_range, key=lambda cluster: cluster.size)
        if largest.size > recent * threshold("liquidation_hunt_size"):
            hunt = {"predicted": True, "target_price": largest.price, "side": largest.side}

    cascade = {"risk": "low", "trigger_price": None}
    nearby = [
        cluster
        for cluster in clusters
        if _distance_pct(cluster.price, current_price) < threshold("liquidation_cascade_distance_pct")
    ]
    if nearby:
        estimated_oi = recent * threshold("liquidation_oi_multiple")
        share = safe_div(sum(cluster.size for cluster in nearby), estimated_oi, float("inf"))
        risk = classify("liquidation_cascade", share)
        if risk != "low":
            cascade = {"risk": risk, "trigger_price": _nearest(nearby, current_price).price}

    span = threshold("liquidation_safe_distance_pct")
    clearance = data.nearest_distance_pct
    if clearance is None:
        clearance = span if distance is None else distance
    zones = [zone.model_dump() for zone in data.safe_entry_zones]
    if not zones and clearance > threshold("liquidation_safe_min_distance_pct"):
        zones = [_zone(current_price, threshold("liquidation_safe_band"))]

    return {
        "clusters": {
            "long": len([cluster for cluster in clusters if cluster.side == "long"]),
            "short": len([cluster for cluster in clusters if cluster.side == "short"]),
            "nearest": nearest.model_dump() if nearest else None,
            "distance_pct": distance,
        },
        "liquidity_grab": grab,
        "stop_hunt": hunt,
        "cascade": cascade,
        "safe_entry": {"zones": zones, "confidence": min(1.0, clearance / span)},
    }
