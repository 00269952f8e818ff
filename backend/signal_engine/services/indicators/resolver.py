"""
Adaptive Parameter Resolver

Shrinks an indicator's lookback periods when the series is shorter than the
indicator nominally needs:

    effective = max(floor, round(nominal * min(1, length / requirement)))

Every period-like parameter of an indicator is shrunk independently with the
same ratio. Below the family's absolute minimum length the indicator gets no
parameters at all and reports an absent value.

The floor table below together with Settings is the only place degradation
constants live.
"""

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Union

from signal_engine.core.config import Settings, get_settings

FloorSpec = Union[int, dict[str, int], None]


@dataclass(frozen=True)
class Floor:
    """Degradation limits for one indicator family."""

    min_length: int
    period_floor: FloorSpec = None  # int for all params, dict per param, None = default

    def floor_for(self, param: str, default: int) -> int:
        if isinstance(self.period_floor, dict):
            return self.period_floor.get(param, default)
        if self.period_floor is None:
            return default
        return self.period_floor


def build_floor_table(settings: Settings) -> dict[str, Floor]:
    core = settings.min_candles
    shallow = settings.shallow_min_candles
    return {
        # Core indicators degrade down to the aggregator floor
        "rsi": Floor(core),
        "ema": Floor(core),
        "macd": Floor(core),
        "bollinger_bands": Floor(core),
        "atr": Floor(core),
        "adx": Floor(core),
        # Shallow degradation
        "awesome_oscillator": Floor(10),
        "accelerator_oscillator": Floor(10),
        "bb_percent_b": Floor(shallow),
        "chaikin_money_flow": Floor(shallow),
        "alligator": Floor(shallow),
        "gator_oscillator": Floor(shallow),
        "ichimoku": Floor(shallow, {"tenkan": 3, "kijun": 5, "senkou_b": 7}),
        "ultimate_oscillator": Floor(shallow, {"short": 3, "medium": 5, "long": 7}),
        "trix": Floor(shallow, 3),
        "vortex": Floor(shallow),
        "chande_momentum": Floor(shallow, 3),
        "donchian_channels": Floor(3),
        "chaikin_volatility": Floor(3),
        "mass_index": Floor(3, {"ema": 2, "sum": 3}),
    }


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ParameterResolver:
    """Shared degradation policy for all indicator families."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.floors = build_floor_table(self.settings)

    def floor(self, family: str) -> Floor:
        if family not in self.floors:
            raise KeyError(f"No degradation floor registered for '{family}'")
        return self.floors[family]

    def effective_period(
        self,
        nominal: int,
        series_length: int,
        requirement: int,
        floor: Optional[int] = None,
    ) -> int:
        """Shrink one period proportionally to the available history."""
        if nominal <= 0 or requirement <= 0:
            raise ValueError("Periods and requirements must be positive")
        floor = self.settings.period_floor if floor is None else floor
        ratio = min(1.0, series_length / requirement)
        effective = max(floor, round_half_up(nominal * ratio))
        return min(effective, max(series_length, 1))

    def resolve(
        self,
        family: str,
        series_length: int,
        periods: dict[str, int],
        requirement: int,
    ) -> Optional[dict[str, int]]:
        """
        Effective periods for a family, or None below its absolute floor.

        Args:
            family: Key of the floor table
            series_length: Number of candles available
            periods: Nominal period per parameter name
            requirement: Series length the nominal periods need
        """
        limits = self.floor(family)
        if series_length < limits.min_length:
            return None
        default_floor = self.settings.period_floor
        return {
            name: self.effective_period(
                nominal,
                series_length,
                requirement,
                limits.floor_for(name, default_floor),
            )
            for name, nominal in periods.items()
        }

    def resolve_period(
        self, family: str, series_length: int, period: int, requirement: int
    ) -> Optional[int]:
        resolved = self.resolve(family, series_length, {"period": period}, requirement)
        return None if resolved is None else resolved["period"]


@lru_cache()
def get_resolver() -> ParameterResolver:
    """Get cached resolver built from application settings."""
    return ParameterResolver()


def active_resolver(resolver: Optional[ParameterResolver] = None) -> ParameterResolver:
    """The injected resolver, else the one built from application settings."""
    return resolver if resolver is not None else get_resolver()
