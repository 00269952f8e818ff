"""
CONTRACT 2: Indicator Engine

Input: SymbolSeries (see schemas.market)
Output: AggregationResult

The snapshot maps every registered indicator name to its value. A value is a
number, a small record, or None when the indicator could not be computed;
the reason for every None is listed in the diagnostics.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator

from signal_engine.schemas.market import SymbolSeries


# =============================================================================
# ENUMS
# =============================================================================


class TrendDirection(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class SignalType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"


class VolatilityZone(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


# =============================================================================
# INPUT: AggregateRequest
# =============================================================================


class AggregateRequest(SymbolSeries):
    """
    Request for one aggregation.
    Sent by: API
    Received by: Indicator Service
    """

    overrides: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Per-indicator parameter overrides, e.g. {'rsi_14': {'period': 10}}",
    )


# =============================================================================
# OUTPUT: Diagnostics
# =============================================================================


class IndicatorFailure(BaseModel):
    """Why one indicator has no value."""

    name: str
    kind: str = Field(
        ..., description="insufficient_data / computation_failure / total_failure"
    )
    message: str


class Diagnostics(BaseModel):
    """Per-call record of indicator failures."""

    failures: list[IndicatorFailure] = []
    computed: int = Field(default=0, ge=0)
    absent: int = Field(default=0, ge=0, description="Insufficient data")
    failed: int = Field(default=0, ge=0, description="Unexpected computation failures")
    total_failure: bool = False


# =============================================================================
# OUTPUT: IndicatorSnapshot
# =============================================================================


class FrozenDict(dict):
    """Read-only dict; every mutating method raises TypeError."""

    def _read_only(self, *args, **kwargs):
        raise TypeError(f"{type(self).__name__} is read-only")

    __setitem__ = _read_only
    __delitem__ = _read_only
    __ior__ = _read_only
    clear = _read_only
    pop = _read_only
    popitem = _read_only
    setdefault = _read_only
    update = _read_only

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return (type(self), (dict(self),))


def deep_freeze(value: Any) -> Any:
    """Recursively turn dicts into FrozenDict and lists into tuples."""
    if isinstance(value, dict):
        return FrozenDict({key: deep_freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(deep_freeze(item) for item in value)
    return value


class IndicatorSnapshot(BaseModel):
    """
    Composite snapshot for one series evaluated at its last candle.
    Built once per aggregation and never modified afterwards: the model is
    frozen and the indicator mapping, including every nested record and
    list, is read-only.
    """

    price: float
    candles: int = Field(..., ge=0)
    price_change_24h: float = Field(..., description="% change over the lookback")
    volume_change: float = Field(..., description="% difference of last volume from lookback average")
    indicators: dict[str, Any]

    class Config:
        frozen = True

    @field_validator("indicators", mode="after")
    @classmethod
    def freeze_indicators(cls, v: dict[str, Any]) -> dict[str, Any]:
        return deep_freeze(v)

    def get(self, name: str, default: Any = None) -> Any:
        value = self.indicators.get(name)
        return default if value is None else value


class AggregationResult(BaseModel):
    """Snapshot (None on total failure) plus diagnostics."""

    symbol: Optional[str] = None
    snapshot: Optional[IndicatorSnapshot] = None
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


# =============================================================================
# OUTPUT: Registry listing
# =============================================================================


class RegistryEntry(BaseModel):
    """Public description of one registered indicator."""

    name: str
    category: str
    inputs: list[str]
    params: dict[str, Any]
    core: bool = False
