"""
CONTRACT 1: Series Input

Input to the indicator engine: an ordered OHLCV series per symbol plus the
optional market-wide inputs (breadth, funding, long/short positioning, open
interest, spot-futures premium and liquidation levels) that a few indicator
families need. Nothing here is fetched by the engine itself; callers supply
it.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator


# =============================================================================
# CANDLES
# =============================================================================


class Candle(BaseModel):
    """Single OHLCV candle."""

    timestamp: int = Field(..., description="Candle open time (epoch ms or any increasing integer)")
    open: float = Field(..., ge=0)
    high: float = Field(..., ge=0)
    low: float = Field(..., ge=0)
    close: float = Field(..., ge=0)
    volume: float = Field(default=0.0, ge=0)

    @field_validator("high")
    @classmethod
    def high_must_be_above_low(cls, v, info):
        low = info.data.get("low", 0)
        if v < low:
            raise ValueError("high must be >= low")
        return v


# =============================================================================
# MARKET-WIDE INPUTS
# =============================================================================


class BreadthData(BaseModel):
    """
    Advance/decline history for the market the symbol trades in.
    Lists are parallel and oldest first.
    """

    advances: list[float] = Field(..., min_length=1)
    declines: list[float] = Field(..., min_length=1)
    advancing_volume: Optional[list[float]] = None
    declining_volume: Optional[list[float]] = None

    @field_validator("declines")
    @classmethod
    def declines_match_advances(cls, v, info):
        advances = info.data.get("advances")
        if advances is not None and len(v) != len(advances):
            raise ValueError("advances and declines must have the same length")
        return v


class FundingData(BaseModel):
    """Perpetual futures funding rates (as fractions, 0.0001 = 0.01%)."""

    current: float
    rate_24h: Optional[float] = Field(default=None, description="Average over the last 24h")
    rate_7d: Optional[float] = Field(default=None, description="Average over the last 7 days")
    open_interest_change: Optional[float] = Field(default=None, description="OI change %")
    price_change: Optional[float] = Field(default=None, description="Price change %")


class LongShortData(BaseModel):
    """Share of accounts positioned long, in percent."""

    long_pct: float = Field(..., ge=0, le=100)
    retail_long_pct: Optional[float] = Field(default=None, ge=0, le=100)
    pro_long_pct: Optional[float] = Field(default=None, ge=0, le=100)


class OpenInterestData(BaseModel):
    """Open interest movement for a perpetual contract, in percent."""

    change_24h: float = Field(..., description="Open interest change % over 24h")
    momentum: Optional[float] = Field(
        default=None, description="Change of the open interest growth rate, %"
    )
    concentration: Optional[float] = Field(
        default=None, ge=0, le=1, description="Share of open interest held by the largest accounts"
    )


class PremiumData(BaseModel):
    """Futures premium over spot, as a fraction ((futures - spot) / spot)."""

    premium: float
    premium_7d: Optional[float] = Field(default=None, description="Average premium over 7 days")
    deviation: Optional[float] = Field(
        default=None, description="Distance of the premium from its average, in standard deviations"
    )
    trend: Optional[Literal["rising", "falling", "stable"]] = None

    @classmethod
    def from_prices(cls, spot: float, futures: float, **kwargs) -> "PremiumData":
        if spot <= 0:
            raise ValueError("spot price must be positive")
        return cls(premium=(futures - spot) / spot, **kwargs)


class LiquidationCluster(BaseModel):
    """Estimated liquidation volume resting at one price."""

    price: float = Field(..., gt=0)
    size: float = Field(..., ge=0)
    side: Literal["long", "short"]


class PriceZone(BaseModel):
    low: float = Field(..., gt=0)
    high: float = Field(..., gt=0)


class LiquidationData(BaseModel):
    """Liquidation map around the current price."""

    clusters: list[LiquidationCluster] = []
    long_liquidations_24h: float = Field(default=0.0, ge=0)
    short_liquidations_24h: float = Field(default=0.0, ge=0)
    safe_entry_zones: list[PriceZone] = []
    nearest_distance_pct: Optional[float] = Field(
        default=None, ge=0, description="% distance to the nearest liquidation level"
    )


# =============================================================================
# SERIES
# =============================================================================


class SymbolSeries(BaseModel):
    """Everything the engine needs to evaluate one symbol."""

    symbol: str
    candles: list[Candle] = Field(..., description="Oldest first")
    current_price: Optional[float] = Field(default=None, gt=0)
    breadth: Optional[BreadthData] = None
    funding: Optional[FundingData] = None
    long_short: Optional[LongShortData] = None
    open_interest: Optional[OpenInterestData] = None
    premium: Optional[PremiumData] = None
    liquidation: Optional[LiquidationData] = None

    @field_validator("candles")
    @classmethod
    def timestamps_must_increase(cls, v):
        for previous, current in zip(v, v[1:]):
            if current.timestamp <= previous.timestamp:
                raise ValueError("candle timestamps must be strictly increasing")
        return v


class MarketSnapshot(BaseModel):
    """Batch of series evaluated together."""

    symbols: list[SymbolSeries] = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "symbols": [
                    {
                        "symbol": "BTCUSDT",
                        "candles": [
                            {
                                "timestamp": 1700000000000,
                                "open": 37000.0,
                                "high": 37250.0,
                                "low": 36900.0,
                                "close": 37180.0,
                                "volume": 1250.5,
                            }
                        ],
                        "current_price": 37200.0,
                    }
                ]
            }
        }
