"""
Signal Engine Schema Contracts

JSON contracts between the engine, its service layer and the HTTP API.
"""

from signal_engine.schemas.market import (
    BreadthData,
    Candle,
    FundingData,
    LongShortData,
    MarketSnapshot,
    SymbolSeries,
)
from signal_engine.schemas.indicators import (
    AggregateRequest,
    AggregationResult,
    Diagnostics,
    IndicatorFailure,
    IndicatorSnapshot,
    RegistryEntry,
    SignalType,
    TrendDirection,
    VolatilityZone,
)
