"""
Indicator Engine Service

CONTRACT:
    Input:  SymbolSeries (OHLCV candles plus optional breadth, funding,
            long-short, open-interest, premium and liquidation inputs)
    Output: AggregationResult

RESPONSIBILITIES:
    - Compute primitive transforms (SMA, EMA, WMA, SMMA, rolling windows)
    - Resolve indicator periods adaptively for short series
    - Calculate every registered indicator with per-indicator failure isolation
    - Classify raw values into labels and signals from declarative tables
    - Report diagnostics for every indicator that produced no value

PURE PYTHON - No LLM involvement.
Uses NumPy for calculations.
All math is deterministic and reproducible.
"""

from signal_engine.services.indicators.interface import IndicatorServiceInterface
from signal_engine.services.indicators.registry import REGISTRY, get_definition
from signal_engine.services.indicators.resolver import ParameterResolver, get_resolver
from signal_engine.services.indicators.result import IndicatorResult
from signal_engine.services.indicators.service import IndicatorService, get_indicator_service

__all__ = [
    "IndicatorServiceInterface",
    "IndicatorService",
    "IndicatorResult",
    "ParameterResolver",
    "REGISTRY",
    "get_definition",
    "get_indicator_service",
    "get_resolver",
]
