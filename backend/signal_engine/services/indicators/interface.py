"""
Indicator Engine Service Interface

Defines the contract for the indicator aggregation layer.
"""

from abc import abstractmethod
from typing import Any, Optional

from signal_engine.services.base import BaseService
from signal_engine.schemas.market import (
    BreadthData,
    Candle,
    FundingData,
    LiquidationData,
    LongShortData,
    MarketSnapshot,
    OpenInterestData,
    PremiumData,
    SymbolSeries,
)
from signal_engine.schemas.indicators import AggregationResult


class IndicatorServiceInterface(BaseService[MarketSnapshot, dict[str, AggregationResult]]):
    """
    Indicator Engine Service Contract.

    INPUT: MarketSnapshot
        - symbols: List of SymbolSeries with OHLCV candles and optional
          breadth, funding, long-short, open-interest, premium and
          liquidation inputs

    OUTPUT: dict[str, AggregationResult]
        - Key: symbol name
        - Value: Composite snapshot (None on total failure) and diagnostics
    """

    @property
    def name(self) -> str:
        return "IndicatorService"

    @abstractmethod
    async def execute(
        self, input_data: MarketSnapshot
    ) -> dict[str, AggregationResult]:
        """Aggregate indicators for all symbols in the snapshot."""
        pass

    @abstractmethod
    async def calculate_for_symbol(
        self,
        series: SymbolSeries,
        overrides: Optional[dict[str, dict[str, Any]]] = None,
    ) -> AggregationResult:
        """
        Aggregate indicators for a single symbol.

        Args:
            series: Candles plus optional market-wide inputs for the symbol
            overrides: Per-indicator parameter overrides

        Returns:
            Composite snapshot and diagnostics
        """
        pass

    @abstractmethod
    def aggregate(
        self,
        candles: list[Candle],
        current_price: Optional[float] = None,
        overrides: Optional[dict[str, dict[str, Any]]] = None,
        breadth: Optional[BreadthData] = None,
        funding: Optional[FundingData] = None,
        long_short: Optional[LongShortData] = None,
        open_interest: Optional[OpenInterestData] = None,
        premium: Optional[PremiumData] = None,
        liquidation: Optional[LiquidationData] = None,
    ) -> AggregationResult:
        """Synchronous core: run every registered indicator over one series."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Indicator service is always healthy (pure computation)."""
        pass
