"""
Indicator Engine Service Implementation

Runs every registered indicator over an OHLCV series and assembles the
composite snapshot. Pure Python/NumPy; nothing here performs I/O.
"""

import logging
from typing import Any, Optional

import numpy as np

from signal_engine.core.config import Settings, get_settings
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
from signal_engine.schemas.indicators import (
    AggregationResult,
    Diagnostics,
    IndicatorFailure,
    IndicatorSnapshot,
)
from signal_engine.services.base import FailureKind, ValidationError
from signal_engine.services.indicators.interface import IndicatorServiceInterface
from signal_engine.services.indicators.primitives import last_vs_average, lookback_change
from signal_engine.services.indicators.resolver import ParameterResolver
from signal_engine.services.indicators.registry import (
    CORE_INDICATORS,
    REGISTRY,
    evaluate,
    get_definition,
)

logger = logging.getLogger(__name__)


def _candles_to_arrays(candles: list[Candle]) -> tuple:
    """Convert a candle list to numpy arrays."""
    opens = np.array([c.open for c in candles], dtype=float)
    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)
    closes = np.array([c.close for c in candles], dtype=float)
    volumes = np.array([c.volume for c in candles], dtype=float)
    return opens, highs, lows, closes, volumes


class IndicatorService(IndicatorServiceInterface):
    """
    Indicator Engine Service.

    Aggregates every registered indicator for one series at a time.
    All calculations are deterministic and reproducible.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.resolver = ParameterResolver(self.settings)

    @property
    def name(self) -> str:
        return "IndicatorService"

    async def execute(
        self, input_data: MarketSnapshot
    ) -> dict[str, AggregationResult]:
        """Aggregate indicators for all symbols in the snapshot."""
        results = {}

        for series in input_data.symbols:
            try:
                results[series.symbol] = await self.calculate_for_symbol(series)
            except ValidationError as e:
                # Log error but continue with other symbols
                logger.error(f"Error calculating indicators for {series.symbol}: {e}")
                results[series.symbol] = AggregationResult(
                    symbol=series.symbol,
                    diagnostics=Diagnostics(
                        failures=[
                            IndicatorFailure(
                                name="series",
                                kind=FailureKind.TOTAL_FAILURE.value,
                                message=e.message,
                            )
                        ],
                        total_failure=True,
                    ),
                )

        return results

    async def calculate_for_symbol(
        self,
        series: SymbolSeries,
        overrides: Optional[dict[str, dict[str, Any]]] = None,
    ) -> AggregationResult:
        """Aggregate indicators for a single symbol."""
        result = self.aggregate(
            series.candles,
            current_price=series.current_price,
            overrides=overrides,
            breadth=series.breadth,
            funding=series.funding,
            long_short=series.long_short,
            open_interest=series.open_interest,
            premium=series.premium,
            liquidation=series.liquidation,
        )
        return result.model_copy(update={"symbol": series.symbol})

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
        """
        Run every registered indicator over one series.

        Args:
            candles: OHLCV candles, oldest first
            current_price: Price to evaluate against (defaults to the last close)
            overrides: {indicator_name: {param: value}} merged over defaults
            breadth / funding / long_short / open_interest / premium /
                liquidation: Optional market-wide inputs

        Returns:
            AggregationResult whose snapshot is None when every core
            indicator is absent

        Raises:
            ValidationError: Too few candles, non-finite prices or an
                override for an unknown indicator
        """
        overrides = overrides or {}
        self._validate(candles, current_price, overrides)

        opens, highs, lows, closes, volumes = _candles_to_arrays(candles)
        price = float(current_price) if current_price is not None else float(closes[-1])
        context = {
            "open": opens,
            "high": highs,
            "low": lows,
            "close": closes,
            "volume": volumes,
            "price": price,
            "breadth": breadth,
            "funding": funding,
            "long_short": long_short,
            "open_interest": open_interest,
            "premium": premium,
            "liquidation": liquidation,
            "resolver": self.resolver,
        }

        indicators: dict[str, Any] = {}
        diagnostics = Diagnostics()
        for definition in REGISTRY:
            result = evaluate(definition, context, overrides.get(definition.name))
            indicators[definition.name] = result.value_or(None)
            if result.ok:
                diagnostics.computed += 1
                continue

            diagnostics.failures.append(
                IndicatorFailure(
                    name=definition.name,
                    kind=result.error.kind.value,
                    message=result.error.message,
                )
            )
            if result.error.kind == FailureKind.INSUFFICIENT_DATA:
                diagnostics.absent += 1
            else:
                diagnostics.failed += 1

        if all(indicators[name] is None for name in CORE_INDICATORS):
            logger.warning(
                f"Total failure: all core indicators absent for {len(closes)} candles"
            )
            diagnostics.total_failure = True
            diagnostics.failures.append(
                IndicatorFailure(
                    name="snapshot",
                    kind=FailureKind.TOTAL_FAILURE.value,
                    message="all core indicators absent",
                )
            )
            return AggregationResult(snapshot=None, diagnostics=diagnostics)

        snapshot = IndicatorSnapshot(
            price=price,
            candles=len(closes),
            price_change_24h=self._price_change(closes),
            volume_change=self._volume_change(volumes),
            indicators=indicators,
        )
        return AggregationResult(snapshot=snapshot, diagnostics=diagnostics)

    def _validate(
        self,
        candles: list[Candle],
        current_price: Optional[float],
        overrides: dict[str, dict[str, Any]],
    ) -> None:
        minimum = self.settings.min_candles
        if not candles or len(candles) < minimum:
            raise ValidationError(
                self.name,
                f"Insufficient data: need at least {minimum} candles, got {len(candles or [])}",
                {"candles": len(candles or []), "minimum": minimum},
            )

        prices = np.array(
            [[c.open, c.high, c.low, c.close, c.volume] for c in candles], dtype=float
        )
        if not np.all(np.isfinite(prices)) or np.any(prices < 0):
            raise ValidationError(self.name, "Candles contain negative or non-finite values")
        if current_price is not None and not (np.isfinite(current_price) and current_price > 0):
            raise ValidationError(self.name, f"Invalid current price: {current_price}")

        for name in overrides:
            try:
                get_definition(name)
            except KeyError:
                raise ValidationError(
                    self.name, f"Override for unknown indicator '{name}'", {"indicator": name}
                )

    def _price_change(self, closes: np.ndarray) -> float:
        """% change against the close ``price_change_lookback`` candles back (or the first)."""
        return lookback_change(closes, self.settings.price_change_lookback)

    def _volume_change(self, volumes: np.ndarray) -> float:
        """% difference of the last volume from the average of the lookback window."""
        return last_vs_average(volumes, self.settings.volume_change_lookback)

    async def health_check(self) -> bool:
        """Indicator service is always healthy (pure computation)."""
        return True


# Singleton instance
_service_instance: Optional[IndicatorService] = None


def get_indicator_service() -> IndicatorService:
    """Get or create indicator service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = IndicatorService()
    return _service_instance
