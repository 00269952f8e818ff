"""
Tests for the indicator aggregation service.
"""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from signal_engine.core.config import Settings
from signal_engine.schemas.market import (
    BreadthData,
    FundingData,
    LiquidationData,
    MarketSnapshot,
    OpenInterestData,
    PremiumData,
    SymbolSeries,
)
from signal_engine.services.base import FailureKind, ValidationError
from signal_engine.services.indicators import IndicatorService, get_indicator_service
from signal_engine.services.indicators.registry import CORE_INDICATORS, REGISTRY

from tests.conftest import make_candles

MARKET_INDICATORS = (
    "advance_decline",
    "mcclellan",
    "arms_index",
    "funding_rate",
    "long_short_ratio",
    "open_interest",
    "spot_futures_divergence",
    "liquidation",
)


@pytest.fixture
def service() -> IndicatorService:
    return IndicatorService(Settings())


def failure_kinds(result) -> dict[str, str]:
    return {failure.name: failure.kind for failure in result.diagnostics.failures}


class TestAggregate:
    def test_every_registered_name_present(self, service, noisy_candles):
        result = service.aggregate(noisy_candles)
        assert set(result.snapshot.indicators) == {d.name for d in REGISTRY}

    def test_diagnostics_account_for_every_indicator(self, service, noisy_candles):
        diagnostics = service.aggregate(noisy_candles).diagnostics
        assert diagnostics.computed + diagnostics.absent + diagnostics.failed == len(REGISTRY)
        assert not diagnostics.total_failure

    def test_none_values_have_a_reason(self, service, noisy_candles):
        result = service.aggregate(noisy_candles)
        missing = {name for name, value in result.snapshot.indicators.items() if value is None}
        assert missing == set(failure_kinds(result))

    def test_deterministic(self, service, noisy_candles):
        first = service.aggregate(noisy_candles)
        second = service.aggregate(noisy_candles)
        assert first.model_dump() == second.model_dump()

    def test_flat_series(self, service, flat_candles):
        snapshot = service.aggregate(flat_candles).snapshot
        assert snapshot.get("rsi_14")["value"] == 50.0
        assert snapshot.get("atr")["value"] == 0.0
        assert snapshot.get("bollinger_bands")["width"] == 0.0
        assert snapshot.get("bollinger_bands")["percent_b"] == 0.5
        assert snapshot.get("macd")["histogram"] == pytest.approx(0.0)
        assert snapshot.price_change_24h == 0.0
        assert snapshot.volume_change == 0.0

    def test_rising_series(self, service, rising_candles):
        snapshot = service.aggregate(rising_candles).snapshot
        assert snapshot.price == pytest.approx(130.0)
        assert snapshot.get("supertrend")["signal"] == "buy"
        assert snapshot.get("adx")["trend"] == "bullish"
        assert snapshot.get("ema_8") > snapshot.get("ema_20")
        assert snapshot.get("ema_200") is None

    def test_price_change_against_lookback(self, service, rising_candles):
        snapshot = service.aggregate(rising_candles).snapshot
        base = rising_candles[-25].close
        assert snapshot.price_change_24h == pytest.approx((130.0 - base) / base * 100)

    def test_current_price_override(self, service, rising_candles):
        snapshot = service.aggregate(rising_candles, current_price=200.0).snapshot
        assert snapshot.price == 200.0
        assert snapshot.get("bollinger_bands")["position"] == "above_upper"

    def test_market_inputs_absent_by_default(self, service, noisy_candles):
        result = service.aggregate(noisy_candles)
        kinds = failure_kinds(result)
        for name in MARKET_INDICATORS:
            assert result.snapshot.get(name) is None
            assert kinds[name] == FailureKind.INSUFFICIENT_DATA.value

    def test_market_inputs_used_when_supplied(self, service, noisy_candles):
        result = service.aggregate(
            noisy_candles,
            breadth=BreadthData(advances=[10.0] * 40, declines=[5.0] * 40),
            funding=FundingData(current=0.0001),
        )
        assert result.snapshot.get("advance_decline")["value"] == 200.0
        assert result.snapshot.get("funding_rate")["level"] is not None
        assert result.snapshot.get("long_short_ratio") is None

    def test_derivatives_inputs_used_when_supplied(self, service, noisy_candles):
        result = service.aggregate(
            noisy_candles,
            open_interest=OpenInterestData(change_24h=4.0),
            premium=PremiumData(premium=0.003),
            liquidation=LiquidationData(),
        )
        assert result.snapshot.get("open_interest")["trend"] == "rising"
        assert result.snapshot.get("spot_futures_divergence")["level"] == "high"
        assert result.snapshot.get("liquidation")["cascade"]["risk"] == "low"

    @pytest.mark.asyncio
    async def test_series_carries_market_inputs(self, service, noisy_candles):
        series = SymbolSeries(
            symbol="BTCUSDT", candles=noisy_candles, premium=PremiumData(premium=-0.003)
        )
        result = await service.calculate_for_symbol(series)
        assert result.snapshot.get("spot_futures_divergence")["level"] == "low"
        assert result.snapshot.get("open_interest") is None


class TestFailureIsolation:
    def test_bad_override_only_fails_its_indicator(self, service, noisy_candles):
        clean = service.aggregate(noisy_candles)
        result = service.aggregate(noisy_candles, overrides={"rsi_7": {"period": "bad"}})
        assert result.snapshot.get("rsi_7") is None
        assert failure_kinds(result)["rsi_7"] == FailureKind.COMPUTATION_FAILURE.value
        assert result.diagnostics.failed == clean.diagnostics.failed + 1
        assert result.diagnostics.computed == clean.diagnostics.computed - 1

        others = {k: v for k, v in result.snapshot.model_dump().items() if k != "indicators"}
        assert others == {k: v for k, v in clean.snapshot.model_dump().items() if k != "indicators"}
        for name, value in clean.snapshot.indicators.items():
            if name != "rsi_7":
                assert result.snapshot.indicators[name] == value, name

    def test_override_changes_parameters(self, service, noisy_candles):
        result = service.aggregate(noisy_candles, overrides={"rsi_7": {"period": 5}})
        assert result.snapshot.get("rsi_7")["period"] == 5

    def test_total_failure(self, service, noisy_candles):
        # 14 candles without period shrinking leaves every core indicator short
        overrides = {name: {"adaptive": False} for name in CORE_INDICATORS}
        result = service.aggregate(noisy_candles[:14], overrides=overrides)
        assert result.snapshot is None
        assert result.diagnostics.total_failure
        kinds = failure_kinds(result)
        assert kinds["snapshot"] == FailureKind.TOTAL_FAILURE.value
        for name in CORE_INDICATORS:
            assert kinds[name] == FailureKind.INSUFFICIENT_DATA.value


class TestSettingsResolver:
    def test_lower_min_candles_lowers_adaptive_floor(self, rising_candles):
        lenient = IndicatorService(Settings(min_candles=10))
        result = lenient.aggregate(rising_candles[:10])
        assert result.snapshot is not None
        assert not result.diagnostics.total_failure
        assert result.snapshot.get("rsi_14")["period"] == 9
        assert result.snapshot.get("atr") is not None

    def test_each_service_owns_its_resolver(self):
        strict = IndicatorService(Settings(min_candles=20))
        lenient = IndicatorService(Settings(min_candles=10))
        assert strict.resolver.floor("rsi").min_length == 20
        assert lenient.resolver.floor("rsi").min_length == 10


class TestFrozenSnapshot:
    def test_indicator_mapping_is_read_only(self, service, noisy_candles):
        snapshot = service.aggregate(noisy_candles).snapshot
        with pytest.raises(TypeError):
            snapshot.indicators["rsi_14"] = None
        with pytest.raises(TypeError):
            del snapshot.indicators["rsi_14"]
        with pytest.raises(TypeError):
            snapshot.indicators.update({"rsi_14": None})

    def test_nested_records_are_read_only(self, service, noisy_candles):
        snapshot = service.aggregate(noisy_candles).snapshot
        with pytest.raises(TypeError):
            snapshot.indicators["rsi_14"]["value"] = 0
        with pytest.raises(TypeError):
            snapshot.get("bollinger_bands").pop("upper")

    def test_lists_become_tuples(self, service, noisy_candles):
        snapshot = service.aggregate(noisy_candles).snapshot
        sequences = [
            value
            for record in snapshot.indicators.values()
            if isinstance(record, dict)
            for value in record.values()
            if isinstance(value, (list, tuple))
        ]
        assert sequences
        assert all(isinstance(value, tuple) for value in sequences)

    def test_model_is_frozen(self, service, noisy_candles):
        snapshot = service.aggregate(noisy_candles).snapshot
        with pytest.raises(PydanticValidationError):
            snapshot.price = 0.0

    def test_serializes_to_plain_json(self, service, noisy_candles):
        snapshot = service.aggregate(noisy_candles).snapshot
        payload = json.loads(snapshot.model_dump_json())
        assert payload["indicators"]["rsi_14"]["value"] == snapshot.get("rsi_14")["value"]


class TestValidation:
    def test_too_few_candles(self, service, noisy_candles):
        with pytest.raises(ValidationError):
            service.aggregate(noisy_candles[:13])

    def test_unknown_override(self, service, noisy_candles):
        with pytest.raises(ValidationError) as excinfo:
            service.aggregate(noisy_candles, overrides={"not_an_indicator": {}})
        assert excinfo.value.details == {"indicator": "not_an_indicator"}

    def test_non_finite_price(self, service, noisy_candles):
        candles = list(noisy_candles)
        candles[-1] = candles[-1].model_copy(update={"close": float("inf")})
        with pytest.raises(ValidationError):
            service.aggregate(candles)


class TestServiceContract:
    @pytest.mark.asyncio
    async def test_execute_continues_past_bad_symbol(self, service, noisy_candles):
        snapshot = MarketSnapshot(
            symbols=[
                SymbolSeries(symbol="GOOD", candles=noisy_candles),
                SymbolSeries(symbol="SHORT", candles=make_candles([100.0, 101.0])),
            ]
        )
        results = await service.execute(snapshot)
        assert results["GOOD"].snapshot is not None
        assert results["GOOD"].symbol == "GOOD"
        assert results["SHORT"].snapshot is None
        assert results["SHORT"].diagnostics.total_failure

    @pytest.mark.asyncio
    async def test_calculate_for_symbol(self, service, rising_candles):
        series = SymbolSeries(symbol="BTCUSDT", candles=rising_candles)
        result = await service.calculate_for_symbol(series)
        assert result.symbol == "BTCUSDT"
        assert result.snapshot.candles == 30

    @pytest.mark.asyncio
    async def test_health_check(self, service):
        assert await service.health_check() is True

    def test_singleton(self):
        assert get_indicator_service() is get_indicator_service()
        assert get_indicator_service().name == "IndicatorService"
