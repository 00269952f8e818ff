"""
Tests for breadth and derivatives indicators, which only exist with explicit inputs.
"""

import pytest

from signal_engine.schemas.market import (
    BreadthData,
    FundingData,
    LiquidationCluster,
    LiquidationData,
    LongShortData,
    OpenInterestData,
    PremiumData,
)
from signal_engine.services.indicators.breadth import advance_decline, arms_index, mcclellan
from signal_engine.services.indicators.classifier import THRESHOLDS
from signal_engine.services.indicators.derivatives import (
    funding_rate,
    liquidation,
    long_short_ratio,
    open_interest,
    spot_futures_divergence,
)

from tests.conftest import rising_closes


@pytest.fixture
def breadth() -> BreadthData:
    return BreadthData(advances=[10.0] * 40, declines=[5.0] * 40)


class TestBreadth:
    def test_absent_without_input(self):
        assert advance_decline(None) is None
        assert mcclellan(None) is None
        assert arms_index(None) is None

    def test_advance_decline_line(self, breadth):
        result = advance_decline(breadth)
        assert result["value"] == 200.0
        assert result["net_advances"] == 5.0
        assert result["trend"] == "bullish"

    def test_advance_decline_divergence(self, breadth):
        falling = [100.0 - i for i in range(40)]
        assert advance_decline(breadth, falling)["divergence"] == "bullish"

    def test_mcclellan_constant_breadth(self, breadth):
        result = mcclellan(breadth)
        assert result["value"] == pytest.approx(0.0)
        assert result["ratio_adjusted"] == pytest.approx(1000 / 3)

    def test_mcclellan_needs_slow_history(self):
        short = BreadthData(advances=[1.0] * 10, declines=[1.0] * 10)
        assert mcclellan(short) is None

    def test_arms_index_needs_volume(self, breadth):
        assert arms_index(breadth) is None
        with_volume = breadth.model_copy(
            update={"advancing_volume": [200.0] * 40, "declining_volume": [100.0] * 40}
        )
        result = arms_index(with_volume)
        assert result["value"] == pytest.approx(1.0)
        assert result["signal"] == "neutral"


class TestFundingRate:
    def test_absent_without_input(self):
        assert funding_rate(None) is None

    def test_extreme_funding_reversal(self):
        result = funding_rate(FundingData(current=0.002, rate_7d=0.0005))
        assert result["level"] == "extreme_high"
        assert result["extreme"] is True
        assert result["reversal_signal"] is True
        assert result["signal"] == "sell"

    def test_missing_fields_leave_sub_reads_absent(self):
        result = funding_rate(FundingData(current=0.0001))
        assert result["reversal_signal"] is None
        assert result["momentum"] is None
        assert result["divergence"] is None
        assert result["mean_reversion"] is None
        assert result["squeeze"] is None
        assert result["signal"] == "neutral"

    def test_momentum_with_full_history(self):
        result = funding_rate(FundingData(current=0.0002, rate_24h=0.0001, rate_7d=0.0001))
        assert result["momentum"]["trend"] == "rising"
        assert 0 <= result["momentum"]["overall"] <= 1

    def test_momentum_trend_band_from_thresholds(self, monkeypatch):
        monkeypatch.setitem(THRESHOLDS, "funding_trend_rising", 3.0)
        result = funding_rate(FundingData(current=0.0002, rate_24h=0.0001, rate_7d=0.0001))
        assert result["momentum"]["trend"] == "neutral"

    def test_divergence_against_price(self, monkeypatch):
        funding = FundingData(current=0.0003, rate_24h=0.0001, price_change=-5.0)
        assert funding_rate(funding)["divergence"]["vs_price"] == pytest.approx(0.7)
        assert funding_rate(funding)["divergence"]["signal"] == "bullish"
        monkeypatch.setitem(THRESHOLDS, "funding_divergence_signal", 0.8)
        assert funding_rate(funding)["divergence"]["signal"] == "neutral"

    def test_reversal_deviation_from_thresholds(self, monkeypatch):
        monkeypatch.setitem(THRESHOLDS, "funding_reversal_deviation", 4.0)
        result = funding_rate(FundingData(current=0.002, rate_7d=0.0005))
        assert result["reversal_signal"] is False
        assert result["signal"] == "neutral"

    def test_squeeze(self, monkeypatch):
        funding = FundingData(current=-0.0005, rate_24h=-0.0005, rate_7d=0.001)
        assert funding_rate(funding)["squeeze"] == {"detected": True, "phase": "accumulation"}
        monkeypatch.setitem(THRESHOLDS, "funding_squeeze_band", 0.0)
        assert funding_rate(funding)["squeeze"] == {"detected": False, "phase": "none"}


class TestLongShortRatio:
    def test_absent_without_input(self):
        assert long_short_ratio(None) is None

    def test_crowded_longs_fade(self):
        result = long_short_ratio(LongShortData(long_pct=80))
        assert result["ratio"] == pytest.approx(4.0)
        assert result["extreme"] == "extreme_long"
        assert result["contrarian"] == {"signal": True, "direction": "short", "strength": 0.5}
        assert result["divergence"] is None

    def test_retail_vs_pro(self):
        result = long_short_ratio(LongShortData(long_pct=50, retail_long_pct=80, pro_long_pct=40))
        assert result["contrarian"]["direction"] == "short"
        assert result["divergence"]["retail_vs_pro"] == pytest.approx(0.4)

    def test_all_long_has_no_ratio(self):
        assert long_short_ratio(LongShortData(long_pct=100))["ratio"] is None


class TestOpenInterest:
    def test_absent_without_input(self):
        assert open_interest(rising_closes(), [1000.0] * 30, None) is None

    def test_falling_interest_on_rising_price(self):
        result = open_interest(rising_closes(), [1000.0] * 30, OpenInterestData(change_24h=-5.0))
        assert result["trend"] == "falling"
        assert result["strength"] == pytest.approx(0.5)
        assert result["price_change"] > 0
        assert result["volume_change"] == 0.0
        assert result["divergence"]["vs_price"] == {
            "detected": True,
            "type": "bearish",
            "strength": pytest.approx(0.5),
        }
        assert result["divergence"]["vs_volume"]["detected"] is False
        assert result["correlation"] == {"vs_volume": 0.0, "signal": "neutral"}
        assert result["momentum"] is None
        assert result["concentration"] is None

    def test_rising_interest_on_falling_price_and_volume(self):
        closes = rising_closes()[::-1]
        volumes = [1000.0] * 29 + [500.0]
        result = open_interest(closes, volumes, OpenInterestData(change_24h=5.0))
        assert result["trend"] == "rising"
        assert result["divergence"]["vs_price"]["type"] == "bullish"
        assert result["divergence"]["vs_volume"]["type"] == "bullish"
        assert result["correlation"]["vs_volume"] < -0.3
        assert result["correlation"]["signal"] == "neutral"

    def test_optional_sub_reads(self):
        data = OpenInterestData(change_24h=1.0, momentum=60.0, concentration=0.8)
        result = open_interest(rising_closes(), [1000.0] * 30, data)
        assert result["trend"] == "neutral"
        assert result["momentum"] == {"score": pytest.approx(0.6), "breakout": True}
        assert result["concentration"] == {"level": 0.8, "risk": "high"}


class TestSpotFuturesDivergence:
    def test_absent_without_input(self):
        assert spot_futures_divergence(None) is None

    def test_rich_premium_is_arbitrage(self):
        result = spot_futures_divergence(PremiumData(premium=0.003))
        assert result["level"] == "high"
        assert result["premium_pct"] == pytest.approx(0.3)
        assert result["arbitrage"]["type"] == "long_spot_short_futures"
        assert result["arbitrage"]["profit"] == pytest.approx(0.001)
        assert result["mean_reversion"] is None
        assert result["divergence"] is None

    def test_discount_is_reverse_arbitrage(self):
        result = spot_futures_divergence(PremiumData(premium=-0.0025))
        assert result["level"] == "low"
        assert result["arbitrage"]["type"] == "short_spot_long_futures"
        assert result["arbitrage"]["profit"] == pytest.approx(0.0005)

    def test_mean_reversion_toward_average(self):
        data = PremiumData(premium=0.001, premium_7d=0.0004, deviation=1.5, trend="rising")
        result = spot_futures_divergence(data)
        assert result["arbitrage"]["opportunity"] is False
        assert result["mean_reversion"] == {"signal": True, "direction": "short", "strength": 1.0}
        assert result["divergence"] == {"from_average": 1.5, "signal": "bullish"}
        assert result["trend"] == "rising"

    def test_premium_from_prices(self):
        assert PremiumData.from_prices(100.0, 100.1).premium == pytest.approx(0.001)
        with pytest.raises(ValueError):
            PremiumData.from_prices(0.0, 100.0)


class TestLiquidation:
    @pytest.fixture
    def data(self) -> LiquidationData:
        return LiquidationData(
            clusters=[
                LiquidationCluster(price=101.0, size=80.0, side="short"),
                LiquidationCluster(price=96.0, size=200.0, side="long"),
            ],
            long_liquidations_24h=500.0,
            short_liquidations_24h=500.0,
        )

    def test_absent_without_input(self):
        assert liquidation(100.0, None) is None

    def test_clusters_grab_and_hunt(self, data):
        result = liquidation(100.0, data)
        assert result["clusters"]["long"] == 1
        assert result["clusters"]["short"] == 1
        assert result["clusters"]["nearest"]["price"] == 101.0
        assert result["clusters"]["distance_pct"] == pytest.approx(1.0)
        assert result["liquidity_grab"]["detected"] is True
        assert result["liquidity_grab"]["side"] == "short"
        assert result["liquidity_grab"]["zone"]["low"] == pytest.approx(100.495)
        assert result["stop_hunt"] == {"predicted": True, "target_price": 96.0, "side": "long"}
        assert result["cascade"] == {"risk": "low", "trigger_price": None}

    def test_close_cluster_blocks_safe_zone(self, data):
        result = liquidation(100.0, data)
        assert result["safe_entry"]["zones"] == []
        assert result["safe_entry"]["confidence"] == pytest.approx(0.1)

    def test_cascade_risk(self):
        data = LiquidationData(
            clusters=[LiquidationCluster(price=100.5, size=200.0, side="long")],
            long_liquidations_24h=50.0,
            short_liquidations_24h=50.0,
        )
        assert liquidation(100.0, data)["cascade"] == {"risk": "high", "trigger_price": 100.5}

    def test_empty_map_is_safe(self):
        result = liquidation(100.0, LiquidationData())
        assert result["clusters"]["nearest"] is None
        assert result["liquidity_grab"]["detected"] is False
        assert result["stop_hunt"]["predicted"] is False
        assert result["safe_entry"]["confidence"] == 1.0
        zone = result["safe_entry"]["zones"][0]
        assert zone["low"] == pytest.approx(99.0)
        assert zone["high"] == pytest.approx(101.0)
