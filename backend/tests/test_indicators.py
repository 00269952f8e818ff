"""
Tests for derived indicators over deterministic series.
"""

import numpy as np
import pytest

from signal_engine.core.config import Settings
from signal_engine.services.indicators import (
    analysis,
    bill_williams,
    levels,
    momentum,
    moving_averages,
    statistics,
    trend,
    volatility,
    volume,
)
from signal_engine.services.indicators.classifier import THRESHOLDS
from signal_engine.services.indicators.resolver import ParameterResolver

from tests.conftest import rising_closes


def ohlc(closes, spread=0.5):
    closes = np.asarray(closes, dtype=float)
    return closes + spread, closes - spread, closes


class TestRSI:
    def test_bounds_on_random_walk(self, noisy_candles):
        closes = [c.close for c in noisy_candles]
        values = momentum.rsi_series(closes, 14)
        assert np.all((values >= 0) & (values <= 100))

    def test_rising_is_100(self):
        assert momentum.rsi(rising_closes())["value"] == pytest.approx(100.0)

    def test_falling_is_0(self):
        assert momentum.rsi(rising_closes()[::-1])["value"] == pytest.approx(0.0)

    def test_flat_is_50(self):
        result = momentum.rsi([100.0] * 20)
        assert result["value"] == 50.0
        assert result["signal"] == "neutral"

    def test_adaptive_shrinks_period(self):
        result = momentum.rsi([100.0 + i for i in range(14)], adaptive=True)
        assert result["period"] == 13

    def test_too_short_is_absent(self):
        assert momentum.rsi([1.0] * 10) is None


class TestOscillatorFallbacks:
    def test_zero_range_reads_neutral(self):
        highs, lows, closes = ohlc([100.0] * 20, spread=0.0)
        assert momentum.stochastic(highs, lows, closes)["k"] == 50.0
        assert momentum.williams_r(highs, lows, closes)["value"] == -50.0
        assert momentum.cci(highs, lows, closes)["value"] == 0.0

    def test_macd_flat_histogram(self):
        result = momentum.macd([100.0] * 14, adaptive=True)
        assert result["histogram"] == pytest.approx(0.0)
        assert result["periods"] == {"fast": 5, "slow": 10, "signal": 4}

    def test_macd_needs_slow_plus_signal(self):
        assert momentum.macd(np.arange(33, dtype=float)) is None
        assert momentum.macd(np.arange(34, dtype=float)) is not None

    def test_macd_positive_in_uptrend(self):
        result = momentum.macd(rising_closes(60))
        assert result["macd"] > 0
        assert result["trend"] in ("bullish", "bearish", "neutral")


class TestMovingAverages:
    def test_short_ema_leads_in_uptrend(self):
        closes = rising_closes()
        assert moving_averages.ema_value(closes, 8) > moving_averages.ema_value(closes, 20)

    def test_ema_absent_without_history(self):
        assert moving_averages.ema_value(rising_closes(), 50) is None

    def test_ema_adaptive_on_short_series(self):
        assert moving_averages.ema_value([100.0] * 14, 20, adaptive=True) == pytest.approx(100.0)


class TestVolatility:
    def test_flat_series(self):
        highs, lows, closes = ohlc([100.0] * 14, spread=0.0)
        atr = volatility.atr(highs, lows, closes, 100.0, adaptive=True)
        bands = volatility.bollinger_bands(closes, 100.0, adaptive=True)
        assert atr["value"] == 0.0
        assert atr["zone"] == "LOW"
        assert bands["width"] == 0.0
        assert bands["percent_b"] == 0.5

    def test_band_ordering(self, noisy_candles):
        closes = [c.close for c in noisy_candles]
        bands = volatility.bollinger_bands(closes, closes[-1])
        assert bands["lower"] <= bands["middle"] <= bands["upper"]


class TestTrend:
    def test_adx_bullish_on_rising(self):
        highs, lows, closes = ohlc(rising_closes())
        result = trend.adx(highs, lows, closes, adaptive=True)
        assert result["trend"] == "bullish"
        assert result["plus_di"] > result["minus_di"]

    def test_supertrend_buy_on_rising(self):
        highs, lows, closes = ohlc(rising_closes())
        result = trend.supertrend(highs, lows, closes)
        assert result["signal"] == "buy"
        assert result["value"] < closes[-1]

    def test_parabolic_sar_below_price_in_uptrend(self):
        highs, lows, closes = ohlc(rising_closes())
        result = trend.parabolic_sar(highs, lows, closes, float(closes[-1]))
        assert result["trend"] == "bullish"


class TestVolume:
    def test_obv_accumulates_on_rising(self):
        closes = rising_closes(10)
        result = volume.obv(closes, [100.0] * 10)
        assert result["value"] == pytest.approx(1000.0)

    def test_vwap_of_constant_price(self):
        highs, lows, closes = ohlc([50.0] * 10, spread=0.0)
        result = volume.vwap(highs, lows, closes, [10.0] * 10, 50.0)
        assert result["value"] == pytest.approx(50.0)


class TestBillWilliams:
    def test_alligator_eating_in_strong_uptrend(self):
        highs, lows, _ = ohlc(rising_closes(60, rise=60))
        result = bill_williams.alligator(highs, lows, float(highs[-1]))
        assert result["phase"] == "eating"

    def test_alligator_absent_below_floor(self):
        highs, lows, _ = ohlc(rising_closes(4))
        assert bill_williams.alligator(highs, lows, 100.0) is None


class TestLevelsAndStatistics:
    def test_pivot_from_previous_candle(self):
        highs = [110.0, 105.0]
        lows = [90.0, 95.0]
        closes = [100.0, 101.0]
        result = levels.pivot_points(highs, lows, closes, 100.0)
        assert result["pivot"] == pytest.approx(100.0)
        assert result["bias"] == "neutral"

    def test_r_squared_of_a_line(self):
        result = statistics.r_squared(rising_closes())
        assert result["value"] == pytest.approx(1.0)

    def test_r_squared_of_flat_series(self):
        assert statistics.r_squared([100.0] * 20)["value"] == 0.0


def rising_then_falling():
    """30 candles up from 100 to 130, then 20 candles down 2 per candle."""
    return np.concatenate([rising_closes(), 130.0 - 2.0 * np.arange(1, 21)])


def geometric(n: int, rate: float) -> np.ndarray:
    return 100.0 * (1 + rate) ** np.arange(n)


class TestStopAndReverse:
    def test_parabolic_sar_reverses_after_top(self):
        highs, lows, closes = ohlc(rising_then_falling())
        result = trend.parabolic_sar(highs, lows, closes, float(closes[-1]))
        assert result["trend"] == "bearish"
        assert result["signal"] == "sell"
        assert result["value"] > highs[-1]
        assert result["extreme_point"] == pytest.approx(lows[-1])

    def test_supertrend_flips_after_top(self):
        highs, lows, closes = ohlc(rising_then_falling())
        result = trend.supertrend(highs, lows, closes)
        assert result["trend"] == "bearish"
        assert result["signal"] == "sell"
        assert result["value"] == result["upper_band"]
        assert result["value"] > closes[-1]


class TestIchimoku:
    def test_periods_shrink_on_short_series(self):
        highs, lows, closes = ohlc(rising_closes(20))
        resolver = ParameterResolver(Settings())
        result = trend.ichimoku(highs, lows, closes, float(closes[-1]), resolver=resolver)
        assert result["periods"] == {"tenkan": 3, "kijun": 10, "senkou_b": 20}
        assert result["tenkan"] == pytest.approx((closes[-1] + closes[-3]) / 2)
        assert result["kijun"] == pytest.approx((closes[-1] + closes[-10]) / 2)
        assert result["senkou_b"] == pytest.approx((closes[-1] + closes[0]) / 2)
        assert result["position"] == "above_cloud"
        assert result["cloud"] == "green"
        assert result["signal"] == "bullish"

    def test_absent_below_floor(self):
        highs, lows, closes = ohlc(rising_closes(4))
        assert trend.ichimoku(highs, lows, closes, 100.0) is None


class TestAlligatorFloor:
    def test_alligator_at_five_candles(self):
        highs, lows, _ = ohlc(rising_closes(5))
        result = bill_williams.alligator(highs, lows, 130.0)
        assert result["jaw"] == pytest.approx(107.5)
        assert result["teeth"] == pytest.approx(109.375)
        assert result["lips"] == pytest.approx(109.375)
        assert result["phase"] == "waking"
        assert result["position"] == "above_mouth"

    def test_gator_at_five_candles(self):
        highs, lows, _ = ohlc(rising_closes(5))
        result = bill_williams.gator_oscillator(highs, lows)
        assert result["upper"] == pytest.approx(1.875)
        assert result["lower"] == pytest.approx(0.0)
        assert result["upper_color"] == "gray"
        assert result["state"] == "neutral"
        assert result["signal"] == "neutral"

    def test_gator_absent_below_floor(self):
        highs, lows, _ = ohlc(rising_closes(4))
        assert bill_williams.gator_oscillator(highs, lows) is None


class TestChannels:
    def test_keltner_breakouts(self):
        highs, lows, closes = ohlc([100.0] * 30)
        inside = volatility.keltner_channels(highs, lows, closes, 100.0)
        assert inside["middle"] == pytest.approx(100.0)
        assert inside["atr"] == pytest.approx(1.0)
        assert inside["upper"] == pytest.approx(102.0)
        assert inside["lower"] == pytest.approx(98.0)
        assert inside["width_pct"] == pytest.approx(4.0)
        assert inside["position"] == "inside"
        assert inside["volatility"] == "stable"
        assert volatility.keltner_channels(highs, lows, closes, 103.0)["position"] == "above_upper"
        assert volatility.keltner_channels(highs, lows, closes, 97.0)["position"] == "below_lower"

    def test_donchian_breakouts(self):
        highs, lows, _ = ohlc([100.0] * 25)
        inside = volatility.donchian_channels(highs, lows, 100.0)
        assert (inside["upper"], inside["lower"]) == (100.5, 99.5)
        assert inside["position"] == pytest.approx(0.5)
        assert inside["breakout"] == "none"
        assert inside["period"] == 20
        assert volatility.donchian_channels(highs, lows, 101.0)["breakout"] == "bullish"
        assert volatility.donchian_channels(highs, lows, 99.0)["breakout"] == "bearish"


class TestAdaptiveAverages:
    def test_kama_tracks_trend(self):
        closes = rising_closes(60)
        result = moving_averages.kama(closes, float(closes[-1]))
        assert result["efficiency_ratio"] == pytest.approx(1.0)
        assert result["smoothing_constant"] == pytest.approx((2 / 3) ** 2)
        assert result["market_condition"] == "trending"
        assert result["value"] < closes[-1]
        assert result["trend"] == "bullish"

    def test_kama_flat_series(self):
        result = moving_averages.kama([100.0] * 45, 100.0)
        assert result["value"] == pytest.approx(100.0)
        assert result["efficiency_ratio"] == 0.0
        assert result["market_condition"] == "ranging"
        assert result["position"] == "equal"

    def test_kama_needs_seed_history(self):
        assert moving_averages.kama([100.0] * 39, 100.0) is None


class TestKlinger:
    def test_growing_buying_force(self):
        closes = rising_closes(80)
        highs, lows = closes, closes - 1.0
        volumes = 100.0 + 10.0 * np.arange(80)
        result = volume.klinger_oscillator(highs, lows, closes, volumes)
        assert result["value"] > 0
        assert result["trend"] == "bullish"
        assert result["signal_line"] is not None

    def test_growing_selling_force(self):
        closes = rising_closes(80)[::-1]
        highs, lows = closes, closes - 1.0
        volumes = 100.0 + 10.0 * np.arange(80)
        assert volume.klinger_oscillator(highs, lows, closes, volumes)["trend"] == "bearish"

    def test_needs_slow_history(self):
        closes = rising_closes(54)
        assert volume.klinger_oscillator(closes, closes, closes, [1.0] * 54) is None


class TestVolumeProfile:
    @staticmethod
    def profile(prices_and_volumes, current_price):
        prices = np.array([price for price, _ in prices_and_volumes])
        volumes = [vol for _, vol in prices_and_volumes]
        return volume.volume_profile(prices, prices, prices, volumes, current_price)

    def test_value_area_is_point_of_control(self):
        candles = [(100.0, 10.0)] * 6 + [(110.0, 5.0)] * 2 + [(90.0, 5.0)] * 2
        result = self.profile(candles, 100.5)
        assert result["point_of_control"] == pytest.approx(100.5)
        assert result["value_area_low"] == pytest.approx(100.5)
        assert result["value_area_high"] == pytest.approx(100.5)
        assert result["position"] == "at_poc"
        assert result["high_volume_nodes"] == pytest.approx([90.5, 100.5, 109.5])
        assert result["volume_above_poc"] == pytest.approx(10.0)
        assert result["volume_below_poc"] == pytest.approx(10.0)

    def test_value_area_grows_toward_heavier_side(self):
        candles = [(100.0, 40.0), (101.0, 20.0), (99.0, 15.0), (110.0, 5.0), (90.0, 5.0)]
        candles += [(100.0, 0.0)] * 5
        result = self.profile(candles, 99.0)
        assert result["value_area_low"] == pytest.approx(100.5)
        assert result["value_area_high"] == pytest.approx(101.5)
        assert result["position"] == "below_value_area"

    def test_flat_prices_absent(self):
        assert self.profile([(100.0, 1.0)] * 10, 100.0) is None


class TestSwingLevels:
    def test_fibonacci_retracement_in_uptrend(self):
        closes = np.linspace(100.0, 150.0, 50)
        result = levels.fibonacci(closes, closes, closes, 150.0 - 0.618 * 50)
        assert result["direction"] == "uptrend"
        assert result["levels"]["0%"] == pytest.approx(150.0)
        assert result["levels"]["100%"] == pytest.approx(100.0)
        assert result["nearest_level"] == "61.8%"
        assert result["near_level"] is True
        assert result["signal"] == "buy"
        assert result["strength"] == pytest.approx(80.0)

    def test_fibonacci_measured_up_in_downtrend(self):
        closes = np.linspace(150.0, 100.0, 50)
        result = levels.fibonacci(closes, closes, closes, 130.9)
        assert result["direction"] == "downtrend"
        assert result["levels"]["61.8%"] == pytest.approx(130.9)
        assert result["signal"] == "sell"

    def test_zigzag_swings(self):
        result = levels.zigzag([100.0, 110.0, 104.0, 112.0, 100.0, 103.0])
        assert [(s["index"], s["value"], s["type"]) for s in result["swings"]] == [
            (0, 100.0, "low"),
            (1, 110.0, "high"),
            (2, 104.0, "low"),
            (3, 112.0, "high"),
        ]
        assert result["last_swing"] == {"index": 4, "value": 100.0, "type": "low"}
        assert result["direction"] == "down"
        assert result["swing_count"] == 4

    def test_zigzag_without_reversal_is_sideways(self):
        result = levels.zigzag([100.0, 101.0, 102.0])
        assert result["swings"] == []
        assert result["direction"] == "sideways"


class TestMomentumFamily:
    def test_schaff_climbs_after_trough(self):
        closes = np.concatenate([160.0 - np.arange(60), 101.0 + np.arange(40)])
        result = momentum.schaff_trend_cycle(closes)
        assert result["value"] > 75
        assert result["zone"] == "overbought"
        assert result["direction"] == "rising"

    def test_kst_of_constant_growth(self):
        result = momentum.kst(geometric(80, 0.01))
        expected = sum(
            weight * ((1.01**period) - 1) * 100
            for weight, period in zip((1, 2, 3, 4), (10, 15, 20, 30))
        )
        assert result["value"] == pytest.approx(expected)
        assert result["histogram"] == pytest.approx(0.0, abs=1e-9)
        assert momentum.kst(geometric(80, -0.01))["value"] < 0

    def test_tsi_of_one_way_series(self):
        up = momentum.true_strength_index(rising_closes(60))
        assert up["value"] == pytest.approx(100.0)
        assert up["signal"] == "overbought"
        down = momentum.true_strength_index(rising_closes(60)[::-1])
        assert down["value"] == pytest.approx(-100.0)
        assert down["signal"] == "oversold"

    def test_coppock_of_constant_growth(self):
        result = momentum.coppock_curve(geometric(40, 0.01))
        expected = ((1.01**14) - 1) * 100 + ((1.01**11) - 1) * 100
        assert result["value"] == pytest.approx(expected)
        assert result["phase"] == "strong_bullish"

    def test_coppock_buys_turn_below_zero(self):
        closes = np.concatenate([geometric(40, -0.01), geometric(40, -0.01)[-1] * 1.01 ** np.arange(1, 4)])
        result = momentum.coppock_curve(closes)
        assert result["value"] < 0
        assert result["direction"] == "rising"
        assert result["signal"] == "buy"

    def test_fisher_at_range_extremes(self):
        closes = rising_closes()
        up = momentum.fisher_transform(closes, closes)
        assert up["value"] == pytest.approx(0.5 * np.log(1.999 / 0.001))
        assert up["trend"] == "bullish"
        assert up["extreme"] == "neutral"
        down = momentum.fisher_transform(closes[::-1], closes[::-1])
        assert down["value"] == pytest.approx(-0.5 * np.log(1.999 / 0.001))
        assert down["trend"] == "bearish"

    def test_rvi_of_closes_above_opens(self):
        closes = rising_closes()
        result = momentum.relative_vigor_index(closes - 0.25, closes + 0.5, closes - 0.5, closes)
        assert result["value"] == pytest.approx(0.25)
        assert result["signal_line"] == pytest.approx(0.25)
        assert result["trend"] == "bullish"
        assert result["extreme"] == "neutral"


class TestVolumeZoneOscillator:
    def test_all_volume_on_up_closes(self):
        result = volume.volume_zone_oscillator(rising_closes(), [1000.0] * 30)
        assert result["value"] == pytest.approx(100.0)
        assert result["buying_pressure"] == pytest.approx(29000.0)
        assert result["selling_pressure"] == 0.0
        assert result["trend"] == "accumulation"
        assert result["overbought"] is True
        assert result["signal"] == "sell"

    def test_zero_line_cross(self):
        result = volume.volume_zone_oscillator(
            [10.0, 9.0, 8.0, 7.0, 6.0, 7.0], [1000.0] * 6, period=2
        )
        assert result["value"] == pytest.approx(100 / 3)
        assert result["crossover"] == "bullish"
        assert result["condition"] == "bullish"
        assert result["accumulation_zone"] is False
        assert result["signal"] == "neutral"

    def test_without_volume_reads_zero(self):
        result = volume.volume_zone_oscillator(rising_closes(), [0.0] * 30)
        assert result["value"] == 0.0
        assert result["trend"] == "neutral"
        assert result["condition"] == "sideways"

    def test_needs_period_plus_one(self):
        assert volume.volume_zone_oscillator(rising_closes(14), [1.0] * 14) is None


class TestPriceAction:
    @staticmethod
    def patterns(last_candle):
        opens, highs, lows, closes = zip((100.0, 100.1, 99.9, 100.0), last_candle)
        return analysis.candlestick_patterns(opens, highs, lows, closes, lookback=2)

    def test_hammer(self, monkeypatch):
        hammer = (100.0, 100.6, 98.5, 100.5)
        result = self.patterns(hammer)
        assert result["latest"] == "hammer"
        assert result["bias"] == "bullish"
        monkeypatch.setitem(THRESHOLDS, "hammer_shadow_multiple", 4.0)
        assert self.patterns(hammer)["patterns"] == []

    def test_shooting_star(self, monkeypatch):
        star = (100.5, 102.0, 99.9, 100.0)
        result = self.patterns(star)
        assert result["latest"] == "shooting_star"
        assert result["bias"] == "bearish"
        monkeypatch.setitem(THRESHOLDS, "hammer_opposite_shadow_ratio", 0.1)
        assert self.patterns(star)["patterns"] == []

    def test_trending_regime_bonus(self, monkeypatch):
        highs, lows, closes = ohlc(rising_closes(60))
        result = analysis.market_regime(highs, lows, closes, float(closes[-1]))
        assert result["regime"] == "trending"
        assert result["volatility"] == "normal"
        assert result["score"] == 100
        monkeypatch.setitem(THRESHOLDS, "market_regime_trending_bonus", 0)
        assert analysis.market_regime(highs, lows, closes, float(closes[-1]))["score"] == 70
