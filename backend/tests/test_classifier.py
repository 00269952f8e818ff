"""
Tests for threshold tables and composite classifications.
"""

import pytest

from signal_engine.services.indicators.classifier import (
    THRESHOLDS,
    change_direction,
    classify,
    classify_adx,
    classify_position,
    get_table,
    line_cross,
    signal_from_trend,
    zero_cross,
)


class TestThresholdTables:
    @pytest.mark.parametrize(
        "value,label",
        [(25, "oversold"), (30, "neutral"), (50, "neutral"), (70, "neutral"), (75, "overbought")],
    )
    def test_rsi_zones(self, value, label):
        assert classify("rsi", value) == label

    def test_first_match_wins(self):
        assert classify("roc", 15) == "overbought"
        assert classify("roc", 5) == "bullish"
        assert classify("roc", 0) == "neutral"

    def test_volatility_zone_ladder(self):
        assert [classify("volatility_zone", v) for v in (0.5, 2.0, 3.0, 5.0)] == [
            "LOW",
            "NORMAL",
            "HIGH",
            "EXTREME",
        ]

    def test_none_stays_none(self):
        assert classify("rsi", None) is None

    def test_unknown_table(self):
        with pytest.raises(KeyError):
            get_table("does_not_exist")

    def test_thresholds_are_numeric(self):
        assert all(isinstance(value, (int, float)) for value in THRESHOLDS.values())


class TestCompositeClassification:
    def test_classify_adx(self):
        assert classify_adx(30, 25, 10) == {"trend": "bullish", "strength": "strong"}
        assert classify_adx(None, None, 10) == {"trend": None, "strength": None}

    def test_position_tolerance(self):
        assert classify_position(100.05, 100, tolerance=0.001) == "equal"
        assert classify_position(101, 100, tolerance=0.001) == "above"
        assert classify_position(99, 100, tolerance=0.001) == "below"

    def test_signal_from_trend(self):
        assert signal_from_trend("bullish") == "buy"
        assert signal_from_trend("bearish") == "sell"
        assert signal_from_trend("neutral") == "neutral"
        assert signal_from_trend(None) is None

    def test_crosses(self):
        assert zero_cross(-1, 1) == "bullish"
        assert zero_cross(1, -1) == "bearish"
        assert zero_cross(1, 2) == "none"
        assert zero_cross(None, 1) == "none"
        assert line_cross(1, 2, 3, 2) == "bullish"
        assert line_cross(3, 2, 1, 2) == "bearish"

    def test_change_direction(self):
        assert change_direction(2, 1) == "rising"
        assert change_direction(1, 2) == "falling"
        assert change_direction(1, 1) == "flat"
        assert change_direction(1, None) is None
