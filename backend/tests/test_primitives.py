"""
Tests for primitive transforms and guarded arithmetic.
"""

import numpy as np
import pytest

from signal_engine.services.indicators.primitives import (
    ema,
    last_vs_average,
    lookback_change,
    pct_change,
    rolling_max,
    rolling_min,
    safe_div,
    safe_divide,
    sma,
    smma,
    true_range,
    wma,
)


class TestMovingAverages:
    def test_sma_is_compact(self):
        result = sma([1, 2, 3, 4, 5], 3)
        assert result.tolist() == pytest.approx([2.0, 3.0, 4.0])

    def test_sma_length(self):
        assert len(sma(np.arange(50), 20)) == 31

    def test_ema_period_one_is_identity(self):
        values = [3.0, 1.0, 4.0, 1.0, 5.0]
        assert ema(values, 1).tolist() == pytest.approx(values)

    def test_ema_seeded_with_sma(self):
        result = ema([2, 4, 6, 8], 3)
        assert result[0] == pytest.approx(4.0)
        assert result[1] == pytest.approx(4.0 + 0.5 * (8 - 4.0))

    def test_wma_weights_recent_highest(self):
        assert wma([1, 2, 3], 3)[0] == pytest.approx(14 / 6)

    def test_smma_wilder_smoothing(self):
        result = smma([1, 2, 3, 4], 2)
        assert result.tolist() == pytest.approx([1.5, 2.25, 3.125])

    @pytest.mark.parametrize("func", [sma, ema, wma, smma, rolling_max, rolling_min])
    def test_degenerate_inputs_are_empty(self, func):
        assert len(func([], 3)) == 0
        assert len(func([1, 2], 3)) == 0
        assert len(func([1, 2, 3], 0)) == 0


class TestRollingAndRange:
    def test_rolling_extremes(self):
        values = [1, 5, 2, 4, 3]
        assert rolling_max(values, 2).tolist() == [5, 5, 4, 4]
        assert rolling_min(values, 2).tolist() == [1, 2, 2, 3]

    def test_true_range_uses_previous_close(self):
        result = true_range([10, 12], [9, 11], [9.5, 11.5])
        assert result.tolist() == pytest.approx([2.5])

    def test_true_range_needs_two_candles(self):
        assert len(true_range([1], [1], [1])) == 0


class TestGuardedArithmetic:
    def test_safe_div_fallback(self):
        assert safe_div(1, 0) == 0.0
        assert safe_div(1, 0, 0.5) == 0.5
        assert safe_div(3, 2) == 1.5

    def test_safe_divide_elementwise(self):
        result = safe_divide([1, 2, 3], [1, 0, 3], fallback=-1)
        assert result.tolist() == [1.0, -1.0, 1.0]

    def test_pct_change(self):
        assert pct_change([100, 110, 99], 1).tolist() == pytest.approx([10.0, -10.0])


class TestLookbackChanges:
    def test_change_against_lookback(self):
        assert lookback_change([100.0, 50.0, 110.0, 120.0], 2) == pytest.approx(140.0)

    def test_change_falls_back_to_first_value(self):
        assert lookback_change([100.0, 120.0], 24) == pytest.approx(20.0)

    def test_change_from_zero_base(self):
        assert lookback_change([0.0, 5.0], 1) == 0.0

    def test_last_against_window_average(self):
        assert last_vs_average([1000.0, 10.0, 20.0, 30.0], 3) == pytest.approx(50.0)

    def test_zero_average(self):
        assert last_vs_average([0.0, 0.0], 24) == 0.0
