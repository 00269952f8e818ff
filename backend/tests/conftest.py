"""
Shared fixtures: deterministic OHLCV series built from closing prices.
"""

import numpy as np
import pytest

from signal_engine.schemas.market import Candle

BASE_TIMESTAMP = 1_700_000_000_000
HOUR_MS = 3_600_000


def make_candles(closes, spread: float = 0.5, volume: float = 1000.0) -> list[Candle]:
    """Candles around each close: high/low +- spread, open a quarter spread below."""
    return [
        Candle(
            timestamp=BASE_TIMESTAMP + i * HOUR_MS,
            open=close - spread / 2,
            high=close + spread,
            low=close - spread,
            close=close,
            volume=volume,
        )
        for i, close in enumerate(closes)
    ]


def rising_closes(n: int = 30, start: float = 100.0, rise: float = 30.0) -> np.ndarray:
    return start + np.arange(n) * rise / (n - 1)


@pytest.fixture
def rising_candles() -> list[Candle]:
    """30 candles climbing linearly from 100 to 130."""
    return make_candles(rising_closes())


@pytest.fixture
def flat_candles() -> list[Candle]:
    """14 identical candles at 100 with no range and no volume."""
    return make_candles([100.0] * 14, spread=0.0, volume=0.0)


@pytest.fixture
def noisy_candles() -> list[Candle]:
    """120 candles of a seeded random walk."""
    np.random.seed(42)
    closes = 100 * np.cumprod(1 + np.random.normal(0.0005, 0.01, 120))
    volumes = np.random.uniform(500, 1500, 120)
    candles = make_candles(closes)
    return [c.model_copy(update={"volume": float(v)}) for c, v in zip(candles, volumes)]
