"""
Tests for the HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from signal_engine.main import app
from signal_engine.services.indicators.registry import REGISTRY

from tests.conftest import make_candles, rising_closes


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def payload(closes, **extra) -> dict:
    candles = [candle.model_dump() for candle in make_candles(closes)]
    return {"symbol": "BTCUSDT", "candles": candles, **extra}


class TestIndicatorEndpoints:
    def test_aggregate(self, client):
        response = client.post("/api/v1/indicators/aggregate", json=payload(rising_closes().tolist()))
        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "BTCUSDT"
        assert body["snapshot"]["indicators"]["rsi_14"]["value"] == pytest.approx(100.0)

    def test_aggregate_with_overrides(self, client):
        body = payload(rising_closes().tolist(), overrides={"rsi_7": {"period": 5}})
        response = client.post("/api/v1/indicators/aggregate", json=body)
        assert response.json()["snapshot"]["indicators"]["rsi_7"]["period"] == 5

    def test_short_series_rejected(self, client):
        response = client.post("/api/v1/indicators/aggregate", json=payload([100.0] * 5))
        assert response.status_code == 422

    def test_unordered_candles_rejected(self, client):
        body = payload(rising_closes().tolist())
        body["candles"].reverse()
        response = client.post("/api/v1/indicators/aggregate", json=body)
        assert response.status_code == 422

    def test_registry_listing(self, client):
        response = client.get("/api/v1/indicators/registry")
        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == len(REGISTRY)
        assert {"rsi_14", "macd", "atr"} <= {entry["name"] for entry in entries}


class TestAppEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"
