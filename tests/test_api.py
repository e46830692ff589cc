from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from staking_analytics.api.routes import get_token_repository, get_valuation_service
from staking_analytics.config import Settings
from staking_analytics.main import app
from staking_analytics.valuation import ValuationService
from utils.fakes import (
    FakeClock,
    FakePriceSource,
    FakeSupplySource,
    FakeTokenRepository,
    InMemoryCache,
    make_token,
    rising_series,
)


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def client(cache: InMemoryCache):
    prices = FakePriceSource(
        {
            "wstETH": rising_series(365),
            "rETH": rising_series(365, step=0.0005),
            "pufETH": rising_series(90),
        },
        failing={"CBETH"},
    )
    service = ValuationService(
        cache=cache,
        price_source=prices,
        supply_source=FakeSupplySource(supply=42 * 10**18),
        settings=Settings(),
        clock=FakeClock(),
    )
    repository = FakeTokenRepository([make_token(symbol) for symbol in ("CBETH", "pufETH", "rETH", "wstETH")])
    app.dependency_overrides[get_valuation_service] = lambda: service
    app.dependency_overrides[get_token_repository] = lambda: repository
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_list_tokens(client: TestClient) -> None:
    response = client.get("/api/tokens")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 4
    assert [token["symbol"] for token in body["tokens"]] == ["CBETH", "pufETH", "rETH", "wstETH"]


def test_token_history(client: TestClient) -> None:
    response = client.get("/api/token/wstETH/history")

    assert response.status_code == 200
    body = response.json()
    assert body["token_symbol"] == "wstETH"
    assert body["count"] == 365
    assert set(body["price_history"][0]) == {"timestamp", "price"}


def test_token_history_source_failure(client: TestClient) -> None:
    response = client.get("/api/token/CBETH/history")

    assert response.status_code == 502


def test_unknown_token_is_rejected(client: TestClient) -> None:
    response = client.get("/api/token/DOGE/valuation")

    assert response.status_code == 400
    assert response.json()["detail"] == "Token not found or not supported"


def test_token_valuation(client: TestClient) -> None:
    response = client.get("/api/token/wstETH/valuation")

    assert response.status_code == 200
    body = response.json()
    assert body["token_symbol"] == "wstETH"
    assert body["tvl"] == 42.0
    assert body["remarks"] == "Fair Value"
    assert set(body) == {"token_symbol", "price", "apr", "stability", "tvl", "remarks", "last_updated"}


def test_token_valuation_insufficient_history(client: TestClient) -> None:
    response = client.get("/api/token/pufETH/valuation")

    assert response.status_code == 422


def test_all_valuations_skip_failures(client: TestClient) -> None:
    response = client.get("/api/valuations")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert [item["token_symbol"] for item in body["valuations"]] == ["rETH", "wstETH"]


def test_cache_refresh_drops_cached_artifacts(client: TestClient, cache: InMemoryCache) -> None:
    client.get("/api/token/wstETH/valuation")
    assert "valuation:wstETH" in cache.store

    response = client.post("/api/cache/refresh")

    assert response.status_code == 200
    assert "wstETH" in response.json()["invalidated"]
    assert cache.store == {}


def test_valuation_service_missing_returns_503() -> None:
    app.dependency_overrides[get_token_repository] = lambda: FakeTokenRepository([make_token("wstETH")])
    try:
        response = TestClient(app).get("/api/token/wstETH/valuation")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
