# --- START OF FILE: tests/test_api.py ---
import httpx
import pytest
from fastapi.testclient import TestClient

from cryptotracker.boot import build_services
from cryptotracker.config import Settings
from cryptotracker.interfaces.api.main import create_app

from conftest import FakeClock


class FakeCoinGecko:
    """MockTransport handler standing in for the CoinGecko REST API."""

    def __init__(self, markets):
        self.markets = markets
        self.status = 200
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status)
        if request.url.path.endswith("/market_chart"):
            return httpx.Response(200, json={
                "prices": [[1767268800000, 60000.0], [1767272400000, 60250.5]],
                "market_caps": [[1767268800000, 1.2e12]],
                "total_volumes": [[1767268800000, 3.0e10]],
            })
        ids = request.url.params.get("ids")
        return httpx.Response(200, json=[m for m in self.markets if ids is None or m["id"] == ids])


@pytest.fixture
def upstream(market_entry) -> FakeCoinGecko:
    return FakeCoinGecko([
        market_entry("bitcoin", price=60000, market_cap=1_200_000_000_000, price_change_percentage_24h=2.5),
        market_entry("ethereum", price=3000, market_cap=360_000_000_000, price_change_percentage_24h=-1.5),
    ])


@pytest.fixture
def api_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client(tmp_path, upstream, api_clock):
    """Provides a TestClient wired to a temp database and the fake upstream."""
    config = Settings(
        ENV="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'api.db'}",
        COINGECKO_API_URL="https://cg.test/api/v3",
        BACKGROUND_REFRESH_ENABLED=False,
    )
    services = build_services(config, transport=httpx.MockTransport(upstream), clock=api_clock)
    app = create_app(config=config, services=services)
    with TestClient(app) as test_client:
        yield test_client


def test_root_and_health(client: TestClient):
    assert "CryptoTracker" in client.get("/").json()["message"]

    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["governor"]["can_call_now"] is True
    assert health["inflight"] == []


def test_tokens_sweep_and_order(client: TestClient, upstream: FakeCoinGecko):
    r = client.get("/api/tokens")

    assert r.status_code == 200
    body = r.json()
    assert [t["token_id"] for t in body] == ["bitcoin", "ethereum"]
    assert body[0]["current_price"] == 60000.0
    assert body[0]["volume_24h"] == 30_000_000_000
    assert body[0]["is_favorite"] is False
    assert upstream.requests[0].url.params["per_page"] == "100"


def test_tokens_unavailable_when_nothing_cached(client: TestClient, upstream: FakeCoinGecko):
    upstream.status = 429

    r = client.get("/api/tokens")

    assert r.status_code == 503
    assert r.json()["retry_after"] == 60
    assert "error" in r.json()


def test_single_token_served_from_cache(client: TestClient, upstream: FakeCoinGecko, api_clock: FakeClock):
    client.get("/api/tokens")
    api_clock.advance(10)

    r = client.get("/api/tokens/ethereum")

    assert r.status_code == 200
    assert r.json()["current_price"] == 3000.0
    assert len(upstream.requests) == 1


def test_single_token_stale_during_backoff(client: TestClient, upstream: FakeCoinGecko, api_clock: FakeClock):
    client.get("/api/tokens")
    upstream.status = 429
    api_clock.advance(70)

    first = client.get("/api/tokens/bitcoin")
    api_clock.advance(20)
    second = client.get("/api/tokens/bitcoin")

    assert first.status_code == second.status_code == 200
    assert second.json()["current_price"] == 60000.0
    assert len(upstream.requests) == 2


def test_unknown_token_is_404(client: TestClient):
    r = client.get("/api/tokens/not-a-coin")

    assert r.status_code == 404
    assert r.json() == {"error": "Token not found"}


def test_uncached_token_while_rate_limited_is_503(client: TestClient, upstream: FakeCoinGecko):
    upstream.status = 429

    r = client.get("/api/tokens/bitcoin")

    assert r.status_code == 503
    assert r.headers["Retry-After"] == "60"
    assert r.json()["retry_after"] == 60


def test_favorite_toggle_flow(client: TestClient):
    client.get("/api/tokens")

    r = client.post("/api/tokens/favorite", json={"token_id": "ethereum"})
    assert r.status_code == 200
    assert r.json()["is_favorite"] is True

    favorites = client.get("/api/favorites").json()
    assert [t["token_id"] for t in favorites] == ["ethereum"]

    r = client.post("/api/tokens/favorite", json={"token_id": "ethereum", "is_favorite": False})
    assert r.json()["is_favorite"] is False
    assert client.get("/api/favorites").json() == []


def test_favorite_unknown_token_is_404(client: TestClient):
    r = client.post("/api/tokens/favorite", json={"token_id": "ghost"})
    assert r.status_code == 404


def test_search(client: TestClient):
    client.get("/api/tokens")

    assert client.get("/api/search", params={"q": ""}).status_code == 400
    r = client.get("/api/search", params={"q": "ETH"})
    assert [t["token_id"] for t in r.json()] == ["ethereum"]


def test_stats(client: TestClient):
    client.get("/api/tokens")

    stats = client.get("/api/stats").json()

    assert stats["total_tokens"] == 2
    assert stats["total_market_cap"] == 1_560_000_000_000
    assert stats["avg_price_change_24h"] == pytest.approx(0.5)
    assert stats["biggest_gainer"]["token_id"] == "bitcoin"
    assert stats["biggest_loser"]["token_id"] == "ethereum"


def test_history(client: TestClient, upstream: FakeCoinGecko):
    r = client.get("/api/history/bitcoin/7")

    assert r.status_code == 200
    body = r.json()
    assert body["days"] == 7
    assert body["prices"][1] == [1767272400000.0, 60250.5]
    assert upstream.requests[0].url.params["days"] == "7"


def test_history_validation_and_unavailable(client: TestClient, upstream: FakeCoinGecko):
    assert client.get("/api/history/bitcoin/0").status_code == 422

    upstream.status = 503
    r = client.get("/api/history/bitcoin/7")
    assert r.status_code == 503
    assert "retry_after" in r.json()


def test_metrics_endpoint(client: TestClient):
    client.get("/api/tokens")

    r = client.get("/metrics")

    assert r.status_code == 200
    assert "ct_upstream_calls_total" in r.text
# --- END OF FILE ---
