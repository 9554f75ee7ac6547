import json
from decimal import Decimal

import httpx
import pytest

from cryptotracker.infrastructure.pricing.coingecko_client import CoinGeckoClient, Classification

pytestmark = pytest.mark.asyncio


class Recorder:
    """httpx MockTransport handler that replays canned responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_client(governor, clock, handler, **kwargs) -> CoinGeckoClient:
    return CoinGeckoClient(
        governor=governor,
        base_url="https://cg.test/api/v3",
        transport=httpx.MockTransport(handler),
        clock=clock,
        **kwargs,
    )


async def test_fetch_all_decodes_markets(governor, clock, market_entry):
    handler = Recorder(httpx.Response(200, json=[market_entry("bitcoin"), market_entry("ethereum", price=3000.5)]))
    client = make_client(governor, clock, handler)

    result = await client.fetch_all(limit=50)

    assert result.ok
    btc, eth = result.data
    assert btc.token_id == "bitcoin"
    assert btc.current_price == Decimal("60000")
    assert btc.high_24h == Decimal("61000")
    assert btc.image.endswith("bitcoin.png")
    assert btc.last_updated == clock()
    assert eth.current_price == Decimal("3000.5")

    request = handler.requests[0]
    assert request.url.path == "/api/v3/coins/markets"
    assert request.url.params["per_page"] == "50"
    assert request.url.params["vs_currency"] == "usd"


async def test_call_reserves_the_governor_slot(governor, clock, market_entry):
    handler = Recorder(httpx.Response(200, json=[market_entry()]))
    client = make_client(governor, clock, handler)

    await client.fetch_all()

    assert not governor.can_call_now()
    clock.advance(2)
    assert governor.can_call_now()


async def test_second_call_inside_spacing_is_deferred_without_io(governor, clock, market_entry):
    handler = Recorder(httpx.Response(200, json=[market_entry()]))
    client = make_client(governor, clock, handler)

    await client.fetch_all()
    clock.advance(1)
    result = await client.fetch_token("bitcoin")

    assert result.classification is Classification.DEFERRED
    assert len(handler.requests) == 1


async def test_429_maps_to_rate_limited_and_starts_backoff(governor, clock):
    handler = Recorder(httpx.Response(429, json={"status": {"error_code": 429}}))
    client = make_client(governor, clock, handler)

    result = await client.fetch_token("bitcoin")

    assert result.classification is Classification.RATE_LIMITED
    clock.advance(30)
    assert not governor.can_call_now()
    clock.advance(30)
    assert governor.can_call_now()


@pytest.mark.parametrize("status", [500, 502, 503, 403])
async def test_other_errors_map_to_unavailable_without_backoff(governor, clock, status):
    client = make_client(governor, clock, Recorder(httpx.Response(status, text="oops")))

    result = await client.fetch_all()

    assert result.classification is Classification.UPSTREAM_UNAVAILABLE
    clock.advance(2)
    assert governor.can_call_now()


async def test_transport_failures_map_to_unavailable(governor, clock):
    request = httpx.Request("GET", "https://cg.test/api/v3/coins/markets")
    client = make_client(governor, clock, Recorder(httpx.ConnectTimeout("timed out", request=request)))

    result = await client.fetch_all()

    assert result.classification is Classification.UPSTREAM_UNAVAILABLE
    # The slot was still consumed even though the call never completed.
    assert not governor.can_call_now()


async def test_connection_error_maps_to_unavailable(governor, clock):
    request = httpx.Request("GET", "https://cg.test/api/v3/coins/markets")
    client = make_client(governor, clock, Recorder(httpx.ConnectError("refused", request=request)))

    result = await client.fetch_token("bitcoin")

    assert result.classification is Classification.UPSTREAM_UNAVAILABLE


async def test_null_price_is_malformed(governor, clock, market_entry):
    client = make_client(governor, clock, Recorder(httpx.Response(200, json=[market_entry(price=None)])))

    result = await client.fetch_token("bitcoin")

    assert result.classification is Classification.MALFORMED_RESPONSE
    assert result.data is None


async def test_negative_price_is_malformed(governor, clock, market_entry):
    client = make_client(governor, clock, Recorder(httpx.Response(200, json=[market_entry(price=-5)])))

    result = await client.fetch_token("bitcoin")

    assert result.classification is Classification.MALFORMED_RESPONSE


async def test_fetch_all_drops_bad_entries(governor, clock, market_entry):
    payload = [market_entry("bitcoin"), market_entry("broken", price=None), {"id": "no-name"}]
    client = make_client(governor, clock, Recorder(httpx.Response(200, json=payload)))

    result = await client.fetch_all()

    assert result.ok
    assert [t.token_id for t in result.data] == ["bitcoin"]


async def test_fetch_all_with_only_bad_entries_is_malformed(governor, clock, market_entry):
    client = make_client(governor, clock, Recorder(httpx.Response(200, json=[market_entry(price="abc")])))

    result = await client.fetch_all()

    assert result.classification is Classification.MALFORMED_RESPONSE


async def test_non_json_body_is_malformed(governor, clock):
    client = make_client(governor, clock, Recorder(httpx.Response(200, text="<html>maintenance</html>")))

    result = await client.fetch_all()

    assert result.classification is Classification.MALFORMED_RESPONSE


async def test_unknown_id_is_not_found(governor, clock):
    client = make_client(governor, clock, Recorder(httpx.Response(200, json=[])))

    result = await client.fetch_token("no-such-coin")

    assert result.classification is Classification.NOT_FOUND


async def test_missing_optional_fields_default(governor, clock, market_entry):
    entry = market_entry(price_change_24h=None, price_change_percentage_24h=None, high_24h=None, low_24h=None, total_supply=None)
    client = make_client(governor, clock, Recorder(httpx.Response(200, json=[entry])))

    result = await client.fetch_token("bitcoin")

    assert result.ok
    assert result.data.price_change_24h == Decimal("0")
    assert result.data.price_change_percentage_24h == 0.0
    assert result.data.high_24h is None
    assert result.data.total_supply is None


async def test_api_key_and_user_agent_headers(governor, clock, market_entry):
    handler = Recorder(httpx.Response(200, json=[market_entry()]))
    client = make_client(governor, clock, handler, api_key="demo-key", user_agent="Tests/1.0")

    await client.fetch_token("bitcoin")

    request = handler.requests[0]
    assert request.headers["x-cg-demo-api-key"] == "demo-key"
    assert request.headers["user-agent"] == "Tests/1.0"
    assert request.url.params["ids"] == "bitcoin"


async def test_fetch_history_decodes_series(governor, clock):
    body = {
        "prices": [[1767268800000, 60000.5], [1767272400000, 60100]],
        "market_caps": [[1767268800000, 1.2e12]],
        "total_volumes": [[1767268800000, 3.1e10]],
    }
    handler = Recorder(httpx.Response(200, content=json.dumps(body)))
    client = make_client(governor, clock, handler)

    result = await client.fetch_history("bitcoin", 7)

    assert result.ok
    history = result.data
    assert history.days == 7
    assert history.prices[0].timestamp_ms == 1767268800000
    assert history.prices[0].value == Decimal("60000.5")
    assert len(history.market_caps) == 1
    assert handler.requests[0].url.path == "/api/v3/coins/bitcoin/market_chart"


async def test_fetch_history_rejects_bad_shape(governor, clock):
    client = make_client(governor, clock, Recorder(httpx.Response(200, json={"prices": [[1, None]]})))

    result = await client.fetch_history("bitcoin", 1)

    assert result.classification is Classification.MALFORMED_RESPONSE


async def test_history_404_is_not_found(governor, clock):
    client = make_client(governor, clock, Recorder(httpx.Response(404, json={"error": "coin not found"})))

    result = await client.fetch_history("nope", 1)

    assert result.classification is Classification.NOT_FOUND


async def test_boolean_percentage_is_malformed(governor, clock, market_entry):
    entry = market_entry(price_change_percentage_24h=True)
    client = make_client(governor, clock, Recorder(httpx.Response(200, json=[entry])))

    result = await client.fetch_token("bitcoin")

    assert result.classification is Classification.MALFORMED_RESPONSE
