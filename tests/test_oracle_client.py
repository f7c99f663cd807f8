from typing import List

import httpx
import pytest

from coindrafts.engine.errors import OracleUnavailable
from coindrafts.engine.oracle.client import PriceOracleClient


def build_mock_client(responses: List[httpx.Response]) -> PriceOracleClient:
    call_count = {"value": 0}
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        idx = call_count["value"]
        call_count["value"] += 1
        requests.append(request)
        try:
            return responses[idx]
        except IndexError:
            raise AssertionError("Mock transport received more requests than expected")

    transport = httpx.MockTransport(handler)
    session = httpx.AsyncClient(transport=transport)

    client = PriceOracleClient(
        base_url="https://oracle.example.com/v3",
        session=session,
        max_retries=2,
        backoff_seconds=0.01,
    )
    client._test_call_count = call_count
    client._test_requests = requests
    return client


def current_payload():
    return {
        "timestamp": 1_700_000_000_000,
        "data": [
            {"id": "bitcoin", "priceUsd": "84714.1234"},
            {"id": "ethereum", "priceUsd": "3000"},
            {"id": "broken", "priceUsd": None},
        ],
    }


@pytest.mark.asyncio
async def test_fetch_current_batches_assets_in_one_request():
    client = build_mock_client([httpx.Response(200, json=current_payload())])

    samples = await client.fetch_current(["bitcoin", "ethereum", "bitcoin", "broken"])

    assert client._test_call_count["value"] == 1
    request = client._test_requests[0]
    assert request.url.path == "/v3/assets"
    assert request.url.params["ids"] == "bitcoin,ethereum,broken"

    prices = {s.asset_id: s.price_micros for s in samples}
    assert prices == {"bitcoin": 84_714_123_400, "ethereum": 3_000_000_000}
    assert all(s.timestamp_ms == 1_700_000_000_000 for s in samples)


@pytest.mark.asyncio
async def test_fetch_current_retries_on_server_error():
    client = build_mock_client(
        [
            httpx.Response(503, json={"error": "temporary"}),
            httpx.Response(429, json={"error": "slow down"}),
            httpx.Response(200, json=current_payload()),
        ]
    )

    samples = await client.fetch_current(["bitcoin"])

    assert client._test_call_count["value"] == 3
    assert len(samples) == 2


@pytest.mark.asyncio
async def test_fetch_current_raises_after_exhausting_retries():
    client = build_mock_client([httpx.Response(500, json={"error": "down"})] * 3)

    with pytest.raises(OracleUnavailable) as excinfo:
        await client.fetch_current(["bitcoin"])

    assert excinfo.value.status_code == 500
    assert client._test_call_count["value"] == 3


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    client = build_mock_client([httpx.Response(403, json={"message": "forbidden"})])

    with pytest.raises(OracleUnavailable) as excinfo:
        await client.fetch_current(["bitcoin"])

    assert excinfo.value.status_code == 403
    assert client._test_call_count["value"] == 1


@pytest.mark.asyncio
async def test_fetch_current_rejects_empty_asset_list():
    client = build_mock_client([])

    with pytest.raises(ValueError):
        await client.fetch_current(["", "  "])


@pytest.mark.asyncio
async def test_fetch_historical_returns_sorted_minute_samples():
    payload = {
        "data": [
            {"priceUsd": "101.5", "time": 1_700_000_120_000},
            {"priceUsd": "100.0", "time": 1_700_000_000_000},
            {"priceUsd": "-1", "time": 1_700_000_060_000},
        ]
    }
    client = build_mock_client([httpx.Response(200, json=payload)])

    samples = await client.fetch_historical("bitcoin", 1_699_999_700_000, 1_700_000_300_000)

    request = client._test_requests[0]
    assert request.url.path == "/v3/assets/bitcoin/history"
    assert request.url.params["interval"] == "m1"
    assert request.url.params["start"] == "1699999700000"
    assert request.url.params["end"] == "1700000300000"

    assert [s.timestamp_ms for s in samples] == [1_700_000_000_000, 1_700_000_120_000]
    assert [s.price_micros for s in samples] == [100_000_000, 101_500_000]


@pytest.mark.asyncio
async def test_fetch_history_validates_arguments():
    client = build_mock_client([])

    with pytest.raises(ValueError):
        await client.fetch_history("bitcoin", interval="m2")
    with pytest.raises(ValueError):
        await client.fetch_history("bitcoin", start_ms=2_000, end_ms=1_000)
    assert client._test_call_count["value"] == 0


@pytest.mark.asyncio
async def test_invalid_payload_raises():
    client = build_mock_client([httpx.Response(200, json={"unexpected": True})])

    with pytest.raises(OracleUnavailable):
        await client.fetch_historical("bitcoin", 0, 1_000)


@pytest.mark.asyncio
async def test_asset_exists():
    client = build_mock_client(
        [httpx.Response(200, json={"data": {"id": "bitcoin"}}), httpx.Response(404)]
    )

    assert await client.asset_exists("bitcoin") is True
    assert await client.asset_exists("nope") is False


@pytest.mark.asyncio
async def test_fetch_current_drops_rows_that_cannot_be_priced():
    payload = {
        "timestamp": 1_700_000_000_000,
        "data": [
            {"id": "bitcoin", "priceUsd": "90000.5"},
            {"id": "pepe", "priceUsd": "0.0000004"},
            {"id": "zero", "priceUsd": "0"},
            {"id": "negative", "priceUsd": "-3"},
            {"id": "garbage", "priceUsd": "abc"},
            {"priceUsd": "10"},
        ],
    }
    client = build_mock_client([httpx.Response(200, json=payload)])

    samples = await client.fetch_current(["bitcoin", "pepe", "zero", "negative", "garbage"])

    assert [(s.asset_id, s.price_micros) for s in samples] == [("bitcoin", 90_000_500_000)]


@pytest.mark.asyncio
async def test_fetch_current_tolerates_unparseable_timestamp():
    payload = {"timestamp": "soon", "data": [{"id": "bitcoin", "priceUsd": "1"}]}
    client = build_mock_client([httpx.Response(200, json=payload)])

    samples = await client.fetch_current(["bitcoin"])

    assert samples[0].timestamp_ms > 0


@pytest.mark.asyncio
async def test_fetch_historical_drops_rows_that_cannot_be_priced():
    payload = {
        "data": [
            {"priceUsd": "100.0", "time": 1_700_000_000_000},
            {"priceUsd": "0.0000004", "time": 1_700_000_060_000},
            {"priceUsd": "0", "time": 1_700_000_120_000},
            {"priceUsd": "100.0", "time": "yesterday"},
            {"priceUsd": "100.0"},
        ]
    }
    client = build_mock_client([httpx.Response(200, json=payload)])

    samples = await client.fetch_historical("bitcoin", 1_699_999_700_000, 1_700_000_300_000)

    assert [(s.timestamp_ms, s.price_micros) for s in samples] == [
        (1_700_000_000_000, 100_000_000)
    ]
