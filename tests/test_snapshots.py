import asyncio

import httpx
import pytest

from coindrafts.common.units import MINUTE_MS
from coindrafts.engine.errors import OracleDataMissing, OracleUnavailable
from coindrafts.engine.models import PriceSample
from coindrafts.engine.oracle.client import PriceOracleClient
from coindrafts.engine.snapshots import SnapshotMatcher, select_closest_sample

TARGET = 1_700_000_000_000


def sample(asset_id, offset_ms, price):
    return PriceSample(asset_id=asset_id, price_micros=price, timestamp_ms=TARGET + offset_ms)


class FakeOracle:
    def __init__(self, history=None, current=None, failing=()):
        self.history = history or {}
        self.current = current or []
        self.failing = set(failing)
        self.current_calls = []
        self.history_calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_current(self, asset_ids):
        self.current_calls.append(list(asset_ids))
        return list(self.current)

    async def fetch_historical(self, asset_id, window_start_ms, window_end_ms):
        self.history_calls.append((asset_id, window_start_ms, window_end_ms))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if asset_id in self.failing:
                raise OracleUnavailable(f"{asset_id} lookup failed", status_code=503)
            return list(self.history.get(asset_id, []))
        finally:
            self.in_flight -= 1


def build_matcher(oracle, no_sleep, now=TARGET + 10 * MINUTE_MS, **kwargs):
    return SnapshotMatcher(oracle, clock=lambda: now, sleep=no_sleep, **kwargs)


def test_select_closest_sample_prefers_nearest():
    samples = [sample("bitcoin", -4 * MINUTE_MS, 100), sample("bitcoin", 3 * MINUTE_MS, 200)]

    assert select_closest_sample(samples, TARGET).price_micros == 200


def test_select_closest_sample_breaks_ties_towards_earlier():
    samples = [sample("bitcoin", 2 * MINUTE_MS, 200), sample("bitcoin", -2 * MINUTE_MS, 100)]

    assert select_closest_sample(samples, TARGET).price_micros == 100


def test_select_closest_sample_without_samples():
    with pytest.raises(OracleDataMissing) as excinfo:
        select_closest_sample([], TARGET, asset_id="bitcoin", window_start_ms=1, window_end_ms=2)

    assert excinfo.value.asset_id == "bitcoin"


@pytest.mark.asyncio
async def test_historical_snapshot_uses_closest_sample_per_asset(no_sleep):
    oracle = FakeOracle(
        history={
            "bitcoin": [
                sample("bitcoin", -4 * MINUTE_MS, 84_000_000_000),
                sample("bitcoin", 3 * MINUTE_MS, 84_500_000_000),
            ],
            "ethereum": [
                sample("ethereum", -2 * MINUTE_MS, 3_000_000_000),
                sample("ethereum", 2 * MINUTE_MS, 3_100_000_000),
            ],
        }
    )
    matcher = build_matcher(oracle, no_sleep)

    snapshot = await matcher.snapshot_at(TARGET, ["bitcoin", "ethereum"])

    assert snapshot.timestamp_ms == TARGET
    assert snapshot.prices == {"bitcoin": 84_500_000_000, "ethereum": 3_000_000_000}
    assert oracle.current_calls == []
    assert ("bitcoin", TARGET - 300_000, TARGET + 300_000) in oracle.history_calls


@pytest.mark.asyncio
async def test_historical_snapshot_omits_assets_without_data(no_sleep):
    oracle = FakeOracle(
        history={"bitcoin": [sample("bitcoin", 0, 84_000_000_000)], "solana": []},
        failing={"dogecoin"},
    )
    matcher = build_matcher(oracle, no_sleep)

    snapshot = await matcher.snapshot_at(TARGET, ["bitcoin", "solana", "dogecoin"])

    assert snapshot.prices == {"bitcoin": 84_000_000_000}
    assert snapshot.missing(["bitcoin", "solana", "dogecoin"]) == ["solana", "dogecoin"]


@pytest.mark.asyncio
async def test_historical_snapshot_with_sub_micro_price_keeps_other_assets(no_sleep):
    def handler(request: httpx.Request) -> httpx.Response:
        asset_id = request.url.path.split("/")[-2]
        price = {"bitcoin": "90000.5", "pepe": "0.0000004"}[asset_id]
        return httpx.Response(200, json={"data": [{"priceUsd": price, "time": TARGET}]})

    session = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    oracle = PriceOracleClient("https://oracle.example.com/v3", session=session)
    matcher = build_matcher(oracle, no_sleep, now=TARGET + 60 * MINUTE_MS)

    snapshot = await matcher.snapshot_at(TARGET, ["bitcoin", "pepe"])

    assert snapshot.timestamp_ms == TARGET
    assert snapshot.prices == {"bitcoin": 90_000_500_000}


@pytest.mark.asyncio
async def test_unexpected_lookup_error_only_drops_that_asset(no_sleep):
    class BrokenOracle(FakeOracle):
        async def fetch_historical(self, asset_id, window_start_ms, window_end_ms):
            if asset_id == "pepe":
                raise ValueError("malformed history")
            return await super().fetch_historical(asset_id, window_start_ms, window_end_ms)

    oracle = BrokenOracle(history={"bitcoin": [sample("bitcoin", 0, 84_000_000_000)]})
    matcher = build_matcher(oracle, no_sleep)

    snapshot = await matcher.snapshot_at(TARGET, ["bitcoin", "pepe"])

    assert snapshot.prices == {"bitcoin": 84_000_000_000}


@pytest.mark.asyncio
async def test_historical_lookups_respect_concurrency_and_delay(no_sleep):
    assets = [f"asset-{i}" for i in range(6)]
    oracle = FakeOracle(history={a: [sample(a, 0, 1_000_000)] for a in assets})
    matcher = build_matcher(oracle, no_sleep, concurrency=2, request_delay_seconds=0.1)

    snapshot = await matcher.snapshot_at(TARGET, assets)

    assert len(snapshot.prices) == 6
    assert oracle.max_in_flight <= 2
    assert no_sleep.delays == [0.1] * 6


@pytest.mark.asyncio
async def test_recent_target_uses_batched_current_prices(no_sleep):
    oracle = FakeOracle(
        current=[
            PriceSample(asset_id="bitcoin", price_micros=84_714_000_000, timestamp_ms=TARGET),
            PriceSample(asset_id="litecoin", price_micros=90_000_000, timestamp_ms=TARGET),
        ]
    )
    matcher = build_matcher(oracle, no_sleep, now=TARGET + 5_000)

    snapshot = await matcher.snapshot_at(TARGET, ["bitcoin", "ethereum"])

    assert oracle.current_calls == [["bitcoin", "ethereum"]]
    assert oracle.history_calls == []
    assert snapshot.timestamp_ms == TARGET
    assert snapshot.prices == {"bitcoin": 84_714_000_000}


@pytest.mark.asyncio
async def test_current_price_failure_propagates(no_sleep):
    class DownOracle(FakeOracle):
        async def fetch_current(self, asset_ids):
            raise OracleUnavailable("down", status_code=502)

    matcher = build_matcher(DownOracle(), no_sleep, now=TARGET)

    with pytest.raises(OracleUnavailable):
        await matcher.snapshot_at(TARGET, ["bitcoin"])


@pytest.mark.asyncio
async def test_empty_asset_list_gives_empty_snapshot(no_sleep):
    oracle = FakeOracle()
    matcher = build_matcher(oracle, no_sleep)

    snapshot = await matcher.snapshot_at(TARGET, ["", " "])

    assert snapshot.is_empty
    assert oracle.current_calls == [] and oracle.history_calls == []


@pytest.mark.asyncio
async def test_price_changes_over_period(no_sleep):
    class MovingOracle(FakeOracle):
        async def fetch_historical(self, asset_id, window_start_ms, window_end_ms):
            midpoint = (window_start_ms + window_end_ms) // 2
            return [PriceSample(asset_id=asset_id, price_micros=100_000_000, timestamp_ms=midpoint)]

    oracle = MovingOracle(
        current=[PriceSample(asset_id="bitcoin", price_micros=110_000_000, timestamp_ms=TARGET)]
    )
    matcher = build_matcher(oracle, no_sleep, now=TARGET)

    changes = await matcher.price_changes_over_period(["bitcoin"], hours=24)

    assert changes["bitcoin"] == pytest.approx(10.0)


def test_invalid_concurrency_rejected():
    with pytest.raises(ValueError):
        SnapshotMatcher(FakeOracle(), concurrency=0)
