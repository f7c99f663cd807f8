import pytest

from coindrafts.engine.models import PriceSnapshot

NOW_MS = 1_700_000_000_000


@pytest.fixture
def now_ms():
    return NOW_MS


@pytest.fixture
def start_snapshot():
    return PriceSnapshot(
        timestamp_ms=NOW_MS - 24 * 3_600_000,
        prices={"bitcoin": 90_000_000_000, "ethereum": 3_000_000_000},
    )


@pytest.fixture
def end_snapshot():
    return PriceSnapshot(
        timestamp_ms=NOW_MS,
        prices={"bitcoin": 85_500_000_000, "ethereum": 3_150_000_000},
    )


@pytest.fixture
def no_sleep():
    delays = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep
