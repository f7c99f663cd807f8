"""
Price snapshots at contest boundaries.

A snapshot for a recent target time comes straight from the batched
current-price endpoint. Older targets are matched per asset against minute
history in a window around the target: the closest sample wins, and on equal
distance the earlier sample wins. Assets without a usable sample are left out
(partial snapshot) instead of failing the whole call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from coindrafts.common.units import HOUR_MS, now_ms

from .errors import OracleDataMissing, OracleUnavailable
from .models import PriceSample, PriceSnapshot
from .oracle.client import PriceOracleClient
from .scoring.returns import compute_returns

logger = logging.getLogger(__name__)

FRESHNESS_THRESHOLD_MS = 60_000
LOOKUP_WINDOW_MS = 300_000
HISTORICAL_CONCURRENCY = 3
HISTORICAL_REQUEST_DELAY_SECONDS = 0.1


def select_closest_sample(
    samples: Sequence[PriceSample],
    target_ms: int,
    *,
    asset_id: str = "",
    window_start_ms: int = 0,
    window_end_ms: int = 0,
) -> PriceSample:
    """
    Raises:
        OracleDataMissing: if there are no samples
    """
    if not samples:
        raise OracleDataMissing(asset_id, window_start_ms, window_end_ms)
    return min(
        samples,
        key=lambda sample: (abs(sample.timestamp_ms - target_ms), sample.timestamp_ms),
    )


class SnapshotMatcher:
    def __init__(
        self,
        oracle: PriceOracleClient,
        *,
        freshness_threshold_ms: int = FRESHNESS_THRESHOLD_MS,
        lookup_window_ms: int = LOOKUP_WINDOW_MS,
        concurrency: int = HISTORICAL_CONCURRENCY,
        request_delay_seconds: float = HISTORICAL_REQUEST_DELAY_SECONDS,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.oracle = oracle
        self.freshness_threshold_ms = freshness_threshold_ms
        self.lookup_window_ms = lookup_window_ms
        self.concurrency = concurrency
        self.request_delay_seconds = request_delay_seconds
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(cls, oracle: PriceOracleClient, settings) -> "SnapshotMatcher":
        return cls(
            oracle,
            freshness_threshold_ms=settings.freshness_threshold_ms,
            lookup_window_ms=settings.lookup_window_ms,
            concurrency=settings.historical_concurrency,
            request_delay_seconds=settings.historical_request_delay_ms / 1000.0,
        )

    async def snapshot_at(self, target_ms: int, asset_ids: Sequence[str]) -> PriceSnapshot:
        """
        Best estimate of each asset's price at ``target_ms``.

        The snapshot is stamped with ``target_ms`` itself, not with the time of
        the samples it was built from.

        Raises:
            OracleUnavailable: if the batched current-price call fails
        """
        assets = list(dict.fromkeys(a.strip() for a in asset_ids if a and a.strip()))
        if not assets:
            return PriceSnapshot(timestamp_ms=target_ms, prices={})

        if self._clock() - target_ms < self.freshness_threshold_ms:
            prices = await self._current_prices(assets)
        else:
            prices = await self._historical_prices(target_ms, assets)

        snapshot = PriceSnapshot(timestamp_ms=target_ms, prices=prices)
        missing = snapshot.missing(assets)
        if missing:
            logger.warning(
                f"Partial snapshot at {target_ms}: {len(prices)}/{len(assets)} assets priced, "
                f"missing {missing}"
            )
        return snapshot

    async def price_changes_over_period(
        self, asset_ids: Sequence[str], hours: int = 24
    ) -> Dict[str, float]:
        now = self._clock()
        start = await self.snapshot_at(now - hours * HOUR_MS, asset_ids)
        end = await self.snapshot_at(now, asset_ids)
        return {result.asset_id: result.percent_change for result in compute_returns(start, end)}

    async def _current_prices(self, assets: List[str]) -> Dict[str, int]:
        samples = await self.oracle.fetch_current(assets)
        wanted = set(assets)
        return {s.asset_id: s.price_micros for s in samples if s.asset_id in wanted}

    async def _historical_prices(self, target_ms: int, assets: List[str]) -> Dict[str, int]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def lookup(asset_id: str) -> Optional[PriceSample]:
            async with semaphore:
                try:
                    return await self._closest_historical(asset_id, target_ms)
                finally:
                    # rate limit applies within the concurrency bound
                    await self._sleep(self.request_delay_seconds)

        matches = await asyncio.gather(*(lookup(asset_id) for asset_id in assets))
        return {
            asset_id: sample.price_micros
            for asset_id, sample in zip(assets, matches)
            if sample is not None
        }

    async def _closest_historical(self, asset_id: str, target_ms: int) -> Optional[PriceSample]:
        window_start = target_ms - self.lookup_window_ms
        window_end = target_ms + self.lookup_window_ms
        try:
            samples = await self.oracle.fetch_historical(asset_id, window_start, window_end)
            return select_closest_sample(
                samples,
                target_ms,
                asset_id=asset_id,
                window_start_ms=window_start,
                window_end_ms=window_end,
            )
        except OracleDataMissing as exc:
            logger.warning(str(exc))
        except OracleUnavailable as exc:
            logger.warning(f"Historical lookup for {asset_id} failed: {exc}")
        except Exception as exc:
            # one bad asset leaves the rest of the snapshot intact
            logger.error(f"Unexpected error looking up {asset_id}: {exc}", exc_info=True)
        return None


__all__ = [
    "SnapshotMatcher",
    "select_closest_sample",
    "FRESHNESS_THRESHOLD_MS",
    "LOOKUP_WINDOW_MS",
    "HISTORICAL_CONCURRENCY",
    "HISTORICAL_REQUEST_DELAY_SECONDS",
]
