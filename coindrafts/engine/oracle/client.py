from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any, Dict, List, NoReturn, Optional, Sequence, Set, Type

import httpx
from pydantic import ValidationError

from coindrafts.common.units import DAY_MS, now_ms, to_micros
from coindrafts.common.validators import validate_price_row

from ..errors import OracleUnavailable
from ..models import PriceSample

logger = logging.getLogger(__name__)

DEFAULT_ORACLE_BASE_URL = "https://rest.coincap.io/v3"

RETRY_STATUS_CODES = {429}
RETRY_STATUS_CODES.update(range(500, 600))

ORACLE_MAX_RETRIES = 2
ORACLE_BACKOFF_SECONDS = 0.5

HISTORICAL_INTERVAL = "m1"
HISTORY_INTERVALS = ("m1", "m5", "m15", "m30", "h1", "h2", "h6", "h12", "d1")


class PriceOracleClient:
    """
    Market-data API client.

    Every instance carries its own endpoint, credentials and HTTP session, so
    tests can hand in an ``httpx.AsyncClient`` backed by ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_ORACLE_BASE_URL,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = ORACLE_MAX_RETRIES,
        backoff_seconds: float = ORACLE_BACKOFF_SECONDS,
        session: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        self._session = session or httpx.AsyncClient(timeout=self.timeout)
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Any) -> "PriceOracleClient":
        return cls(
            settings.oracle_base_url,
            api_key=settings.oracle_api_key,
            timeout=settings.oracle_timeout_seconds,
            max_retries=settings.oracle_max_retries,
            backoff_seconds=settings.oracle_backoff_seconds,
        )

    async def __aenter__(self) -> "PriceOracleClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def fetch_current(self, asset_ids: Sequence[str]) -> List[PriceSample]:
        """One batched request for the latest price of every asset."""
        ids = self._normalize_asset_ids(asset_ids)
        response = await self._request_with_retries(
            "/assets", params={"ids": ",".join(ids)}
        )
        body = self._json(response)
        observed_at = body.get("timestamp") if isinstance(body, dict) else None
        try:
            timestamp_ms = int(observed_at) if observed_at is not None else now_ms()
        except (TypeError, ValueError):
            logger.warning(f"Ignoring unparseable market-data timestamp: {observed_at!r}")
            timestamp_ms = now_ms()

        samples: List[PriceSample] = []
        for row in self._extract_rows(body):
            asset_id = str(row.get("id") or "").strip()
            sample = self._row_to_sample(asset_id, row, timestamp_ms) if asset_id else None
            if sample is None:
                logger.warning(f"Skipping unusable current price row: {row}")
                continue
            samples.append(sample)
        return samples

    async def fetch_historical(
        self, asset_id: str, window_start_ms: int, window_end_ms: int
    ) -> List[PriceSample]:
        """Minute samples for one asset inside the window, oldest first."""
        return await self.fetch_history(
            asset_id,
            interval=HISTORICAL_INTERVAL,
            start_ms=window_start_ms,
            end_ms=window_end_ms,
        )

    async def fetch_history(
        self,
        asset_id: str,
        interval: str = "h1",
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
    ) -> List[PriceSample]:
        if interval not in HISTORY_INTERVALS:
            raise ValueError(f"Unsupported interval '{interval}'. Available: {HISTORY_INTERVALS}")
        asset = (asset_id or "").strip()
        if not asset:
            raise ValueError("asset_id cannot be empty")

        end = end_ms if end_ms is not None else now_ms()
        start = start_ms if start_ms is not None else end - DAY_MS
        if start >= end:
            raise ValueError("window start must be earlier than window end")

        response = await self._request_with_retries(
            f"/assets/{asset}/history",
            params={"interval": interval, "start": str(start), "end": str(end)},
        )
        samples: List[PriceSample] = []
        for row in self._extract_rows(self._json(response)):
            sample = (
                self._row_to_sample(asset, row, row["time"])
                if row.get("time") is not None
                else None
            )
            if sample is None:
                logger.debug(f"Skipping unusable history row for {asset}: {row}")
                continue
            samples.append(sample)
        samples.sort(key=lambda sample: sample.timestamp_ms)
        return samples

    @staticmethod
    def _row_to_sample(asset_id: str, row: Dict[str, Any], timestamp: Any) -> Optional[PriceSample]:
        """Build a sample from a market-data row, or None if the row is unusable."""
        if validate_price_row(row) is None:
            return None
        try:
            price_micros = to_micros(row["priceUsd"])
            timestamp_ms = int(timestamp)
        except (TypeError, ValueError) as exc:
            logger.debug(f"Unparseable price row for {asset_id}: {exc}")
            return None
        if price_micros <= 0:
            logger.debug(f"Price for {asset_id} rounds to zero micro-units: {row['priceUsd']}")
            return None
        try:
            return PriceSample(
                asset_id=asset_id, price_micros=price_micros, timestamp_ms=timestamp_ms
            )
        except ValidationError as exc:
            logger.debug(f"Invalid price sample for {asset_id}: {exc}")
            return None

    async def asset_exists(self, asset_id: str) -> bool:
        try:
            response = await self._session.get(
                f"{self.base_url}/assets/{asset_id}", headers=self._headers
            )
        except httpx.HTTPError as exc:
            logger.warning(f"Asset lookup for {asset_id} failed: {exc}")
            return False
        return response.is_success

    def _normalize_asset_ids(self, asset_ids: Sequence[str]) -> List[str]:
        if not asset_ids:
            raise ValueError("asset_ids cannot be empty")
        deduped: List[str] = []
        seen: Set[str] = set()
        for asset_id in asset_ids:
            normalized = (asset_id or "").strip()
            if not normalized:
                continue
            if normalized not in seen:
                seen.add(normalized)
                deduped.append(normalized)
        if not deduped:
            raise ValueError("asset_ids cannot be empty")
        return deduped

    async def _request_with_retries(
        self, path: str, params: Dict[str, str]
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        attempt = 0
        max_attempts = self.max_retries + 1

        while attempt < max_attempts:
            attempt += 1

            if attempt > 1:
                logger.info(f"Oracle retry attempt {attempt}/{max_attempts} for {path}")

            try:
                response = await self._session.get(url, params=params, headers=self._headers)
            except httpx.HTTPError as exc:
                logger.warning(
                    f"Oracle request to {path} failed (attempt {attempt}/{max_attempts}): {exc}"
                )
                if attempt >= max_attempts:
                    logger.error(f"Oracle exhausted all {max_attempts} attempts for {path}")
                    raise OracleUnavailable(
                        f"Failed to reach market-data API at {path} after {max_attempts} attempts"
                    ) from exc
                await self._sleep_backoff(attempt)
                continue

            if response.is_success:
                return response

            if response.status_code in RETRY_STATUS_CODES and attempt < max_attempts:
                logger.warning(
                    f"Oracle transient error (status={response.status_code}, "
                    f"attempt {attempt}/{max_attempts}), retrying..."
                )
                await self._sleep_backoff(attempt)
                continue

            self._log_and_raise(response)
        raise OracleUnavailable(f"Exhausted retries for market-data API at {path}")

    async def _sleep_backoff(self, attempt: int) -> None:
        delay = min(30.0, self.backoff_seconds * (2 ** (attempt - 1)))
        await asyncio.sleep(delay)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise OracleUnavailable("Market-data API returned invalid JSON") from exc

    @staticmethod
    def _extract_rows(body: Any) -> List[Dict[str, Any]]:
        if isinstance(body, list):
            return [row for row in body if isinstance(row, dict)]
        if isinstance(body, dict) and isinstance(body.get("data"), list):
            return [row for row in body["data"] if isinstance(row, dict)]
        raise OracleUnavailable("Unexpected response format from market-data API")

    def _log_and_raise(self, response: httpx.Response) -> NoReturn:
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        logger.error(
            f"Oracle request failed with status {response.status_code}: {payload}"
        )
        raise OracleUnavailable(
            f"Market-data API request failed with status {response.status_code}",
            status_code=response.status_code,
        )


__all__ = [
    "PriceOracleClient",
    "DEFAULT_ORACLE_BASE_URL",
    "ORACLE_MAX_RETRIES",
    "ORACLE_BACKOFF_SECONDS",
]
