from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Dict, List, Optional, Sequence, Type

import httpx

from coindrafts.common.units import ms_to_micros
from coindrafts.common.validators import validate_prediction_range

from ..errors import BackendRejected, BackendUnavailable
from ..models import Contest, Prediction, PriceSnapshot

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_ENDPOINT = "http://localhost:8080/graphql"

CONTEST_QUERY = """
query GetContest($id: String!) {
  contest(id: $id) {
    id
    status
    participantCount
    maxParticipants
    assetUniverse
    startTime
    endTime
    startPrices { cryptoId priceUsd timestamp }
    endPrices { cryptoId priceUsd timestamp }
  }
}
"""

START_CONTEST_MUTATION = """
mutation StartContest($id: String!, $priceSnapshot: [PriceSnapshotInput!]!) {
  startContest(id: $id, priceSnapshot: $priceSnapshot)
}
"""

END_CONTEST_MUTATION = """
mutation EndContest($id: String!, $priceSnapshot: [PriceSnapshotInput!]!) {
  endContest(id: $id, priceSnapshot: $priceSnapshot)
}
"""

SUBMIT_PREDICTION_MUTATION = """
mutation SubmitPrediction(
  $marketId: String!
  $minPrice: Int!
  $maxPrice: Int!
  $confidence: Int!
  $aiAssisted: Boolean!
) {
  submitPrediction(
    marketId: $marketId
    minPrice: $minPrice
    maxPrice: $maxPrice
    confidence: $confidence
    aiAssisted: $aiAssisted
  )
}
"""

SETTLE_MARKET_MUTATION = """
mutation SettleMarket($marketId: String!, $finalPrice: Int!, $players: [String!]!) {
  settleMarket(marketId: $marketId, finalPrice: $finalPrice, players: $players)
}
"""


def snapshot_to_wire(snapshot: PriceSnapshot) -> List[Dict[str, Any]]:
    """The backend stores one entry per asset, timestamps in microseconds."""
    timestamp_us = ms_to_micros(snapshot.timestamp_ms)
    return [
        {"cryptoId": asset_id, "priceUsd": price, "timestamp": timestamp_us}
        for asset_id, price in snapshot.prices.items()
    ]


class ContestBackendClient:
    """
    GraphQL client for the contest backend.

    Transport failures raise ``BackendUnavailable`` (transient, retryable);
    GraphQL errors raise ``BackendRejected``, whose ``already_done`` flag tells
    lifecycle triggers that a transition has already happened.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_BACKEND_ENDPOINT,
        *,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._session = session or httpx.AsyncClient(timeout=self.timeout)
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Any) -> "ContestBackendClient":
        return cls(settings.backend_endpoint, timeout=settings.backend_timeout_seconds)

    async def __aenter__(self) -> "ContestBackendClient":
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

    async def get_contest(self, contest_id: str) -> Contest:
        data = await self._execute(CONTEST_QUERY, {"id": contest_id})
        payload = data.get("contest")
        if not payload:
            raise BackendRejected(f"Contest not found: {contest_id}", already_done=False)
        return Contest.from_backend(payload)

    async def start_contest(self, contest_id: str, snapshot: PriceSnapshot) -> Any:
        data = await self._execute(
            START_CONTEST_MUTATION,
            {"id": contest_id, "priceSnapshot": snapshot_to_wire(snapshot)},
        )
        logger.info(f"startContest accepted for {contest_id} ({len(snapshot.prices)} prices)")
        return data.get("startContest")

    async def end_contest(self, contest_id: str, snapshot: PriceSnapshot) -> Any:
        data = await self._execute(
            END_CONTEST_MUTATION,
            {"id": contest_id, "priceSnapshot": snapshot_to_wire(snapshot)},
        )
        logger.info(f"endContest accepted for {contest_id} ({len(snapshot.prices)} prices)")
        return data.get("endContest")

    async def submit_prediction(self, market_id: str, prediction: Prediction) -> Any:
        validate_prediction_range(prediction.min_price_micros, prediction.max_price_micros)
        data = await self._execute(
            SUBMIT_PREDICTION_MUTATION,
            {
                "marketId": market_id,
                "minPrice": prediction.min_price_micros,
                "maxPrice": prediction.max_price_micros,
                "confidence": prediction.confidence,
                "aiAssisted": prediction.ai_assisted,
            },
        )
        return data.get("submitPrediction")

    async def settle_market(
        self, market_id: str, final_price_micros: int, players: Sequence[str]
    ) -> Any:
        if final_price_micros <= 0:
            raise ValueError("final_price_micros must be positive")
        data = await self._execute(
            SETTLE_MARKET_MUTATION,
            {"marketId": market_id, "finalPrice": final_price_micros, "players": list(players)},
        )
        return data.get("settleMarket")

    async def _execute(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._session.post(
                self.endpoint,
                json={"query": query, "variables": variables},
                headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            raise BackendUnavailable(
                f"Contest backend timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendUnavailable(f"Failed to reach contest backend: {exc}") from exc

        if not response.is_success:
            logger.warning(
                f"Contest backend returned status {response.status_code}: {response.text[:200]}"
            )
            raise BackendUnavailable(
                f"Contest backend request failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise BackendUnavailable("Contest backend returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise BackendUnavailable("Unexpected response format from contest backend")

        errors = body.get("errors") or []
        if errors:
            message = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise BackendRejected(message)
        return body.get("data") or {}


__all__ = ["ContestBackendClient", "DEFAULT_BACKEND_ENDPOINT", "snapshot_to_wire"]
