from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from coindrafts.common.units import micros_to_ms


class ContestStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    ENDED = "Ended"
    SETTLED = "Settled"

    @property
    def order(self) -> int:
        return _STATUS_ORDER[self]

    def is_before(self, other: "ContestStatus") -> bool:
        return self.order < other.order

    @classmethod
    def parse(cls, value: Any) -> "ContestStatus":
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        try:
            return _STATUS_ALIASES[normalized]
        except KeyError:
            raise ValueError(f"Unknown contest status: {value!r}") from None


_STATUS_ORDER = {
    ContestStatus.PENDING: 0,
    ContestStatus.ACTIVE: 1,
    ContestStatus.ENDED: 2,
    ContestStatus.SETTLED: 3,
}

_STATUS_ALIASES = {
    "pending": ContestStatus.PENDING,
    "registration": ContestStatus.PENDING,
    "active": ContestStatus.ACTIVE,
    "ended": ContestStatus.ENDED,
    "settling": ContestStatus.ENDED,
    "settled": ContestStatus.SETTLED,
    "completed": ContestStatus.SETTLED,
}


class PriceSample(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    asset_id: str = Field(alias="assetId")
    price_micros: int = Field(gt=0, alias="priceMicros")
    timestamp_ms: int = Field(alias="timestampMs")

    @field_validator("asset_id")
    @classmethod
    def _normalize_asset_id(cls, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("asset_id cannot be empty")
        return normalized


class PriceSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    timestamp_ms: int = Field(alias="timestampMs")
    prices: Dict[str, int] = Field(default_factory=dict)

    @field_validator("prices")
    @classmethod
    def _ensure_positive(cls, value: Dict[str, int]) -> Dict[str, int]:
        for asset_id, price in value.items():
            if price <= 0:
                raise ValueError(f"Snapshot price for {asset_id} must be positive")
        return value

    def missing(self, asset_ids: Iterable[str]) -> List[str]:
        return [asset_id for asset_id in asset_ids if asset_id not in self.prices]

    @property
    def is_empty(self) -> bool:
        return not self.prices


class Contest(BaseModel):
    """Read-through view of a contest as last reported by the backend."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    status: ContestStatus
    participant_count: int = Field(default=0, ge=0, alias="participantCount")
    max_participants: int = Field(default=0, ge=0, alias="maxParticipants")
    asset_universe: Set[str] = Field(default_factory=set, alias="assetUniverse")
    start_time_ms: Optional[int] = Field(default=None, alias="startTimeMs")
    end_time_ms: Optional[int] = Field(default=None, alias="endTimeMs")
    start_snapshot: Optional[PriceSnapshot] = Field(default=None, alias="startSnapshot")
    end_snapshot: Optional[PriceSnapshot] = Field(default=None, alias="endSnapshot")

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> ContestStatus:
        return ContestStatus.parse(value)

    @field_validator("asset_universe", mode="before")
    @classmethod
    def _coerce_universe(cls, value: Any) -> Set[str]:
        if value is None:
            return set()
        return {str(item).strip() for item in value if str(item).strip()}

    @property
    def is_full(self) -> bool:
        return self.max_participants > 0 and self.participant_count >= self.max_participants

    @classmethod
    def from_backend(cls, payload: Dict[str, Any]) -> "Contest":
        """
        Build a Contest from a backend payload.

        The backend reports times in microseconds, both for the contest
        schedule and for stored snapshot entries.
        """
        data = dict(payload)
        data.setdefault("id", data.get("contestId") or data.get("gameId"))
        for wire_key, field_key in (("startTime", "startTimeMs"), ("endTime", "endTimeMs")):
            raw = data.pop(wire_key, None)
            if raw is not None and field_key not in data:
                data[field_key] = micros_to_ms(int(raw))
        for wire_key, field_key in (("startPrices", "startSnapshot"), ("endPrices", "endSnapshot")):
            entries = data.pop(wire_key, None)
            if entries and field_key not in data:
                data[field_key] = _snapshot_from_entries(entries)
        return cls.model_validate(data)


def _snapshot_from_entries(entries: Sequence[Dict[str, Any]]) -> PriceSnapshot:
    prices = {str(entry["cryptoId"]): int(entry["priceUsd"]) for entry in entries}
    timestamp_us = max(int(entry.get("timestamp", 0)) for entry in entries)
    return PriceSnapshot(timestamp_ms=micros_to_ms(timestamp_us), prices=prices)


class Prediction(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    player: str
    min_price_micros: int = Field(gt=0, alias="minPriceMicros")
    max_price_micros: int = Field(gt=0, alias="maxPriceMicros")
    confidence: int = Field(ge=0, le=100)
    ai_assisted: bool = Field(default=False, alias="aiAssisted")
    submitted_at_ms: Optional[int] = Field(default=None, alias="submittedAtMs")

    @model_validator(mode="after")
    def _check_range(self) -> "Prediction":
        if self.max_price_micros <= self.min_price_micros:
            raise ValueError("max_price_micros must be greater than min_price_micros")
        return self


@dataclass(frozen=True)
class ReturnResult:
    asset_id: str
    start_price: int
    end_price: int
    percent_change: float


@dataclass(frozen=True)
class PortfolioEntry:
    participant: str
    holdings: Sequence[str]
    submitted_at_ms: int


@dataclass(frozen=True)
class SettlementRank:
    participant: str
    aggregate_return: float
    rank: int
    computable: bool = True


@dataclass(frozen=True)
class PredictionOutcome:
    player: str
    in_range: bool
    multiplier: float
    reward_micros: int


@dataclass(frozen=True)
class PrizeAward:
    participant: str
    rank: int
    prize_micros: int


__all__ = [
    "ContestStatus",
    "PriceSample",
    "PriceSnapshot",
    "Contest",
    "Prediction",
    "ReturnResult",
    "PortfolioEntry",
    "SettlementRank",
    "PredictionOutcome",
    "PrizeAward",
]
