from .engine.backend.client import ContestBackendClient
from .engine.errors import (
    BackendRejected,
    BackendUnavailable,
    EngineError,
    InvalidRange,
    OracleDataMissing,
    OracleUnavailable,
    TransientError,
)
from .engine.lifecycle import (
    ContestLifecycleOrchestrator,
    Trigger,
    TriggerOutcome,
    TriggerResult,
)
from .engine.models import (
    Contest,
    ContestStatus,
    PortfolioEntry,
    Prediction,
    PriceSample,
    PriceSnapshot,
    ReturnResult,
    SettlementRank,
)
from .engine.oracle.client import PriceOracleClient
from .engine.scoring import (
    aggregate_return,
    compute_multiplier,
    compute_returns,
    distribute_prizes,
    rank,
    settle_market,
    settle_prediction,
)
from .engine.snapshots import SnapshotMatcher

__all__ = [
    "Contest",
    "ContestStatus",
    "PortfolioEntry",
    "Prediction",
    "PriceSample",
    "PriceSnapshot",
    "ReturnResult",
    "SettlementRank",
    "EngineError",
    "TransientError",
    "OracleUnavailable",
    "OracleDataMissing",
    "BackendUnavailable",
    "BackendRejected",
    "InvalidRange",
    "PriceOracleClient",
    "SnapshotMatcher",
    "ContestBackendClient",
    "ContestLifecycleOrchestrator",
    "Trigger",
    "TriggerOutcome",
    "TriggerResult",
    "compute_returns",
    "aggregate_return",
    "rank",
    "compute_multiplier",
    "settle_prediction",
    "settle_market",
    "distribute_prizes",
]
