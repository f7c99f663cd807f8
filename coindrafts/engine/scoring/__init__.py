"""Returns, ranking, multipliers and payouts."""

from .multiplier import (
    AI_ASSISTED_PENALTY,
    RANGE_MULTIPLIER_TIERS,
    compute_multiplier,
    range_multiplier,
)
from .returns import RANK_SORT_KEYS, aggregate_return, compute_returns, rank
from .rewards import (
    PRIZE_SPLIT_PERCENT,
    distribute_prizes,
    settle_market,
    settle_prediction,
)

__all__ = [
    "compute_returns",
    "aggregate_return",
    "rank",
    "RANK_SORT_KEYS",
    "compute_multiplier",
    "range_multiplier",
    "RANGE_MULTIPLIER_TIERS",
    "AI_ASSISTED_PENALTY",
    "settle_prediction",
    "settle_market",
    "distribute_prizes",
    "PRIZE_SPLIT_PERCENT",
]
