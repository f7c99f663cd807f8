"""
Settlement payouts.

Two payout paths share this module:

- Price-prediction markets: a prediction whose range contains the final price
  earns ``entry_fee * multiplier``; everything else earns nothing.
- Portfolio contests: the pooled entry fees are split between the top three
  ranks according to ``PRIZE_SPLIT_PERCENT``.

All amounts are integer micro-units and are floored. Prediction rewards scale
with the multiplier and can exceed the entry fee; contest prizes never add up
to more than the pool.
"""

import logging
import math
from typing import List, Sequence

from ..models import Prediction, PredictionOutcome, PrizeAward, SettlementRank
from .multiplier import compute_multiplier

logger = logging.getLogger(__name__)

PRIZE_SPLIT_PERCENT = (50, 30, 20)


def settle_prediction(
    prediction: Prediction, final_price_micros: int, entry_fee_micros: int
) -> PredictionOutcome:
    if final_price_micros <= 0:
        raise ValueError("final_price_micros must be positive")
    if entry_fee_micros < 0:
        raise ValueError("entry_fee_micros cannot be negative")

    in_range = (
        prediction.min_price_micros <= final_price_micros <= prediction.max_price_micros
    )
    if not in_range:
        return PredictionOutcome(
            player=prediction.player, in_range=False, multiplier=0.0, reward_micros=0
        )

    multiplier = compute_multiplier(
        prediction.min_price_micros,
        prediction.max_price_micros,
        prediction.confidence,
        prediction.ai_assisted,
    )
    reward_micros = int(math.floor(entry_fee_micros * multiplier))
    return PredictionOutcome(
        player=prediction.player,
        in_range=True,
        multiplier=multiplier,
        reward_micros=reward_micros,
    )


def settle_market(
    predictions: Sequence[Prediction], final_price_micros: int, entry_fee_micros: int
) -> List[PredictionOutcome]:
    outcomes = [
        settle_prediction(prediction, final_price_micros, entry_fee_micros)
        for prediction in predictions
    ]
    winners = sum(1 for outcome in outcomes if outcome.in_range)
    logger.info(
        f"Settled {len(outcomes)} prediction(s) at final price {final_price_micros}: "
        f"{winners} in range"
    )
    return outcomes


def distribute_prizes(
    ranking: Sequence[SettlementRank], entry_fee_micros: int
) -> List[PrizeAward]:
    if entry_fee_micros < 0:
        raise ValueError("entry_fee_micros cannot be negative")

    pool = entry_fee_micros * len(ranking)
    awards: List[PrizeAward] = []
    for entry in sorted(ranking, key=lambda item: item.rank):
        index = entry.rank - 1
        share = PRIZE_SPLIT_PERCENT[index] if index < len(PRIZE_SPLIT_PERCENT) else 0
        awards.append(
            PrizeAward(
                participant=entry.participant,
                rank=entry.rank,
                prize_micros=pool * share // 100,
            )
        )
    return awards


__all__ = [
    "PRIZE_SPLIT_PERCENT",
    "settle_prediction",
    "settle_market",
    "distribute_prizes",
]
