"""
Reward multiplier for range-style price predictions.

multiplier = range_multiplier(width) * confidence_multiplier * ai_penalty

This is the only implementation; previews and settlement both call it so the
number a player is shown is the number they are paid on.
"""

from __future__ import annotations

from typing import Tuple

from coindrafts.common.units import MICROS_PER_UNIT
from coindrafts.common.validators import validate_confidence, validate_prediction_range

# (inclusive upper bound of the range width in currency units, multiplier);
# the first matching row wins.
RANGE_MULTIPLIER_TIERS: Tuple[Tuple[int, float], ...] = (
    (1, 20.0),
    (5, 10.0),
    (10, 5.0),
    (20, 2.5),
    (50, 1.5),
)
DEFAULT_RANGE_MULTIPLIER = 1.0

CONFIDENCE_WEIGHT = 0.5
AI_ASSISTED_PENALTY = 0.8


def range_multiplier(range_width_micros: int) -> float:
    # compared in micro-units so tier boundaries are exact
    for upper_bound, multiplier in RANGE_MULTIPLIER_TIERS:
        if range_width_micros <= upper_bound * MICROS_PER_UNIT:
            return multiplier
    return DEFAULT_RANGE_MULTIPLIER


def confidence_multiplier(confidence: int) -> float:
    return 1.0 + (confidence / 100.0) * CONFIDENCE_WEIGHT


def ai_penalty(ai_assisted: bool) -> float:
    return AI_ASSISTED_PENALTY if ai_assisted else 1.0


def compute_multiplier(
    min_price_micros: int,
    max_price_micros: int,
    confidence: int,
    ai_assisted: bool,
) -> float:
    """
    Raises:
        InvalidRange: if ``max <= min`` or either bound is not positive
        ValueError: if confidence is outside [0, 100]
    """
    validate_prediction_range(min_price_micros, max_price_micros)
    validate_confidence(confidence)
    width = max_price_micros - min_price_micros
    return range_multiplier(width) * confidence_multiplier(confidence) * ai_penalty(ai_assisted)


__all__ = [
    "RANGE_MULTIPLIER_TIERS",
    "DEFAULT_RANGE_MULTIPLIER",
    "AI_ASSISTED_PENALTY",
    "range_multiplier",
    "confidence_multiplier",
    "ai_penalty",
    "compute_multiplier",
]
