import logging
import math
from typing import Any, Dict, Optional

from coindrafts.engine.errors import InvalidRange

logger = logging.getLogger(__name__)


def validate_prediction_range(min_price_micros: int, max_price_micros: int) -> None:
    """
    Reject empty, inverted or non-positive ranges before any work or I/O.

    Raises:
        InvalidRange: if ``max <= min`` or either bound is ``<= 0``
    """
    if min_price_micros <= 0 or max_price_micros <= 0:
        raise InvalidRange(min_price_micros, max_price_micros)
    if max_price_micros <= min_price_micros:
        raise InvalidRange(min_price_micros, max_price_micros)


def validate_confidence(confidence: int) -> int:
    if isinstance(confidence, bool) or not isinstance(confidence, int):
        raise ValueError(f"confidence must be an integer, got {confidence!r}")
    if not 0 <= confidence <= 100:
        raise ValueError(f"confidence must be within [0, 100], got {confidence}")
    return confidence


def validate_snapshot_pair(start: Any, end: Any) -> None:
    """An end snapshot must be strictly later than its start snapshot."""
    if end.timestamp_ms <= start.timestamp_ms:
        raise ValueError(
            f"End snapshot timestamp {end.timestamp_ms} must be after "
            f"start snapshot timestamp {start.timestamp_ms}"
        )


def validate_price_row(row: Dict[str, Any], price_key: str = "priceUsd") -> Optional[float]:
    """
    Return the row's price as a float, or None when the row is unusable.

    Used on market-data payloads before converting to micro-units.
    """
    if not isinstance(row, dict):
        logger.debug("Price row is not a dictionary")
        return None

    value = row.get(price_key)
    if value is None or value == "":
        logger.debug(f"Missing required field: {price_key}")
        return None

    try:
        price = float(value)
    except (TypeError, ValueError):
        logger.debug(
            f"Field {price_key} cannot be converted to float: {value} (type: {type(value)})"
        )
        return None

    if not math.isfinite(price):
        logger.debug(f"Field {price_key} is not finite: {price} (NaN or Inf)")
        return None
    if price <= 0:
        logger.debug(f"Field {price_key} is not positive: {price}")
        return None
    return price


__all__ = [
    "validate_prediction_range",
    "validate_confidence",
    "validate_snapshot_pair",
    "validate_price_row",
]
