from __future__ import annotations

from typing import Optional

ALREADY_DONE_MARKERS = (
    "already started",
    "already active",
    "already ended",
    "already settled",
    "already completed",
)


class EngineError(RuntimeError):
    """Base class for settlement engine errors."""


class TransientError(EngineError):
    """Infrastructure failure that is worth retrying (network error, timeout, 5xx)."""


class OracleUnavailable(TransientError):
    """The market-data API could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendUnavailable(TransientError):
    """The contest backend could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OracleDataMissing(EngineError):
    """No price sample was found for an asset inside its lookup window."""

    def __init__(self, asset_id: str, window_start_ms: int, window_end_ms: int):
        super().__init__(
            f"No price samples for {asset_id} in [{window_start_ms}, {window_end_ms}]"
        )
        self.asset_id = asset_id
        self.window_start_ms = window_start_ms
        self.window_end_ms = window_end_ms


class BackendRejected(EngineError):
    """The contest backend explicitly refused a query or mutation."""

    def __init__(self, message: str, *, already_done: Optional[bool] = None):
        super().__init__(message)
        if already_done is None:
            lowered = message.lower()
            already_done = any(marker in lowered for marker in ALREADY_DONE_MARKERS)
        self.already_done = already_done


class InvalidRange(EngineError, ValueError):
    """A prediction range is empty, inverted or non-positive."""

    def __init__(self, min_price_micros: int, max_price_micros: int):
        super().__init__(
            f"Invalid price range: min={min_price_micros}, max={max_price_micros} "
            "(both must be positive and min < max)"
        )
        self.min_price_micros = min_price_micros
        self.max_price_micros = max_price_micros


__all__ = [
    "EngineError",
    "TransientError",
    "OracleUnavailable",
    "BackendUnavailable",
    "OracleDataMissing",
    "BackendRejected",
    "InvalidRange",
]
