"""Market-data API client."""

from .client import (
    DEFAULT_ORACLE_BASE_URL,
    ORACLE_BACKOFF_SECONDS,
    ORACLE_MAX_RETRIES,
    PriceOracleClient,
)

__all__ = [
    "PriceOracleClient",
    "DEFAULT_ORACLE_BASE_URL",
    "ORACLE_MAX_RETRIES",
    "ORACLE_BACKOFF_SECONDS",
]
