"""
Unit conversions and display formatting.

Prices inside the engine are integer micro-units (1_000_000 micro-units equal one
currency unit) and timestamps are epoch milliseconds. Anything crossing a
boundary with a different representation goes through one of the functions here:

- decimal strings / floats from the market-data API -> ``to_micros``
- microsecond timestamps from the contest backend -> ``micros_to_ms``
- millisecond timestamps sent to the contest backend -> ``ms_to_micros``
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

MICROS_PER_UNIT = 1_000_000
MICROSECONDS_PER_MILLISECOND = 1_000

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

Number = Union[int, float, str, Decimal]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_micros(value: Number) -> int:
    """
    Convert a currency amount to integer micro-units.

    Floats are routed through ``str`` so that ``84714.1`` becomes
    ``84_714_100_000`` rather than picking up binary noise. Rounding is half-up
    at the sixth decimal.

    Raises:
        ValueError: if the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a numeric value, got {value!r}")
    try:
        amount = Decimal(value) if isinstance(value, (int, Decimal)) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Expected a numeric value, got {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Expected a finite value, got {value!r}")
    micros = (amount * MICROS_PER_UNIT).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(micros)


def from_micros(micros: int) -> float:
    return micros / MICROS_PER_UNIT


def micros_to_ms(timestamp_us: int) -> int:
    """Microsecond timestamp -> millisecond timestamp (floor)."""
    return int(timestamp_us) // MICROSECONDS_PER_MILLISECOND


def ms_to_micros(timestamp_ms: int) -> int:
    return int(timestamp_ms) * MICROSECONDS_PER_MILLISECOND


def format_price(price: float) -> str:
    if price >= 1000:
        return f"${price:,.2f}"
    if price >= 1:
        return f"${price:.2f}"
    if price >= 0.01:
        return f"${price:.4f}"
    return f"${price:.6f}"


def format_price_micros(price_micros: int) -> str:
    return format_price(from_micros(price_micros))


def format_percent_change(change: float) -> str:
    prefix = "+" if change >= 0 else ""
    return f"{prefix}{change:.2f}%"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_relative_time(
    timestamp_us: Union[int, str, None], now: Optional[int] = None
) -> str:
    """
    Render a backend (microsecond) timestamp relative to ``now`` (milliseconds).

    Returns "Unknown" for missing or unparseable values and for dates before 2000.
    """
    if timestamp_us is None or timestamp_us == "" or timestamp_us == 0:
        return "Unknown"
    try:
        raw = int(timestamp_us)
    except (TypeError, ValueError):
        return "Unknown"

    timestamp_ms = micros_to_ms(raw)
    date = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    if date.year < 2000:
        return "Unknown"

    current = now_ms() if now is None else now
    diff_seconds = (current - timestamp_ms) // 1000
    diff_minutes = diff_seconds // 60
    diff_hours = diff_minutes // 60
    diff_days = diff_hours // 24

    if diff_seconds < 60:
        return "Just now"
    if diff_minutes < 60:
        return _plural(diff_minutes, "minute")
    if diff_hours < 24:
        return _plural(diff_hours, "hour")
    if diff_days < 7:
        return _plural(diff_days, "day")
    return date.strftime("%Y-%m-%d")


__all__ = [
    "MICROS_PER_UNIT",
    "MINUTE_MS",
    "HOUR_MS",
    "DAY_MS",
    "now_ms",
    "to_micros",
    "from_micros",
    "micros_to_ms",
    "ms_to_micros",
    "format_price",
    "format_price_micros",
    "format_percent_change",
    "format_relative_time",
]
