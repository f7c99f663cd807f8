"""
Bounded retry and poll-with-backoff helpers.

Both helpers keep their counters local to a single call, so nothing carries
over between trigger invocations or between contests.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    backoff_seconds: float = 0.5
    max_backoff_seconds: float = 8.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given (1-based) failed attempt."""
        return min(self.max_backoff_seconds, self.backoff_seconds * (2 ** (attempt - 1)))


@dataclass(frozen=True)
class PollPolicy:
    initial_interval_seconds: float = 0.25
    multiplier: float = 2.0
    max_interval_seconds: float = 2.0
    max_wait_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.initial_interval_seconds <= 0:
            raise ValueError("initial_interval_seconds must be positive")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_wait_seconds < 0:
            raise ValueError("max_wait_seconds cannot be negative")

    def intervals(self):
        """Yield sleep intervals until their running total reaches ``max_wait_seconds``."""
        waited = 0.0
        interval = self.initial_interval_seconds
        while self.max_wait_seconds - waited > 1e-9:
            step = min(interval, self.max_interval_seconds, self.max_wait_seconds - waited)
            yield step
            waited += step
            interval *= self.multiplier


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    description: str,
    retry_on: Tuple[Type[BaseException], ...] = (TransientError,),
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Await ``operation()``, retrying on ``retry_on`` errors with exponential backoff.

    Errors outside ``retry_on`` propagate immediately. After the last attempt the
    final transient error is re-raised.
    """
    max_attempts = policy.max_attempts
    attempt = 0
    while True:
        attempt += 1
        if attempt > 1:
            logger.info(f"{description} retry attempt {attempt}/{max_attempts}")
        try:
            result = await operation()
        except retry_on as exc:
            if attempt >= max_attempts:
                logger.error(f"{description} exhausted all {max_attempts} attempts: {exc}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): {exc}. "
                f"Retrying in {delay:.2f}s"
            )
            await sleep(delay)
            continue
        if attempt > 1:
            logger.info(f"{description} succeeded on attempt {attempt}/{max_attempts}")
        return result


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    *,
    policy: PollPolicy,
    description: str,
    sleep: Sleep = asyncio.sleep,
    clock: Optional[Clock] = None,
) -> Tuple[T, bool]:
    """
    Fetch state until ``predicate`` holds or the poll budget is spent.

    Returns the last observed value and whether the predicate was satisfied.
    The first fetch happens immediately; later fetches follow growing intervals.
    """
    clock = clock or time.monotonic
    started = clock()
    polls = 1
    value = await fetch()
    if predicate(value):
        return value, True

    for interval in policy.intervals():
        await sleep(interval)
        polls += 1
        value = await fetch()
        if predicate(value):
            logger.debug(
                f"{description} satisfied after {polls} polls "
                f"({clock() - started:.2f}s)"
            )
            return value, True

    logger.info(
        f"{description} not satisfied after {polls} polls "
        f"(max wait {policy.max_wait_seconds:.1f}s)"
    )
    return value, False


__all__ = ["RetryPolicy", "PollPolicy", "call_with_retries", "poll_until"]
