"""
Contest lifecycle triggers.

The orchestrator only ever *attempts* forward transitions
(Pending -> Active -> Ended); the backend decides. Each trigger invocation:

1. polls the backend's contest query with growing intervals until the
   contest is eligible, has already moved on, or the poll budget is spent
2. captures a price snapshot for the contest's asset universe
3. issues the start/end mutation

Every external call is retried on transient errors with exponential backoff.
An "already started/ended" rejection is treated as success. Trigger failures
are logged and reported in the returned ``TriggerResult``; they never raise
into the user action that fired them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Set, Tuple

from coindrafts.common.units import now_ms
from coindrafts.common.validators import validate_snapshot_pair

from .backend.client import ContestBackendClient
from .errors import BackendRejected, EngineError
from .models import Contest, ContestStatus, PortfolioEntry, PriceSnapshot, SettlementRank
from .retry import PollPolicy, RetryPolicy, call_with_retries, poll_until
from .scoring.returns import compute_returns, rank
from .snapshots import SnapshotMatcher

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    AUTO_START = "auto_start"
    AUTO_SETTLE = "auto_settle"


class TriggerOutcome(str, Enum):
    STARTED = "started"
    ENDED = "ended"
    ALREADY_DONE = "already_done"
    NOT_READY = "not_ready"
    FAILED = "failed"


@dataclass(frozen=True)
class TriggerResult:
    contest_id: str
    trigger: Trigger
    outcome: TriggerOutcome
    detail: str = ""
    snapshot: Optional[PriceSnapshot] = None

    @property
    def failed(self) -> bool:
        return self.outcome is TriggerOutcome.FAILED


def _ready_to_start(contest: Contest) -> bool:
    return contest.status is not ContestStatus.PENDING or contest.is_full


def _ready_to_settle(contest: Contest) -> bool:
    return contest.status is not ContestStatus.PENDING


class ContestLifecycleOrchestrator:
    def __init__(
        self,
        backend: ContestBackendClient,
        matcher: SnapshotMatcher,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        poll_policy: Optional[PollPolicy] = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.backend = backend
        self.matcher = matcher
        self.retry_policy = retry_policy or RetryPolicy()
        self.poll_policy = poll_policy or PollPolicy()
        self._clock = clock
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls, backend: ContestBackendClient, matcher: SnapshotMatcher, settings
    ) -> "ContestLifecycleOrchestrator":
        return cls(
            backend,
            matcher,
            retry_policy=RetryPolicy(
                max_retries=settings.trigger_max_retries,
                backoff_seconds=settings.trigger_backoff_seconds,
            ),
            poll_policy=PollPolicy(
                initial_interval_seconds=settings.poll_initial_interval_seconds,
                multiplier=settings.poll_multiplier,
                max_interval_seconds=settings.poll_max_interval_seconds,
                max_wait_seconds=settings.poll_max_wait_seconds,
            ),
        )

    # fire-and-forget entry points

    def trigger_auto_start_check(
        self, contest_id: str, asset_ids: Iterable[str] = ()
    ) -> asyncio.Task:
        """Schedule an auto-start check; call after a submission succeeds."""
        return self._spawn(self.check_auto_start(contest_id, asset_ids), contest_id)

    def trigger_auto_settle_check(
        self, contest_id: str, asset_ids: Iterable[str] = ()
    ) -> asyncio.Task:
        return self._spawn(self.check_auto_settle(contest_id, asset_ids), contest_id)

    async def drain(self) -> None:
        """Wait for every scheduled trigger to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Awaitable[TriggerResult], contest_id: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                logger.warning(f"Lifecycle trigger for {contest_id} was cancelled")
                return
            exc = finished.exception()
            if exc is not None:
                logger.error(
                    f"Lifecycle trigger for {contest_id} crashed: {exc}",
                    exc_info=exc,
                )

        task.add_done_callback(_done)
        return task

    # triggers

    async def check_auto_start(
        self, contest_id: str, asset_ids: Iterable[str] = ()
    ) -> TriggerResult:
        trigger = Trigger.AUTO_START
        requested = list(asset_ids)
        try:
            contest, ready = await self._await_state(contest_id, _ready_to_start, trigger)
            if contest.status is not ContestStatus.PENDING:
                return self._result(
                    contest_id, trigger, TriggerOutcome.ALREADY_DONE,
                    f"status is {contest.status.value}",
                )
            if not ready:
                return self._result(
                    contest_id, trigger, TriggerOutcome.NOT_READY,
                    f"{contest.participant_count}/{contest.max_participants} participants",
                )

            snapshot = await self._capture(self._clock(), self._assets(requested, contest))
            await call_with_retries(
                lambda: self.backend.start_contest(contest_id, snapshot),
                policy=self.retry_policy,
                description=f"startContest({contest_id})",
                sleep=self._sleep,
            )
            return self._result(
                contest_id, trigger, TriggerOutcome.STARTED,
                f"{len(snapshot.prices)} prices", snapshot,
            )
        except BackendRejected as exc:
            if exc.already_done:
                return self._result(contest_id, trigger, TriggerOutcome.ALREADY_DONE, str(exc))
            return self._result(contest_id, trigger, TriggerOutcome.FAILED, str(exc))
        except (EngineError, ValueError) as exc:
            return self._result(contest_id, trigger, TriggerOutcome.FAILED, str(exc))

    async def check_auto_settle(
        self, contest_id: str, asset_ids: Iterable[str] = ()
    ) -> TriggerResult:
        trigger = Trigger.AUTO_SETTLE
        requested = list(asset_ids)
        try:
            contest, _ = await self._await_state(contest_id, _ready_to_settle, trigger)
            if ContestStatus.ACTIVE.is_before(contest.status):
                return self._result(
                    contest_id, trigger, TriggerOutcome.ALREADY_DONE,
                    f"status is {contest.status.value}",
                )
            if contest.status is ContestStatus.PENDING:
                return self._result(
                    contest_id, trigger, TriggerOutcome.NOT_READY, "contest has not started"
                )

            now = self._clock()
            if contest.end_time_ms is not None and now < contest.end_time_ms:
                return self._result(
                    contest_id, trigger, TriggerOutcome.NOT_READY,
                    f"ends in {(contest.end_time_ms - now) / 1000:.0f}s",
                )

            target_ms = contest.end_time_ms if contest.end_time_ms is not None else now
            snapshot = await self._capture(target_ms, self._assets(requested, contest))
            if contest.start_snapshot is not None:
                validate_snapshot_pair(contest.start_snapshot, snapshot)

            await call_with_retries(
                lambda: self.backend.end_contest(contest_id, snapshot),
                policy=self.retry_policy,
                description=f"endContest({contest_id})",
                sleep=self._sleep,
            )
            return self._result(
                contest_id, trigger, TriggerOutcome.ENDED,
                f"{len(snapshot.prices)} prices", snapshot,
            )
        except BackendRejected as exc:
            if exc.already_done:
                return self._result(contest_id, trigger, TriggerOutcome.ALREADY_DONE, str(exc))
            return self._result(contest_id, trigger, TriggerOutcome.FAILED, str(exc))
        except (EngineError, ValueError) as exc:
            return self._result(contest_id, trigger, TriggerOutcome.FAILED, str(exc))

    # direct operator actions: errors, including "already done", are surfaced

    async def start_contest(
        self, contest_id: str, asset_ids: Iterable[str] = ()
    ) -> PriceSnapshot:
        contest = await self._fetch_contest(contest_id)
        snapshot = await self._capture(self._clock(), self._assets(list(asset_ids), contest))
        await call_with_retries(
            lambda: self.backend.start_contest(contest_id, snapshot),
            policy=self.retry_policy,
            description=f"startContest({contest_id})",
            sleep=self._sleep,
        )
        return snapshot

    async def end_contest(
        self, contest_id: str, asset_ids: Iterable[str] = ()
    ) -> PriceSnapshot:
        contest = await self._fetch_contest(contest_id)
        target_ms = contest.end_time_ms if contest.end_time_ms is not None else self._clock()
        snapshot = await self._capture(target_ms, self._assets(list(asset_ids), contest))
        if contest.start_snapshot is not None:
            validate_snapshot_pair(contest.start_snapshot, snapshot)
        await call_with_retries(
            lambda: self.backend.end_contest(contest_id, snapshot),
            policy=self.retry_policy,
            description=f"endContest({contest_id})",
            sleep=self._sleep,
        )
        return snapshot

    def rank_contest(
        self, contest: Contest, entries: Sequence[PortfolioEntry]
    ) -> List[SettlementRank]:
        if contest.start_snapshot is None or contest.end_snapshot is None:
            raise ValueError(f"Contest {contest.id} is missing a start or end snapshot")
        validate_snapshot_pair(contest.start_snapshot, contest.end_snapshot)
        return rank(entries, compute_returns(contest.start_snapshot, contest.end_snapshot))

    # helpers

    async def _fetch_contest(self, contest_id: str) -> Contest:
        return await call_with_retries(
            lambda: self.backend.get_contest(contest_id),
            policy=self.retry_policy,
            description=f"getContest({contest_id})",
            sleep=self._sleep,
        )

    async def _await_state(
        self,
        contest_id: str,
        predicate: Callable[[Contest], bool],
        trigger: Trigger,
    ) -> Tuple[Contest, bool]:
        return await poll_until(
            lambda: self._fetch_contest(contest_id),
            predicate,
            policy=self.poll_policy,
            description=f"{trigger.value} poll for {contest_id}",
            sleep=self._sleep,
        )

    async def _capture(self, target_ms: int, assets: List[str]) -> PriceSnapshot:
        if not assets:
            raise ValueError("No assets to snapshot")
        snapshot = await call_with_retries(
            lambda: self.matcher.snapshot_at(target_ms, assets),
            policy=self.retry_policy,
            description=f"snapshot at {target_ms}",
            sleep=self._sleep,
        )
        if snapshot.is_empty:
            raise ValueError(f"No prices available for any of {len(assets)} assets at {target_ms}")
        return snapshot

    @staticmethod
    def _assets(requested: List[str], contest: Contest) -> List[str]:
        if requested:
            return requested
        return sorted(contest.asset_universe)

    @staticmethod
    def _result(
        contest_id: str,
        trigger: Trigger,
        outcome: TriggerOutcome,
        detail: str = "",
        snapshot: Optional[PriceSnapshot] = None,
    ) -> TriggerResult:
        message = f"{trigger.value} for {contest_id}: {outcome.value}" + (
            f" ({detail})" if detail else ""
        )
        if outcome is TriggerOutcome.FAILED:
            logger.error(message)
        else:
            logger.info(message)
        return TriggerResult(
            contest_id=contest_id,
            trigger=trigger,
            outcome=outcome,
            detail=detail,
            snapshot=snapshot,
        )


__all__ = [
    "ContestLifecycleOrchestrator",
    "Trigger",
    "TriggerOutcome",
    "TriggerResult",
]
