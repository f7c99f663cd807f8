import argparse
import asyncio
import logging
from typing import List, Optional

from coindrafts.config import Settings, get_settings
from coindrafts.engine.backend.client import ContestBackendClient
from coindrafts.engine.lifecycle import ContestLifecycleOrchestrator, TriggerOutcome, TriggerResult
from coindrafts.engine.oracle.client import PriceOracleClient
from coindrafts.engine.snapshots import SnapshotMatcher

logger = logging.getLogger(__name__)

FINAL_OUTCOMES = {TriggerOutcome.STARTED, TriggerOutcome.ENDED, TriggerOutcome.ALREADY_DONE}


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CoinDrafts contest lifecycle trigger",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "action",
        choices=["start", "settle"],
        help="Check whether a contest should auto-start or auto-settle",
    )
    parser.add_argument(
        "--contest-id",
        type=str,
        required=True,
        dest="contest_id",
        help="Contest identifier",
    )
    parser.add_argument(
        "--asset",
        type=str,
        action="append",
        default=[],
        dest="assets",
        help="Asset to snapshot (repeatable). Default: the contest's asset universe",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Re-check every N seconds until the transition has happened",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        dest="log_level",
        help="Logging level",
    )
    return parser


async def run(
    action: str,
    contest_id: str,
    assets: List[str],
    interval: Optional[float],
    settings: Settings,
) -> TriggerResult:
    async with PriceOracleClient.from_settings(settings) as oracle, \
            ContestBackendClient.from_settings(settings) as backend:
        matcher = SnapshotMatcher.from_settings(oracle, settings)
        orchestrator = ContestLifecycleOrchestrator.from_settings(backend, matcher, settings)
        check = (
            orchestrator.check_auto_start if action == "start" else orchestrator.check_auto_settle
        )

        iteration_count = 0
        while True:
            iteration_count += 1
            logger.info(f"Iteration {iteration_count}: {action} check for {contest_id}")
            result = await check(contest_id, assets)
            if interval is None or result.outcome in FINAL_OUTCOMES:
                return result
            logger.info(f"Sleeping for {interval:.1f}s before next check...")
            await asyncio.sleep(interval)


def main() -> None:
    settings = get_settings()
    args = build_parser(settings).parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logger.info("=" * 70)
    logger.info("CoinDrafts Lifecycle Trigger")
    logger.info("=" * 70)
    logger.info(f"  Contest: {args.contest_id}")
    logger.info(f"  Action: {args.action}")
    logger.info(f"  Oracle: {settings.oracle_base_url}")
    logger.info(f"  Backend: {settings.backend_endpoint}")

    try:
        result = asyncio.run(
            run(args.action, args.contest_id, args.assets, args.interval, settings)
        )
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        return

    logger.info(f"Result: {result.outcome.value} {result.detail}".rstrip())
    if result.failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
