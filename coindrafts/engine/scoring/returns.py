"""
Portfolio return calculation and settlement ranking.

Ranking order (``RANK_SORT_KEYS``), applied as one stable multi-key sort:

1. holders with at least one computable return come first
2. higher aggregate return
3. earlier submission timestamp
4. participant id, lexicographically

A holder whose assets have no computable return gets an aggregate of 0.0
and is placed after every holder that has one, whatever their sign.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from ..models import PortfolioEntry, PriceSnapshot, ReturnResult, SettlementRank
from .dataframe import dataframe_to_returns, entries_to_dataframe, snapshots_to_dataframe

logger = logging.getLogger(__name__)

RANK_SORT_KEYS: Tuple[Tuple[str, bool], ...] = (
    ("computable", False),
    ("aggregate_return", False),
    ("submitted_at_ms", True),
    ("participant", True),
)


def compute_returns(start: PriceSnapshot, end: PriceSnapshot) -> List[ReturnResult]:
    df = snapshots_to_dataframe(start, end)
    excluded = (set(start.prices) ^ set(end.prices))
    if excluded:
        logger.debug(
            f"Excluded {len(excluded)} asset(s) priced in only one snapshot: {sorted(excluded)}"
        )
    return dataframe_to_returns(df)


def _returns_by_asset(returns: Sequence[ReturnResult]) -> Dict[str, float]:
    return {result.asset_id: result.percent_change for result in returns}


def _aggregate(holdings: Sequence[str], by_asset: Dict[str, float]) -> Tuple[float, bool]:
    changes = [by_asset[asset] for asset in dict.fromkeys(holdings) if asset in by_asset]
    if not changes:
        return 0.0, False
    return sum(changes) / len(changes), True


def aggregate_return(holdings: Sequence[str], returns: Sequence[ReturnResult]) -> float:
    """Mean percentage change over the holdings that have a computable return; 0.0 if none."""
    value, _ = _aggregate(holdings, _returns_by_asset(returns))
    return value


def rank(
    entries: Sequence[PortfolioEntry], returns: Sequence[ReturnResult]
) -> List[SettlementRank]:
    if not entries:
        return []

    by_asset = _returns_by_asset(returns)
    aggregates = [_aggregate(entry.holdings, by_asset) for entry in entries]
    df = entries_to_dataframe(
        entries,
        aggregates=[value for value, _ in aggregates],
        computable=[flag for _, flag in aggregates],
    )

    columns = [column for column, _ in RANK_SORT_KEYS]
    ascending = [direction for _, direction in RANK_SORT_KEYS]
    ordered = df.sort_values(by=columns, ascending=ascending, kind="mergesort")

    not_computable = int((~df["computable"]).sum())
    if not_computable:
        logger.info(
            f"{not_computable} participant(s) had no computable return and were ranked last"
        )

    return [
        SettlementRank(
            participant=str(row.participant),
            aggregate_return=float(row.aggregate_return),
            rank=position,
            computable=bool(row.computable),
        )
        for position, row in enumerate(ordered.itertuples(index=False), start=1)
    ]


__all__ = ["RANK_SORT_KEYS", "compute_returns", "aggregate_return", "rank"]
