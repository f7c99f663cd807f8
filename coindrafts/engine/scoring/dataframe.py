from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from ..models import PortfolioEntry, PriceSnapshot, ReturnResult

RETURN_COLUMNS = ["asset_id", "start_price", "end_price", "percent_change"]
ENTRY_COLUMNS = ["participant", "submitted_at_ms", "aggregate_return", "computable"]


def snapshot_to_frame(snapshot: PriceSnapshot, price_column: str) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "asset_id": list(snapshot.prices.keys()),
            price_column: np.array(list(snapshot.prices.values()), dtype=np.int64),
        }
    )


def snapshots_to_dataframe(start: PriceSnapshot, end: PriceSnapshot) -> pd.DataFrame:
    """
    Join two snapshots on asset id and derive the percentage change.

    Only assets priced in both snapshots survive the inner join; rows keep the
    start snapshot's order.
    """
    if start.is_empty or end.is_empty:
        return pd.DataFrame(columns=RETURN_COLUMNS)

    df = snapshot_to_frame(start, "start_price").merge(
        snapshot_to_frame(end, "end_price"), on="asset_id", how="inner", sort=False
    )
    start_prices = df["start_price"].to_numpy(dtype=np.int64)
    end_prices = df["end_price"].to_numpy(dtype=np.int64)
    df["percent_change"] = (end_prices - start_prices) / start_prices * 100.0
    return df[RETURN_COLUMNS].reset_index(drop=True)


def dataframe_to_returns(df: pd.DataFrame) -> list:
    return [
        ReturnResult(
            asset_id=str(row.asset_id),
            start_price=int(row.start_price),
            end_price=int(row.end_price),
            percent_change=float(row.percent_change),
        )
        for row in df.itertuples(index=False)
    ]


def entries_to_dataframe(
    entries: Sequence[PortfolioEntry],
    aggregates: Iterable[float],
    computable: Iterable[bool],
) -> pd.DataFrame:
    if not entries:
        return pd.DataFrame(columns=ENTRY_COLUMNS)
    return pd.DataFrame(
        {
            "participant": [entry.participant for entry in entries],
            "submitted_at_ms": np.array(
                [entry.submitted_at_ms for entry in entries], dtype=np.int64
            ),
            "aggregate_return": np.array(list(aggregates), dtype=float),
            "computable": np.array(list(computable), dtype=bool),
        }
    )


__all__ = [
    "snapshots_to_dataframe",
    "dataframe_to_returns",
    "entries_to_dataframe",
    "RETURN_COLUMNS",
    "ENTRY_COLUMNS",
]
