# services/analytics/return_series.py
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Sequence

import numpy as np
import pandas as pd

from services.analytics.types import HoldingSnapshot, ReturnSeriesSet

logger = logging.getLogger(__name__)


def asset_returns(prices: Sequence[float]) -> List[float]:
    """
    Day-over-day fractional returns. A pair is skipped when the previous
    price is zero or either side is missing.
    """
    arr = np.asarray(list(prices), dtype=float)
    if arr.size < 2:
        return []
    prev = arr[:-1]
    curr = arr[1:]
    ok = np.isfinite(prev) & np.isfinite(curr) & (prev != 0)
    return [float(r) for r in (curr[ok] - prev[ok]) / prev[ok]]


def align_trailing(history: Mapping[str, Sequence[float]]) -> pd.DataFrame:
    """
    Trim every series to the shortest trailing window and stack them as
    columns (row 0 = oldest). Empty series are dropped.
    """
    series = {sym: list(px) for sym, px in history.items() if px}
    if not series:
        return pd.DataFrame()
    n = min(len(px) for px in series.values())
    return pd.DataFrame({sym: pd.Series(px[-n:], dtype=float) for sym, px in series.items()})


def portfolio_value_series(
    holdings: Sequence[HoldingSnapshot],
    history: Mapping[str, Sequence[float]],
) -> List[float]:
    """
    sum(quantity * price) per day, using each holding's fixed quantity.
    Assets without a price on a given day are left out of that day's sum.
    """
    quantities: Dict[str, float] = {}
    for h in holdings:
        quantities[h.symbol] = quantities.get(h.symbol, 0.0) + float(h.quantity)

    frame = align_trailing({s: px for s, px in history.items() if s in quantities})
    if frame.empty:
        return []

    qty = pd.Series({sym: quantities[sym] for sym in frame.columns})
    weighted = frame.replace([np.inf, -np.inf], np.nan).mul(qty, axis=1)
    return [float(v) for v in weighted.sum(axis=1, skipna=True)]


def build_return_series(
    holdings: Sequence[HoldingSnapshot],
    history: Mapping[str, Sequence[float]],
) -> ReturnSeriesSet:
    if not holdings:
        return ReturnSeriesSet()

    frame = align_trailing(history)
    per_asset = {sym: asset_returns(frame[sym].tolist()) for sym in frame.columns}

    values = portfolio_value_series(holdings, history)
    out = ReturnSeriesSet(
        asset_returns=per_asset,
        portfolio_values=values,
        portfolio_returns=asset_returns(values),
    )
    logger.debug(
        "Built return series: assets=%d points=%d",
        len(per_asset), len(out.portfolio_returns),
    )
    return out
