# services/analytics/stats.py
"""
Statistics primitives over plain float sequences.

Variance and covariance are population estimates (divide by n), matching how
the dashboard has always reported volatility and beta.
"""
from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(list(values), dtype=float)


def mean(values: Sequence[float]) -> float:
    arr = _as_array(values)
    if arr.size == 0:
        raise ValueError("mean of empty sequence")
    return float(arr.mean())


def variance(values: Sequence[float]) -> float:
    """Population variance; 0.0 for fewer than 2 points."""
    arr = _as_array(values)
    if arr.size < 2:
        return 0.0
    # Constant input is exactly zero (the float mean can drift by an ulp).
    if np.ptp(arr) == 0:
        return 0.0
    return float(arr.var(ddof=0))


def stddev(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))


def covariance(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Population covariance of two equal-length sequences; 0.0 otherwise."""
    a = _as_array(xs)
    b = _as_array(ys)
    if a.size != b.size or a.size < 2:
        return 0.0
    return float(((a - a.mean()) * (b - b.mean())).mean())


def percentile_floor(values: Sequence[float], q: float) -> float:
    """Value at index floor(q * n) of the ascending sort (no interpolation)."""
    arr = np.sort(_as_array(values))
    if arr.size == 0:
        raise ValueError("percentile of empty sequence")
    idx = min(max(0, int(math.floor(arr.size * q))), arr.size - 1)
    return float(arr[idx])


def root_mean_square(values: Sequence[float]) -> float:
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    return float(np.sqrt((arr ** 2).mean()))


def weights_from_values(values: Sequence[float]) -> List[float]:
    """Fractional weights (sum 1.0). Raises ZeroDivisionError on a non-positive total."""
    total = float(sum(values))
    if total <= 0:
        raise ZeroDivisionError("total value must be positive")
    return [float(v) / total for v in values]


def herfindahl(weights: Sequence[float]) -> float:
    """Sum of squared fractional weights, in (0, 1]."""
    return float(sum(w * w for w in weights))
