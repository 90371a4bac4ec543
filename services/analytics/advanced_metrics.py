# services/analytics/advanced_metrics.py
"""
Risk / performance metrics for a crypto portfolio.

Every metric is a pure function that always returns a value: when the input is
too short it returns the documented fallback, and when the math itself fails
(zero division, NaN, ...) the failure is logged and the same fallback is used.
One failing metric never affects the others.
"""
from __future__ import annotations

import logging
import math
from functools import wraps
from typing import Any, Callable, Dict, List, Sequence, TypeVar

from schemas.portfolio_metrics import AttributionEntry, MetricsBundle, RiskDistribution
from services.analytics import metrics_config as cfg
from services.analytics import stats
from services.analytics.types import HoldingSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_finite(val: Any) -> bool:
    if isinstance(val, (int, float)):
        return math.isfinite(val)
    return True


def with_fallback(name: str, fallback: Callable[[], T]) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Return fallback() if the metric raises or produces a non-finite number."""
    def deco(fn: Callable[..., T]) -> Callable[..., T]:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                val = fn(*args, **kwargs)
            except Exception as e:
                logger.warning("%s calculation failed: %s", name, e)
                return fallback()
            if not _is_finite(val):
                logger.warning("%s calculation produced a non-finite value", name)
                return fallback()
            return val
        return wrapper
    return deco


def _const(v: T) -> Callable[[], T]:
    return lambda: v


def _annualized_mean(returns: Sequence[float]) -> float:
    return stats.mean(returns) * cfg.PERIODS_PER_YEAR


def _volatility_pct(returns: Sequence[float]) -> float:
    return stats.stddev(returns) * math.sqrt(cfg.PERIODS_PER_YEAR) * 100.0


# ============================================================================
# RETURN-BASED METRICS
# ============================================================================

@with_fallback("Volatility", _const(cfg.FALLBACK_VOLATILITY))
def compute_volatility(returns: Sequence[float]) -> float:
    """Annualized volatility in %."""
    if len(returns) < 2:
        return cfg.FALLBACK_VOLATILITY
    return round(_volatility_pct(returns), 1)


@with_fallback("Sharpe ratio", _const(cfg.FALLBACK_SHARPE))
def compute_sharpe(returns: Sequence[float], risk_free: float = cfg.RISK_FREE_RATE) -> float:
    if len(returns) < 2:
        return cfg.FALLBACK_SHARPE
    vol = _volatility_pct(returns)
    if vol == 0:
        return cfg.FALLBACK_SHARPE
    return round((_annualized_mean(returns) - risk_free) / (vol / 100.0), 2)


@with_fallback("Sortino ratio", _const(cfg.FALLBACK_SORTINO))
def compute_sortino(returns: Sequence[float], risk_free: float = cfg.RISK_FREE_RATE) -> float:
    """
    Like Sharpe, but the denominator only counts losing days:
    downside = sqrt(mean(r^2 for r < 0)) * sqrt(365).
    """
    if len(returns) < 2:
        return cfg.FALLBACK_SORTINO
    negatives = [r for r in returns if r < 0]
    if not negatives:
        return cfg.OPTIMISTIC_SORTINO
    downside = stats.root_mean_square(negatives) * math.sqrt(cfg.PERIODS_PER_YEAR)
    if downside == 0:
        return cfg.OPTIMISTIC_SORTINO
    return round((_annualized_mean(returns) - risk_free) / downside, 2)


@with_fallback("Beta", _const(cfg.FALLBACK_BETA))
def compute_beta(portfolio_returns: Sequence[float], benchmark_returns: Sequence[float]) -> float:
    """cov(portfolio, benchmark) / var(benchmark) over the common trailing window."""
    n = min(len(portfolio_returns), len(benchmark_returns))
    if n < 2:
        return cfg.FALLBACK_BETA
    p = list(portfolio_returns)[-n:]
    b = list(benchmark_returns)[-n:]
    bench_var = stats.variance(b)
    if bench_var == 0:
        return cfg.FALLBACK_BETA
    return round(stats.covariance(p, b) / bench_var, 2)


@with_fallback("Max drawdown", _const(cfg.FALLBACK_MAX_DRAWDOWN))
def compute_max_drawdown(values: Sequence[float]) -> float:
    """Largest peak-to-trough decline of a value series, in % (positive)."""
    if len(values) < 2:
        return cfg.FALLBACK_MAX_DRAWDOWN
    peak = values[0]
    worst = 0.0
    for v in values:
        if v > peak:
            peak = v
        worst = max(worst, (peak - v) / peak * 100.0)
    return round(worst, 1)


@with_fallback("Value at risk", _const(cfg.FALLBACK_VAR))
def compute_value_at_risk(returns: Sequence[float]) -> float:
    """Historical 1-day VaR at 95%, as a positive %."""
    if len(returns) < cfg.VAR_MIN_POINTS:
        return cfg.FALLBACK_VAR
    tail = stats.percentile_floor(returns, cfg.VAR_CONFIDENCE_TAIL)
    return round(abs(tail) * 100.0, 1)


# ============================================================================
# HOLDINGS-BASED METRICS
# ============================================================================

def _values(holdings: Sequence[HoldingSnapshot]) -> List[float]:
    return [float(h.value) for h in holdings]


def portfolio_hhi(holdings: Sequence[HoldingSnapshot]) -> float:
    """Herfindahl index of value weights (fractional, 0-1). Raises on a non-positive total."""
    return stats.herfindahl(stats.weights_from_values(_values(holdings)))


@with_fallback("Diversification ratio", _const(cfg.FALLBACK_DIVERSIFICATION_ERROR))
def compute_diversification_ratio(holdings: Sequence[HoldingSnapshot]) -> float:
    if len(holdings) < 2 or sum(_values(holdings)) <= 0:
        return cfg.FALLBACK_DIVERSIFICATION_SINGLE
    return round(1.0 - portfolio_hhi(holdings), 2)


@with_fallback("Concentration index", _const(cfg.FALLBACK_CONCENTRATION))
def compute_concentration_index(holdings: Sequence[HoldingSnapshot]) -> float:
    """HHI on the 0-10000 scale (weights in %)."""
    if not holdings or sum(_values(holdings)) <= 0:
        return cfg.FALLBACK_CONCENTRATION
    return round(portfolio_hhi(holdings) * 10000.0, 1)


def risk_bucket(symbol: str) -> str:
    sym = (symbol or "").strip().upper()
    if sym in cfg.STABLECOINS:
        return "low"
    if sym in cfg.MAJOR_COINS:
        return "medium"
    return "high"


def _fallback_distribution() -> RiskDistribution:
    return RiskDistribution(**cfg.FALLBACK_RISK_DISTRIBUTION)


@with_fallback("Risk distribution", _fallback_distribution)
def compute_risk_distribution(holdings: Sequence[HoldingSnapshot]) -> RiskDistribution:
    total = sum(_values(holdings))
    if not holdings or total <= 0:
        return _fallback_distribution()

    buckets: Dict[str, float] = {"low": 0.0, "medium": 0.0, "high": 0.0}
    for h in holdings:
        buckets[risk_bucket(h.symbol)] += h.value

    return RiskDistribution(
        low=round(buckets["low"] / total * 100.0, 1),
        medium=round(buckets["medium"] / total * 100.0, 1),
        high=round(buckets["high"] / total * 100.0, 1),
    )


@with_fallback("Performance attribution", list)
def compute_performance_attribution(
    holdings: Sequence[HoldingSnapshot],
    top_n: int = cfg.ATTRIBUTION_TOP_N,
) -> List[AttributionEntry]:
    """Contribution of each holding's 24h move to the portfolio, best first."""
    total = sum(_values(holdings))
    rows = []
    for h in holdings:
        weight = h.value / total * 100.0 if total > 0 else 0.0
        change = float(h.price_change_24h or 0.0)
        rows.append((weight * change / 100.0, weight, change, h.symbol))

    rows.sort(key=lambda r: r[0], reverse=True)
    return [
        AttributionEntry(
            symbol=sym,
            weight=round(weight, 1),
            return_pct=round(change, 2),
            contribution=round(contribution, 2),
        )
        for contribution, weight, change, sym in rows[:top_n]
    ]


# ============================================================================
# BUNDLE
# ============================================================================

def default_metrics(user_id: str | None = None) -> MetricsBundle:
    """The full fallback bundle, used when there is nothing to compute from."""
    return MetricsBundle(
        user_id=user_id,
        sharpe_ratio=cfg.FALLBACK_SHARPE,
        beta_coefficient=cfg.FALLBACK_BETA,
        volatility=cfg.FALLBACK_VOLATILITY,
        max_drawdown=cfg.FALLBACK_MAX_DRAWDOWN,
        sortino_ratio=cfg.FALLBACK_SORTINO,
        value_at_risk=cfg.FALLBACK_VAR,
        diversification_ratio=cfg.FALLBACK_DIVERSIFICATION_ERROR,
        concentration_index=cfg.FALLBACK_CONCENTRATION,
        risk_distribution=_fallback_distribution(),
        performance_attribution=[],
    )


def compute_metrics_bundle(
    holdings: Sequence[HoldingSnapshot],
    portfolio_values: Sequence[float],
    portfolio_returns: Sequence[float],
    benchmark_returns: Sequence[float],
    *,
    user_id: str | None = None,
) -> MetricsBundle:
    return MetricsBundle(
        user_id=user_id,
        sharpe_ratio=compute_sharpe(portfolio_returns),
        beta_coefficient=compute_beta(portfolio_returns, benchmark_returns),
        volatility=compute_volatility(portfolio_returns),
        max_drawdown=compute_max_drawdown(portfolio_values),
        sortino_ratio=compute_sortino(portfolio_returns),
        value_at_risk=compute_value_at_risk(portfolio_returns),
        diversification_ratio=compute_diversification_ratio(holdings),
        concentration_index=compute_concentration_index(holdings),
        risk_distribution=compute_risk_distribution(holdings),
        performance_attribution=compute_performance_attribution(holdings),
    )
