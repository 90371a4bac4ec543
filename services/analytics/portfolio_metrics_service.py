# services/analytics/portfolio_metrics_service.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from schemas.portfolio_metrics import (
    BenchmarkComparison,
    BenchmarkDiff,
    BenchmarkProfile,
    MetricsBundle,
    PerformanceSummary,
    RiskAnalysis,
    RiskRecommendation,
)
from services.analytics import metrics_config as cfg
from services.analytics.advanced_metrics import compute_metrics_bundle, default_metrics
from services.analytics.return_series import asset_returns, build_return_series
from services.analytics.types import CacheStore, HistoricalPriceProvider, HoldingsProvider

logger = logging.getLogger(__name__)

# Reference profiles shown next to the user's portfolio.
BENCHMARK_PROFILES: Dict[str, BenchmarkProfile] = {
    "btc": BenchmarkProfile(name="Bitcoin", volatility=65.0, sharpe_ratio=1.2, max_drawdown=85.0, beta=1.0),
    "eth": BenchmarkProfile(name="Ethereum", volatility=80.0, sharpe_ratio=0.9, max_drawdown=90.0, beta=1.3),
    "traditional": BenchmarkProfile(
        name="60/40 Portfolio", volatility=12.0, sharpe_ratio=0.8, max_drawdown=25.0, beta=0.6
    ),
}


def metrics_cache_key(user_id: str) -> str:
    return f"{cfg.METRICS_CACHE_PREFIX}:{user_id}"


class PortfolioMetricsService:
    """
    Computes the advanced metrics bundle for a user and memoizes it for
    METRICS_CACHE_TTL_SEC. Stale-by-up-to-TTL is accepted; there is no
    invalidation when holdings change.
    """

    def __init__(
        self,
        holdings: HoldingsProvider,
        prices: HistoricalPriceProvider,
        cache: CacheStore,
        *,
        ttl_seconds: int = cfg.METRICS_CACHE_TTL_SEC,
        history_days: int = cfg.HISTORY_DAYS,
        benchmark_symbol: str = cfg.BENCHMARK_SYMBOL,
    ):
        self.holdings = holdings
        self.prices = prices
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.history_days = history_days
        self.benchmark_symbol = benchmark_symbol

    # -----------------------
    # Core
    # -----------------------

    def compute_advanced_metrics(self, user_id: str) -> MetricsBundle:
        """Cached bundle for the user. Never raises."""
        uid = str(user_id)
        key = metrics_cache_key(uid)

        try:
            hit = self.cache.get(key)
        except Exception as e:
            logger.warning("Metrics cache read failed for user_id=%s: %s", uid, e)
            hit = None

        if hit is not None:
            try:
                return MetricsBundle.model_validate(hit)
            except ValueError as e:
                logger.warning("Discarding malformed cached metrics for user_id=%s: %s", uid, e)

        bundle, cache_ok = self._compute(uid)

        # Upstream failures fall back to defaults but are retried on the next request.
        if cache_ok:
            try:
                self.cache.set(key, bundle.to_dict(), self.ttl_seconds)
            except Exception as e:
                logger.warning("Metrics cache write failed for user_id=%s: %s", uid, e)

        return bundle

    def _compute(self, user_id: str) -> Tuple[MetricsBundle, bool]:
        """Returns (bundle, cacheable)."""
        now = datetime.now(timezone.utc)
        try:
            holdings = self.holdings.get_holdings(user_id)
            if not holdings:
                logger.info("No holdings for user_id=%s, returning default metrics", user_id)
                return default_metrics(user_id).model_copy(update={"computed_at": now}), True

            symbols = list(dict.fromkeys(h.symbol for h in holdings))
            history = {sym: self.prices.get_history(sym, self.history_days) for sym in symbols}
            benchmark = self.prices.get_history(self.benchmark_symbol, self.history_days)
        except Exception as e:
            logger.error(
                "Failed to load portfolio data for advanced metrics: user_id=%s error=%s",
                user_id, e, exc_info=True,
            )
            return default_metrics(user_id).model_copy(update={"computed_at": now}), False

        series = build_return_series(holdings, history)
        bundle = compute_metrics_bundle(
            holdings,
            series.portfolio_values,
            series.portfolio_returns,
            asset_returns(benchmark),
            user_id=user_id,
        )
        logger.info(
            "Computed advanced metrics: user_id=%s holdings=%d return_points=%d",
            user_id, len(holdings), len(series.portfolio_returns),
        )
        return bundle.model_copy(update={"computed_at": now}), True

    # -----------------------
    # Dashboard views
    # -----------------------

    def risk_analysis(self, user_id: str) -> RiskAnalysis:
        m = self.compute_advanced_metrics(user_id)
        score = risk_score(m)
        return RiskAnalysis(
            risk_level=risk_level(score),
            risk_score=score,
            volatility=m.volatility,
            concentration=m.concentration_index,
            value_at_risk=m.value_at_risk,
            max_drawdown=m.max_drawdown,
            diversification_ratio=m.diversification_ratio,
            risk_distribution=m.risk_distribution,
            recommendations=risk_recommendations(m),
        )

    def performance_attribution(self, user_id: str) -> PerformanceSummary:
        m = self.compute_advanced_metrics(user_id)
        return PerformanceSummary(
            attribution=m.performance_attribution,
            sharpe_ratio=m.sharpe_ratio,
            sortino_ratio=m.sortino_ratio,
            total_return=round(sum(a.contribution for a in m.performance_attribution), 2),
        )

    def benchmark_comparison(self, user_id: str) -> BenchmarkComparison:
        m = self.compute_advanced_metrics(user_id)
        portfolio = BenchmarkProfile(
            name="Your Portfolio",
            volatility=m.volatility,
            sharpe_ratio=m.sharpe_ratio,
            max_drawdown=m.max_drawdown,
            beta=m.beta_coefficient,
        )
        comparison = {
            key: BenchmarkDiff(
                name=b.name,
                volatility_diff=round(m.volatility - b.volatility, 1),
                sharpe_diff=round(m.sharpe_ratio - b.sharpe_ratio, 2),
                drawdown_diff=round(m.max_drawdown - b.max_drawdown, 1),
                beta_diff=round(m.beta_coefficient - b.beta, 2),
            )
            for key, b in BENCHMARK_PROFILES.items()
        }
        return BenchmarkComparison(portfolio=portfolio, benchmarks=dict(BENCHMARK_PROFILES), comparison=comparison)


# ============================================================================
# RISK SCORING
# ============================================================================

def concentration_pct(m: MetricsBundle) -> float:
    """Concentration index rescaled from 0-10000 to 0-100."""
    return m.concentration_index / 100.0


def risk_score(m: MetricsBundle) -> int:
    """0-100: volatility (40), concentration (30), high-risk share (30)."""
    score = 0

    vol = m.volatility
    if vol > 50:
        score += 40
    elif vol > 30:
        score += 25
    elif vol > 15:
        score += 15
    else:
        score += 5

    conc = concentration_pct(m)
    if conc > 50:
        score += 30
    elif conc > 25:
        score += 20
    else:
        score += 10

    high = m.risk_distribution.high
    if high > 70:
        score += 30
    elif high > 40:
        score += 20
    elif high > 20:
        score += 15
    else:
        score += 5

    return score


def risk_level(score: int) -> str:
    if score >= 80:
        return "Very High"
    if score >= 60:
        return "High"
    if score >= 40:
        return "Moderate"
    if score >= 25:
        return "Low"
    return "Very Low"


def risk_recommendations(m: MetricsBundle) -> List[RiskRecommendation]:
    recs: List[RiskRecommendation] = []

    if concentration_pct(m) > 50:
        recs.append(RiskRecommendation(
            type="diversification",
            priority="high",
            message="Your portfolio is highly concentrated. Consider diversifying across more assets.",
            action="Add more cryptocurrencies to reduce concentration risk",
        ))

    if m.volatility > 50:
        recs.append(RiskRecommendation(
            type="volatility",
            priority="medium",
            message="Your portfolio has high volatility. Consider adding stable assets.",
            action="Allocate some funds to stablecoins or lower-volatility assets",
        ))

    if m.risk_distribution.high > 70:
        recs.append(RiskRecommendation(
            type="risk_balance",
            priority="high",
            message="Most of your portfolio is in high-risk assets.",
            action="Consider rebalancing with some BTC, ETH, or stablecoins",
        ))

    if m.sharpe_ratio < 0.5:
        recs.append(RiskRecommendation(
            type="performance",
            priority="medium",
            message="Your risk-adjusted returns could be improved.",
            action="Review asset allocation and consider higher Sharpe ratio investments",
        ))

    return recs
