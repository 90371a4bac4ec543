# schemas/portfolio_metrics.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class RiskDistribution(_CamelModel):
    low: float
    medium: float
    high: float


class AttributionEntry(_CamelModel):
    symbol: str
    weight: float                                    # % of portfolio value
    return_pct: float = Field(alias="return")        # 24h % change
    contribution: float                              # weight * return / 100


class MetricsBundle(_CamelModel):
    user_id: str | None = None
    computed_at: datetime | None = None

    sharpe_ratio: float
    beta_coefficient: float
    volatility: float
    max_drawdown: float
    sortino_ratio: float
    value_at_risk: float
    diversification_ratio: float
    concentration_index: float
    risk_distribution: RiskDistribution
    performance_attribution: List[AttributionEntry] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready payload with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# -------------------------
# Dashboard views
# -------------------------

RiskLevel = Literal["Very Low", "Low", "Moderate", "High", "Very High"]


class RiskRecommendation(BaseModel):
    type: str
    priority: Literal["low", "medium", "high"]
    message: str
    action: str


class RiskAnalysis(_CamelModel):
    risk_level: RiskLevel
    risk_score: int
    volatility: float
    concentration: float
    value_at_risk: float
    max_drawdown: float
    diversification_ratio: float
    risk_distribution: RiskDistribution
    recommendations: List[RiskRecommendation] = Field(default_factory=list)


class PerformanceSummary(_CamelModel):
    attribution: List[AttributionEntry] = Field(default_factory=list)
    sharpe_ratio: float
    sortino_ratio: float
    total_return: float


class BenchmarkProfile(_CamelModel):
    name: str
    volatility: float
    sharpe_ratio: float
    max_drawdown: float
    beta: float


class BenchmarkDiff(_CamelModel):
    name: str
    volatility_diff: float
    sharpe_diff: float
    drawdown_diff: float
    beta_diff: float


class BenchmarkComparison(_CamelModel):
    portfolio: BenchmarkProfile
    benchmarks: Dict[str, BenchmarkProfile]
    comparison: Dict[str, BenchmarkDiff]


# -------------------------
# Snapshot performance
# -------------------------

Timeframe = Literal["1D", "1W", "1M", "3M", "6M", "1Y", "YTD"]


class TimelinePoint(_CamelModel):
    date: datetime
    portfolio_value: float
    change_24h: float = 0.0
    change_percent: float = 0.0
    btc_price: float = 0.0
    eth_price: float = 0.0


class PerformanceMetrics(_CamelModel):
    timeframe: str
    current_value: float = 0.0
    period_return: float = 0.0
    period_return_percent: float = 0.0
    total_change: float = 0.0
    volatility: float = 0.0        # std-dev of values, in currency units
    max_value: float = 0.0
    min_value: float = 0.0
    data_points: int = 0
