# services/analytics/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


@dataclass(frozen=True)
class HoldingSnapshot:
    """A priced holding as seen by the metrics engine."""
    symbol: str
    quantity: float
    current_price: float
    price_change_24h: float = 0.0   # % change over the last 24h

    @property
    def value(self) -> float:
        return self.quantity * self.current_price


@dataclass
class ReturnSeriesSet:
    asset_returns: Dict[str, List[float]] = field(default_factory=dict)
    portfolio_values: List[float] = field(default_factory=list)
    portfolio_returns: List[float] = field(default_factory=list)


# ============================================================================
# COLLABORATORS
# ============================================================================

class HoldingsProvider(Protocol):
    def get_holdings(self, user_id: str) -> List[HoldingSnapshot]:
        """Current priced holdings for a user."""


class HistoricalPriceProvider(Protocol):
    def get_history(self, symbol: str, days: int) -> List[float]:
        """Oldest-first daily closing prices."""


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...
