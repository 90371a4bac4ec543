# services/market_data/history_providers.py
"""
Historical daily closes for the metrics engine.

RandomWalkPriceProvider is the default: the dashboard has never been wired to
a paid history feed, so it runs on a reproducible synthetic walk. Set
MARKET_DATA_PROVIDER=yahoo to use Yahoo Finance closes instead.
"""
from __future__ import annotations

import hashlib
import logging
from typing import List

import numpy as np
import pandas as pd
from yahooquery import Ticker

from services.analytics import metrics_config as cfg
from services.cache.cache_utils import cacheable
from services.market_data.quote_client import MarketDataError

logger = logging.getLogger(__name__)

TTL_HISTORY_SEC = 60 * 60


class RandomWalkPriceProvider:
    """
    Synthetic history: start at base_price and move by a uniform
    [-max_daily_move_pct, +max_daily_move_pct] % each day.
    The RNG is seeded from (seed, symbol) so a symbol always gets the same walk.
    """

    def __init__(self, seed: int = 0, base_price: float = 100.0, max_daily_move_pct: float = 5.0):
        self.seed = seed
        self.base_price = base_price
        self.max_daily_move_pct = max_daily_move_pct

    def _rng(self, symbol: str) -> np.random.Generator:
        digest = hashlib.sha256(f"{self.seed}:{symbol.upper()}".encode()).digest()
        return np.random.default_rng(int.from_bytes(digest[:8], "big"))

    def get_history(self, symbol: str, days: int = cfg.HISTORY_DAYS) -> List[float]:
        if days <= 0:
            return []
        moves = self._rng(symbol).uniform(-self.max_daily_move_pct, self.max_daily_move_pct, size=days)
        return [float(p) for p in self.base_price * np.cumprod(1.0 + moves / 100.0)]


def to_yahoo_symbol(symbol: str) -> str:
    """Crypto tickers need a '-USD' suffix on Yahoo (BTC -> BTC-USD)."""
    sym = (symbol or "").strip().upper()
    return sym if sym.endswith("-USD") else f"{sym}-USD"


def _period_for(days: int) -> str:
    if days <= 5:
        return "5d"
    if days <= 30:
        return "1mo"
    if days <= 90:
        return "3mo"
    if days <= 180:
        return "6mo"
    return "1y"


@cacheable(ttl=TTL_HISTORY_SEC, key_fn=lambda symbol, days: f"HISTORY:{to_yahoo_symbol(symbol)}:{days}")
def _fetch_yahoo_closes(symbol: str, days: int) -> List[float]:
    yahoo_sym = to_yahoo_symbol(symbol)
    # A month of calendar days can hold fewer closes than requested; ask for one period more.
    tq = Ticker(yahoo_sym, asynchronous=False, formatted=False)
    df = tq.history(period=_period_for(days + 31), interval="1d")

    if not isinstance(df, pd.DataFrame) or df.empty:
        raise MarketDataError(f"No Yahoo history for {yahoo_sym}")

    df = df.reset_index()
    price_col = "adjclose" if "adjclose" in df.columns and df["adjclose"].notna().any() else "close"
    if price_col not in df.columns:
        raise MarketDataError(f"No close column in Yahoo history for {yahoo_sym}")

    date_col = next((c for c in df.columns if str(c).lower() == "date"), None)
    if date_col is not None:
        df[date_col] = pd.to_datetime(df[date_col], utc=True, errors="coerce")
        df = df.sort_values(date_col)

    closes = df[price_col].dropna().astype(float).tolist()
    return closes[-days:]


class YahooPriceProvider:
    """Daily closes from Yahoo Finance via yahooquery, memoized for an hour."""

    def get_history(self, symbol: str, days: int = cfg.HISTORY_DAYS) -> List[float]:
        if days <= 0:
            return []
        try:
            return _fetch_yahoo_closes(symbol.upper(), days)
        except MarketDataError:
            raise
        except Exception as e:
            raise MarketDataError(f"Yahoo history failed for {symbol}: {e}") from e


def get_history_provider(name: str = cfg.MARKET_DATA_PROVIDER):
    if name == "yahoo":
        return YahooPriceProvider()
    if name != "mock":
        logger.warning("Unknown MARKET_DATA_PROVIDER=%r, using mock history", name)
    return RandomWalkPriceProvider()
