# services/market_data/quote_client.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
from dotenv import load_dotenv

from services.analytics.metrics_config import STABLECOINS
from utils.common_helpers import safe_float, safe_json

load_dotenv()

logger = logging.getLogger(__name__)

KUCOIN_BASE_URL = os.getenv("KUCOIN_BASE_URL", "https://api.kucoin.com")
MARKET_DATA_TIMEOUT_SEC = float(os.getenv("MARKET_DATA_TIMEOUT_SEC", "5"))


class MarketDataError(Exception):
    """Quote or price history could not be fetched."""


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: float
    change_24h_pct: float = 0.0


class QuoteClient(Protocol):
    def get_quote(self, symbol: str) -> Quote:
        """Latest price and 24h % change. Raises MarketDataError."""


def to_kucoin_pair(symbol: str, quote_ccy: str = "USDT") -> str:
    """BTC -> BTC-USDT; BTC/USDT -> BTC-USDT."""
    s = (symbol or "").strip().upper().replace("/", "-")
    if "-" in s:
        return s
    return f"{s}-{quote_ccy}"


class KuCoinQuoteClient:
    """
    Spot quotes from KuCoin's public market stats endpoint.
    Stablecoins are pegged at 1.0 without a network call.
    """

    def __init__(
        self,
        base_url: str = KUCOIN_BASE_URL,
        timeout: float = MARKET_DATA_TIMEOUT_SEC,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout, connect=2.0),
            headers={"User-Agent": "crypto-portfolio-metrics/1.0"},
        )

    def close(self) -> None:
        self._client.close()

    def get_quote(self, symbol: str) -> Quote:
        sym = (symbol or "").strip().upper()
        if not sym:
            raise MarketDataError("Missing symbol")
        if sym in STABLECOINS:
            return Quote(symbol=sym, price=1.0, change_24h_pct=0.0)

        pair = to_kucoin_pair(sym)
        try:
            r = self._client.get(f"{self.base_url}/api/v1/market/stats", params={"symbol": pair})
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise MarketDataError(f"KuCoin stats request failed for {pair}: {e}") from e

        data = (safe_json(r) or {}).get("data") or {}
        price = safe_float(data.get("last"))
        if price is None or price <= 0:
            raise MarketDataError(f"No price for {pair}")

        # changeRate is a fraction (0.0123 == +1.23%)
        change_rate = safe_float(data.get("changeRate")) or 0.0
        return Quote(symbol=sym, price=price, change_24h_pct=change_rate * 100.0)
