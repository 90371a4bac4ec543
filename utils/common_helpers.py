from decimal import Decimal
import math
from typing import Any, Dict, Optional

import httpx


def to_float(x: Any) -> float:
    if x is None:
        return 0.0
    if isinstance(x, Decimal):
        return float(x)
    try:
        return float(x)
    except (TypeError, ValueError):
        return 0.0


def safe_float(x: Any) -> Optional[float]:
    try:
        if x is None:
            return None
        f = float(x)
        return None if math.isnan(f) else f
    except (TypeError, ValueError):
        return None


def safe_json(resp: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def normalize_symbol(symbol: Optional[str]) -> str:
    """'btc/usdt' -> 'BTC'; ' eth ' -> 'ETH'."""
    s = (symbol or "").strip().upper()
    for sep in ("/", "-"):
        if sep in s:
            s = s.split(sep, 1)[0]
    return s
