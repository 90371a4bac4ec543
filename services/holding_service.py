# services/holding_service.py
from __future__ import annotations

import logging
from typing import Callable, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.holding import Holding, HoldingOut
from services.analytics.types import HoldingSnapshot
from services.market_data.quote_client import MarketDataError, QuoteClient
from utils.common_helpers import normalize_symbol, to_float

logger = logging.getLogger(__name__)


def get_all_holdings(user_id: int | str, db: Session) -> List[Holding]:
    stmt = select(Holding).where(Holding.user_id == int(user_id)).order_by(Holding.symbol)
    return list(db.execute(stmt).scalars().all())


def create_holding(
    db: Session,
    user_id: int,
    symbol: str,
    quantity: float,
    purchase_price: float | None = None,
) -> Holding:
    holding = Holding(
        user_id=user_id,
        symbol=normalize_symbol(symbol),
        quantity=quantity,
        purchase_price=purchase_price,
    )
    db.add(holding)
    db.commit()
    db.refresh(holding)
    return holding


def price_holdings(holdings: List[Holding], quotes: QuoteClient) -> List[HoldingOut]:
    """
    Attach live prices. A holding whose quote fails keeps price 0 and
    price_status="unavailable" rather than failing the whole list.
    """
    out: List[HoldingOut] = []
    for h in holdings:
        dto = HoldingOut.model_validate(h)
        try:
            q = quotes.get_quote(h.symbol)
            dto.current_price = q.price
            dto.price_change_24h = q.change_24h_pct
            dto.price_status = "live"
        except MarketDataError as e:
            logger.warning("Quote unavailable for %s: %s", h.symbol, e)
            dto.current_price = 0.0
            dto.price_change_24h = 0.0
            dto.price_status = "unavailable"

        dto.value = round(to_float(dto.current_price) * to_float(h.quantity), 8)
        out.append(dto)
    return out


class SqlHoldingsProvider:
    """HoldingsProvider over the holdings table, priced through a QuoteClient."""

    def __init__(self, session_factory: Callable[[], Session], quotes: QuoteClient):
        self._session_factory = session_factory
        self._quotes = quotes

    def get_holdings(self, user_id: str) -> List[HoldingSnapshot]:
        db = self._session_factory()
        try:
            rows = get_all_holdings(user_id, db)
        finally:
            db.close()

        priced = price_holdings([r for r in rows if to_float(r.quantity) > 0], self._quotes)
        return [
            HoldingSnapshot(
                symbol=p.symbol,
                quantity=to_float(p.quantity),
                current_price=to_float(p.current_price),
                price_change_24h=to_float(p.price_change_24h),
            )
            for p in priced
        ]
