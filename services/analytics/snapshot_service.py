# services/analytics/snapshot_service.py
"""
Daily portfolio value snapshots and the performance views built on them.

store_snapshot() upserts one row per user per UTC day, so a scheduler can
call it as often as it likes. The timeline reads stored rows for a timeframe;
with no rows yet it returns a single live (unsaved) point.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from models.portfolio_snapshot import PortfolioSnapshot
from models.user import User
from schemas.portfolio_metrics import PerformanceMetrics, TimelinePoint
from services.analytics import stats
from services.analytics.types import HoldingsProvider
from services.market_data.quote_client import MarketDataError, QuoteClient
from utils.common_helpers import to_float

logger = logging.getLogger(__name__)

DEFAULT_TIMEFRAME = "1M"

_TIMEFRAME_OFFSETS: Dict[str, pd.DateOffset] = {
    "1D": pd.DateOffset(days=1),
    "1W": pd.DateOffset(weeks=1),
    "1M": pd.DateOffset(months=1),
    "3M": pd.DateOffset(months=3),
    "6M": pd.DateOffset(months=6),
    "1Y": pd.DateOffset(years=1),
}


def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def timeframe_start(timeframe: str, end: datetime) -> datetime:
    """Window start for a timeframe; unknown values fall back to one month."""
    end = _utc(end)
    if timeframe == "YTD":
        return datetime(end.year, 1, 1, tzinfo=timezone.utc)
    offset = _TIMEFRAME_OFFSETS.get(timeframe, _TIMEFRAME_OFFSETS[DEFAULT_TIMEFRAME])
    return (pd.Timestamp(end) - offset).to_pydatetime()


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = _utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _to_point(row: PortfolioSnapshot) -> TimelinePoint:
    meta = row.metadata_json or {}
    return TimelinePoint(
        date=_utc(row.snapshot_date),
        portfolio_value=to_float(row.total_value),
        change_24h=to_float(meta.get("change_24h")),
        change_percent=to_float(meta.get("change_percent")),
        btc_price=to_float(meta.get("btc_price")),
        eth_price=to_float(meta.get("eth_price")),
    )


def performance_from_timeline(timeline: List[TimelinePoint], timeframe: str) -> PerformanceMetrics:
    if not timeline:
        return PerformanceMetrics(timeframe=timeframe)

    values = [p.portfolio_value for p in timeline]
    first, last = values[0], values[-1]
    change = last - first
    return PerformanceMetrics(
        timeframe=timeframe,
        current_value=round(last, 2),
        period_return=round(change, 2),
        period_return_percent=round(change / first * 100.0, 2) if first > 0 else 0.0,
        total_change=round(change, 2),
        volatility=round(stats.stddev(values), 2),
        max_value=round(max(values), 2),
        min_value=round(min(values), 2),
        data_points=len(timeline),
    )


class PortfolioSnapshotService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        holdings: HoldingsProvider,
        quotes: QuoteClient,
    ):
        self._session_factory = session_factory
        self.holdings = holdings
        self.quotes = quotes

    def _price(self, symbol: str) -> float:
        try:
            return self.quotes.get_quote(symbol).price
        except MarketDataError as e:
            logger.warning("No %s price for snapshot: %s", symbol, e)
            return 0.0

    def _portfolio_value(self, user_id: str) -> tuple[float, int]:
        holdings = self.holdings.get_holdings(user_id)
        return sum(h.value for h in holdings), len({h.symbol for h in holdings})

    # -----------------------
    # Writes
    # -----------------------

    def store_snapshot(self, user_id: str, *, now: Optional[datetime] = None) -> TimelinePoint:
        """Create or refresh today's snapshot for the user."""
        now = _utc(now or datetime.now(timezone.utc))
        day_start, day_end = day_bounds(now)
        total, coins = self._portfolio_value(user_id)
        uid = int(user_id)

        db = self._session_factory()
        try:
            prev = db.execute(
                select(PortfolioSnapshot)
                .where(PortfolioSnapshot.user_id == uid, PortfolioSnapshot.snapshot_date < day_start)
                .order_by(PortfolioSnapshot.snapshot_date.desc())
                .limit(1)
            ).scalars().first()
            prev_value = to_float(prev.total_value) if prev else 0.0
            change = total - prev_value if prev else 0.0

            meta = {
                "total_coins": coins,
                "change_24h": round(change, 8),
                "change_percent": round(change / prev_value * 100.0, 4) if prev_value > 0 else 0.0,
                "btc_price": self._price("BTC"),
                "eth_price": self._price("ETH"),
            }

            row = db.execute(
                select(PortfolioSnapshot).where(
                    PortfolioSnapshot.user_id == uid,
                    PortfolioSnapshot.snapshot_date >= day_start,
                    PortfolioSnapshot.snapshot_date < day_end,
                )
            ).scalars().first()
            if row is None:
                row = PortfolioSnapshot(user_id=uid, snapshot_date=now)
                db.add(row)
            row.total_value = total
            row.metadata_json = meta
            db.commit()
            db.refresh(row)
            logger.info("Stored portfolio snapshot: user_id=%s snapshot_id=%s", uid, row.id)
            return _to_point(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def store_all_snapshots(self, *, now: Optional[datetime] = None) -> int:
        """Snapshot every user; one user's failure does not stop the run. Returns the number stored."""
        db = self._session_factory()
        try:
            user_ids = list(db.execute(select(User.id).order_by(User.id)).scalars().all())
        finally:
            db.close()

        stored = 0
        for uid in user_ids:
            try:
                self.store_snapshot(str(uid), now=now)
                stored += 1
            except Exception as e:
                logger.error("Failed to store portfolio snapshot: user_id=%s error=%s", uid, e, exc_info=True)
        logger.info("Snapshot run finished: users=%d stored=%d", len(user_ids), stored)
        return stored

    # -----------------------
    # Reads
    # -----------------------

    def current_snapshot(self, user_id: str, *, now: Optional[datetime] = None) -> TimelinePoint:
        total, _ = self._portfolio_value(user_id)
        return TimelinePoint(
            date=_utc(now or datetime.now(timezone.utc)),
            portfolio_value=total,
            btc_price=self._price("BTC"),
            eth_price=self._price("ETH"),
        )

    def performance_timeline(
        self,
        user_id: str,
        timeframe: str = DEFAULT_TIMEFRAME,
        *,
        now: Optional[datetime] = None,
    ) -> List[TimelinePoint]:
        """Stored snapshots in the window, oldest first. Never raises."""
        now = _utc(now or datetime.now(timezone.utc))
        start = timeframe_start(timeframe, now)
        try:
            db = self._session_factory()
            try:
                rows = db.execute(
                    select(PortfolioSnapshot)
                    .where(
                        PortfolioSnapshot.user_id == int(user_id),
                        PortfolioSnapshot.snapshot_date >= start,
                        PortfolioSnapshot.snapshot_date <= now,
                    )
                    .order_by(PortfolioSnapshot.snapshot_date)
                ).scalars().all()
                points = [_to_point(r) for r in rows]
            finally:
                db.close()

            if not points:
                return [self.current_snapshot(user_id, now=now)]
            return points
        except Exception as e:
            logger.error(
                "Failed to build performance timeline: user_id=%s timeframe=%s error=%s",
                user_id, timeframe, e, exc_info=True,
            )
            return []

    def performance_metrics(
        self,
        user_id: str,
        timeframe: str = DEFAULT_TIMEFRAME,
        *,
        now: Optional[datetime] = None,
    ) -> PerformanceMetrics:
        return performance_from_timeline(self.performance_timeline(user_id, timeframe, now=now), timeframe)
