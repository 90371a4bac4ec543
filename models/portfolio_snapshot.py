# models/portfolio_snapshot.py
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class PortfolioSnapshot(Base):
    """Total portfolio value for one user on one day (at most one row per UTC day)."""
    __tablename__ = "portfolio_snapshots"
    __table_args__ = (
        Index("ix_portfolio_snapshots_user_date", "user_id", "snapshot_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    total_value: Mapped[float] = mapped_column(Numeric(20, 8, asdecimal=False), default=0.0)
    snapshot_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    # total_coins, change_24h, change_percent, btc_price, eth_price
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    owner = relationship("User", back_populates="snapshots")
