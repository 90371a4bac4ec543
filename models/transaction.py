# models/transaction.py
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

TRANSACTION_TYPES = {
    "buy": "Buy",
    "sell": "Sell",
    "transfer_in": "Transfer In",
    "transfer_out": "Transfer Out",
    "staking_reward": "Staking Reward",
    "airdrop": "Airdrop",
}


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("external_id", "exchange", name="unique_external_transaction"),
        Index("ix_transactions_user_symbol", "user_id", "symbol"),
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    symbol: Mapped[str] = mapped_column(String(32))
    type: Mapped[str] = mapped_column(String(20))
    quantity: Mapped[float] = mapped_column(Numeric(20, 8, asdecimal=False))
    price_per_unit: Mapped[float] = mapped_column(Numeric(20, 8, asdecimal=False))
    total_value: Mapped[float] = mapped_column(Numeric(20, 8, asdecimal=False))
    fees: Mapped[float] = mapped_column(Numeric(20, 8, asdecimal=False), default=0.0)
    exchange: Mapped[str | None] = mapped_column(String(64), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    is_taxable: Mapped[bool] = mapped_column(Boolean, default=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    owner = relationship("User", back_populates="transactions")
