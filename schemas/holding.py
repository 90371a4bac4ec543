# schemas/holding.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

TransactionType = Literal["buy", "sell", "transfer_in", "transfer_out", "staking_reward", "airdrop"]


class HoldingCreate(BaseModel):
    symbol: str = Field(min_length=1, max_length=32)
    quantity: float = Field(ge=0)
    purchase_price: float | None = Field(default=None, ge=0)


class TransactionCreate(BaseModel):
    symbol: str = Field(min_length=1, max_length=32)
    type: TransactionType
    quantity: float = Field(gt=0)
    price_per_unit: float = Field(ge=0)
    fees: float = Field(default=0.0, ge=0)
    transaction_date: datetime
    exchange: str | None = None
    external_id: str | None = None
    notes: str | None = None
    is_taxable: bool = True
