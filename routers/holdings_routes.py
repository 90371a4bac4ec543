# routers/holdings_routes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from models.holding import Holding, HoldingOut
from models.transaction import Transaction
from models.user import User
from routers.dependencies import get_quote_client
from schemas.holding import HoldingCreate, TransactionCreate
from services.holding_service import create_holding, get_all_holdings, price_holdings
from services.market_data.quote_client import QuoteClient
from utils.common_helpers import normalize_symbol

router = APIRouter()


def _require_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/users/{user_id}/holdings")
def save_holding(
    user_id: int,
    holding: HoldingCreate,
    db: Session = Depends(get_db),
):
    _require_user(db, user_id)
    try:
        row = create_holding(db, user_id, holding.symbol, holding.quantity, holding.purchase_price)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Holding already exists for this symbol")
    return HoldingOut.model_validate(row)


@router.get("/users/{user_id}/holdings")
def get_holdings(
    user_id: int,
    includePrices: bool = Query(False),
    db: Session = Depends(get_db),
    quotes: QuoteClient = Depends(get_quote_client),
):
    rows = get_all_holdings(user_id, db)
    if not includePrices:
        return [HoldingOut.model_validate(r) for r in rows]
    return price_holdings(rows, quotes)


@router.delete("/users/{user_id}/holdings/{holding_id}")
def delete_holding(
    user_id: int,
    holding_id: int,
    db: Session = Depends(get_db),
):
    holding = db.query(Holding).filter_by(id=holding_id, user_id=user_id).first()
    if not holding:
        raise HTTPException(status_code=404, detail="Holding not found")

    db.delete(holding)
    db.commit()
    return {"detail": "Deleted"}


@router.post("/users/{user_id}/transactions")
def save_transaction(
    user_id: int,
    tx: TransactionCreate,
    db: Session = Depends(get_db),
):
    _require_user(db, user_id)
    row = Transaction(
        user_id=user_id,
        symbol=normalize_symbol(tx.symbol),
        type=tx.type,
        quantity=tx.quantity,
        price_per_unit=tx.price_per_unit,
        total_value=tx.quantity * tx.price_per_unit,
        fees=tx.fees,
        exchange=tx.exchange,
        external_id=tx.external_id,
        notes=tx.notes,
        transaction_date=tx.transaction_date,
        is_taxable=tx.is_taxable,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Duplicate external transaction")
    db.refresh(row)
    return {"id": row.id, "detail": "Created"}
