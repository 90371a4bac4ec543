# services/tax_reporting_service.py
"""
Capital gains reporting with FIFO lot matching.

Acquisitions (buy, transfer_in, staking_reward, airdrop) open lots; disposals
consume the oldest open lots of the same symbol first. Lots are consumed for
good, so two sales never match the same coins. A sale realizes a gain or loss
per matched lot; transfer_out removes coins without realizing anything.
"""
from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.transaction import TRANSACTION_TYPES, Transaction
from services.market_data.quote_client import MarketDataError, QuoteClient
from utils.common_helpers import normalize_symbol, to_float

logger = logging.getLogger(__name__)

ACQUISITION_TYPES = frozenset({"buy", "transfer_in", "staking_reward", "airdrop"})
DISPOSAL_TYPES = frozenset({"sell", "transfer_out"})

LONG_TERM_DAYS = 365
SHORT_TERM_RATE = 0.24
LONG_TERM_RATE = 0.15
MAX_ANNUAL_LOSS_DEDUCTION = 3000.0
HARVEST_MIN_LOSS = 100.0
REBALANCE_MIN_GAINS = 10000.0

_QTY_EPS = 1e-12


class TaxReportError(Exception):
    """Transaction data cannot be turned into a tax report."""


@dataclass(frozen=True)
class TaxTransaction:
    id: Optional[int]
    symbol: str
    type: str
    quantity: float
    price_per_unit: float
    transaction_date: datetime
    fees: float = 0.0
    # Non-taxable disposals consume lots without realizing a gain.
    is_taxable: bool = True


@dataclass
class OpenLot:
    symbol: str
    quantity: float
    unit_cost: float           # includes buy fees pro rata
    acquired_at: datetime
    transaction_id: Optional[int] = None


@dataclass(frozen=True)
class RealizedLot:
    symbol: str
    quantity: float
    purchase_date: str
    sale_date: str
    purchase_price: float
    sale_price: float
    cost_basis: float
    proceeds: float
    gain_loss: float
    holding_period: str        # "short_term" | "long_term"
    buy_transaction_id: Optional[int]
    sell_transaction_id: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def holding_period(acquired: datetime, disposed: datetime) -> str:
    return "long_term" if (_utc(disposed) - _utc(acquired)).days > LONG_TERM_DAYS else "short_term"


def _validate(tx: TaxTransaction) -> None:
    if tx.type not in TRANSACTION_TYPES:
        raise TaxReportError(f"Unknown transaction type {tx.type!r} (id={tx.id})")
    if tx.quantity <= 0:
        raise TaxReportError(f"Transaction quantity must be positive (id={tx.id})")
    if tx.price_per_unit < 0 or tx.fees < 0:
        raise TaxReportError(f"Negative price or fees (id={tx.id})")


def _sort_key(tx: TaxTransaction) -> Tuple[datetime, int, int]:
    # Same timestamp: acquisitions first, so a same-instant sale can use them.
    return (_utc(tx.transaction_date), 0 if tx.type in ACQUISITION_TYPES else 1, tx.id or 0)


# ============================================================================
# FIFO ENGINE
# ============================================================================

def run_fifo(
    transactions: Iterable[TaxTransaction],
) -> Tuple[List[RealizedLot], Dict[str, List[OpenLot]]]:
    """
    Replay transactions oldest first.
    Every acquisition opens a lot whether or not it is taxable.
    Returns (realized lots for every taxable sale, remaining open lots per symbol).
    """
    txs = list(transactions)
    for tx in txs:
        _validate(tx)

    books: Dict[str, Deque[OpenLot]] = defaultdict(deque)
    realized: List[RealizedLot] = []

    for tx in sorted(txs, key=_sort_key):
        sym = normalize_symbol(tx.symbol)
        lots = books[sym]

        if tx.type in ACQUISITION_TYPES:
            lots.append(OpenLot(
                symbol=sym,
                quantity=tx.quantity,
                unit_cost=tx.price_per_unit + tx.fees / tx.quantity,
                acquired_at=_utc(tx.transaction_date),
                transaction_id=tx.id,
            ))
            continue

        realizes = tx.type == "sell" and tx.is_taxable
        remaining = tx.quantity
        sold_at = _utc(tx.transaction_date)
        while remaining > _QTY_EPS and lots:
            lot = lots[0]
            matched = min(remaining, lot.quantity)
            if realizes:
                realized.append(_realize(tx, sym, matched, lot.unit_cost, lot.acquired_at, lot.transaction_id))
            lot.quantity -= matched
            remaining -= matched
            if lot.quantity <= _QTY_EPS:
                lots.popleft()

        if remaining > _QTY_EPS:
            logger.warning(
                "Disposal of %s exceeds open lots by %.8f (transaction id=%s)", sym, remaining, tx.id
            )
            if realizes:
                # Unknown acquisition: zero cost basis, dated at the sale.
                realized.append(_realize(tx, sym, remaining, 0.0, sold_at, None))

    open_lots = {sym: list(lots) for sym, lots in books.items() if lots}
    return realized, open_lots


def _realize(
    sell: TaxTransaction,
    symbol: str,
    quantity: float,
    unit_cost: float,
    acquired_at: datetime,
    buy_id: Optional[int],
) -> RealizedLot:
    cost_basis = unit_cost * quantity
    proceeds = sell.price_per_unit * quantity - sell.fees * (quantity / sell.quantity)
    return RealizedLot(
        symbol=symbol,
        quantity=round(quantity, 8),
        purchase_date=acquired_at.date().isoformat(),
        sale_date=_utc(sell.transaction_date).date().isoformat(),
        purchase_price=unit_cost,
        sale_price=sell.price_per_unit,
        cost_basis=round(cost_basis, 8),
        proceeds=round(proceeds, 8),
        gain_loss=round(proceeds - cost_basis, 8),
        holding_period=holding_period(acquired_at, sell.transaction_date),
        buy_transaction_id=buy_id,
        sell_transaction_id=sell.id,
    )


# ============================================================================
# REALIZED / UNREALIZED
# ============================================================================

def summarize_realized(lots: Iterable[RealizedLot]) -> Dict[str, float]:
    s = {
        "short_term_gains": 0.0,
        "short_term_losses": 0.0,
        "long_term_gains": 0.0,
        "long_term_losses": 0.0,
    }
    for lot in lots:
        term = "long_term" if lot.holding_period == "long_term" else "short_term"
        if lot.gain_loss > 0:
            s[f"{term}_gains"] += lot.gain_loss
        else:
            s[f"{term}_losses"] += abs(lot.gain_loss)

    out = {k: round(v, 2) for k, v in s.items()}
    out["short_term_net"] = round(s["short_term_gains"] - s["short_term_losses"], 2)
    out["long_term_net"] = round(s["long_term_gains"] - s["long_term_losses"], 2)
    out["total_net_gain_loss"] = round(out["short_term_net"] + out["long_term_net"], 2)
    return out


def realized_in_window(
    realized: Iterable[RealizedLot],
    start: datetime,
    end: datetime,
) -> Dict[str, Any]:
    """Realized lots whose sale falls within [start, end], with a short/long term summary."""
    lo = _utc(start).date().isoformat()
    hi = _utc(end).date().isoformat()
    in_window = [lot for lot in realized if lo <= lot.sale_date <= hi]
    return {
        "transactions": [lot.to_dict() for lot in in_window],
        "summary": summarize_realized(in_window),
    }


def calculate_realized_gains(
    transactions: Iterable[TaxTransaction],
    start: datetime,
    end: datetime,
) -> Dict[str, Any]:
    realized, _ = run_fifo(transactions)
    return realized_in_window(realized, start, end)


def calculate_unrealized(
    open_lots: Dict[str, List[OpenLot]],
    prices: Dict[str, Optional[float]],
) -> Dict[str, Any]:
    """
    Aggregate open lots per symbol and mark them to market.
    Symbols without a price are listed under "unpriced" and left out of the totals.
    """
    by_asset: List[Dict[str, Any]] = []
    unpriced: List[str] = []

    for sym, lots in sorted(open_lots.items()):
        qty = sum(l.quantity for l in lots)
        if qty <= _QTY_EPS:
            continue
        cost = sum(l.quantity * l.unit_cost for l in lots)
        price = prices.get(sym)
        if price is None:
            unpriced.append(sym)
            continue
        value = qty * price
        gain = value - cost
        by_asset.append({
            "symbol": sym,
            "quantity": round(qty, 8),
            "current_price": price,
            "current_value": round(value, 2),
            "cost_basis": round(cost, 2),
            "gain_loss": round(gain, 2),
            "gain_loss_percent": round(gain / cost * 100.0, 2) if cost > 0 else 0.0,
            "purchase_date": min(l.acquired_at for l in lots).date().isoformat(),
        })

    gains = [a for a in by_asset if a["gain_loss"] > 0]
    losses = [a for a in by_asset if a["gain_loss"] < 0]
    total_value = sum(a["current_value"] for a in by_asset)
    total_cost = sum(a["cost_basis"] for a in by_asset)

    return {
        "by_asset": by_asset,
        "unrealized_gains": gains,
        "unrealized_losses": losses,
        "total_unrealized_gains": round(sum(a["gain_loss"] for a in gains), 2),
        "total_unrealized_losses": round(abs(sum(a["gain_loss"] for a in losses)), 2),
        "total_current_value": round(total_value, 2),
        "total_cost_basis": round(total_cost, 2),
        "unpriced": unpriced,
    }


# ============================================================================
# FORMS & SUGGESTIONS
# ============================================================================

def generate_tax_forms(realized: Dict[str, Any]) -> Dict[str, Any]:
    lots = realized["transactions"]
    s = realized["summary"]
    return {
        "form_8949": {
            "name": "Form 8949 - Sales and Other Dispositions of Capital Assets",
            "short_term_transactions": [l for l in lots if l["holding_period"] == "short_term"],
            "long_term_transactions": [l for l in lots if l["holding_period"] == "long_term"],
        },
        "schedule_d": {
            "name": "Schedule D - Capital Gains and Losses",
            "short_term_summary": {
                "total_gains": s["short_term_gains"],
                "total_losses": s["short_term_losses"],
                "net_gain_loss": s["short_term_net"],
            },
            "long_term_summary": {
                "total_gains": s["long_term_gains"],
                "total_losses": s["long_term_losses"],
                "net_gain_loss": s["long_term_net"],
            },
            "overall_net_gain_loss": s["total_net_gain_loss"],
        },
    }


def calculate_tax_savings(loss_amount: float) -> Dict[str, float]:
    loss = abs(loss_amount)
    return {
        "short_term_offset_savings": round(loss * SHORT_TERM_RATE, 2),
        "long_term_offset_savings": round(loss * LONG_TERM_RATE, 2),
        "max_annual_deduction": min(loss, MAX_ANNUAL_LOSS_DEDUCTION),
        "carryforward_amount": max(0.0, loss - MAX_ANNUAL_LOSS_DEDUCTION),
    }


def tax_optimization_suggestions(unrealized: Dict[str, Any], as_of: datetime) -> List[Dict[str, Any]]:
    suggestions: List[Dict[str, Any]] = []

    harvestable = [a for a in unrealized["unrealized_losses"] if abs(a["gain_loss"]) > HARVEST_MIN_LOSS]
    if harvestable:
        suggestions.append({
            "type": "tax_loss_harvesting",
            "title": "Consider Tax-Loss Harvesting",
            "description": "You have unrealized losses that could offset capital gains",
            "potential_savings": calculate_tax_savings(sum(a["gain_loss"] for a in harvestable)),
            "assets": harvestable,
            "priority": "high",
        })

    today = _utc(as_of).date()
    near_long_term = [
        a for a in unrealized["unrealized_gains"]
        if 300 < (today - datetime.fromisoformat(a["purchase_date"]).date()).days <= LONG_TERM_DAYS
    ]
    if near_long_term:
        suggestions.append({
            "type": "long_term_holding",
            "title": "Consider Waiting for Long-Term Capital Gains",
            "description": "Some assets are close to qualifying for long-term capital gains treatment",
            "potential_savings": "Up to 20% tax rate reduction",
            "assets": near_long_term,
            "priority": "medium",
        })

    if unrealized["total_unrealized_gains"] > REBALANCE_MIN_GAINS:
        suggestions.append({
            "type": "portfolio_rebalancing",
            "title": "Consider Strategic Portfolio Rebalancing",
            "description": "Your portfolio has significant unrealized gains that could be strategically managed",
            "recommendation": "Consider taking some profits and diversifying",
            "priority": "low",
        })

    return suggestions


# ============================================================================
# SERVICE
# ============================================================================

class TransactionSource(Protocol):
    def list_transactions(self, user_id: str) -> List[TaxTransaction]:
        ...


def to_tax_transaction(row: Transaction) -> TaxTransaction:
    return TaxTransaction(
        id=row.id,
        symbol=row.symbol,
        type=row.type,
        quantity=to_float(row.quantity),
        price_per_unit=to_float(row.price_per_unit),
        fees=to_float(row.fees),
        transaction_date=row.transaction_date,
        is_taxable=bool(row.is_taxable),
    )


class SqlTransactionSource:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def list_transactions(self, user_id: str) -> List[TaxTransaction]:
        db = self._session_factory()
        try:
            stmt = (
                select(Transaction)
                .where(Transaction.user_id == int(user_id))
                .order_by(Transaction.transaction_date, Transaction.id)
            )
            return [to_tax_transaction(r) for r in db.execute(stmt).scalars().all()]
        finally:
            db.close()


class TaxReportingService:
    def __init__(self, transactions: TransactionSource, quotes: QuoteClient):
        self.transactions = transactions
        self.quotes = quotes

    def _prices(self, symbols: Iterable[str]) -> Dict[str, Optional[float]]:
        out: Dict[str, Optional[float]] = {}
        for sym in symbols:
            try:
                out[sym] = self.quotes.get_quote(sym).price
            except MarketDataError as e:
                logger.warning("No price for %s in tax report: %s", sym, e)
                out[sym] = None
        return out

    def generate_tax_report(
        self,
        user_id: str,
        tax_year: int,
        *,
        as_of: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if tax_year < 2009 or tax_year > 9998:
            raise TaxReportError(f"Invalid tax year {tax_year}")

        as_of = as_of or datetime.now(timezone.utc)
        start = datetime(tax_year, 1, 1, tzinfo=timezone.utc)
        end = datetime(tax_year, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

        txs = self.transactions.list_transactions(user_id)
        realized_lots, open_lots = run_fifo(txs)
        realized = realized_in_window(realized_lots, start, end)
        unrealized = calculate_unrealized(open_lots, self._prices(open_lots.keys()))

        total_cost = unrealized["total_cost_basis"]
        total_value = unrealized["total_current_value"]
        unrealized_net = round(total_value - total_cost, 2)

        logger.info(
            "Generated tax report: user_id=%s tax_year=%s transactions=%d realized_lots=%d",
            user_id, tax_year, len(txs), len(realized["transactions"]),
        )

        has_transactions = bool(txs)
        return {
            "user_id": str(user_id),
            "tax_year": tax_year,
            "period": {"start_date": start.date().isoformat(), "end_date": end.date().isoformat()},
            "holdings_summary": {
                "total_holdings": len(unrealized["by_asset"]),
                "total_current_value": total_value,
                "total_cost_basis": total_cost,
                "unrealized_gain_loss": unrealized_net,
                "unrealized_percentage": round(unrealized_net / total_cost * 100.0, 2) if total_cost > 0 else 0.0,
                "by_asset": unrealized["by_asset"],
            },
            "realized_gains_losses": realized,
            "unrealized_gains_losses": {
                k: unrealized[k]
                for k in ("unrealized_gains", "unrealized_losses", "total_unrealized_gains", "total_unrealized_losses")
            },
            "tax_forms": generate_tax_forms(realized),
            "tax_optimization": tax_optimization_suggestions(unrealized, as_of),
            "data_completeness": {
                "has_transactions": has_transactions,
                "transaction_count": len(txs),
                "unpriced_symbols": unrealized["unpriced"],
                "recommendation": (
                    "Your tax report is based on actual transaction data."
                    if has_transactions
                    else "For accurate tax reporting, please add your cryptocurrency buy and sell transactions."
                ),
            },
            "generated_at": as_of.isoformat(),
        }
