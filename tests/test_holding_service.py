import os
import unittest
from datetime import datetime, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from models.transaction import Transaction
from models.user import User
from services.holding_service import SqlHoldingsProvider, create_holding, get_all_holdings, price_holdings
from services.market_data.quote_client import MarketDataError, Quote
from services.tax_reporting_service import SqlTransactionSource, TaxReportingService


class _Quotes:
    def __init__(self, prices):
        self.prices = prices

    def get_quote(self, symbol):
        if symbol not in self.prices:
            raise MarketDataError(f"no quote for {symbol}")
        price, change = self.prices[symbol]
        return Quote(symbol=symbol, price=price, change_24h_pct=change)


class _SqliteTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        Base.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        self.addCleanup(self.engine.dispose)

        db = self.Session()
        user = User(email="alice@example.com")
        db.add(user)
        db.commit()
        self.user_id = user.id
        db.close()


class HoldingServiceTests(_SqliteTestCase):
    def test_create_and_list_holdings(self):
        db = self.Session()
        create_holding(db, self.user_id, "eth/usdt", 2.0, 1800.0)
        create_holding(db, self.user_id, "btc", 0.5)
        rows = get_all_holdings(str(self.user_id), db)
        db.close()

        self.assertEqual([r.symbol for r in rows], ["BTC", "ETH"])
        self.assertEqual(rows[1].purchase_price, 1800.0)

    def test_price_holdings_marks_missing_quotes(self):
        db = self.Session()
        create_holding(db, self.user_id, "BTC", 0.5)
        create_holding(db, self.user_id, "NOPE", 10.0)
        rows = get_all_holdings(self.user_id, db)
        db.close()

        priced = {p.symbol: p for p in price_holdings(rows, _Quotes({"BTC": (60000.0, 1.5)}))}
        self.assertEqual(priced["BTC"].value, 30000.0)
        self.assertEqual(priced["BTC"].price_status, "live")
        self.assertEqual(priced["NOPE"].current_price, 0.0)
        self.assertEqual(priced["NOPE"].price_status, "unavailable")

    def test_sql_holdings_provider_skips_empty_positions(self):
        db = self.Session()
        create_holding(db, self.user_id, "BTC", 0.5)
        create_holding(db, self.user_id, "ETH", 0.0)
        db.close()

        provider = SqlHoldingsProvider(self.Session, _Quotes({"BTC": (60000.0, 1.5), "ETH": (3000.0, 0.0)}))
        snapshots = provider.get_holdings(str(self.user_id))

        self.assertEqual(len(snapshots), 1)
        snap = snapshots[0]
        self.assertEqual((snap.symbol, snap.quantity, snap.current_price, snap.price_change_24h), ("BTC", 0.5, 60000.0, 1.5))
        self.assertEqual(snap.value, 30000.0)


class SqlTransactionSourceTests(_SqliteTestCase):
    def _add(self, db, **kw):
        defaults = dict(user_id=self.user_id, symbol="BTC", fees=0.0, is_taxable=True)
        defaults.update(kw)
        defaults.setdefault("total_value", defaults["quantity"] * defaults["price_per_unit"])
        db.add(Transaction(**defaults))

    def test_lists_all_transactions_oldest_first(self):
        db = self.Session()
        self._add(db, type="sell", quantity=0.5, price_per_unit=30000.0,
                  transaction_date=datetime(2025, 3, 1, tzinfo=timezone.utc))
        self._add(db, type="buy", quantity=1.0, price_per_unit=20000.0, fees=5.0,
                  transaction_date=datetime(2024, 3, 1, tzinfo=timezone.utc))
        self._add(db, type="buy", quantity=9.0, price_per_unit=1.0, is_taxable=False,
                  transaction_date=datetime(2024, 1, 1, tzinfo=timezone.utc))
        db.commit()
        db.close()

        txs = SqlTransactionSource(self.Session).list_transactions(str(self.user_id))

        self.assertEqual([t.type for t in txs], ["buy", "buy", "sell"])
        self.assertFalse(txs[0].is_taxable)
        self.assertEqual(txs[1].fees, 5.0)
        self.assertEqual(txs[2].quantity, 0.5)

    def test_non_taxable_acquisition_still_provides_cost_basis(self):
        db = self.Session()
        self._add(db, type="buy", quantity=1.0, price_per_unit=20000.0, is_taxable=False,
                  transaction_date=datetime(2025, 1, 10, tzinfo=timezone.utc))
        self._add(db, type="sell", quantity=1.0, price_per_unit=25000.0,
                  transaction_date=datetime(2025, 6, 10, tzinfo=timezone.utc))
        db.commit()
        db.close()

        svc = TaxReportingService(SqlTransactionSource(self.Session), _Quotes({}))
        with self.assertNoLogs("services.tax_reporting_service", level="WARNING"):
            report = svc.generate_tax_report(str(self.user_id), 2025)

        lots = report["realized_gains_losses"]["transactions"]
        self.assertEqual(len(lots), 1)
        self.assertEqual(lots[0]["cost_basis"], 20000.0)
        self.assertEqual(lots[0]["gain_loss"], 5000.0)
        self.assertEqual(report["realized_gains_losses"]["summary"]["short_term_gains"], 5000.0)

    def test_non_taxable_sale_consumes_lots_without_gain(self):
        db = self.Session()
        self._add(db, type="buy", quantity=2.0, price_per_unit=100.0,
                  transaction_date=datetime(2025, 1, 1, tzinfo=timezone.utc))
        self._add(db, type="sell", quantity=1.0, price_per_unit=150.0, is_taxable=False,
                  transaction_date=datetime(2025, 2, 1, tzinfo=timezone.utc))
        self._add(db, type="sell", quantity=1.0, price_per_unit=180.0,
                  transaction_date=datetime(2025, 3, 1, tzinfo=timezone.utc))
        db.commit()
        db.close()

        svc = TaxReportingService(SqlTransactionSource(self.Session), _Quotes({}))
        report = svc.generate_tax_report(str(self.user_id), 2025)

        lots = report["realized_gains_losses"]["transactions"]
        self.assertEqual([l["gain_loss"] for l in lots], [80.0])
        self.assertEqual(report["holdings_summary"]["total_holdings"], 0)


if __name__ == "__main__":
    unittest.main()
