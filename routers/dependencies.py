# routers/dependencies.py
"""FastAPI dependency factories. Tests swap these out via app.dependency_overrides."""
from functools import lru_cache

from fastapi import Depends

from database import SessionLocal
from services.analytics.portfolio_metrics_service import PortfolioMetricsService
from services.analytics.snapshot_service import PortfolioSnapshotService
from services.cache.cache_backend import BackendCacheStore
from services.holding_service import SqlHoldingsProvider
from services.market_data.history_providers import get_history_provider as _history_provider_for
from services.market_data.quote_client import KuCoinQuoteClient, QuoteClient
from services.tax_reporting_service import SqlTransactionSource, TaxReportingService


@lru_cache(maxsize=1)
def get_quote_client() -> QuoteClient:
    # One pooled httpx client per process
    return KuCoinQuoteClient()


def get_history_provider():
    return _history_provider_for()


def get_cache_store() -> BackendCacheStore:
    return BackendCacheStore()


def get_holdings_provider(quotes: QuoteClient = Depends(get_quote_client)) -> SqlHoldingsProvider:
    return SqlHoldingsProvider(SessionLocal, quotes)


def get_metrics_service(
    holdings: SqlHoldingsProvider = Depends(get_holdings_provider),
    prices=Depends(get_history_provider),
    cache: BackendCacheStore = Depends(get_cache_store),
) -> PortfolioMetricsService:
    return PortfolioMetricsService(holdings, prices, cache)


def get_snapshot_service(
    holdings: SqlHoldingsProvider = Depends(get_holdings_provider),
    quotes: QuoteClient = Depends(get_quote_client),
) -> PortfolioSnapshotService:
    return PortfolioSnapshotService(SessionLocal, holdings, quotes)


def get_tax_service(quotes: QuoteClient = Depends(get_quote_client)) -> TaxReportingService:
    return TaxReportingService(SqlTransactionSource(SessionLocal), quotes)


def close_quote_client() -> None:
    """Release the pooled quote client, if one was created."""
    if get_quote_client.cache_info().currsize:
        get_quote_client().close()
        get_quote_client.cache_clear()
