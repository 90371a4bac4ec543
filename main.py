# main.py
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.logging_config import configure_logging

configure_logging()

from middleware.request_logging import RequestLoggingMiddleware  # noqa: E402
from routers.dependencies import close_quote_client  # noqa: E402
from routers.holdings_routes import router as holdings_router  # noqa: E402
from routers.portfolio_metrics_routes import router as portfolio_metrics_router  # noqa: E402
from routers.tax_routes import router as tax_router  # noqa: E402
from routers.user_routes import router as user_router  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Shutdown
    logger.info("Shutting down, closing market data client")
    close_quote_client()


app = FastAPI(title="Crypto Portfolio Metrics", lifespan=lifespan)

origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(user_router)
app.include_router(holdings_router)
app.include_router(portfolio_metrics_router, prefix="/api/portfolio")
app.include_router(tax_router, prefix="/api/tax")


@app.get("/health")
def health():
    return {"status": "ok"}


# db startup
from database import Base, engine  # noqa: E402
import models  # noqa: E402, F401  this triggers models/__init__.py which imports all tables

Base.metadata.create_all(bind=engine)
