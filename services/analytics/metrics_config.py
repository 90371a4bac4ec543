# services/analytics/metrics_config.py
import os

from dotenv import load_dotenv

load_dotenv()

# Crypto trades every day, so annualization uses calendar days.
PERIODS_PER_YEAR = 365
RISK_FREE_RATE = float(os.getenv("RISK_FREE_RATE", "0.05"))

METRICS_CACHE_TTL_SEC = int(os.getenv("METRICS_CACHE_TTL_SEC", "600"))
METRICS_CACHE_PREFIX = "advanced_portfolio_metrics"

# Number of daily closes requested per symbol (31 closes -> 30 returns).
HISTORY_DAYS = int(os.getenv("METRICS_HISTORY_DAYS", "31"))
BENCHMARK_SYMBOL = os.getenv("METRICS_BENCHMARK_SYMBOL", "BTC").upper()

# "mock" (seeded random walk) | "yahoo"
MARKET_DATA_PROVIDER = os.getenv("MARKET_DATA_PROVIDER", "mock").lower()

VAR_CONFIDENCE_TAIL = 0.05
VAR_MIN_POINTS = 10
ATTRIBUTION_TOP_N = 5

STABLECOINS = frozenset({"USDT", "USDC", "BUSD", "DAI", "TUSD"})
MAJOR_COINS = frozenset({"BTC", "ETH"})

# Fallbacks returned when data is insufficient or a calculation fails.
FALLBACK_SHARPE = 0.0
FALLBACK_BETA = 1.0
FALLBACK_VOLATILITY = 25.0
FALLBACK_MAX_DRAWDOWN = 15.0
FALLBACK_SORTINO = 0.0
OPTIMISTIC_SORTINO = 2.0
FALLBACK_VAR = 8.0
FALLBACK_DIVERSIFICATION_SINGLE = 0.3
FALLBACK_DIVERSIFICATION_ERROR = 0.5
FALLBACK_CONCENTRATION = 100.0
FALLBACK_RISK_DISTRIBUTION = {"low": 20.0, "medium": 50.0, "high": 30.0}
