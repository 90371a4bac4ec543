import unittest
from unittest.mock import patch

import httpx
import pandas as pd

from services.cache import cache_backend as cb
from services.market_data.history_providers import (
    RandomWalkPriceProvider,
    YahooPriceProvider,
    get_history_provider,
    to_yahoo_symbol,
)
from services.market_data.quote_client import KuCoinQuoteClient, MarketDataError, to_kucoin_pair


class RandomWalkPriceProviderTests(unittest.TestCase):
    def test_walk_is_reproducible_per_symbol(self):
        p = RandomWalkPriceProvider(seed=3)
        self.assertEqual(p.get_history("BTC", 31), p.get_history("btc", 31))
        self.assertNotEqual(p.get_history("BTC", 31), p.get_history("ETH", 31))

    def test_walk_length_and_daily_bounds(self):
        prices = RandomWalkPriceProvider().get_history("SOL", 31)
        self.assertEqual(len(prices), 31)
        prev = 100.0
        for px in prices:
            self.assertLessEqual(abs(px / prev - 1.0), 0.05 + 1e-12)
            prev = px

    def test_non_positive_days(self):
        self.assertEqual(RandomWalkPriceProvider().get_history("BTC", 0), [])

    def test_provider_selection(self):
        self.assertIsInstance(get_history_provider("yahoo"), YahooPriceProvider)
        self.assertIsInstance(get_history_provider("mock"), RandomWalkPriceProvider)
        with self.assertLogs("services.market_data.history_providers", level="WARNING"):
            self.assertIsInstance(get_history_provider("bogus"), RandomWalkPriceProvider)


class YahooPriceProviderTests(unittest.TestCase):
    def setUp(self):
        cb.cache_clear_local()
        patcher = patch("services.cache.cache_backend.get_redis_client", return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(cb.cache_clear_local)

    def test_symbol_mapping(self):
        self.assertEqual(to_yahoo_symbol("btc"), "BTC-USD")
        self.assertEqual(to_yahoo_symbol("ETH-USD"), "ETH-USD")

    def test_returns_trailing_closes(self):
        df = pd.DataFrame({
            "date": pd.date_range("2026-01-01", periods=40, freq="D"),
            "close": [float(i) for i in range(1, 41)],
        }).set_index("date")

        with patch("services.market_data.history_providers.Ticker") as ticker_cls:
            ticker_cls.return_value.history.return_value = df
            closes = YahooPriceProvider().get_history("BTC", 31)

        self.assertEqual(len(closes), 31)
        self.assertEqual(closes[-1], 40.0)
        ticker_cls.assert_called_once_with("BTC-USD", asynchronous=False, formatted=False)

    def test_empty_history_raises(self):
        with patch("services.market_data.history_providers.Ticker") as ticker_cls:
            ticker_cls.return_value.history.return_value = {"DOGE-USD": "No data found"}
            with self.assertRaises(MarketDataError):
                YahooPriceProvider().get_history("DOGE", 31)


def _client(handler):
    return KuCoinQuoteClient(base_url="https://kucoin.test", client=httpx.Client(transport=httpx.MockTransport(handler)))


class KuCoinQuoteClientTests(unittest.TestCase):
    def test_pair_mapping(self):
        self.assertEqual(to_kucoin_pair("btc"), "BTC-USDT")
        self.assertEqual(to_kucoin_pair("ETH/USDC"), "ETH-USDC")

    def test_parses_market_stats(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["symbol"] = request.url.params.get("symbol")
            return httpx.Response(200, json={"code": "200000", "data": {"last": "65000.5", "changeRate": "0.0123"}})

        q = _client(handler).get_quote("btc")
        self.assertEqual(seen, {"path": "/api/v1/market/stats", "symbol": "BTC-USDT"})
        self.assertEqual(q.symbol, "BTC")
        self.assertEqual(q.price, 65000.5)
        self.assertAlmostEqual(q.change_24h_pct, 1.23)

    def test_stablecoin_skips_network(self):
        def handler(request):
            raise AssertionError("no request expected")

        q = _client(handler).get_quote("USDC")
        self.assertEqual((q.price, q.change_24h_pct), (1.0, 0.0))

    def test_http_error_raises_market_data_error(self):
        client = _client(lambda request: httpx.Response(503, text="unavailable"))
        with self.assertRaises(MarketDataError):
            client.get_quote("ETH")

    def test_missing_price_raises(self):
        client = _client(lambda request: httpx.Response(200, json={"code": "200000", "data": {"last": None}}))
        with self.assertRaises(MarketDataError):
            client.get_quote("NOPE")


if __name__ == "__main__":
    unittest.main()
