import json
import unittest
from unittest.mock import patch

from services.cache import cache_backend as cb
from services.cache.cache_utils import cacheable, should_cache_non_empty


class _FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.ttls[key] = ttl
        self.data[key] = value

    def ttl(self, key):
        return self.ttls.get(key, -2) if key in self.data else -2


class _DownRedis:
    def get(self, key):
        raise ConnectionError("down")

    def setex(self, key, ttl, value):
        raise ConnectionError("down")


class LocalCacheTests(unittest.TestCase):
    def setUp(self):
        cb.cache_clear_local()
        patcher = patch("services.cache.cache_backend.get_redis_client", return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(cb.cache_clear_local)

    def test_set_then_get(self):
        cb.cache_set("k", {"a": 1}, ttl_seconds=600)
        self.assertEqual(cb.cache_get("k"), {"a": 1})

    def test_local_entry_keeps_full_ttl_without_redis(self):
        with patch("services.cache.cache_backend.time.time", return_value=1000.0):
            cb.cache_set("metrics", [1, 2], ttl_seconds=600)
        with patch("services.cache.cache_backend.time.time", return_value=1599.0):
            self.assertEqual(cb.cache_get("metrics"), [1, 2])
        with patch("services.cache.cache_backend.time.time", return_value=1601.0):
            self.assertIsNone(cb.cache_get("metrics"))

    def test_blank_key_is_ignored(self):
        cb.cache_set("  ", {"a": 1})
        self.assertIsNone(cb.cache_get("  "))

    def test_backend_cache_store(self):
        store = cb.BackendCacheStore()
        store.set("advanced_portfolio_metrics:1", {"sharpeRatio": 1.2}, 600)
        self.assertEqual(store.get("advanced_portfolio_metrics:1"), {"sharpeRatio": 1.2})
        self.assertIsNone(store.get("advanced_portfolio_metrics:2"))


class RedisCacheTests(unittest.TestCase):
    def setUp(self):
        cb.cache_clear_local()
        self.addCleanup(cb.cache_clear_local)

    def test_write_through_to_redis_with_prefix(self):
        fake = _FakeRedis()
        with patch("services.cache.cache_backend.get_redis_client", return_value=fake):
            cb.cache_set("k", {"a": 1}, ttl_seconds=600)
        rk = f"{cb.REDIS_PREFIX}k"
        self.assertEqual(fake.ttls[rk], 600)
        self.assertEqual(json.loads(fake.data[rk]), {"a": 1})

    def test_local_ttl_is_capped_and_redis_refills(self):
        fake = _FakeRedis()
        with patch("services.cache.cache_backend.get_redis_client", return_value=fake):
            with patch("services.cache.cache_backend.time.time", return_value=1000.0):
                cb.cache_set("k", {"a": 1}, ttl_seconds=600)
            with patch("services.cache.cache_backend.time.time", return_value=1000.0 + cb.LOCAL_CACHE_TTL_SEC + 1):
                self.assertEqual(cb.cache_get("k"), {"a": 1})

    def test_local_copy_of_redis_hit_expires_with_redis_entry(self):
        fake = _FakeRedis()
        rk = f"{cb.REDIS_PREFIX}k"
        fake.data[rk] = json.dumps({"a": 1})
        fake.ttls[rk] = 5  # about to expire in Redis
        with patch("services.cache.cache_backend.get_redis_client", return_value=fake):
            with patch("services.cache.cache_backend.time.time", return_value=2000.0):
                self.assertEqual(cb.cache_get("k"), {"a": 1})
            fake.data.clear()
            with patch("services.cache.cache_backend.time.time", return_value=2006.0):
                self.assertIsNone(cb.cache_get("k"))

    def test_redis_errors_degrade_to_miss(self):
        with patch("services.cache.cache_backend.get_redis_client", return_value=_DownRedis()):
            with self.assertLogs("services.cache.cache_backend", level="WARNING"):
                self.assertIsNone(cb.cache_get("missing"))
            cb.cache_set("k", {"a": 1}, ttl_seconds=600)
            # still served from L1
            self.assertEqual(cb.cache_get("k"), {"a": 1})


class CacheableTests(unittest.TestCase):
    def setUp(self):
        cb.cache_clear_local()
        patcher = patch("services.cache.cache_backend.get_redis_client", return_value=None)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(cb.cache_clear_local)

    def test_memoizes_non_empty_results(self):
        calls = []

        @cacheable(ttl=60, key_fn=lambda sym: f"T:{sym}")
        def fetch(sym):
            calls.append(sym)
            return [1.0, 2.0]

        self.assertEqual(fetch("BTC"), [1.0, 2.0])
        self.assertEqual(fetch("BTC"), [1.0, 2.0])
        self.assertEqual(calls, ["BTC"])

    def test_empty_results_are_not_cached(self):
        calls = []

        @cacheable(ttl=60, key_fn=lambda sym: f"E:{sym}")
        def fetch(sym):
            calls.append(sym)
            return []

        fetch("BTC")
        fetch("BTC")
        self.assertEqual(len(calls), 2)

    def test_should_cache_non_empty(self):
        self.assertTrue(should_cache_non_empty({"a": 1}))
        self.assertFalse(should_cache_non_empty([]))
        self.assertFalse(should_cache_non_empty(None))


if __name__ == "__main__":
    unittest.main()
