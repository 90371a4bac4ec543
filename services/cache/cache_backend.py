# services/cache/cache_backend.py
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple, Union

from dotenv import load_dotenv

load_dotenv()

import redis as redis_sync

logger = logging.getLogger(__name__)

# -------------------------
# Types
# -------------------------
JsonInput = Union[str, bytes, bytearray]
JsonValue = Union[Dict[str, Any], List[Any], str, int, float, bool, None]

# -------------------------
# Config
# -------------------------
DEFAULT_TTL_SEC = int(os.getenv("CACHE_DEFAULT_TTL_SEC", "60"))
# L1 TTL cap while Redis is reachable; without Redis, L1 keeps the full TTL.
LOCAL_CACHE_TTL_SEC = int(os.getenv("CACHE_LOCAL_TTL_SEC", "60"))

# Prefix isolates app + env, e.g. "cryptometrics:prod:"
REDIS_PREFIX = os.getenv("REDIS_PREFIX", "cryptometrics:")

UPSTASH_REDIS_URL = os.getenv("UPSTASH_REDIS_URL")

# store: key -> (expires_at_epoch, payload)
_LOCAL: Dict[str, Tuple[float, JsonValue]] = {}

_redis_client = None


def get_redis_client():
    """Lazy init redis client (sync). Returns None if not configured/available."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    if not UPSTASH_REDIS_URL:
        return None

    try:
        _redis_client = redis_sync.from_url(
            UPSTASH_REDIS_URL,
            decode_responses=True,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
    except Exception as e:
        logger.warning("Redis client init failed, using local cache only: %s", e)
        _redis_client = None

    return _redis_client


def _norm_key(key: str) -> str:
    return (key or "").strip()


def _redis_key(key: str) -> str:
    return f"{REDIS_PREFIX}{_norm_key(key)}"


def _as_json_input(v: Any) -> Optional[JsonInput]:
    if isinstance(v, (str, bytes, bytearray)):
        return v
    return None


def _local_get(k: str) -> Optional[JsonValue]:
    hit = _LOCAL.get(k)
    if not hit:
        return None
    expires_at, payload = hit
    if time.time() <= expires_at:
        return payload
    _LOCAL.pop(k, None)
    return None


def _local_set(k: str, payload: JsonValue, ttl_seconds: int) -> None:
    _LOCAL[k] = (time.time() + ttl_seconds, payload)


def _local_ttl_for_hit(r, k: str) -> int:
    """L1 TTL for a value read from Redis: never outlives the Redis entry."""
    remaining = r.ttl(_redis_key(k))
    # -1: no expiry, -2: already gone
    if isinstance(remaining, int) and remaining >= 0:
        return min(LOCAL_CACHE_TTL_SEC, remaining)
    if remaining == -2:
        return 0
    return LOCAL_CACHE_TTL_SEC


def cache_clear_local() -> None:
    _LOCAL.clear()


def cache_get(key: str) -> Optional[JsonValue]:
    """
    Read-through cache:
      1) local memory
      2) redis (shared across instances)
    """
    k = _norm_key(key)
    if not k:
        return None

    hit = _local_get(k)
    if hit is not None:
        return hit

    r = get_redis_client()
    if not r:
        return None

    try:
        raw = _as_json_input(r.get(_redis_key(k)))
        if raw is None:
            return None
        payload: JsonValue = json.loads(raw)
        _local_set(k, payload, _local_ttl_for_hit(r, k))
        return payload
    except Exception as e:
        logger.warning("Redis GET failed for %s: %s", k, e)
        return None


def cache_set(key: str, payload: JsonValue, ttl_seconds: int = DEFAULT_TTL_SEC) -> None:
    """
    Write-through cache:
      - local TTL: min(LOCAL_CACHE_TTL_SEC, ttl_seconds) with Redis, ttl_seconds without
      - redis TTL: ttl_seconds
    """
    k = _norm_key(key)
    if not k:
        return

    ttl_seconds = int(ttl_seconds) if ttl_seconds and ttl_seconds > 0 else DEFAULT_TTL_SEC

    r = get_redis_client()
    _local_set(k, payload, min(LOCAL_CACHE_TTL_SEC, ttl_seconds) if r else ttl_seconds)

    if not r:
        return

    try:
        r.setex(_redis_key(k), ttl_seconds, json.dumps(payload, separators=(",", ":")))
    except Exception as e:
        # Local cache still serves this instance.
        logger.warning("Redis SETEX failed for %s: %s", k, e)


class BackendCacheStore:
    """CacheStore backed by the module-level L1/L2 cache."""

    def get(self, key: str) -> Optional[JsonValue]:
        return cache_get(key)

    def set(self, key: str, value: JsonValue, ttl_seconds: int) -> None:
        cache_set(key, value, ttl_seconds=ttl_seconds)
