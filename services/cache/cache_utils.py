# services/cache/cache_utils.py
from __future__ import annotations

from functools import wraps
from typing import Any, Callable, TypeVar, cast

from services.cache.cache_backend import JsonValue, cache_get, cache_set

T = TypeVar("T")


def should_cache_non_empty(val: Any) -> bool:
    """Cache lists/dicts only when they carry data (an empty history is usually an upstream hiccup)."""
    return isinstance(val, (list, dict)) and len(val) > 0


def cacheable(
    *,
    ttl: int,
    key_fn: Callable[..., str],
    should_cache: Callable[[Any], bool] = should_cache_non_empty,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for read-only sync functions returning JSON values.

    - ttl: shared TTL in seconds
    - key_fn: key_fn(*args, **kwargs) -> str
    - should_cache: decide what values get cached
    """
    def deco(fn: Callable[..., T]) -> Callable[..., T]:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            key = (key_fn(*args, **kwargs) or "").strip()
            if key:
                hit = cache_get(key)
                if hit is not None:
                    return cast(T, hit)

            val = fn(*args, **kwargs)

            if key and should_cache(val):
                cache_set(key, cast(JsonValue, val), ttl_seconds=ttl)

            return val

        return wrapper

    return deco
