# /app/core/cache.py

"""
A small TTL map used to memoise aggregate read queries.

One `CacheService` is built in the application lifespan and stored on
`app.state.cache`; routers receive it through the `get_cache` dependency and
pass it down to the services, so nothing imports a module-level singleton.

Entries are recomputable, so concurrent readers racing on the same key are
harmless. Writes that change an aggregate must call the matching
`invalidate_*` helper before they return.
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional

from fastapi import Request

from .logging_config import get_logger

logger = get_logger("cache")

_MISSING = object()


class CacheService:
    def __init__(self, default_ttl: float = 60, max_size: int = 500, clock: Callable[[], float] = time.monotonic):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        # key -> (expires_at, value); insertion order doubles as eviction order.
        self._store: "OrderedDict[Hashable, tuple]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._store[key]
            return default
        return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> Any:
        ttl = self.default_ttl if ttl is None else ttl
        if key in self._store:
            del self._store[key]
        elif len(self._store) >= self.max_size:
            oldest_key, _ = self._store.popitem(last=False)
            logger.debug("Evicted cache entry %s", oldest_key)
        self._store[key] = (self._clock() + ttl, value)
        return value

    def delete(self, key: Hashable) -> bool:
        return self._store.pop(key, None) is not None

    def clear(self) -> None:
        self._store.clear()

    def wrap(self, key: Hashable, loader: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        """Returns the cached value for `key`, calling `loader` to fill it on a miss."""
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        return self.set(key, loader(), ttl)


# --- Keys ---

def dashboard_stats_key(school_id: str) -> str:
    return f"dashboard:stats:{school_id}"


def user_overview_key(user_id: str) -> str:
    return f"user:overview:{user_id}"


# --- Invalidation ---

def invalidate_school_metrics(cache: Optional[CacheService], school_id: str) -> None:
    if cache is not None and school_id:
        cache.delete(dashboard_stats_key(school_id))


def invalidate_user_overview(cache: Optional[CacheService], *user_ids: str) -> None:
    if cache is None:
        return
    for user_id in user_ids:
        if user_id:
            cache.delete(user_overview_key(user_id))


# --- Dependency ---

def get_cache(request: Request) -> CacheService:
    return request.app.state.cache
