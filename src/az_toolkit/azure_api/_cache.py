"""In-memory TTL caches and the explicit cache-or-compute helper."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL = "*"

# Discovery cache - short TTL to avoid stale data but fast enough for
# repeated lookups of the same endpoints in quick succession.
_DISCOVERY_CACHE_TTL = 300  # 5 minutes
_DEFAULT_CACHE_TTL = 4 * 60 * 60  # 4 hours, expire-after-access


class TtlCache:
    """A small expire-after-access cache.

    Entries are refreshed on every hit, so a value stays alive as long as it
    keeps being read within *ttl* seconds.  ``None`` is a valid cached value.
    """

    def __init__(self, ttl: float = _DEFAULT_CACHE_TTL) -> None:
        self.ttl = ttl
        self._entries: dict[str, tuple[float, object]] = {}
        self._lock = threading.Lock()

    def lookup(self, key: str) -> tuple[bool, object]:
        """Return ``(hit, value)`` for *key*."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            ts, data = entry
            now = time.monotonic()
            if now - ts >= self.ttl:
                del self._entries[key]
                return False, None
            self._entries[key] = (now, data)
            return True, data

    def put(self, key: str, data: object) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic(), data)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.lookup(key)[0]

    def __len__(self) -> int:
        return len(self._entries)


def cached(cache: TtlCache, key: str, compute: Callable[[], T]) -> T:
    """Return the cached value for *key*, computing and storing it on a miss.

    Exceptions raised by *compute* propagate and nothing is stored.
    """
    hit, data = cache.lookup(key)
    if hit:
        return data  # type: ignore[return-value]
    logger.debug("cache miss on [%s]", key)
    result = compute()
    cache.put(key, result)
    return result


class CacheManager:
    """Named caches handed around explicitly through the toolkit context."""

    def __init__(self, ttl: float = _DEFAULT_CACHE_TTL) -> None:
        self.ttl = ttl
        self._caches: dict[str, TtlCache] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> TtlCache:
        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                cache = self._caches[name] = TtlCache(self.ttl)
            return cache

    def cached(self, name: str, key: str, compute: Callable[[], T]) -> T:
        return cached(self.get(name), key, compute)

    def evict(self, name: str | None, key: str | None = ALL) -> None:
        """Invalidate cache entries.

        ``name == "*"`` drops every cache; ``key == "*"`` drops every entry
        of the named cache; otherwise only the single entry is dropped.
        """
        if not name:
            logger.warning("cache name is not specified when invalidating cache")
        elif name == ALL:
            logger.debug("invalidate all caches")
            with self._lock:
                self._caches.clear()
        elif not key:
            logger.warning("key is not specified when invalidating cache[%s]", name)
        elif key == ALL:
            logger.debug("invalidate all entries in cache[%s]", name)
            with self._lock:
                self._caches.pop(name, None)
        else:
            logger.debug("invalidate cache entry[%s.%s]", name, key)
            self.get(name).invalidate(key)


_discovery_cache = TtlCache(_DISCOVERY_CACHE_TTL)


def _cached(key: str) -> object | None:
    """Return the discovery-cache value if still valid, else ``None``."""
    return _discovery_cache.lookup(key)[1]


def _cache_set(key: str, data: object) -> None:
    """Store a value in the discovery cache."""
    _discovery_cache.put(key, data)
