"""In-memory retrieval cache built on ``cachetools.FIFOCache``.

Entries are keyed by ``(scope, normalized query)`` and hold the result
together with the time it was written.  Two independent limits apply:

* **TTL** -- an entry older than ``ttl`` seconds is a miss and is dropped
  on read.  Time comes from an injected ``clock`` so tests can move time
  without sleeping.
* **Capacity** -- once ``max_size`` entries exist, inserting another evicts
  the *oldest-inserted* entry (FIFO), regardless of how often it was read.

Suitable for single-process deployments; swap for a shared backend via the
:class:`IQueryCache` interface.
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Callable
from typing import Any

import structlog
from cachetools import FIFOCache

from src.interfaces.cache_provider import IQueryCache
from src.models.rag import RetrievalResult

logger = structlog.get_logger(logger_name=__name__)

_WHITESPACE_RE = re.compile(r"\s+")

_CacheKey = tuple[str | None, str]


def normalize_query(query: str) -> str:
    """Collapse whitespace and case so trivially different phrasings share a key."""
    return _WHITESPACE_RE.sub(" ", query).strip().casefold()


class MemoryQueryCache(IQueryCache):
    """Bounded, TTL-aware retrieval cache.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the oldest-inserted one is evicted.
    ttl:
        Seconds an entry stays valid (default 24 hours).
    clock:
        Zero-argument callable returning the current time in seconds.
        Defaults to :func:`time.monotonic`.
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl: float = 86400.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._cache: FIFOCache[_CacheKey, tuple[RetrievalResult, float]] = FIFOCache(
            maxsize=max_size
        )
        # Retrieval may run in worker threads (sync route handlers, executors).
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    # ------------------------------------------------------------------
    # IQueryCache implementation
    # ------------------------------------------------------------------

    def get(self, scope: str | None, query: str) -> RetrievalResult | None:
        key = (scope, normalize_query(query))
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                logger.debug("query_cache_miss", scope=scope)
                return None

            result, written_at = entry
            if self._clock() - written_at >= self._ttl:
                del self._cache[key]
                self._misses += 1
                logger.debug("query_cache_expired", scope=scope)
                return None

            self._hits += 1
        logger.debug("query_cache_hit", scope=scope)
        return result

    def set(self, scope: str | None, query: str, result: RetrievalResult) -> None:
        key = (scope, normalize_query(query))
        with self._lock:
            # Re-inserting must move the key to the back of the FIFO order.
            self._cache.pop(key, None)
            self._cache[key] = (result, self._clock())
        logger.debug("query_cache_set", scope=scope)

    def invalidate_scope(self, scope: str | None) -> int:
        with self._lock:
            if scope is None:
                removed = len(self._cache)
                self._cache.clear()
            else:
                stale = [key for key in self._cache if key[0] == scope]
                for key in stale:
                    del self._cache[key]
                removed = len(stale)
        logger.info("query_cache_invalidated", scope=scope, removed=removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.info("query_cache_cleared")

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._cache),
                "max_size": self._cache.maxsize,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
            }
