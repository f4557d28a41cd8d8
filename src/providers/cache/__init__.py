"""Query cache providers.

MemoryQueryCache memoizes retrieval results in-process (FIFO-bounded, TTL
expiry, injectable clock).  It is not shared across processes; for
multi-worker deployments, swap in a shared adapter implementing IQueryCache
without changing any business logic.
"""

from src.providers.cache.memory_cache import MemoryQueryCache

__all__ = ["MemoryQueryCache"]
