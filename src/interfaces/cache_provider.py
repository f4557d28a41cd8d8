"""Abstract base class for the retrieval query cache.

The query cache memoizes :class:`~src.models.rag.RetrievalResult` objects
keyed by ``(scope, normalized query text)`` so repeated questions skip the
embedding call and the similarity search.  It is a read-path component
only: ingestion never consults it, but ingestion and document deletion
*invalidate* it so callers are not served stale answers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.rag import RetrievalResult


# Concrete implementation: MemoryQueryCache (src/providers/cache/)
class IQueryCache(ABC):
    """Contract for a bounded, time-limited retrieval cache.

    Methods are synchronous: every operation is a map access with no I/O,
    so there is nothing to await and nothing held across a suspension point.
    """

    @abstractmethod
    def get(self, scope: str | None, query: str) -> RetrievalResult | None:
        """Return the cached result, or ``None`` on a miss or an expired entry."""

    @abstractmethod
    def set(self, scope: str | None, query: str, result: RetrievalResult) -> None:
        """Store *result* for ``(scope, query)`` with the current time."""

    @abstractmethod
    def invalidate_scope(self, scope: str | None) -> int:
        """Drop entries that may contain documents from *scope*.

        Global documents (``scope=None``) are visible from every scope, so
        invalidating ``None`` clears the whole cache.

        Returns
        -------
        int
            The number of entries removed.
        """

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Return size, capacity, TTL and hit/miss counters."""
