"""Scope-restricted semantic retrieval with citation consolidation.

Answers "which indexed text is relevant to this question?" for a caller
such as a chat assistant:

    1. Cache    -- ``(scope, normalized query)`` hit returns immediately
    2. Embed    -- the query, with the same provider used at ingestion
    3. Search   -- vector store, restricted to the scope, above threshold
    4. Cite     -- group the hits into one citation per source document
    5. Cache    -- only non-empty results are stored

Below the similarity threshold the result is explicitly empty; callers
must treat that as "no grounded answer" rather than inventing one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from src.models.rag import RetrievalResult
from src.services.citation_service import consolidate_citations
from src.utils.errors import RAGError

if TYPE_CHECKING:
    from src.interfaces.cache_provider import IQueryCache
    from src.interfaces.embedding_provider import IEmbeddingProvider
    from src.interfaces.vector_store_provider import IVectorStoreProvider

logger = structlog.get_logger(logger_name=__name__)


class RetrievalService:
    """Retrieves cited context for a query within a project scope.

    Parameters
    ----------
    embedding_provider:
        Must be the provider the index was built with.
    vector_store:
        The segment index.
    query_cache:
        Optional result cache.
    min_similarity:
        Segments scoring below this are never returned (default 0.7).
    default_top_k:
        Result count when the caller does not pass ``top_k`` (default 3).
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        query_cache: IQueryCache | None = None,
        min_similarity: float = 0.7,
        default_top_k: int = 3,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._cache = query_cache
        self._min_similarity = min_similarity
        self._default_top_k = default_top_k

    async def retrieve(
        self,
        query: str,
        scope: str | None = None,
        top_k: int | None = None,
    ) -> RetrievalResult:
        """Return the top segments for *query* in *scope* with citations.

        Parameters
        ----------
        query:
            Natural-language question.  Must not be blank.
        scope:
            Project id (its documents plus global ones), or ``None`` for
            global documents only.
        top_k:
            Maximum segments to return; defaults to the configured value.

        Raises
        ------
        ValueError
            If *query* is blank or *top_k* is below 1.
        RAGError
            If embedding the query or searching the index fails.
        """
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        k = self._default_top_k if top_k is None else top_k
        if k < 1:
            raise ValueError(f"top_k must be >= 1, got {k}")

        if self._cache is not None:
            cached = self._cache.get(scope, query)
            # A cached result answers any request for at most as many segments.
            if cached is not None and k <= len(cached.segments):
                logger.info("retrieval_cache_hit", scope=scope)
                segments = cached.segments[:k]
                return cached.model_copy(
                    update={
                        "segments": segments,
                        "citations": consolidate_citations(segments),
                        "from_cache": True,
                    }
                )

        try:
            embedding = await self._embedding_provider.embed_single(query)
        except RAGError:
            raise
        except Exception as exc:
            raise RAGError(
                message=f"Query embedding failed: {exc}",
                provider_name=self._embedding_provider.get_provider_name(),
            ) from exc

        segments = await self._vector_store.query(
            query_embedding=embedding,
            scope=scope,
            top_k=k,
            min_similarity=self._min_similarity,
        )
        segments = [s for s in segments if s.similarity_score >= self._min_similarity][:k]

        result = RetrievalResult(
            query=query,
            scope=scope,
            segments=segments,
            citations=consolidate_citations(segments),
        )

        if result.is_empty:
            logger.info("retrieval_no_match", scope=scope, threshold=self._min_similarity)
            return result

        if self._cache is not None:
            self._cache.set(scope, query, result)
        logger.info(
            "retrieval_complete",
            scope=scope,
            segments=len(segments),
            citations=len(result.citations),
            top_score=segments[0].similarity_score,
        )
        return result
