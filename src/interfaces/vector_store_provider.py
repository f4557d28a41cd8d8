"""Abstract base class for vector-store service providers.

Defines the contract for storing, querying, and deleting embedded document
segments.  Implementations may wrap ChromaDB (local/free), pgvector, Qdrant
or any other vector database.

Writes are always scoped to one document (``delete_by_document`` followed
by ``add_chunks``), so concurrent ingestion of different documents never
contends on the same rows.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import CorpusStats, DocumentChunk, RetrievedChunk


# Concrete implementation: ChromaDBProvider (src/providers/vector_store/)
# Data persists to disk at CHROMADB_PERSIST_DIR (default: ./data/chromadb).
class IVectorStoreProvider(ABC):
    """Contract for the segment index used by ingestion and retrieval.

    **Scope semantics** for :meth:`query`:

    * ``scope="proj-1"``: segments of documents owned by ``proj-1`` *plus*
      segments of global documents (``project_id is None``).
    * ``scope=None``: segments of global documents only.
    """

    @abstractmethod
    async def query(
        self,
        query_embedding: list[float],
        scope: str | None = None,
        top_k: int = 3,
        min_similarity: float = 0.0,
    ) -> list[RetrievedChunk]:
        """Rank stored segments by cosine similarity to *query_embedding*.

        Parameters
        ----------
        query_embedding:
            Vector produced by the same embedding provider used at ingestion.
        scope:
            Project id to search, or ``None`` for global documents only.
        top_k:
            Maximum number of results to return.
        min_similarity:
            Results scoring below this threshold are dropped.

        Returns
        -------
        list[RetrievedChunk]
            Zero or more results ranked by similarity (descending).

        Raises
        ------
        src.utils.errors.RAGError
            If the vector store query fails.
        """

    @abstractmethod
    async def add_chunks(
        self,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        """Insert pre-embedded chunks in one batch.

        Parameters
        ----------
        chunks:
            The chunks to store; ``chunk_id`` is the primary key.
        embeddings:
            Vectors corresponding positionally to *chunks*.

        Returns
        -------
        int
            The number of chunks stored.

        Raises
        ------
        ValueError
            If ``len(chunks) != len(embeddings)``.
        src.utils.errors.RAGError
            If the store operation fails.
        """

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every chunk of *document_id*; idempotent.

        Returns
        -------
        int
            The number of chunks deleted (``0`` when none existed).
        """

    @abstractmethod
    async def count_by_document(self, document_id: str) -> int:
        """Return how many chunks are stored for *document_id*."""

    @abstractmethod
    async def get_stats(self) -> CorpusStats:
        """Return aggregate statistics about the index."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this vector-store provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is accessible."""
