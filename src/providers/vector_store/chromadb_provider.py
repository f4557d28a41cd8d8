"""ChromaDB vector store provider adapter.

Wraps `chromadb.PersistentClient` to implement :class:`IVectorStoreProvider`.
Uses cosine distance for similarity search.  Fully local, free, and
Python-native -- no external service required.

Each stored segment carries its scope in metadata.  ChromaDB metadata
values cannot be ``None``, so global documents are stored with the
``GLOBAL_SCOPE`` sentinel as their ``project_id``.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# ChromaDB ships PostHog telemetry; a version mismatch between its bundled
# client and the installed posthog raises on every capture() call.
# Disable it three ways: env var, the posthog SDK flag, and client Settings.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import CorpusStats, DocumentChunk, RetrievedChunk
from src.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)

GLOBAL_SCOPE = "__global__"

_PAGE_SIZE = 5000


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    docrag always passes pre-computed embeddings, so ChromaDB's built-in
    embedding is never invoked.  Without this, ChromaDB downloads its
    default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "docrag uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


def scope_where(scope: str | None) -> dict[str, Any]:
    """Build the ``where`` clause for a retrieval scope.

    A project scope matches its own segments and global ones; ``None``
    matches global segments only.
    """
    if scope is None:
        return {"project_id": GLOBAL_SCOPE}
    return {"$or": [{"project_id": scope}, {"project_id": GLOBAL_SCOPE}]}


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence.

    Parameters
    ----------
    persist_directory:
        Directory for ChromaDB's on-disk storage.
    collection_name:
        Collection holding every document's segments.
    expected_dimension:
        When set, stored vectors of another length are reported at startup
        (``embedding_dimension_mismatch``).
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "docrag_segments",
        expected_dimension: int | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._expected_dimension = expected_dimension
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # Collections persisted with a different embedding function reject
        # ours with ValueError; reopen them without one in that case.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

        self._check_embedding_dimension()

    # ------------------------------------------------------------------
    # Startup validation
    # ------------------------------------------------------------------

    def _check_embedding_dimension(self) -> None:
        """Warn when stored vectors differ in length from the provider's."""
        if self._expected_dimension is None:
            return
        try:
            if self._collection.count() == 0:
                return
            sample = self._collection.peek(limit=1)
            embeddings = sample.get("embeddings") if sample else None
            if embeddings is None or len(embeddings) == 0:
                return
            stored_dim = len(embeddings[0])
        except Exception as exc:
            logger.warning("embedding_dimension_check_skipped", error=str(exc))
            return

        if stored_dim != self._expected_dimension:
            logger.warning(
                "embedding_dimension_mismatch",
                stored_dim=stored_dim,
                expected_dim=self._expected_dimension,
                collection=self._collection_name,
            )

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def query(
        self,
        query_embedding: list[float],
        scope: str | None = None,
        top_k: int = 3,
        min_similarity: float = 0.0,
    ) -> list[RetrievedChunk]:
        """Rank segments in *scope* by cosine similarity (``1 - distance``)."""
        try:
            count = await asyncio.to_thread(self._collection.count)
            if count == 0:
                return []

            results = await asyncio.to_thread(
                self._collection.query,
                query_embeddings=[query_embedding],
                n_results=max(1, min(top_k, count)),
                where=scope_where(scope),
            )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results["documents"] or not results["documents"][0]:
            return []

        documents = results["documents"][0]
        metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(documents)
        distances = results["distances"][0] if results["distances"] else [0.0] * len(documents)
        ids = results["ids"][0]

        retrieved: list[RetrievedChunk] = []
        for chunk_id, doc_text, meta, distance in zip(
            ids, documents, metadatas, distances, strict=True
        ):
            similarity = max(0.0, min(1.0, 1.0 - distance))
            if similarity < min_similarity:
                continue
            retrieved.append(
                RetrievedChunk(
                    chunk=self._metadata_to_chunk(chunk_id, meta, doc_text),
                    similarity_score=similarity,
                )
            )
        retrieved.sort(key=lambda rc: rc.similarity_score, reverse=True)

        logger.info(
            "chromadb_query",
            scope=scope,
            raw_results=len(documents),
            results_count=len(retrieved),
            top_score=retrieved[0].similarity_score if retrieved else 0.0,
        )
        return retrieved[:top_k]

    async def add_chunks(
        self,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
        batch_size: int = 500,
    ) -> int:
        """Upsert pre-embedded chunks in slices of *batch_size*."""
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"chunks and embeddings length mismatch: {len(chunks)} != {len(embeddings)}"
            )
        if not chunks:
            return 0

        try:
            for start in range(0, len(chunks), batch_size):
                batch_chunks = chunks[start : start + batch_size]
                await asyncio.to_thread(
                    self._collection.upsert,
                    ids=[c.chunk_id for c in batch_chunks],
                    embeddings=embeddings[start : start + batch_size],
                    documents=[c.text for c in batch_chunks],
                    metadatas=[self._chunk_to_metadata(c) for c in batch_chunks],
                )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB add_chunks failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "chromadb_add_chunks",
            document_id=chunks[0].document_id,
            count=len(chunks),
            batches=(len(chunks) + batch_size - 1) // batch_size,
        )
        return len(chunks)

    async def delete_by_document(self, document_id: str) -> int:
        where = {"document_id": document_id}
        try:
            existing = await asyncio.to_thread(self._collection.get, where=where, include=[])
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                await asyncio.to_thread(self._collection.delete, where=where)
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB delete_by_document failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_delete_by_document", document_id=document_id, deleted_count=count)
        return count

    async def count_by_document(self, document_id: str) -> int:
        try:
            existing = await asyncio.to_thread(
                self._collection.get,
                where={"document_id": document_id},
                include=[],
            )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB count_by_document failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return len(existing["ids"]) if existing["ids"] else 0

    async def get_stats(self) -> CorpusStats:
        """Return chunk and document totals.

        Metadata is fetched in 5K-row pages to stay under SQLite's bind
        parameter limit on large collections.
        """
        try:
            total = await asyncio.to_thread(self._collection.count)
            document_ids: set[str] = set()
            for offset in range(0, total, _PAGE_SIZE):
                page = await asyncio.to_thread(
                    self._collection.get,
                    include=["metadatas"],
                    limit=_PAGE_SIZE,
                    offset=offset,
                )
                for meta in page["metadatas"] or []:
                    document_ids.add(meta.get("document_id", ""))
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB get_stats failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return CorpusStats(total_chunks=total, total_documents=len(document_ids))

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _chunk_to_metadata(chunk: DocumentChunk) -> dict[str, str | int | float | bool]:
        """Convert a DocumentChunk to a ChromaDB-compatible metadata dict.

        ChromaDB metadata values must be str, int, float, or bool, so
        optional fields are only written when set.
        """
        meta: dict[str, str | int | float | bool] = {
            "document_id": chunk.document_id,
            "project_id": chunk.project_id if chunk.project_id is not None else GLOBAL_SCOPE,
            "filename": chunk.filename,
            "chunk_index": chunk.chunk_index,
            "token_count": chunk.token_count,
        }
        if chunk.page_start is not None:
            meta["page_start"] = chunk.page_start
        if chunk.page_end is not None:
            meta["page_end"] = chunk.page_end
        if chunk.section is not None:
            meta["section"] = chunk.section
        return meta

    @staticmethod
    def _metadata_to_chunk(chunk_id: str, meta: dict[str, Any], text: str) -> DocumentChunk:
        """Reverse :meth:`_chunk_to_metadata`."""
        project_id = meta.get("project_id")
        return DocumentChunk(
            chunk_id=chunk_id,
            document_id=meta.get("document_id", ""),
            project_id=None if project_id in (None, GLOBAL_SCOPE) else project_id,
            filename=meta.get("filename", ""),
            chunk_index=int(meta.get("chunk_index", 0)),
            text=text,
            token_count=int(meta.get("token_count", 0)),
            page_start=meta.get("page_start"),
            page_end=meta.get("page_end"),
            section=meta.get("section"),
        )
