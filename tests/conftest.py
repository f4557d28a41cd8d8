"""Shared pytest fixtures for the docrag test suite."""

from __future__ import annotations

import asyncio
import hashlib
import io
import math
import struct
from pathlib import Path
from typing import Any

import openpyxl
import pytest
import pytest_asyncio

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import CorpusStats, DocumentChunk, RetrievedChunk
from src.providers.cache.memory_cache import MemoryQueryCache
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.storage.local_blob_storage import LocalBlobStorage
from src.utils.errors import RAGError

# ---------------------------------------------------------------------------
# Deterministic embeddings
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 16


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic unit-length vector by hashing *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    # Bytes reinterpreted as unsigned ints keep every component finite.
    values = [v / 2**31 - 1.0 for v in struct.unpack(f"<{dim}I", raw)]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    Parameters
    ----------
    fail_on:
        Texts whose ``embed_single`` call raises :class:`RAGError`.
    vectors:
        Fixed vectors for specific texts; everything else is hashed.
    delay:
        Seconds to sleep inside every call (for timeout tests).
    """

    def __init__(
        self,
        fail_on: set[str] | None = None,
        vectors: dict[str, list[float]] | None = None,
        delay: float = 0.0,
        dim: int = _EMBEDDING_DIM,
    ) -> None:
        self.fail_on = set(fail_on or ())
        self.vectors = dict(vectors or {})
        self.delay = delay
        self.dim = dim
        self.calls: list[str] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if text in self.fail_on:
            raise RAGError(message="upstream returned 500", provider_name="mock-embedding")
        if text in self.vectors:
            return list(self.vectors[text])
        return _hash_to_vector(text, self.dim)

    def get_dimension(self) -> int:
        return self.dim

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class MockVectorStore(IVectorStoreProvider):
    """In-memory vector store with the same scope rules as ChromaDB.

    ``scope=None`` sees global chunks only; a project scope sees its own
    chunks plus global ones.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[DocumentChunk, list[float]]] = {}
        self.query_calls = 0
        self.fail_add: Exception | None = None

    async def query(
        self,
        query_embedding: list[float],
        scope: str | None = None,
        top_k: int = 3,
        min_similarity: float = 0.0,
    ) -> list[RetrievedChunk]:
        self.query_calls += 1
        scored: list[tuple[float, DocumentChunk]] = []
        for chunk, vec in self._store.values():
            if chunk.project_id is not None and chunk.project_id != scope:
                continue
            similarity = max(0.0, min(1.0, _cosine(query_embedding, vec)))
            if similarity >= min_similarity:
                scored.append((similarity, chunk))

        scored.sort(key=lambda x: x[0], reverse=True)
        return [RetrievedChunk(chunk=c, similarity_score=s) for s, c in scored[:top_k]]

    async def add_chunks(
        self,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        if self.fail_add is not None:
            raise self.fail_add
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings length mismatch")
        for chunk, emb in zip(chunks, embeddings, strict=True):
            self._store[chunk.chunk_id] = (chunk, emb)
        return len(chunks)

    async def delete_by_document(self, document_id: str) -> int:
        doomed = [cid for cid, (c, _) in self._store.items() if c.document_id == document_id]
        for cid in doomed:
            del self._store[cid]
        return len(doomed)

    async def count_by_document(self, document_id: str) -> int:
        return sum(1 for c, _ in self._store.values() if c.document_id == document_id)

    async def get_stats(self) -> CorpusStats:
        return CorpusStats(
            total_chunks=len(self._store),
            total_documents=len({c.document_id for c, _ in self._store.values()}),
        )

    def chunks_for(self, document_id: str) -> list[DocumentChunk]:
        return sorted(
            (c for c, _ in self._store.values() if c.document_id == document_id),
            key=lambda c: c.chunk_index,
        )

    def get_provider_name(self) -> str:
        return "mock-vector-store"

    def is_available(self) -> bool:
        return True


def xlsx_bytes(sheets: dict[str, list[list[Any]]]) -> bytes:
    """Build an XLSX workbook in memory with one sheet per entry."""
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        sheet = workbook.create_sheet(title)
        for row in rows:
            sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def mock_vector_store() -> MockVectorStore:
    return MockVectorStore()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def query_cache(fake_clock: FakeClock) -> MemoryQueryCache:
    return MemoryQueryCache(max_size=100, ttl=3600.0, clock=fake_clock)


@pytest_asyncio.fixture
async def document_store(tmp_path: Path) -> SQLiteDocumentStore:
    """A fresh, initialized SQLite record store."""
    store = SQLiteDocumentStore(db_path=tmp_path / "documents.db")
    await store.initialize()
    return store


@pytest.fixture
def blob_storage(tmp_path: Path) -> LocalBlobStorage:
    return LocalBlobStorage(root=tmp_path / "blobs")


@pytest.fixture
def mock_settings(tmp_path: Path) -> Any:
    """Return Settings with dummy keys and temp storage paths."""
    from src.config.settings import Settings

    return Settings(
        gemini_api_key="test-gemini-key",
        openai_api_key="sk-test-key",
        chromadb_persist_dir=str(tmp_path / "chromadb"),
        document_db_path=str(tmp_path / "documents.db"),
        blob_storage_dir=str(tmp_path / "blobs"),
        app_env="test",
    )


@pytest.fixture
def sample_paged_text() -> str:
    """Three pages of prose as emitted by PDF extraction."""
    return (
        "[PAGE:1]\n"
        "Installation requires Python and a running vector store. "
        "Download the release archive and unpack it into the target directory.\n\n"
        "[PAGE:2]\n"
        "Configuration lives in a YAML file next to the binary. "
        "Every key can be overridden by an environment variable of the same name.\n\n"
        "[PAGE:3]\n"
        "Troubleshooting starts with the logs. "
        "Set LOG_LEVEL to DEBUG and repeat the failing request.\n"
    )
