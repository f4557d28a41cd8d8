"""Integration tests for RetrievalService with the query cache."""

from __future__ import annotations

import math

import pytest
import pytest_asyncio

from src.models.rag import DocumentChunk
from src.providers.cache.memory_cache import MemoryQueryCache
from src.services.retrieval_service import RetrievalService
from src.utils.errors import RAGError
from tests.conftest import FakeClock, MockEmbeddingProvider, MockVectorStore

_DIM = 16
_QUERY = "how do I reset the pump"


def _vec(x: float, y: float = 0.0) -> list[float]:
    return [x, y] + [0.0] * (_DIM - 2)


def _unit(x: float) -> list[float]:
    return _vec(x, math.sqrt(1 - x * x))


def _axis(i: int) -> list[float]:
    return [1.0 if n == i else 0.0 for n in range(_DIM)]


def _chunk(
    document_id: str,
    index: int,
    project_id: str | None,
    text: str = "body",
    page: int | None = None,
    section: str | None = None,
) -> DocumentChunk:
    return DocumentChunk(
        chunk_id=DocumentChunk.make_id(document_id, index),
        document_id=document_id,
        project_id=project_id,
        filename=f"{document_id}.pdf",
        chunk_index=index,
        text=text,
        page_start=page,
        page_end=page,
        section=section,
    )


@pytest_asyncio.fixture
async def corpus() -> MockVectorStore:
    store = MockVectorStore()
    await store.add_chunks(
        [
            _chunk("manual", 0, "proj-1", "Hold reset for five seconds.", page=2),
            _chunk("manual", 1, "proj-1", "The reset light blinks twice.", page=4),
            _chunk("other-project", 0, "proj-2", "Reset procedure for proj-2.", page=1),
            _chunk(
                "handbook", 0, None, "Section: Safety\n\nIsolate power first.", section="Safety"
            ),
            _chunk("unrelated", 0, "proj-1", "Lunch menu.", page=1),
        ],
        [_unit(1.0), _unit(0.9), _unit(1.0), _unit(0.8), _axis(2)],
    )
    return store


@pytest.fixture
def embedding() -> MockEmbeddingProvider:
    return MockEmbeddingProvider(vectors={_QUERY: _unit(1.0), "nothing matches": _vec(0.0, -1.0)})


@pytest.fixture
def cache(fake_clock: FakeClock) -> MemoryQueryCache:
    return MemoryQueryCache(max_size=10, ttl=60.0, clock=fake_clock)


def _service(
    embedding: MockEmbeddingProvider,
    store: MockVectorStore,
    cache: MemoryQueryCache | None = None,
) -> RetrievalService:
    return RetrievalService(
        embedding_provider=embedding,
        vector_store=store,
        query_cache=cache,
        min_similarity=0.7,
        default_top_k=5,
    )


class TestScopeAndThreshold:
    @pytest.mark.asyncio
    async def test_project_scope_sees_own_and_global(
        self, embedding: MockEmbeddingProvider, corpus: MockVectorStore
    ) -> None:
        result = await _service(embedding, corpus).retrieve(_QUERY, scope="proj-1")

        assert [s.chunk.document_id for s in result.segments] == ["manual", "manual", "handbook"]
        assert [round(s.similarity_score, 2) for s in result.segments] == [1.0, 0.9, 0.8]
        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_global_scope_sees_global_only(
        self, embedding: MockEmbeddingProvider, corpus: MockVectorStore
    ) -> None:
        result = await _service(embedding, corpus).retrieve(_QUERY, scope=None)
        assert [s.chunk.document_id for s in result.segments] == ["handbook"]

    @pytest.mark.asyncio
    async def test_below_threshold_is_explicitly_empty(
        self, embedding: MockEmbeddingProvider, corpus: MockVectorStore
    ) -> None:
        result = await _service(embedding, corpus).retrieve("nothing matches", scope="proj-1")

        assert result.is_empty
        assert result.citations == []
        assert result.context == ""

    @pytest.mark.asyncio
    async def test_top_k_limits_segments(
        self, embedding: MockEmbeddingProvider, corpus: MockVectorStore
    ) -> None:
        result = await _service(embedding, corpus).retrieve(_QUERY, scope="proj-1", top_k=1)
        assert len(result.segments) == 1


class TestCitations:
    @pytest.mark.asyncio
    async def test_one_citation_per_document(
        self, embedding: MockEmbeddingProvider, corpus: MockVectorStore
    ) -> None:
        result = await _service(embedding, corpus).retrieve(_QUERY, scope="proj-1")

        manual, handbook = result.citations
        assert manual.document_id == "manual"
        assert manual.pages == [2, 4]
        assert manual.similarity == pytest.approx(1.0)
        assert handbook.document_id == "handbook"
        assert handbook.sections == ["Safety"]
        assert handbook.pages == []


class TestCaching:
    @pytest.mark.asyncio
    async def test_repeat_query_is_served_from_cache(
        self,
        embedding: MockEmbeddingProvider,
        corpus: MockVectorStore,
        cache: MemoryQueryCache,
    ) -> None:
        service = _service(embedding, corpus, cache)
        first = await service.retrieve(_QUERY, scope="proj-1")
        queries = corpus.query_calls

        second = await service.retrieve(_QUERY, scope="proj-1")

        assert second.from_cache is True
        assert second.segments == first.segments
        assert second.citations == first.citations
        assert corpus.query_calls == queries
        assert embedding.calls == [_QUERY]

    @pytest.mark.asyncio
    async def test_scopes_are_cached_separately(
        self,
        embedding: MockEmbeddingProvider,
        corpus: MockVectorStore,
        cache: MemoryQueryCache,
    ) -> None:
        service = _service(embedding, corpus, cache)
        await service.retrieve(_QUERY, scope="proj-1")

        other = await service.retrieve(_QUERY, scope=None)

        assert other.from_cache is False
        assert [s.chunk.document_id for s in other.segments] == ["handbook"]

    @pytest.mark.asyncio
    async def test_smaller_top_k_reuses_cached_result(
        self,
        embedding: MockEmbeddingProvider,
        corpus: MockVectorStore,
        cache: MemoryQueryCache,
    ) -> None:
        service = _service(embedding, corpus, cache)
        await service.retrieve(_QUERY, scope="proj-1", top_k=2)
        queries = corpus.query_calls

        narrowed = await service.retrieve(_QUERY, scope="proj-1", top_k=1)
        assert narrowed.from_cache is True
        assert len(narrowed.segments) == 1
        assert narrowed.citations[0].pages == [2]

        widened = await service.retrieve(_QUERY, scope="proj-1", top_k=3)
        assert widened.from_cache is False
        assert corpus.query_calls == queries + 1

    @pytest.mark.asyncio
    async def test_invalidation_forces_fresh_search(
        self,
        embedding: MockEmbeddingProvider,
        corpus: MockVectorStore,
        cache: MemoryQueryCache,
    ) -> None:
        service = _service(embedding, corpus, cache)
        await service.retrieve(_QUERY, scope="proj-1")
        await corpus.delete_by_document("manual")
        cache.invalidate_scope("proj-1")

        result = await service.retrieve(_QUERY, scope="proj-1")

        assert result.from_cache is False
        assert [s.chunk.document_id for s in result.segments] == ["handbook"]

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(
        self,
        embedding: MockEmbeddingProvider,
        corpus: MockVectorStore,
        cache: MemoryQueryCache,
        fake_clock: FakeClock,
    ) -> None:
        service = _service(embedding, corpus, cache)
        await service.retrieve(_QUERY, scope="proj-1")
        fake_clock.advance(60.0)

        result = await service.retrieve(_QUERY, scope="proj-1")
        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_empty_results_are_not_cached(
        self,
        embedding: MockEmbeddingProvider,
        corpus: MockVectorStore,
        cache: MemoryQueryCache,
    ) -> None:
        service = _service(embedding, corpus, cache)
        await service.retrieve("nothing matches", scope="proj-1")
        await service.retrieve("nothing matches", scope="proj-1")

        assert corpus.query_calls == 2
        assert cache.stats()["size"] == 0


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   \n"])
    async def test_blank_query(
        self, query: str, embedding: MockEmbeddingProvider, corpus: MockVectorStore
    ) -> None:
        with pytest.raises(ValueError):
            await _service(embedding, corpus).retrieve(query, scope="proj-1")

    @pytest.mark.asyncio
    async def test_invalid_top_k(
        self, embedding: MockEmbeddingProvider, corpus: MockVectorStore
    ) -> None:
        with pytest.raises(ValueError):
            await _service(embedding, corpus).retrieve(_QUERY, scope="proj-1", top_k=0)

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, corpus: MockVectorStore) -> None:
        failing = MockEmbeddingProvider(fail_on={_QUERY})
        with pytest.raises(RAGError):
            await _service(failing, corpus).retrieve(_QUERY, scope="proj-1")
