"""Unit tests for SQLiteDocumentStore.

Each test uses a temporary SQLite database to ensure isolation.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from src.models.document import DocumentRecord, DocumentStatus, ProcessingStage
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.utils.errors import DocumentNotFoundError, PersistenceError

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _record(
    doc_id: str = "doc-1",
    project_id: str | None = "proj-1",
    minutes: int = 0,
) -> DocumentRecord:
    ts = _BASE_TIME + timedelta(minutes=minutes)
    return DocumentRecord(
        id=doc_id,
        project_id=project_id,
        filename=f"{doc_id}.pdf",
        content_type="application/pdf",
        storage_locator=f"{project_id or 'global'}/{doc_id}/{doc_id}.pdf",
        created_at=ts,
        updated_at=ts,
    )


# ═══════════════════════════════════════════════════════════════════════
# create / get / list / delete
# ═══════════════════════════════════════════════════════════════════════


class TestCrud:
    @pytest.mark.asyncio
    async def test_create_and_get_round_trip(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create(_record())
        fetched = await document_store.get("doc-1")

        assert fetched is not None
        assert fetched.status is DocumentStatus.PENDING
        assert fetched.project_id == "proj-1"
        assert fetched.error_history == []
        assert fetched.has_page_data is None
        assert fetched.created_at == _BASE_TIME

    @pytest.mark.asyncio
    async def test_get_missing(self, document_store: SQLiteDocumentStore) -> None:
        assert await document_store.get("nope") is None

    @pytest.mark.asyncio
    async def test_list_scopes(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create(_record("a", "proj-1", minutes=1))
        await document_store.create(_record("b", None, minutes=2))
        await document_store.create(_record("c", "proj-2", minutes=3))
        await document_store.create(_record("d", "proj-1", minutes=4))

        with_global = await document_store.list("proj-1")
        assert [r.id for r in with_global] == ["d", "b", "a"]

        own_only = await document_store.list("proj-1", include_global=False)
        assert [r.id for r in own_only] == ["d", "a"]

        global_only = await document_store.list(None)
        assert [r.id for r in global_only] == ["b"]

    @pytest.mark.asyncio
    async def test_delete(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create(_record())
        assert await document_store.delete("doc-1") is True
        assert await document_store.delete("doc-1") is False
        assert await document_store.get("doc-1") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_is_persistence_error(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        await document_store.create(_record())
        with pytest.raises(PersistenceError):
            await document_store.create(_record())

    @pytest.mark.asyncio
    async def test_initialize_creates_parent_dirs(self, tmp_path: Path) -> None:
        store = SQLiteDocumentStore(db_path=tmp_path / "nested" / "dir" / "docs.db")
        await store.initialize()
        assert (tmp_path / "nested" / "dir" / "docs.db").exists()
        assert store.get_provider_name() == "sqlite"


# ═══════════════════════════════════════════════════════════════════════
# claim / stages / terminal states
# ═══════════════════════════════════════════════════════════════════════


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_claim_only_once(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create(_record())

        claimed = await document_store.claim("doc-1")
        assert claimed is not None
        assert claimed.status is DocumentStatus.PROCESSING

        assert await document_store.claim("doc-1") is None

    @pytest.mark.asyncio
    async def test_concurrent_claims_have_one_winner(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        await document_store.create(_record())

        results = await asyncio.gather(*(document_store.claim("doc-1") for _ in range(5)))

        assert sum(1 for r in results if r is not None) == 1

    @pytest.mark.asyncio
    async def test_claim_missing_document(self, document_store: SQLiteDocumentStore) -> None:
        assert await document_store.claim("ghost") is None

    @pytest.mark.asyncio
    async def test_stage_is_recorded_while_processing(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        await document_store.create(_record())
        await document_store.claim("doc-1")

        await document_store.set_stage("doc-1", ProcessingStage.EMBEDDING)
        record = await document_store.get("doc-1")

        assert record is not None
        assert record.processing_stage is ProcessingStage.EMBEDDING

    @pytest.mark.asyncio
    async def test_stage_ignored_when_not_processing(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        await document_store.create(_record())
        await document_store.set_stage("doc-1", ProcessingStage.EXTRACTING)

        record = await document_store.get("doc-1")
        assert record is not None
        assert record.processing_stage is None

    @pytest.mark.asyncio
    async def test_mark_embedded(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create(_record())
        await document_store.claim("doc-1")
        await document_store.set_stage("doc-1", ProcessingStage.INSERTING)

        record = await document_store.mark_embedded("doc-1", chunk_count=12, has_page_data=True)

        assert record.status is DocumentStatus.EMBEDDED
        assert record.chunk_count == 12
        assert record.has_page_data is True
        assert record.processing_stage is None

    @pytest.mark.asyncio
    async def test_mark_embedded_missing(self, document_store: SQLiteDocumentStore) -> None:
        with pytest.raises(DocumentNotFoundError):
            await document_store.mark_embedded("ghost", chunk_count=1, has_page_data=None)

    @pytest.mark.asyncio
    async def test_mark_error_appends_history(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create(_record())
        await document_store.claim("doc-1")

        first = await document_store.mark_error("doc-1", "EMBEDDING_ERROR", "3 of 9 failed")
        assert first.attempt == 1

        await document_store.reset_for_reingest("doc-1")
        await document_store.claim("doc-1")
        second = await document_store.mark_error("doc-1", "DOWNLOAD_ERROR", "missing blob")
        assert second.attempt == 2

        record = await document_store.get("doc-1")
        assert record is not None
        assert record.status is DocumentStatus.ERROR
        assert [e.code for e in record.error_history] == ["EMBEDDING_ERROR", "DOWNLOAD_ERROR"]
        assert record.latest_error is not None
        assert record.latest_error.message == "missing blob"

    @pytest.mark.asyncio
    async def test_mark_error_missing(self, document_store: SQLiteDocumentStore) -> None:
        with pytest.raises(DocumentNotFoundError):
            await document_store.mark_error("ghost", "X", "y")


# ═══════════════════════════════════════════════════════════════════════
# reset_for_reingest
# ═══════════════════════════════════════════════════════════════════════


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_clears_results_but_keeps_history(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        await document_store.create(_record())
        await document_store.claim("doc-1")
        await document_store.mark_error("doc-1", "EXTRACTION_ERROR", "image-only")

        reset = await document_store.reset_for_reingest("doc-1")

        assert reset is not None
        assert reset.status is DocumentStatus.PENDING
        assert reset.chunk_count is None
        assert reset.has_page_data is None
        assert len(reset.error_history) == 1

    @pytest.mark.asyncio
    async def test_reset_from_embedded(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.create(_record())
        await document_store.claim("doc-1")
        await document_store.mark_embedded("doc-1", chunk_count=3, has_page_data=False)

        reset = await document_store.reset_for_reingest("doc-1")
        assert reset is not None
        assert reset.chunk_count is None

    @pytest.mark.asyncio
    async def test_reset_refused_while_processing(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        await document_store.create(_record())
        await document_store.claim("doc-1")

        assert await document_store.reset_for_reingest("doc-1") is None
        record = await document_store.get("doc-1")
        assert record is not None
        assert record.status is DocumentStatus.PROCESSING
