"""Orchestrator for the document ingestion state machine.

Pipeline stages: **claim -> download -> extract -> chunk -> embed -> insert**.

The :class:`IngestionService` implements the **Orchestrator pattern**: it
coordinates the record store, blob storage, extraction provider, segmenter,
embedding batch runner and vector store without any of them knowing about
each other.  One call to :meth:`IngestionService.process` handles exactly
one :class:`~src.models.document.IngestionEvent`:

    1. Claim       -- atomic ``pending -> processing``; losing the claim
                      (re-delivery, terminal document) is a logged no-op
    2. Format      -- unsupported declared types fail before any download
    3. Download    -- ``source_url`` over httpx, otherwise blob storage
    4. Extract     -- annotated text, then the plausibility check
    5. Chunk       -- ordered segments with page/section locators
    6. Embed       -- all-or-nothing across every segment
    7. Insert      -- delete the prior chunk set, then one batch write

Each stage label is persisted *before* its step starts, so a stalled
document shows where it stopped.  Every external call is bounded by a
timeout.  Any exception ends the run in ``error`` with one appended
history entry; nothing propagates to the caller and nothing is retried.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TYPE_CHECKING, TypeVar

import httpx
import structlog

from src.models.document import DocumentRecord, DocumentStatus, IngestionEvent, ProcessingStage
from src.models.formats import detect_format
from src.models.rag import DocumentChunk, IngestionResult, estimate_tokens
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_batch_runner import EmbeddingBatchRunner
from src.services.ingestion.extraction_validator import (
    DEFAULT_LIMITS,
    ExtractionLimits,
    validate_extracted_text,
)
from src.services.ingestion.markers import LocatorKind, detect_locator_kind
from src.utils.errors import (
    DocRAGError,
    DownloadError,
    ExtractionError,
    PersistenceError,
    RAGError,
    SegmentationError,
)

if TYPE_CHECKING:
    # TYPE_CHECKING-only imports keep the runtime import graph small;
    # these interfaces are only needed for type annotations.
    from src.interfaces.blob_storage_provider import IBlobStorageProvider
    from src.interfaces.cache_provider import IQueryCache
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.extraction_provider import IExtractionProvider
    from src.interfaces.vector_store_provider import IVectorStoreProvider
    from src.pipeline.status_tracker import StatusTracker

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")


class IngestionService:
    """Runs one document through the ingestion state machine per event.

    Parameters
    ----------
    document_store:
        Record store providing the atomic claim and status writes.
    blob_storage:
        Source of uploaded file bytes.
    extraction_provider:
        Turns document bytes into annotated text.
    chunker:
        Splits extracted text into segments.
    embedding_runner:
        Embeds every segment with all-or-nothing semantics.
    vector_store:
        Index the segments are written to.
    query_cache:
        Retrieval cache invalidated for the document's scope after every
        terminal transition.
    status_tracker:
        Receives every status and stage change.
    http_client:
        Client used for URL-sourced documents.
    download_timeout, extraction_timeout, index_write_timeout:
        Seconds allowed for each external call.
    extraction_limits:
        Thresholds for rejecting implausible extraction output.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        blob_storage: IBlobStorageProvider,
        extraction_provider: IExtractionProvider,
        chunker: TextChunker,
        embedding_runner: EmbeddingBatchRunner,
        vector_store: IVectorStoreProvider,
        query_cache: IQueryCache | None = None,
        status_tracker: StatusTracker | None = None,
        http_client: httpx.AsyncClient | None = None,
        download_timeout: float = 60.0,
        extraction_timeout: float = 300.0,
        index_write_timeout: float = 60.0,
        extraction_limits: ExtractionLimits = DEFAULT_LIMITS,
    ) -> None:
        self._store = document_store
        self._blob_storage = blob_storage
        self._extractor = extraction_provider
        self._chunker = chunker
        self._embedding_runner = embedding_runner
        self._vector_store = vector_store
        self._cache = query_cache
        self._tracker = status_tracker
        self._http_client = http_client
        self._download_timeout = download_timeout
        self._extraction_timeout = extraction_timeout
        self._index_write_timeout = index_write_timeout
        self._extraction_limits = extraction_limits

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process(self, event: IngestionEvent) -> IngestionResult:
        """Handle one ingestion event; never raises for pipeline failures.

        Returns
        -------
        IngestionResult
            ``skipped=True`` when the claim was lost, otherwise the terminal
            status with segment counts or the failure code.
        """
        start = time.monotonic()
        with structlog.contextvars.bound_contextvars(document_id=event.document_id):
            record = await self._store.claim(event.document_id)
            if record is None:
                current = await self._store.get(event.document_id)
                logger.info(
                    "ingestion_claim_lost",
                    current_status=current.status.value if current else None,
                )
                return IngestionResult(
                    document_id=event.document_id,
                    status=current.status if current else None,
                    skipped=True,
                    ingestion_time=time.monotonic() - start,
                )

            logger.info("ingestion_started", filename=record.filename, project_id=record.project_id)
            await self._publish(record.id, DocumentStatus.PROCESSING)

            try:
                return await self._run(record, start)
            except Exception as exc:
                return await self._fail(record, exc, start)

    # ------------------------------------------------------------------
    # Success path
    # ------------------------------------------------------------------

    async def _run(self, record: DocumentRecord, start: float) -> IngestionResult:
        document_format = detect_format(record.content_type, record.filename)

        await self._enter(record.id, ProcessingStage.DOWNLOADING)
        data = await self._bounded(
            self._download(record),
            self._download_timeout,
            DownloadError,
            "Download",
        )

        await self._enter(record.id, ProcessingStage.EXTRACTING)
        text = await self._bounded(
            self._extractor.extract(data, document_format, record.filename),
            self._extraction_timeout,
            ExtractionError,
            "Extraction",
        )
        validate_extracted_text(text, len(data), self._extraction_limits)

        await self._enter(record.id, ProcessingStage.CHUNKING)
        segments = self._chunker.chunk(text)
        if not segments:
            raise SegmentationError(f"'{record.filename}' produced no segments after extraction")

        has_page_data: bool | None = None
        if document_format.is_paginated:
            has_page_data = detect_locator_kind(text) is LocatorKind.PAGE

        await self._enter(record.id, ProcessingStage.EMBEDDING)
        batch = await self._embedding_runner.embed_all(segments)
        batch.raise_for_failures()

        await self._enter(record.id, ProcessingStage.INSERTING)
        chunks = [
            DocumentChunk(
                chunk_id=DocumentChunk.make_id(record.id, segment.index),
                document_id=record.id,
                project_id=record.project_id,
                filename=record.filename,
                chunk_index=segment.index,
                text=segment.text,
                token_count=estimate_tokens(segment.text),
                page_start=segment.page_start,
                page_end=segment.page_end,
                section=segment.section,
            )
            for segment in segments
        ]
        await self._write_index(record.id, chunks, batch.embeddings)

        updated = await self._store.mark_embedded(record.id, len(chunks), has_page_data)
        self._invalidate(record.project_id)
        await self._publish(record.id, DocumentStatus.EMBEDDED, chunk_count=len(chunks))

        total_tokens = sum(c.token_count for c in chunks)
        elapsed = time.monotonic() - start
        logger.info(
            "ingestion_complete",
            chunks=len(chunks),
            total_tokens=total_tokens,
            has_page_data=has_page_data,
            elapsed_s=round(elapsed, 2),
        )
        return IngestionResult(
            document_id=record.id,
            status=updated.status,
            chunks_created=len(chunks),
            total_tokens=total_tokens,
            ingestion_time=elapsed,
        )

    async def _download(self, record: DocumentRecord) -> bytes:
        if record.source_url:
            if self._http_client is None:
                raise DownloadError("URL-sourced documents need an HTTP client")
            try:
                response = await self._http_client.get(record.source_url, follow_redirects=True)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise DownloadError(
                    f"Could not download '{record.source_url}': {exc}",
                    provider_name="http",
                ) from exc
            return response.content

        if not record.storage_locator:
            raise DownloadError(f"Document '{record.filename}' has no storage locator or URL")
        return await self._blob_storage.get(record.storage_locator)

    async def _write_index(
        self,
        document_id: str,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> None:
        """Replace the document's chunk set in the index."""
        try:
            await asyncio.wait_for(
                self._vector_store.delete_by_document(document_id),
                timeout=self._index_write_timeout,
            )
            await asyncio.wait_for(
                self._vector_store.add_chunks(chunks, embeddings),
                timeout=self._index_write_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise PersistenceError(
                f"Index write timed out after {self._index_write_timeout:g}s",
                provider_name=self._vector_store.get_provider_name(),
            ) from exc
        except (RAGError, ValueError) as exc:
            raise PersistenceError(
                f"Index write failed: {exc}",
                provider_name=self._vector_store.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # Failure path
    # ------------------------------------------------------------------

    async def _fail(self, record: DocumentRecord, exc: Exception, start: float) -> IngestionResult:
        code = exc.code if isinstance(exc, DocRAGError) else DocRAGError.code
        message = str(exc) or type(exc).__name__
        logger.warning(
            "ingestion_failed",
            error_code=code,
            error=message,
            exc_info=not isinstance(exc, DocRAGError),
        )

        try:
            await asyncio.wait_for(
                self._vector_store.delete_by_document(record.id),
                timeout=self._index_write_timeout,
            )
        except Exception as cleanup_exc:
            logger.warning("ingestion_cleanup_failed", error=str(cleanup_exc))

        status: DocumentStatus | None = DocumentStatus.ERROR
        try:
            await self._store.mark_error(record.id, code, message)
        except Exception as store_exc:
            status = None
            logger.error("ingestion_error_not_recorded", error=str(store_exc))

        self._invalidate(record.project_id)
        await self._publish(
            record.id,
            DocumentStatus.ERROR,
            error_code=code,
            error_message=message,
        )
        return IngestionResult(
            document_id=record.id,
            status=status,
            ingestion_time=time.monotonic() - start,
            error_code=code,
            error_message=message,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _enter(self, document_id: str, stage: ProcessingStage) -> None:
        """Persist and broadcast *stage* before its step begins."""
        await self._store.set_stage(document_id, stage)
        logger.info("ingestion_stage", stage=stage.value)
        await self._publish(document_id, DocumentStatus.PROCESSING, stage=stage)

    @staticmethod
    async def _bounded(
        awaitable: Awaitable[_T],
        timeout: float,
        error_cls: type[DocRAGError],
        label: str,
    ) -> _T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise error_cls(f"{label} timed out after {timeout:g}s") from exc

    def _invalidate(self, project_id: str | None) -> None:
        if self._cache is not None:
            self._cache.invalidate_scope(project_id)

    async def _publish(self, document_id: str, status: DocumentStatus, **kwargs: object) -> None:
        if self._tracker is not None:
            await self._tracker.publish(document_id, status, **kwargs)  # type: ignore[arg-type]
