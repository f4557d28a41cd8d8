"""Document lifecycle operations: register, re-ingest, delete, read.

These are the operations an admin surface performs on documents.  None of
them runs ingestion inline; they change records and publish
:class:`~src.models.document.IngestionEvent` objects for the background
queue.

Consistency across the three stores follows one ordering rule: index
segments go first, then the record, then the blob.  Segment deletion is
idempotent, so a delete or re-ingest interrupted half-way can simply be
repeated.  A blob that cannot be removed only produces a warning, because
an orphaned file is harmless while an orphaned segment would still be
retrievable.
"""

from __future__ import annotations

import re
import uuid
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

import structlog

from src.models.document import DocumentRecord, DocumentStatus, IngestionEvent
from src.utils.concurrency import throttled_gather
from src.utils.errors import DocumentNotFoundError, PipelineError

if TYPE_CHECKING:
    from src.interfaces.blob_storage_provider import IBlobStorageProvider
    from src.interfaces.cache_provider import IQueryCache
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.vector_store_provider import IVectorStoreProvider
    from src.pipeline.ingestion_queue import IngestionQueue
    from src.pipeline.status_tracker import StatusTracker

logger = structlog.get_logger(logger_name=__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _storage_locator(project_id: str | None, document_id: str, filename: str) -> str:
    name = _UNSAFE_FILENAME_CHARS.sub("_", PurePosixPath(filename).name).strip("._") or "file"
    return f"{project_id or 'global'}/{document_id}/{name}"


class DocumentService:
    """Coordinates the record store, blob storage, index and event queue.

    Parameters
    ----------
    document_store:
        Lifecycle records.
    blob_storage:
        Raw uploaded bytes.
    vector_store:
        Index holding each document's segments.
    ingestion_queue:
        Receives an event for every document that needs (re-)ingestion.
    query_cache:
        Invalidated whenever the set of indexed segments changes.
    status_tracker:
        Informed of resets and deletions.
    """

    def __init__(
        self,
        document_store: IDocumentStore,
        blob_storage: IBlobStorageProvider,
        vector_store: IVectorStoreProvider,
        ingestion_queue: IngestionQueue,
        query_cache: IQueryCache | None = None,
        status_tracker: StatusTracker | None = None,
    ) -> None:
        self._store = document_store
        self._blob_storage = blob_storage
        self._vector_store = vector_store
        self._queue = ingestion_queue
        self._cache = query_cache
        self._tracker = status_tracker

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_upload(
        self,
        filename: str,
        content_type: str,
        data: bytes,
        project_id: str | None = None,
    ) -> DocumentRecord:
        """Store an uploaded file, create its ``pending`` record, enqueue it.

        The declared content type is not checked here; an unsupported type
        fails the first ingestion run with ``UNSUPPORTED_FORMAT`` so the
        reason is kept in the document's error history.
        """
        if not data:
            raise ValueError("Uploaded file is empty")

        document_id = uuid.uuid4().hex
        locator = _storage_locator(project_id, document_id, filename)
        await self._blob_storage.put(locator, data, content_type)

        record = await self._store.create(
            DocumentRecord(
                id=document_id,
                project_id=project_id,
                filename=filename,
                content_type=content_type,
                storage_locator=locator,
            )
        )
        await self._queue.publish(IngestionEvent.for_document(record))
        logger.info(
            "document_registered",
            document_id=document_id,
            project_id=project_id,
            filename=filename,
            size=len(data),
        )
        return record

    async def register_url(
        self,
        url: str,
        filename: str,
        content_type: str,
        project_id: str | None = None,
    ) -> DocumentRecord:
        """Create a ``pending`` record for a URL-sourced document, enqueue it."""
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Only http(s) URLs are supported, got '{url}'")

        record = await self._store.create(
            DocumentRecord(
                id=uuid.uuid4().hex,
                project_id=project_id,
                filename=filename,
                content_type=content_type,
                source_url=url,
            )
        )
        await self._queue.publish(IngestionEvent.for_document(record))
        logger.info(
            "document_registered",
            document_id=record.id,
            project_id=project_id,
            source_url=url,
        )
        return record

    # ------------------------------------------------------------------
    # Re-ingestion and deletion
    # ------------------------------------------------------------------

    async def reingest(self, document_id: str) -> DocumentRecord:
        """Reset a document to ``pending`` and publish a fresh event.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist.
        PipelineError
            If the document is currently ``processing``.
        """
        record = await self.get_document(document_id)
        if record.status is DocumentStatus.PROCESSING:
            raise PipelineError(f"Document {document_id} is being processed; try again later")

        await self._vector_store.delete_by_document(document_id)
        reset = await self._store.reset_for_reingest(document_id)
        if reset is None:
            # Claimed by a worker between the read and the reset.
            raise PipelineError(f"Document {document_id} is being processed; try again later")

        self._invalidate(reset.project_id)
        if self._tracker is not None:
            await self._tracker.publish(document_id, DocumentStatus.PENDING)
        await self._queue.publish(IngestionEvent.for_document(reset))
        logger.info(
            "document_reingest_requested",
            document_id=document_id,
            previous_status=record.status.value,
            failed_attempts=len(reset.error_history),
        )
        return reset

    async def delete_document(self, document_id: str) -> DocumentRecord:
        """Delete segments, then the record, then the blob.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist.
        """
        record = await self._delete(document_id)
        self._invalidate(record.project_id)
        return record

    async def bulk_delete(self, document_ids: list[str]) -> dict[str, list[str]]:
        """Delete several documents concurrently.

        Returns
        -------
        dict
            ``deleted``, ``not_found`` and ``failed`` document id lists.
            The cache is invalidated once per affected scope.
        """
        unique_ids = list(dict.fromkeys(document_ids))
        outcomes = await throttled_gather([self._delete(doc_id) for doc_id in unique_ids])

        summary: dict[str, list[str]] = {"deleted": [], "not_found": [], "failed": []}
        scopes: set[str | None] = set()
        for doc_id, outcome in zip(unique_ids, outcomes):
            if isinstance(outcome, DocumentNotFoundError):
                summary["not_found"].append(doc_id)
            elif isinstance(outcome, BaseException):
                summary["failed"].append(doc_id)
                logger.warning("bulk_delete_item_failed", document_id=doc_id, error=str(outcome))
            else:
                summary["deleted"].append(doc_id)
                scopes.add(outcome.project_id)

        for scope in scopes:
            self._invalidate(scope)

        logger.info(
            "bulk_delete_complete",
            deleted=len(summary["deleted"]),
            not_found=len(summary["not_found"]),
            failed=len(summary["failed"]),
        )
        return summary

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str) -> DocumentRecord:
        record = await self._store.get(document_id)
        if record is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return record

    async def list_documents(
        self,
        project_id: str | None = None,
        include_global: bool = True,
    ) -> list[DocumentRecord]:
        return await self._store.list(project_id=project_id, include_global=include_global)

    async def get_index_counts(self, document_id: str) -> dict[str, Any]:
        """Compare the record's chunk count with what the index holds."""
        record = await self.get_document(document_id)
        indexed = await self._vector_store.count_by_document(document_id)
        return {
            "document_id": document_id,
            "chunk_count": record.chunk_count,
            "indexed_chunks": indexed,
            "consistent": (record.chunk_count or 0) == indexed,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _delete(self, document_id: str) -> DocumentRecord:
        record = await self.get_document(document_id)

        removed = await self._vector_store.delete_by_document(document_id)
        await self._store.delete(document_id)

        if record.storage_locator:
            try:
                await self._blob_storage.delete(record.storage_locator)
            except Exception as exc:
                logger.warning(
                    "blob_delete_failed",
                    document_id=document_id,
                    locator=record.storage_locator,
                    error=str(exc),
                )

        if self._tracker is not None:
            self._tracker.forget(document_id)
        logger.info("document_deleted", document_id=document_id, segments_removed=removed)
        return record

    def _invalidate(self, project_id: str | None) -> None:
        if self._cache is not None:
            self._cache.invalidate_scope(project_id)
