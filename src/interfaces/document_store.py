"""Abstract base class for the document status/record store.

The record store is the relational half of the pipeline's consistency
contract.  It owns each document's lifecycle fields (``status``,
``processing_stage``, ``chunk_count``, ``has_page_data``, ``error_history``)
and exposes the atomic *claim* that makes the ingestion consumer
idempotent under at-least-once event delivery.

Reads take no locks: monitoring and UI collaborators may poll a record at
any time while ingestion is running.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import DocumentRecord, ErrorHistoryEntry, ProcessingStage


# Concrete implementation: SQLiteDocumentStore (src/providers/document_store/)
class IDocumentStore(ABC):
    """Contract for persisting document lifecycle records."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def create(self, record: DocumentRecord) -> DocumentRecord:
        """Insert a new record (normally in ``pending``)."""

    @abstractmethod
    async def get(self, document_id: str) -> DocumentRecord | None:
        """Return the record, or ``None`` if it does not exist."""

    @abstractmethod
    async def list(
        self,
        project_id: str | None = None,
        include_global: bool = True,
    ) -> list[DocumentRecord]:
        """List records for a project scope, newest first.

        With ``project_id=None`` only global documents are returned.
        """

    @abstractmethod
    async def claim(self, document_id: str) -> DocumentRecord | None:
        """Atomically move ``pending → processing``.

        Returns
        -------
        DocumentRecord or None
            The claimed record, or ``None`` if the document was not
            ``pending`` (already claimed, terminal, or missing).
        """

    @abstractmethod
    async def set_stage(self, document_id: str, stage: ProcessingStage) -> None:
        """Persist the processing sub-stage about to start."""

    @abstractmethod
    async def mark_embedded(
        self,
        document_id: str,
        chunk_count: int,
        has_page_data: bool | None,
    ) -> DocumentRecord:
        """Terminal success: ``embedded``, chunk count set, stage cleared."""

    @abstractmethod
    async def mark_error(self, document_id: str, code: str, message: str) -> ErrorHistoryEntry:
        """Terminal failure: ``error``, with one entry appended to the history.

        The append and the status change happen in one transaction, and the
        new entry's ``attempt`` is ``len(history) + 1``.
        """

    @abstractmethod
    async def reset_for_reingest(self, document_id: str) -> DocumentRecord | None:
        """Reset to ``pending`` for re-ingestion.

        Clears ``chunk_count``, ``processing_stage`` and ``has_page_data``;
        keeps ``error_history``.  Returns ``None`` if the document is
        currently ``processing`` or missing.
        """

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Delete the record; return ``False`` if it did not exist."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
