"""Document lifecycle models: status record, error history, ingestion event.

A document moves through a small state machine driven by the ingestion
orchestrator::

    pending ──claim──▶ processing ──▶ embedded
       ▲                   │
       │                   └──────▶ error
       └──── reingest ◀────────────┘ (also from embedded)

While ``processing``, the record also carries a ``processing_stage`` so a
stalled document can be diagnosed from its last recorded stage.  Every
failed attempt appends one :class:`ErrorHistoryEntry`; the history is never
overwritten, including across re-ingestion.

All models use frozen config; state changes go through ``model_copy``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    """Lifecycle status of a document."""

    PENDING = "pending"
    PROCESSING = "processing"
    EMBEDDED = "embedded"
    ERROR = "error"


class ProcessingStage(str, Enum):
    """Sub-stage label recorded while a document is ``processing``.

    Each label is persisted *before* its step begins.
    """

    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INSERTING = "inserting"


def utc_now() -> datetime:
    """Timezone-aware UTC timestamp used for every stored time."""
    return datetime.now(timezone.utc)


class ErrorHistoryEntry(BaseModel):
    """One failed ingestion attempt."""

    model_config = ConfigDict(frozen=True)

    attempt: int = Field(ge=1, description="1-based attempt number within the history.")
    code: str = Field(description="Error code, e.g. EMBEDDING_ERROR or DOWNLOAD_ERROR.")
    message: str = Field(description="Actionable, human-readable failure message.")
    timestamp: datetime = Field(default_factory=utc_now, description="When the attempt failed.")


class DocumentRecord(BaseModel):
    """Durable status record for one uploaded or URL-sourced document.

    ``project_id`` of ``None`` marks a *global* document: it is visible to
    retrieval in every project scope.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Opaque document identifier.")
    project_id: str | None = Field(
        default=None,
        description="Owning project/tenant, or None for a global document.",
    )
    filename: str = Field(description="Display name of the source file.")
    content_type: str = Field(description="Declared MIME type at upload.")
    storage_locator: str = Field(default="", description="Key of the raw file in blob storage.")
    source_url: str | None = Field(default=None, description="Origin URL for URL-sourced documents.")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING)
    processing_stage: ProcessingStage | None = Field(
        default=None,
        description="Last stage entered during processing; cleared on success and reset.",
    )
    chunk_count: int | None = Field(
        default=None,
        ge=0,
        description="Number of indexed segments; set only on success.",
    )
    has_page_data: bool | None = Field(
        default=None,
        description=(
            "Tri-state: None = unknown / not paginated, True = page markers "
            "recovered, False = paginated source without page markers."
        ),
    )
    error_history: list[ErrorHistoryEntry] = Field(
        default_factory=list,
        description="Every failed attempt, oldest first.",
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def latest_error(self) -> ErrorHistoryEntry | None:
        """The most recent failure, which is the actionable one for callers."""
        return self.error_history[-1] if self.error_history else None


class IngestionEvent(BaseModel):
    """Trigger consumed by the ingestion orchestrator (one run per event)."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    project_id: str | None = None
    filename: str
    content_type: str
    storage_locator: str = ""
    source_url: str | None = None

    @classmethod
    def for_document(cls, record: DocumentRecord) -> IngestionEvent:
        """Build the event that (re-)triggers ingestion of *record*."""
        return cls(
            document_id=record.id,
            project_id=record.project_id,
            filename=record.filename,
            content_type=record.content_type,
            storage_locator=record.storage_locator,
            source_url=record.source_url,
        )
