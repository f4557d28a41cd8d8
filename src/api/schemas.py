"""Pydantic request/response schemas for the docrag API.

Defines the public contract for all REST endpoints: document upload and
lifecycle, retrieval, cache administration and health.

# ─── HOW SCHEMAS WORK (Junior Developer Guide) ────────────────────────
#
# These Pydantic models define the *shape* of every HTTP request body
# and response body in the API.  FastAPI uses them for:
#
#   1. **Validation**: Incoming JSON is validated against the schema.
#      Invalid requests get a 422 error with details.
#   2. **Serialization**: Outgoing objects are converted to JSON
#      matching the schema (via response_model=...).
#   3. **Documentation**: FastAPI generates OpenAPI docs (at /docs).
#
# Convention: Request schemas end with "Request", response schemas
# end with "Response".  Internal models (DocumentRecord, RetrievalResult)
# are converted with the from_* classmethods so the wire format can stay
# stable while the internals change.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.models.document import DocumentRecord
from src.models.rag import RetrievalResult


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class ErrorHistoryItem(BaseModel):
    attempt: int
    code: str
    message: str
    timestamp: datetime


class DocumentResponse(BaseModel):
    """Status record of one document."""

    id: str
    project_id: str | None = None
    filename: str
    content_type: str
    source_url: str | None = None
    status: str
    processing_stage: str | None = None
    chunk_count: int | None = None
    has_page_data: bool | None = None
    error_history: list[ErrorHistoryItem] = Field(default_factory=list)
    latest_error: ErrorHistoryItem | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: DocumentRecord) -> DocumentResponse:
        history = [ErrorHistoryItem(**e.model_dump()) for e in record.error_history]
        return cls(
            id=record.id,
            project_id=record.project_id,
            filename=record.filename,
            content_type=record.content_type,
            source_url=record.source_url,
            status=record.status.value,
            processing_stage=record.processing_stage.value if record.processing_stage else None,
            chunk_count=record.chunk_count,
            has_page_data=record.has_page_data,
            error_history=history,
            latest_error=history[-1] if history else None,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
    total: int


class RegisterUrlRequest(BaseModel):
    """Register a document that ingestion will download from *url*."""

    url: str = Field(min_length=8, max_length=2048, description="http(s) URL of the file.")
    filename: str = Field(min_length=1, max_length=255)
    content_type: str = Field(min_length=1, max_length=255, description="Declared MIME type.")
    project_id: str | None = Field(default=None, description="Owning project; omit for global.")


class BulkDeleteRequest(BaseModel):
    document_ids: list[str] = Field(min_length=1, max_length=500)


class BulkDeleteResponse(BaseModel):
    deleted: list[str] = Field(default_factory=list)
    not_found: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class RetrieveRequest(BaseModel):
    """A question to answer from indexed documents."""

    query: str = Field(min_length=1, max_length=4000)
    project_id: str | None = Field(
        default=None,
        description="Search this project plus global documents; omit for global only.",
    )
    top_k: int | None = Field(default=None, ge=1, le=50)


class RetrievedSegment(BaseModel):
    text: str
    similarity: float
    document_id: str
    filename: str
    chunk_index: int
    page_start: int | None = None
    page_end: int | None = None


class CitationItem(BaseModel):
    document_id: str
    filename: str
    pages: list[int] = Field(default_factory=list)
    sections: list[str] = Field(default_factory=list)


class RetrieveResponse(BaseModel):
    """Ranked segments, consolidated citations and the joined context."""

    query: str
    project_id: str | None = None
    segments: list[RetrievedSegment] = Field(default_factory=list)
    citations: list[CitationItem] = Field(default_factory=list)
    context: str = ""
    from_cache: bool = False

    @classmethod
    def from_result(cls, result: RetrievalResult) -> RetrieveResponse:
        return cls(
            query=result.query,
            project_id=result.scope,
            segments=[
                RetrievedSegment(
                    text=s.chunk.text,
                    similarity=s.similarity_score,
                    document_id=s.chunk.document_id,
                    filename=s.chunk.filename,
                    chunk_index=s.chunk.chunk_index,
                    page_start=s.chunk.page_start,
                    page_end=s.chunk.page_end,
                )
                for s in result.segments
            ],
            citations=[
                CitationItem(
                    document_id=c.document_id,
                    filename=c.filename,
                    pages=c.pages,
                    sections=c.sections,
                )
                for c in result.citations
            ],
            context=result.context,
            from_cache=result.from_cache,
        )


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


class CacheStatsResponse(BaseModel):
    size: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
