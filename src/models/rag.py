"""Segment, retrieval and citation models for the docrag index.

Pydantic v2 models for the units that flow through ingestion and retrieval:

    SegmentDraft     -- a window produced by the segmenter, not yet embedded
    DocumentChunk    -- a persisted segment in the vector index
    RetrievedChunk   -- a chunk returned by similarity search, with its score
    Citation         -- read-time projection: one entry per source document
    RetrievalResult  -- ranked chunks + consolidated citations for a query
    IngestionResult  -- summary of one orchestrator run

All models use frozen config to enforce immutability.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field

from src.models.document import DocumentStatus

# Separator placed between segment texts when building an answer context.
CONTEXT_SEPARATOR = "\n\n---\n\n"


def estimate_tokens(text: str) -> int:
    """Approximate token count (~4 characters per token)."""
    return math.ceil(len(text) / 4)


# ---------------------------------------------------------------------------
# SegmentDraft: segmenter output, before embedding.
# ---------------------------------------------------------------------------
class SegmentDraft(BaseModel):
    """One bounded window of a document's extracted text.

    ``start`` / ``end`` are character offsets into the marker-free body
    text the window was cut from.  For sectioned input the ``text`` carries
    a leading ``Section: <title>`` context line that is *not* part of the
    ``start:end`` span.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="Zero-based sequence index in reading order.")
    text: str = Field(description="Segment text as it will be embedded.")
    start: int = Field(ge=0, description="Start offset into the body text.")
    end: int = Field(ge=0, description="End offset (exclusive) into the body text.")
    page_start: int | None = Field(default=None, description="First page the window touches.")
    page_end: int | None = Field(default=None, description="Last page the window touches.")
    section: str | None = Field(default=None, description="Section the window was cut from.")


# ---------------------------------------------------------------------------
# DocumentChunk: a persisted segment.
# ---------------------------------------------------------------------------
class DocumentChunk(BaseModel):
    """A segment stored in the vector index, with provenance.

    Chunks for one document are written in a single batch once every
    embedding has succeeded, and deleted en masse on delete or re-ingest.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description="Unique id: '<document_id>:<chunk_index>'.")
    document_id: str = Field(description="Owning document id.")
    project_id: str | None = Field(default=None, description="Owning scope, None for global.")
    filename: str = Field(default="", description="Display name of the owning document.")
    chunk_index: int = Field(ge=0, description="Dense, zero-based sequence index.")
    text: str = Field(description="The chunk's textual content.")
    token_count: int = Field(default=0, ge=0, description="Approximate token count.")
    page_start: int | None = Field(default=None, description="First page covered, if known.")
    page_end: int | None = Field(default=None, description="Last page covered, if known.")
    section: str | None = Field(default=None, description="Source section title, if known.")

    @staticmethod
    def make_id(document_id: str, chunk_index: int) -> str:
        return f"{document_id}:{chunk_index}"


# ---------------------------------------------------------------------------
# RetrievedChunk: a search hit.
# ---------------------------------------------------------------------------
class RetrievedChunk(BaseModel):
    """A document chunk returned from a vector-store query with its score."""

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk = Field(description="The retrieved document chunk.")
    similarity_score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Cosine similarity between the query and this chunk.",
    )


# ---------------------------------------------------------------------------
# Citation: one per source document in a result.
# ---------------------------------------------------------------------------
class Citation(BaseModel):
    """Consolidated provenance for one source document.

    ``pages`` is sorted and de-duplicated; ``sections`` keeps first-seen
    order.  Never persisted.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    pages: list[int] = Field(default_factory=list)
    sections: list[str] = Field(default_factory=list)
    similarity: float = Field(default=0.0, ge=0.0, le=1.0, description="Best segment score.")


class RetrievalResult(BaseModel):
    """Ranked segments plus consolidated citations for one query."""

    model_config = ConfigDict(frozen=True)

    query: str
    scope: str | None = None
    segments: list[RetrievedChunk] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    from_cache: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.segments

    @property
    def context(self) -> str:
        """Segment texts joined in rank order, ready to hand to an LLM."""
        return CONTEXT_SEPARATOR.join(s.chunk.text for s in self.segments)


# ---------------------------------------------------------------------------
# IngestionResult: output of one orchestrator run.
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Summary of a single document ingestion run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: DocumentStatus | None = Field(
        default=None,
        description="Status after the run; None when the document no longer exists.",
    )
    chunks_created: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")
    skipped: bool = Field(default=False, description="True when another run already held the claim.")
    error_code: str | None = None
    error_message: str | None = None


class CorpusStats(BaseModel):
    """Aggregate size of the vector index."""

    model_config = ConfigDict(frozen=True)

    total_chunks: int = Field(default=0, ge=0)
    total_documents: int = Field(default=0, ge=0)
