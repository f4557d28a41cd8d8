"""docrag domain models: re-exports all public model classes.

Other parts of the codebase can import directly from ``src.models``
(e.g. ``from src.models import DocumentRecord``) instead of the individual
module files.

The models are organized across two submodules by concern:
    - document.py: Document status record, error history, ingestion event
    - rag.py: Segments, persisted chunks, retrieval results, citations
"""

from __future__ import annotations

from src.models.document import (
    DocumentRecord,
    DocumentStatus,
    ErrorHistoryEntry,
    IngestionEvent,
    ProcessingStage,
)
from src.models.rag import (
    Citation,
    CorpusStats,
    DocumentChunk,
    IngestionResult,
    RetrievalResult,
    RetrievedChunk,
    SegmentDraft,
)

__all__ = [
    "Citation",
    "CorpusStats",
    "DocumentChunk",
    "DocumentRecord",
    "DocumentStatus",
    "ErrorHistoryEntry",
    "IngestionEvent",
    "IngestionResult",
    "ProcessingStage",
    "RetrievalResult",
    "RetrievedChunk",
    "SegmentDraft",
]
