"""Utility modules for docrag.

Available utility modules (re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at DocRAGError;
  each ingestion stage raises its own subclass, and every subclass carries a
  ``code`` that ends up in the document's error history.
- **concurrency** -- grouped fan-out helper that runs bounded batches of
  coroutines and collects every outcome, successes and failures alike.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    DocRAGError,
    DocumentNotFoundError,
    DownloadError,
    EmbeddingError,
    ExtractionError,
    PersistenceError,
    PipelineError,
    ProviderUnavailableError,
    RAGError,
    RateLimitError,
    SegmentationError,
    UnsupportedFormatError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import gather_in_groups, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "DocRAGError",
    "DocumentNotFoundError",
    "DownloadError",
    "EmbeddingError",
    "ExtractionError",
    "PersistenceError",
    "PipelineError",
    "ProviderUnavailableError",
    "RAGError",
    "RateLimitError",
    "SegmentationError",
    "UnsupportedFormatError",
    "configure_logging",
    "gather_in_groups",
    "get_logger",
    "throttled_gather",
]
