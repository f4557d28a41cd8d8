"""Custom exception hierarchy for docrag.

All application exceptions inherit from :class:`DocRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "gemini", "chromadb", "sqlite") caused the failure.

The hierarchy is organized by ingestion stage:

    DocRAGError  (base -- catch-all for any docrag error)
    +-- DownloadError            (source file missing or unreachable)
    +-- UnsupportedFormatError   (declared content type not in the allow-list)
    +-- ExtractionError          (adapter failure or image-only source)
    +-- SegmentationError        (degenerate input producing zero segments)
    +-- EmbeddingError           (aggregate -- any segment failed to embed)
    +-- PersistenceError         (document store or index write failure)
    +-- PipelineError            (invalid lifecycle transition)
    +-- DocumentNotFoundError    (unknown document id)
    +-- ConfigurationError       (startup / missing config)
    +-- RateLimitError           (provider rate-limit exceeded)
    +-- ProviderUnavailableError (external service down / unreachable)
    +-- RAGError                 (embedding call or vector-store failure)

Every class defines a ``code`` class attribute.  The ingestion orchestrator
writes that code into the document's ``error_history`` so the audit trail
says *which* stage failed without parsing the message.
"""


class DocRAGError(Exception):
    """Base exception for all docrag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[gemini] Rate limit exceeded``.
    """

    code = "PROCESSING_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Ingestion stage errors
# ---------------------------------------------------------------------------

class DownloadError(DocRAGError):
    """Raised when the source file cannot be fetched from blob storage or its URL."""

    code = "DOWNLOAD_ERROR"

    def __init__(
        self,
        message: str = "Failed to download source file",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedFormatError(DocRAGError):
    """Raised when a declared content type is outside the supported allow-list."""

    code = "UNSUPPORTED_FORMAT"

    def __init__(
        self,
        message: str = "Unsupported document format",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(DocRAGError):
    """Raised when text extraction fails or yields implausibly little text."""

    code = "EXTRACTION_ERROR"

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SegmentationError(DocRAGError):
    """Raised when extracted text produces zero segments."""

    code = "SEGMENTATION_ERROR"

    def __init__(
        self,
        message: str = "Document produced no segments",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(DocRAGError):
    """Raised when one or more segments of a document failed to embed.

    This is an *aggregate* error: the batch runner collects every outcome
    before raising, so the counts describe the whole document, not just the
    first group that failed.
    """

    code = "EMBEDDING_ERROR"

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
        failed_count: int = 0,
        total_count: int = 0,
        first_failure_index: int | None = None,
        first_failure_reason: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.failed_count = failed_count
        self.total_count = total_count
        self.first_failure_index = first_failure_index
        self.first_failure_reason = first_failure_reason


class PersistenceError(DocRAGError):
    """Raised when the document store or the vector index rejects a write."""

    code = "PERSISTENCE_ERROR"

    def __init__(
        self,
        message: str = "Failed to persist document data",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(DocRAGError):
    """Raised when an external service or provider is unreachable."""

    code = "PROVIDER_UNAVAILABLE"

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(DocRAGError):
    """Raised when an API rate limit is exceeded."""

    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RAGError(DocRAGError):
    """Raised when an embedding call or a vector-store operation fails."""

    code = "RAG_ERROR"

    def __init__(
        self,
        message: str = "RAG pipeline operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Lifecycle / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(DocRAGError):
    """Raised on an invalid lifecycle transition (e.g. re-ingesting mid-run)."""

    code = "PIPELINE_ERROR"

    def __init__(
        self,
        message: str = "Invalid document lifecycle transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(DocRAGError):
    """Raised when a document id does not exist in the record store."""

    code = "NOT_FOUND"

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(DocRAGError):
    """Raised when configuration is invalid or missing at startup."""

    code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
