"""Public interface definitions for all external service providers.

Every external service in the docrag pipeline is accessed exclusively
through the abstract base classes defined in this package.  Concrete
adapters implement these interfaces and are injected at runtime, following
the adapter pattern.

ADAPTER PATTERN:
    Business logic calls ``embedding_provider.embed_single(...)`` where
    ``embedding_provider`` is any object implementing ``IEmbeddingProvider``,
    never a vendor SDK directly.  This means:
        - Swapping Gemini for an OpenAI-compatible endpoint is one line in
          ``src/main.py``.
        - Unit tests inject mocks or in-memory fakes without network calls.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider         →  GeminiEmbeddingProvider,
                                  OpenAIEmbeddingProvider
    IExtractionProvider        →  GeminiExtractionProvider,
                                  LocalExtractionProvider
    IVectorStoreProvider       →  ChromaDBProvider
    IDocumentStore             →  SQLiteDocumentStore
    IBlobStorageProvider       →  LocalBlobStorage
    IQueryCache                →  MemoryQueryCache
"""

from src.interfaces.blob_storage_provider import IBlobStorageProvider
from src.interfaces.cache_provider import IQueryCache
from src.interfaces.document_store import IDocumentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.extraction_provider import IExtractionProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IBlobStorageProvider",
    "IDocumentStore",
    "IEmbeddingProvider",
    "IExtractionProvider",
    "IQueryCache",
    "IVectorStoreProvider",
]
