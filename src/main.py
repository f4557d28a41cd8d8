"""docrag FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and starts the background ingestion workers for the
lifetime of the server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.api.websocket import websocket_document_status
from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.extraction_provider import IExtractionProvider
from src.pipeline.ingestion_queue import IngestionQueue
from src.pipeline.status_tracker import StatusTracker
from src.providers.cache.memory_cache import MemoryQueryCache
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.extraction.gemini_extraction_provider import GeminiExtractionProvider
from src.providers.extraction.local_extraction_provider import LocalExtractionProvider
from src.providers.storage.local_blob_storage import LocalBlobStorage
from src.providers.vector_store.chromadb_provider import ChromaDBProvider
from src.services.document_service import DocumentService
from src.services.ingestion.chunker import DEFAULT_SEPARATORS, TextChunker
from src.services.ingestion.embedding_batch_runner import EmbeddingBatchRunner
from src.services.ingestion.extraction_validator import ExtractionLimits
from src.services.ingestion.ingestion_service import IngestionService
from src.services.retrieval_service import RetrievalService
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production" or bool(config["logging"].get("json", False))),
)
_logger: structlog.BoundLogger = get_logger(__name__)

_APP_NAME = str(config.get("app", {}).get("name", "docrag"))
_APP_VERSION = str(config.get("app", {}).get("version", "0.1.0"))


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> IEmbeddingProvider:
    """Return the embedding provider named by ``EMBEDDING_PROVIDER``.

    The same provider embeds segments at ingestion and queries at
    retrieval, so switching it requires re-ingesting every document.
    """
    if app_settings.embedding_provider == "openai":
        return OpenAIEmbeddingProvider(settings=app_settings)
    if app_settings.embedding_provider != "gemini":
        _logger.warning(
            "unknown_embedding_provider",
            requested=app_settings.embedding_provider,
            using="gemini",
        )
    return GeminiEmbeddingProvider(settings=app_settings, http_client=http_client)


def _build_extraction_provider(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> IExtractionProvider:
    """Return the extraction provider named by ``EXTRACTION_PROVIDER``."""
    if app_settings.extraction_provider == "gemini":
        return GeminiExtractionProvider(settings=app_settings, http_client=http_client)
    return LocalExtractionProvider()


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.download_timeout_s)

    # -- Providers --
    embedding_provider = _build_embedding_provider(app_settings, http_client)
    extraction_provider = _build_extraction_provider(app_settings, http_client)
    vector_store = ChromaDBProvider(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
        expected_dimension=embedding_provider.get_dimension(),
    )
    document_store = SQLiteDocumentStore(db_path=app_settings.document_db_path)
    blob_storage = LocalBlobStorage(root=app_settings.blob_storage_dir)
    query_cache = MemoryQueryCache(
        max_size=app_settings.query_cache_max_entries,
        ttl=app_settings.query_cache_ttl_s,
    )
    status_tracker = StatusTracker()

    # -- Ingestion --
    chunker = TextChunker(
        max_size=app_settings.chunk_size,
        overlap=app_settings.chunk_overlap,
        separators=tuple(config.get("ingestion", {}).get("separators") or DEFAULT_SEPARATORS),
    )
    embedding_runner = EmbeddingBatchRunner(
        embedding_provider=embedding_provider,
        batch_size=app_settings.embedding_batch_size,
        timeout=app_settings.embedding_timeout_s,
    )
    ingestion_service = IngestionService(
        document_store=document_store,
        blob_storage=blob_storage,
        extraction_provider=extraction_provider,
        chunker=chunker,
        embedding_runner=embedding_runner,
        vector_store=vector_store,
        query_cache=query_cache,
        status_tracker=status_tracker,
        http_client=http_client,
        download_timeout=app_settings.download_timeout_s,
        extraction_timeout=app_settings.extraction_timeout_s,
        index_write_timeout=app_settings.index_write_timeout_s,
        extraction_limits=ExtractionLimits.model_validate(config.get("extraction") or {}),
    )
    ingestion_queue = IngestionQueue(
        ingestion_service=ingestion_service,
        workers=app_settings.ingestion_workers,
    )

    # -- Services --
    document_service = DocumentService(
        document_store=document_store,
        blob_storage=blob_storage,
        vector_store=vector_store,
        ingestion_queue=ingestion_queue,
        query_cache=query_cache,
        status_tracker=status_tracker,
    )
    retrieval_service = RetrievalService(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        query_cache=query_cache,
        min_similarity=app_settings.retrieval_min_similarity,
        default_top_k=app_settings.retrieval_top_k,
    )

    provider_registry = {
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
        "extraction": extraction_provider.is_available(),
        "extraction_provider": extraction_provider.get_provider_name(),
        "vector_store": vector_store.is_available(),
    }

    return {
        "settings": app_settings,
        "http_client": http_client,
        "embedding_provider": embedding_provider,
        "extraction_provider": extraction_provider,
        "vector_store": vector_store,
        "document_store": document_store,
        "blob_storage": blob_storage,
        "query_cache": query_cache,
        "status_tracker": status_tracker,
        "ingestion_service": ingestion_service,
        "ingestion_queue": ingestion_queue,
        "document_service": document_service,
        "retrieval_service": retrieval_service,
        "provider_registry": provider_registry,
        "max_upload_bytes": app_settings.max_upload_bytes,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["document_store"].initialize()
    ingestion_queue: IngestionQueue = components["ingestion_queue"]
    ingestion_queue.start()

    _logger.info(
        "app_startup",
        version=_APP_VERSION,
        environment=settings.app_env,
        embedding_provider=components["provider_registry"]["embedding_provider"],
        extraction_provider=components["provider_registry"]["extraction_provider"],
        workers=settings.ingestion_workers,
    )

    yield

    # -- Shutdown: stop workers, then close the shared httpx client --
    await ingestion_queue.stop()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="Ingestion workers stopped, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title=f"{_APP_NAME} API",
        version=_APP_VERSION,
        description=(
            "Upload documents, track their ingestion into a vector index, and "
            "retrieve cited context for questions scoped to a project."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/documents/{document_id}")
    async def ws_document_status(websocket: WebSocket, document_id: str) -> None:
        await websocket_document_status(websocket, document_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
