"""FastAPI API routes for docrag.

Provides REST endpoints for document upload and lifecycle, retrieval,
cache administration and health.  Service dependencies are resolved from
``app.state`` via FastAPI's ``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP (Junior Developer Guide) ───────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/documents                     POST    Multipart upload → 202, queued
# /api/v1/documents/from-url            POST    Register URL-sourced doc → 202
# /api/v1/documents                     GET     List (project + global)
# /api/v1/documents/{id}                GET     Status record
# /api/v1/documents/{id}/index          GET     Record vs index chunk counts
# /api/v1/documents/{id}/reingest       POST    Reset to pending, re-queue
# /api/v1/documents/{id}                DELETE  Segments → record → blob
# /api/v1/documents/bulk-delete         POST    Delete many
# /api/v1/retrieve                      POST    Cited context for a query
# /api/v1/cache/stats                   GET     Query cache counters
# /api/v1/cache                         DELETE  Clear the query cache
# /api/v1/health                        GET     Health + provider status
#
# Lifecycle errors (404 / 409 / 415) are raised by the services and
# mapped to status codes by ErrorHandlingMiddleware.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, UploadFile

from src.api.schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    CacheStatsResponse,
    DocumentListResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    RegisterUrlRequest,
    RetrieveRequest,
    RetrieveResponse,
)
from src.interfaces.cache_provider import IQueryCache
from src.services.document_service import DocumentService
from src.services.retrieval_service import RetrievalService
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_APP_VERSION = "0.1.0"

# Uploads are read in 64 KB increments so oversized files are rejected
# without buffering the whole payload.
_UPLOAD_CHUNK_SIZE = 64 * 1024
_DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _get_document_service(request: Request) -> DocumentService:
    """Return the document lifecycle service from application state."""
    return request.app.state.document_service


def _get_retrieval_service(request: Request) -> RetrievalService:
    """Return the retriever from application state."""
    return request.app.state.retrieval_service


def _get_query_cache(request: Request) -> IQueryCache:
    """Return the query cache from application state."""
    return request.app.state.query_cache


DocumentServiceDep = Annotated[DocumentService, Depends(_get_document_service)]
RetrievalServiceDep = Annotated[RetrievalService, Depends(_get_retrieval_service)]
QueryCacheDep = Annotated[IQueryCache, Depends(_get_query_cache)]


async def _read_upload(file: UploadFile, max_bytes: int) -> bytes:
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large: maximum is {max_bytes} bytes.",
            )
        chunks.append(chunk)
    return b"".join(chunks)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=DocumentResponse,
    status_code=202,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
    summary="Upload a document for ingestion",
)
async def upload_document(
    request: Request,
    file: UploadFile,
    service: DocumentServiceDep,
    project_id: Annotated[str | None, Form()] = None,
) -> DocumentResponse:
    """Store the file, create a ``pending`` record and queue ingestion."""
    max_bytes = getattr(request.app.state, "max_upload_bytes", _DEFAULT_MAX_UPLOAD_BYTES)
    data = await _read_upload(file, max_bytes)
    try:
        record = await service.register_upload(
            filename=file.filename or "upload",
            content_type=file.content_type or "application/octet-stream",
            data=data,
            project_id=project_id or None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DocumentResponse.from_record(record)


@router.post(
    "/documents/from-url",
    response_model=DocumentResponse,
    status_code=202,
    responses={400: {"model": ErrorResponse}},
    summary="Register a document to download from a URL",
)
async def register_url_document(
    body: RegisterUrlRequest,
    service: DocumentServiceDep,
) -> DocumentResponse:
    try:
        record = await service.register_url(
            url=body.url,
            filename=body.filename,
            content_type=body.content_type,
            project_id=body.project_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DocumentResponse.from_record(record)


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List documents in a project scope",
)
async def list_documents(
    service: DocumentServiceDep,
    project_id: Annotated[str | None, Query()] = None,
    include_global: Annotated[bool, Query()] = True,
) -> DocumentListResponse:
    """List a project's documents (plus global ones), or global ones only."""
    records = await service.list_documents(project_id=project_id, include_global=include_global)
    return DocumentListResponse(
        documents=[DocumentResponse.from_record(r) for r in records],
        total=len(records),
    )


@router.post(
    "/documents/bulk-delete",
    response_model=BulkDeleteResponse,
    summary="Delete several documents",
)
async def bulk_delete_documents(
    body: BulkDeleteRequest,
    service: DocumentServiceDep,
) -> BulkDeleteResponse:
    summary = await service.bulk_delete(body.document_ids)
    return BulkDeleteResponse(**summary)


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a document's status record",
)
async def get_document(document_id: str, service: DocumentServiceDep) -> DocumentResponse:
    return DocumentResponse.from_record(await service.get_document(document_id))


@router.get(
    "/documents/{document_id}/index",
    responses={404: {"model": ErrorResponse}},
    summary="Compare the recorded chunk count with the index",
)
async def get_document_index(document_id: str, service: DocumentServiceDep) -> dict[str, Any]:
    return await service.get_index_counts(document_id)


@router.post(
    "/documents/{document_id}/reingest",
    response_model=DocumentResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Re-run ingestion for a document",
)
async def reingest_document(document_id: str, service: DocumentServiceDep) -> DocumentResponse:
    """Reset the document to ``pending`` (history kept) and queue it again."""
    return DocumentResponse.from_record(await service.reingest(document_id))


@router.delete(
    "/documents/{document_id}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a document, its segments and its file",
)
async def delete_document(document_id: str, service: DocumentServiceDep) -> None:
    await service.delete_document(document_id)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@router.post(
    "/retrieve",
    response_model=RetrieveResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Retrieve cited context for a query",
)
async def retrieve(body: RetrieveRequest, retriever: RetrievalServiceDep) -> RetrieveResponse:
    """Return segments above the similarity threshold with citations.

    An empty ``segments`` list means nothing relevant is indexed in scope.
    """
    try:
        result = await retriever.retrieve(body.query, scope=body.project_id, top_k=body.top_k)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RetrieveResponse.from_result(result)


# ---------------------------------------------------------------------------
# Cache administration
# ---------------------------------------------------------------------------


@router.get("/cache/stats", response_model=CacheStatsResponse, summary="Query cache counters")
async def cache_stats(cache: QueryCacheDep) -> CacheStatsResponse:
    return CacheStatsResponse(**cache.stats())


@router.delete("/cache", status_code=204, summary="Clear the query cache")
async def clear_cache(cache: QueryCacheDep) -> None:
    cache.clear()


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))

    vector_store = getattr(request.app.state, "vector_store", None)
    if vector_store is not None:
        try:
            stats = await vector_store.get_stats()
            providers["index_chunks"] = stats.total_chunks
            providers["index_documents"] = stats.total_documents
        except Exception as exc:
            _logger.warning("health_index_stats_failed", error=str(exc))
            providers["vector_store"] = False

    queue = getattr(request.app.state, "ingestion_queue", None)
    if queue is not None:
        providers["ingestion_queue"] = queue.running
        providers["ingestion_pending"] = queue.pending

    critical = ("embedding", "extraction", "vector_store")
    if all(providers.get(name, False) for name in critical):
        status = "healthy"
    elif providers.get("vector_store", False):
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=_APP_VERSION, providers=providers)
