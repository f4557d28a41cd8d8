"""API middleware: CORS, request logging, and error-to-status mapping.

``DocRAGError`` subclasses raised by services are turned into JSON
:class:`~src.api.schemas.ErrorResponse` bodies with a status code chosen
by error type, so route handlers can simply let lifecycle errors
propagate.

Starlette runs middleware last-added-first.  ``create_app`` adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware``, so the
request log records the status code *after* error mapping.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import (
    DocRAGError,
    DocumentNotFoundError,
    PipelineError,
    ProviderUnavailableError,
    RateLimitError,
    UnsupportedFormatError,
)
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]``; admin
        UIs on a known domain should pass that domain instead.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


# Polled by load balancers; logged at debug to keep request logs readable.
_QUIET_PATHS = frozenset({"/api/v1/health"})
_REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and tag every line it causes with a request id.

    The id is taken from the ``X-Request-ID`` header when the caller sends
    one, otherwise generated, bound into ``structlog.contextvars`` for the
    duration of the request and echoed back on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(_REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        response: Response | None = None

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
                response.headers[_REQUEST_ID_HEADER] = request_id
                return response
            finally:
                path = str(request.url.path)
                log = _logger.debug if path in _QUIET_PATHS else _logger.info
                log(
                    "http_request",
                    method=request.method,
                    path=path,
                    status=response.status_code if response else 500,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------

# Everything not listed maps to 500.
_STATUS_BY_ERROR: tuple[tuple[type[DocRAGError], int], ...] = (
    (DocumentNotFoundError, 404),
    (UnsupportedFormatError, 415),
    (PipelineError, 409),
    (RateLimitError, 429),
    (ProviderUnavailableError, 503),
)


def status_for(exc: DocRAGError) -> int:
    """Return the HTTP status code for an application error."""
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``DocRAGError`` subclasses and return structured JSON errors.

    Errors are converted into an :class:`ErrorResponse` with the exception
    class name and message; the status code comes from :func:`status_for`.
    Stack traces are logged server-side only.  Exceptions outside the
    ``DocRAGError`` hierarchy propagate to FastAPI's default 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except DocRAGError as exc:
            status_code = status_for(exc)
            log = _logger.error if status_code >= 500 else _logger.warning
            log(
                "application_error",
                error_type=type(exc).__name__,
                code=exc.code,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.message,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
