"""docrag API layer: routes, schemas, WebSocket, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    RetrieveRequest,
    RetrieveResponse,
)
from src.api.websocket import websocket_document_status

__all__ = [
    "DocumentResponse",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "RequestLoggingMiddleware",
    "RetrieveRequest",
    "RetrieveResponse",
    "configure_cors",
    "router",
    "websocket_document_status",
]
