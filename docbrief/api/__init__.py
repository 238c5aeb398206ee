"""docbrief API layer: routes, schemas, WebSocket, and middleware."""

from docbrief.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from docbrief.api.routes import router
from docbrief.api.schemas import (
    BatchSubmitResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    SearchRequest,
    SearchResponse,
)
from docbrief.api.websocket import websocket_progress

__all__ = [
    "BatchSubmitResponse",
    "DocumentResponse",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "RequestLoggingMiddleware",
    "SearchRequest",
    "SearchResponse",
    "configure_cors",
    "router",
    "websocket_progress",
]
