"""API middleware: CORS, request logging, and error handling.

Provides helper functions and middleware classes to configure cross-origin
resource sharing, structured request logging (via structlog), and automatic
conversion of ``DocBriefError`` subclasses into JSON ``ErrorResponse``
bodies with a status code chosen from the exception type.

# ─── MIDDLEWARE EXECUTION ORDER ───────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)   # added 1st, inner
#     app.add_middleware(RequestLoggingMiddleware)  # added 2nd, outer
#
#   Request flow:
#     Client → RequestLogging → ErrorHandling → route handler
#
# So RequestLoggingMiddleware sees the *final* response status code,
# including the ones ErrorHandlingMiddleware produced.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from docbrief.api.schemas import ErrorResponse
from docbrief.utils.errors import (
    AuthenticationError,
    DocBriefError,
    FileTooLargeError,
    PipelineError,
    QuotaExceededError,
    TransientExternalError,
    UnsupportedFormatError,
    ValidationError,
)
from docbrief.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_CODES: tuple[tuple[type[DocBriefError], int], ...] = (
    (FileTooLargeError, 413),
    (UnsupportedFormatError, 415),
    (QuotaExceededError, 429),
    (ValidationError, 400),
    (AuthenticationError, 401),
    (PipelineError, 409),
    (TransientExternalError, 502),
)


def status_code_for(exc: DocBriefError) -> int:
    """Return the HTTP status code used to report *exc*."""
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


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
        Explicit list of allowed origins.  Defaults to ``["*"]`` for
        development; override with specific origins in production.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``DocBriefError`` subclasses and return structured JSON errors.

    Validation failures map to 400/413/415/429, authentication failures
    to 401, illegal state transitions to 409, external-service failures
    to 502 and everything else to 500.  Stack traces stay in the server
    log; the client sees only the exception class name and message.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except DocBriefError as exc:
            status_code = status_code_for(exc)
            log = _logger.warning if status_code < 500 else _logger.error
            log(
                "application_error",
                error_type=type(exc).__name__,
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
