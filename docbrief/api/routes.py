"""FastAPI API routes for the docbrief pipeline.

Thin adapters over the core: every handler resolves the caller's owner id
from the bearer token, then delegates to the pipeline, retriever, record
store or delivery dispatcher held on ``app.state``.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                  Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/documents                         POST    Upload a batch and process it
# /api/v1/documents                         GET     List the caller's documents
# /api/v1/documents/{id}                    GET     Document status + latest summary
# /api/v1/documents/{id}/logs               GET     Processing log (audit trail)
# /api/v1/documents/{id}/reprocess          POST    Re-run a finished document
# /api/v1/documents/{id}/deliver            POST    Send the latest summary
# /api/v1/sessions/{sid}/status             GET     Poll batch progress
# /api/v1/search                            POST    Search the caller's chunks
# /api/v1/ask                               POST    Answer a question from the caller's chunks
# /api/v1/stats                             GET     Processing statistics
# /api/v1/delivery/test                     POST    Send a test message
# /api/v1/health                            GET     Health check (no auth)
#
# DEPENDENCY INJECTION PATTERN:
# Each route declares its dependencies as Annotated params; the helper
# functions read singletons from app.state (populated in main.py).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile

from docbrief.api.schemas import (
    AskRequest,
    AskResponse,
    BatchSubmitResponse,
    DeliverRequest,
    DeliveryResponse,
    DocumentListResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    ProcessingLogResponse,
    ReprocessRequest,
    SearchHit,
    SearchRequest,
    SearchResponse,
    SessionStatusResponse,
    StatsResponse,
    TestMessageRequest,
)
from docbrief.interfaces.identity_resolver import IIdentityResolver
from docbrief.interfaces.record_store import IRecordStore
from docbrief.models.delivery import DeliveryArtifact, DeliveryItem, DeliveryResult
from docbrief.models.document import Document, DocumentSubmission
from docbrief.models.pipeline import DocumentOutcome, ProcessingOptions
from docbrief.models.summary import SummaryOptions, SummaryStyle
from docbrief.pipeline.orchestrator import DocumentPipeline
from docbrief.pipeline.progress_tracker import ProgressTracker
from docbrief.services.delivery.dispatcher import DeliveryDispatcher
from docbrief.services.delivery.message_formatter import format_item
from docbrief.services.retrieval.qa_service import QAService
from docbrief.services.retrieval.retriever import Retriever
from docbrief.utils.errors import AuthenticationError, ValidationError
from docbrief.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_pipeline(request: Request) -> DocumentPipeline:
    return request.app.state.pipeline


def _get_progress_tracker(request: Request) -> ProgressTracker:
    return request.app.state.progress_tracker


def _get_record_store(request: Request) -> IRecordStore:
    return request.app.state.record_store


def _get_retriever(request: Request) -> Retriever:
    return request.app.state.retriever


def _get_qa_service(request: Request) -> QAService | None:
    """Return the QA service, or ``None`` when no LLM is configured."""
    return getattr(request.app.state, "qa_service", None)


def _get_dispatcher(request: Request) -> DeliveryDispatcher | None:
    """Return the delivery dispatcher, or ``None`` when delivery is disabled."""
    return getattr(request.app.state, "dispatcher", None)


async def _get_owner_id(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Resolve the bearer token in ``Authorization`` to an owner id.

    Raises
    ------
    AuthenticationError
        On a missing header or an unknown token (mapped to 401).
    """
    resolver: IIdentityResolver = request.app.state.identity_resolver
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError(message="Missing bearer token")
    return await resolver.resolve(token.strip())


PipelineDep = Annotated[DocumentPipeline, Depends(_get_pipeline)]
TrackerDep = Annotated[ProgressTracker, Depends(_get_progress_tracker)]
RecordStoreDep = Annotated[IRecordStore, Depends(_get_record_store)]
RetrieverDep = Annotated[Retriever, Depends(_get_retriever)]
DispatcherDep = Annotated[DeliveryDispatcher | None, Depends(_get_dispatcher)]
QAServiceDep = Annotated[QAService | None, Depends(_get_qa_service)]
OwnerDep = Annotated[str, Depends(_get_owner_id)]


def _summary_options(max_length: int, style: str, language: str) -> SummaryOptions:
    try:
        summary_style = SummaryStyle(style.lower())
    except ValueError as exc:
        allowed = ", ".join(s.value for s in SummaryStyle)
        raise ValidationError(message=f"Unknown summary style {style!r}; use one of {allowed}") from exc
    if max_length <= 0:
        raise ValidationError(message="max_length must be positive")
    return SummaryOptions(max_length=max_length, style=summary_style, language=language)


async def _owned_document(store: IRecordStore, document_id: str, owner_id: str) -> Document:
    document = await store.get_document(document_id, owner_id=owner_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return document


def _delivery_response(result: DeliveryResult) -> DeliveryResponse:
    record = result.record
    return DeliveryResponse(
        success=result.success,
        provider=result.provider_name,
        provider_message_id=result.provider_message_id,
        error=result.error,
        delivery_id=record.id if record else None,
        attempts=record.attempts if record else 0,
        record_error=result.record_error,
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=BatchSubmitResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    summary="Upload a batch of documents and process it",
)
async def submit_documents(
    pipeline: PipelineDep,
    owner_id: OwnerDep,
    files: Annotated[list[UploadFile], File()],
    recipient: Annotated[str | None, Form()] = None,
    max_length: Annotated[int, Form()] = 500,
    style: Annotated[str, Form()] = "concise",
    language: Annotated[str, Form()] = "English",
    index_for_search: Annotated[bool, Form()] = True,
    session_id: Annotated[str | None, Form()] = None,
) -> BatchSubmitResponse:
    """Validate, store and process the uploaded files.

    Clients that want live progress pick a ``session_id`` up front and
    open ``/ws/progress/{session_id}`` before posting.
    """
    submissions = [
        DocumentSubmission(
            filename=upload.filename or "document",
            content_type=upload.content_type or "",
            data=await upload.read(),
        )
        for upload in files
    ]
    options = ProcessingOptions(
        summary=_summary_options(max_length, style, language),
        recipient=recipient or None,
        index_for_search=index_for_search,
    )
    result = await pipeline.submit_batch(submissions, owner_id, options, session_id)
    return BatchSubmitResponse(
        session_id=result.session_id,
        outcomes=result.outcomes,
        completed=len(result.completed),
        failed=len(result.failed),
        delivered=result.delivery.sent_count if result.delivery else 0,
    )


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List the caller's documents",
)
async def list_documents(
    store: RecordStoreDep,
    owner_id: OwnerDep,
    limit: int = 50,
) -> DocumentListResponse:
    documents = await store.list_documents(owner_id, limit=max(1, min(limit, 200)))
    items = [DocumentResponse.from_models(d, None) for d in documents]
    return DocumentListResponse(documents=items, total=len(items))


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a document's status and latest summary",
)
async def get_document(
    document_id: str,
    store: RecordStoreDep,
    owner_id: OwnerDep,
) -> DocumentResponse:
    document = await _owned_document(store, document_id, owner_id)
    summary = await store.get_latest_summary(document.id)
    return DocumentResponse.from_models(document, summary)


@router.get(
    "/documents/{document_id}/logs",
    response_model=ProcessingLogResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a document's processing log",
)
async def get_document_logs(
    document_id: str,
    store: RecordStoreDep,
    owner_id: OwnerDep,
) -> ProcessingLogResponse:
    document = await _owned_document(store, document_id, owner_id)
    entries = await store.list_logs(document.id)
    return ProcessingLogResponse(document_id=document.id, entries=entries)


@router.post(
    "/documents/{document_id}/reprocess",
    response_model=DocumentOutcome,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Re-run a finished document through the pipeline",
)
async def reprocess_document(
    document_id: str,
    pipeline: PipelineDep,
    store: RecordStoreDep,
    owner_id: OwnerDep,
    body: ReprocessRequest | None = None,
) -> DocumentOutcome:
    await _owned_document(store, document_id, owner_id)
    body = body or ReprocessRequest()
    options = ProcessingOptions(
        summary=_summary_options(body.max_length, body.style, body.language),
        recipient=body.recipient,
    )
    return await pipeline.reprocess(document_id, owner_id, options)


@router.post(
    "/documents/{document_id}/deliver",
    response_model=DeliveryResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Send a document's latest summary",
)
async def deliver_document(
    document_id: str,
    body: DeliverRequest,
    store: RecordStoreDep,
    dispatcher: DispatcherDep,
    owner_id: OwnerDep,
) -> DeliveryResponse:
    """Make one delivery attempt of the latest summary.

    A failed attempt is reported in the body, not as an HTTP error.
    """
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Delivery is not configured")
    document = await _owned_document(store, document_id, owner_id)
    summary = await store.get_latest_summary(document.id)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No summary for document {document_id}")

    item = DeliveryItem(
        document_id=document.id,
        summary_id=summary.id,
        owner_id=owner_id,
        filename=document.filename,
        summary_text=summary.text,
        word_count=summary.word_count,
        processing_time_ms=summary.processing_time_ms,
        file_type=document.media_type.label,
    )
    result = await dispatcher.send(
        body.recipient,
        DeliveryArtifact.text(format_item(item, 1, 1)),
        owner_id=owner_id,
        document_id=document.id,
        summary_id=summary.id,
    )
    return _delivery_response(result)


# ---------------------------------------------------------------------------
# Progress, search and statistics
# ---------------------------------------------------------------------------


@router.get(
    "/sessions/{session_id}/status",
    response_model=SessionStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get the latest progress of a processing session",
)
async def get_session_status(
    session_id: str,
    tracker: TrackerDep,
    owner_id: OwnerDep,
) -> SessionStatusResponse:
    event = tracker.get_status(session_id, owner_id=owner_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return SessionStatusResponse(
        session_id=session_id,
        stage=event.stage.value,
        percent=round(event.percent, 1),
        message=event.message or None,
        document_id=event.document_id,
        error=event.error,
    )


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Search the caller's indexed documents",
)
async def search(
    body: SearchRequest,
    retriever: RetrieverDep,
    owner_id: OwnerDep,
) -> SearchResponse:
    results = await retriever.search(
        body.query, owner_id, limit=body.limit, threshold=body.threshold
    )
    hits = [SearchHit.from_result(r) for r in results]
    return SearchResponse(query=body.query, results=hits, total=len(hits))


@router.post(
    "/ask",
    response_model=AskResponse,
    responses={
        400: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Answer a question from the caller's indexed documents",
)
async def ask(
    body: AskRequest,
    qa_service: QAServiceDep,
    owner_id: OwnerDep,
) -> AskResponse:
    if qa_service is None:
        raise HTTPException(status_code=503, detail="Question answering is not configured")
    answer = await qa_service.ask(
        body.query, owner_id, limit=body.limit, threshold=body.threshold
    )
    return AskResponse.from_answer(answer)


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Processing statistics for the caller",
)
async def get_stats(store: RecordStoreDep, owner_id: OwnerDep) -> StatsResponse:
    stats = await store.get_processing_stats(owner_id)
    return StatsResponse(owner_id=owner_id, stats=stats)


# ---------------------------------------------------------------------------
# Delivery and system endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/delivery/test",
    response_model=DeliveryResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Send a test message through the active delivery provider",
)
async def send_test_message(
    body: TestMessageRequest,
    dispatcher: DispatcherDep,
    owner_id: OwnerDep,
) -> DeliveryResponse:
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Delivery is not configured")
    result = await dispatcher.send_test_message(body.recipient, owner_id=owner_id)
    return _delivery_response(result)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))

    dispatcher: DeliveryDispatcher | None = getattr(request.app.state, "dispatcher", None)
    if dispatcher is not None:
        try:
            providers["delivery_ok"] = await dispatcher.check_status()
        except Exception as exc:  # noqa: BLE001 -- health reports, never fails
            _logger.warning("delivery_health_check_failed", error=str(exc))
            providers["delivery_ok"] = False

    critical_ok = providers.get("llm", False) and providers.get("record_store", False)
    if critical_ok and providers.get("delivery_ok", True):
        status = "healthy"
    elif critical_ok:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=_VERSION, providers=providers)
