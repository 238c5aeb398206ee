"""Pydantic request/response schemas for the docbrief API.

Defines the public contract for the REST endpoints: batch submission,
document status and processing log, search, reprocessing, delivery,
statistics and health.

# ─── SCHEMA CONVENTIONS ───────────────────────────────────────────────
#
# Request schemas end with "Request", response schemas end with
# "Response".  Domain models from docbrief.models are reused as nested
# fields where their shape is already the public one (DocumentOutcome,
# ProcessingLogEntry, ProcessingStats).  Bytes and embeddings never
# leave the server.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from docbrief.models.document import Document
from docbrief.models.pipeline import DocumentOutcome, ProcessingLogEntry, ProcessingStats
from docbrief.models.rag import Answer, AnswerSource, SearchResult
from docbrief.models.summary import Summary


class BatchSubmitResponse(BaseModel):
    """Result of a processed upload batch."""

    session_id: str
    outcomes: list[DocumentOutcome]
    completed: int
    failed: int
    delivered: int = 0


class DocumentResponse(BaseModel):
    """A stored document with its latest summary, if any."""

    id: str
    filename: str
    media_type: str
    size_bytes: int
    status: str
    extraction_degraded: bool = False
    error_message: str | None = None
    created_at: datetime
    expires_at: datetime | None = None
    summary: str | None = None
    summary_word_count: int | None = None

    @classmethod
    def from_models(cls, document: Document, summary: Summary | None) -> DocumentResponse:
        return cls(
            id=document.id,
            filename=document.filename,
            media_type=document.media_type.value,
            size_bytes=document.size_bytes,
            status=document.status.value,
            extraction_degraded=document.extraction_degraded,
            error_message=document.error_message,
            created_at=document.created_at,
            expires_at=document.expires_at,
            summary=summary.text if summary else None,
            summary_word_count=summary.word_count if summary else None,
        )


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
    total: int


class ProcessingLogResponse(BaseModel):
    document_id: str
    entries: list[ProcessingLogEntry]


class SessionStatusResponse(BaseModel):
    """Latest progress snapshot for a processing session."""

    session_id: str
    stage: str
    percent: float
    message: str | None = None
    document_id: str | None = None
    error: str | None = None


class SearchRequest(BaseModel):
    """Semantic search over the caller's own documents."""

    query: str = Field(..., min_length=1, max_length=2000)
    limit: int | None = Field(default=None, ge=1, le=50)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class SearchHit(BaseModel):
    document_id: str
    chunk_id: str
    sequence: int
    text: str
    similarity: float
    match_type: str

    @classmethod
    def from_result(cls, result: SearchResult) -> SearchHit:
        return cls(
            document_id=result.chunk.document_id,
            chunk_id=result.chunk.id,
            sequence=result.chunk.sequence,
            text=result.chunk.text,
            similarity=round(result.similarity, 4),
            match_type=result.match_type.value,
        )


class SearchResponse(BaseModel):
    query: str
    results: list[SearchHit]
    total: int


class AskRequest(BaseModel):
    """A question answered from the caller's own documents."""

    query: str = Field(..., min_length=1, max_length=2000)
    limit: int | None = Field(default=None, ge=1, le=20)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class AskResponse(BaseModel):
    question: str
    answer: str
    grounded: bool
    model: str | None = None
    sources: list[AnswerSource]

    @classmethod
    def from_answer(cls, answer: Answer) -> AskResponse:
        return cls(
            question=answer.question,
            answer=answer.answer,
            grounded=answer.grounded,
            model=answer.model,
            sources=answer.sources,
        )


class ReprocessRequest(BaseModel):
    max_length: int = Field(default=500, gt=0)
    style: str = "concise"
    language: str = "English"
    recipient: str | None = None


class DeliverRequest(BaseModel):
    """Send a document's latest summary to a recipient."""

    recipient: str = Field(..., min_length=1)


class TestMessageRequest(BaseModel):
    recipient: str = Field(..., min_length=1)


class DeliveryResponse(BaseModel):
    success: bool
    provider: str | None = None
    provider_message_id: str | None = None
    error: str | None = None
    delivery_id: str | None = None
    attempts: int = 0
    record_error: str | None = None


class StatsResponse(BaseModel):
    owner_id: str
    stats: ProcessingStats


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
