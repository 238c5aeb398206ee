"""Pipeline models: stages, progress events, the audit log and batch results.

Architecture note:
    The orchestrator (docbrief/pipeline/orchestrator.py) moves each
    document through :class:`~docbrief.models.document.DocumentStatus`
    and, after every transition, emits a :class:`ProgressEvent` through
    the progress tracker.  Each stage also appends
    :class:`ProcessingLogEntry` rows to the record store.  Log entries are
    never updated, so a failed document keeps its complete history.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docbrief.models.delivery import BatchDeliveryResult
from docbrief.models.document import DocumentStatus
from docbrief.models.summary import SummaryOptions


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Stages and progress
# ---------------------------------------------------------------------------
class PipelineStage(str, Enum):  # noqa: UP042
    """Units of work recorded in the processing log."""

    UPLOAD = "upload"
    EXTRACTION = "extraction"
    INDEXING = "indexing"
    SUMMARIZATION = "summarization"
    DELIVERY = "delivery"


class ProgressStage(str, Enum):  # noqa: UP042
    """Stage names carried by progress events."""

    UPLOADING = "uploading"
    EXTRACTING = "extracting"
    INDEXING = "indexing"
    SUMMARIZING = "summarizing"
    SENDING = "sending"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressEvent(BaseModel):
    """One progress notification for a processing session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    stage: ProgressStage
    # Batch-level completion; never decreases within a session.
    percent: float = Field(ge=0.0, le=100.0)
    message: str = ""
    document_id: str | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------
class LogStatus(str, Enum):  # noqa: UP042
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingLogEntry(BaseModel):
    """Append-only audit record for one stage event of one document."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    stage: PipelineStage
    status: LogStatus
    message: str = ""
    duration_ms: int | None = None
    error_details: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Requests and results
# ---------------------------------------------------------------------------
class ProcessingOptions(BaseModel):
    """Per-batch processing request."""

    model_config = ConfigDict(frozen=True)

    summary: SummaryOptions = Field(default_factory=SummaryOptions)
    # When set, summaries are delivered to this address after summarization.
    recipient: str | None = None
    index_for_search: bool = True


class DocumentOutcome(BaseModel):
    """Final state of one document after a pipeline run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    status: DocumentStatus
    summary_id: str | None = None
    chunk_count: int = 0
    degraded: bool = False
    failed_stage: PipelineStage | None = None
    error: str | None = None


class BatchResult(BaseModel):
    """Outcome of a batch: one entry per document plus the delivery result."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    outcomes: list[DocumentOutcome] = Field(default_factory=list)
    delivery: BatchDeliveryResult | None = None

    @property
    def completed(self) -> list[DocumentOutcome]:
        return [o for o in self.outcomes if o.status == DocumentStatus.COMPLETED]

    @property
    def failed(self) -> list[DocumentOutcome]:
        return [o for o in self.outcomes if o.status == DocumentStatus.FAILED]


class ProcessingStats(BaseModel):
    """Aggregate processing statistics for one owner."""

    model_config = ConfigDict(frozen=True)

    total_documents: int = 0
    total_summaries: int = 0
    average_processing_time_ms: float = 0.0
    # Percentage of terminal documents that completed.
    success_rate: float = 0.0
