"""docbrief domain models - re-exports all public model classes.

The models are organised by domain concern:
    - document.py  - Documents, media types and the lifecycle state machine
    - rag.py       - Owner-scoped chunks and search results
    - summary.py   - Summary options, drafts and persisted summaries
    - delivery.py  - Delivery artifacts, records and results
    - pipeline.py  - Stages, progress events, audit log and batch results
"""

from __future__ import annotations

from docbrief.models.delivery import (
    ArtifactKind,
    BatchDeliveryResult,
    DeliveryArtifact,
    DeliveryItem,
    DeliveryRecord,
    DeliveryResult,
    DeliveryStatus,
)
from docbrief.models.document import (
    Document,
    DocumentStatus,
    DocumentSubmission,
    ExtractionResult,
    MediaType,
    resolve_media_type,
)
from docbrief.models.pipeline import (
    BatchResult,
    DocumentOutcome,
    LogStatus,
    PipelineStage,
    ProcessingLogEntry,
    ProcessingOptions,
    ProcessingStats,
    ProgressEvent,
    ProgressStage,
)
from docbrief.models.rag import Chunk, MatchType, SearchResult
from docbrief.models.summary import (
    Summary,
    SummaryDraft,
    SummaryOptions,
    SummaryStyle,
    count_words,
)

__all__ = [
    "ArtifactKind",
    "BatchDeliveryResult",
    "BatchResult",
    "Chunk",
    "DeliveryArtifact",
    "DeliveryItem",
    "DeliveryRecord",
    "DeliveryResult",
    "DeliveryStatus",
    "Document",
    "DocumentOutcome",
    "DocumentStatus",
    "DocumentSubmission",
    "ExtractionResult",
    "LogStatus",
    "MatchType",
    "MediaType",
    "PipelineStage",
    "ProcessingLogEntry",
    "ProcessingOptions",
    "ProcessingStats",
    "ProgressEvent",
    "ProgressStage",
    "SearchResult",
    "Summary",
    "SummaryDraft",
    "SummaryOptions",
    "SummaryStyle",
    "count_words",
    "resolve_media_type",
]
