"""Document models for the docbrief pipeline.

Defines the supported media types, the document lifecycle state machine,
the persisted :class:`Document` record, the incoming
:class:`DocumentSubmission` and the :class:`ExtractionResult` produced by
the text extractor.

All models use frozen config: state transitions produce new instances via
``model_copy(update={...})`` and the orchestrator persists each new copy.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# MediaType - the closed set of document formats the extractor understands.
# ---------------------------------------------------------------------------
class MediaType(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Supported declared media types."""

    PDF = "application/pdf"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    MSWORD = "application/msword"
    TEXT = "text/plain"

    @property
    def label(self) -> str:
        """Short human label used in delivery messages."""
        return _MEDIA_LABELS[self]

    @property
    def is_word_processing(self) -> bool:
        return self in (MediaType.DOCX, MediaType.MSWORD)


_MEDIA_LABELS: dict[MediaType, str] = {
    MediaType.PDF: "PDF",
    MediaType.DOCX: "Word document",
    MediaType.MSWORD: "Word document",
    MediaType.TEXT: "Text file",
}

_EXTENSION_TYPES: dict[str, MediaType] = {
    ".pdf": MediaType.PDF,
    ".docx": MediaType.DOCX,
    ".doc": MediaType.MSWORD,
    ".txt": MediaType.TEXT,
}

# Declared types that carry no information and defer to the file extension.
_GENERIC_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})


def resolve_media_type(declared: str | None, filename: str) -> MediaType | None:
    """Resolve a declared content type (plus filename) to a :class:`MediaType`.

    The declared type wins when it is supported.  A missing or generic type
    falls back to the filename extension.  Returns ``None`` when neither
    identifies a supported format.
    """
    normalized = (declared or "").split(";", 1)[0].strip().lower()
    try:
        return MediaType(normalized)
    except ValueError:
        pass
    if normalized not in _GENERIC_TYPES:
        return None
    return _EXTENSION_TYPES.get(PurePath(filename).suffix.lower())


# ---------------------------------------------------------------------------
# DocumentStatus - the per-document state machine.
# ---------------------------------------------------------------------------
class DocumentStatus(str, Enum):  # noqa: UP042
    """Lifecycle states of a document.

    uploaded → extracting → extracted → summarizing → summarized →
    delivering → completed, with ``failed`` reachable from every
    non-terminal state.  ``summarized → completed`` skips delivery when no
    recipient was requested; ``failed``/``completed → uploaded`` is the
    explicit reprocess path.
    """

    UPLOADED = "uploaded"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    SUMMARIZING = "summarizing"
    SUMMARIZED = "summarized"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)

    def can_transition_to(self, target: DocumentStatus) -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.UPLOADED: frozenset({DocumentStatus.EXTRACTING, DocumentStatus.FAILED}),
    DocumentStatus.EXTRACTING: frozenset({DocumentStatus.EXTRACTED, DocumentStatus.FAILED}),
    DocumentStatus.EXTRACTED: frozenset({DocumentStatus.SUMMARIZING, DocumentStatus.FAILED}),
    DocumentStatus.SUMMARIZING: frozenset({DocumentStatus.SUMMARIZED, DocumentStatus.FAILED}),
    DocumentStatus.SUMMARIZED: frozenset(
        {DocumentStatus.DELIVERING, DocumentStatus.COMPLETED, DocumentStatus.FAILED}
    ),
    DocumentStatus.DELIVERING: frozenset({DocumentStatus.COMPLETED, DocumentStatus.FAILED}),
    DocumentStatus.COMPLETED: frozenset({DocumentStatus.UPLOADED}),
    DocumentStatus.FAILED: frozenset({DocumentStatus.UPLOADED}),
}


# ---------------------------------------------------------------------------
# Document - persisted record for one uploaded file.
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """An uploaded document and its processing state."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    filename: str
    media_type: MediaType
    size_bytes: int = Field(ge=0)
    status: DocumentStatus = DocumentStatus.UPLOADED
    storage_path: str
    # Set once extraction succeeds.
    extracted_text: str | None = None
    # True when the text came from the PDF operator scan, not a real parser.
    extraction_degraded: bool = False
    error_message: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime | None = None
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def new(
        cls,
        *,
        document_id: str,
        owner_id: str,
        filename: str,
        media_type: MediaType,
        size_bytes: int,
        storage_path: str,
        retention_hours: int = 24,
    ) -> Document:
        """Build an ``uploaded`` document with its expiry stamped."""
        now = _utcnow()
        return cls(
            id=document_id,
            owner_id=owner_id,
            filename=filename,
            media_type=media_type,
            size_bytes=size_bytes,
            storage_path=storage_path,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(hours=retention_hours),
        )


class DocumentSubmission(BaseModel):
    """Raw bytes of one file submitted for processing."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str = ""
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class ExtractionResult(BaseModel):
    """Plain text produced by the text extractor."""

    model_config = ConfigDict(frozen=True)

    text: str
    media_type: MediaType
    # Low-confidence output that was not produced by a real parser.
    degraded: bool = False
    method: str
    page_count: int | None = None

    @property
    def char_count(self) -> int:
        return len(self.text)
