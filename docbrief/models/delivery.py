"""Delivery models: artifacts, attempt-tracking records and send results.

Every delivery provider returns the same :class:`DeliveryResult` shape, so
the dispatcher and the orchestrator never depend on which backend is
active.  A :class:`DeliveryRecord` tracks one logical delivery across
attempts; its ``attempts`` counter only ever grows.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class DeliveryStatus(str, Enum):  # noqa: UP042
    """Lifecycle of a delivery record."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class ArtifactKind(str, Enum):  # noqa: UP042
    TEXT = "text"
    DOCUMENT = "document"


class DeliveryArtifact(BaseModel):
    """What gets sent: a text message, or a document link with a caption."""

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind = ArtifactKind.TEXT
    # Message body, or caption when kind is DOCUMENT.
    body: str
    document_url: str | None = None
    filename: str | None = None

    @classmethod
    def text(cls, body: str) -> DeliveryArtifact:
        return cls(kind=ArtifactKind.TEXT, body=body)


class DeliveryRecord(BaseModel):
    """Persisted attempt-tracking record for one delivery."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    recipient: str
    document_id: str | None = None
    summary_id: str | None = None
    artifact_ref: str | None = None
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    last_error: str | None = None
    provider_name: str | None = None
    provider_message_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    last_attempt_at: datetime | None = None
    delivered_at: datetime | None = None


class DeliveryResult(BaseModel):
    """Outcome of exactly one send attempt."""

    model_config = ConfigDict(frozen=True)

    success: bool
    provider_message_id: str | None = None
    error: str | None = None
    provider_name: str | None = None
    # Populated by the dispatcher once the attempt has been recorded.
    record: DeliveryRecord | None = None
    # Set when the attempt happened but its record could not be updated.
    record_error: str | None = None


class DeliveryItem(BaseModel):
    """One summarized document inside a batch delivery."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    summary_id: str
    owner_id: str
    filename: str
    summary_text: str
    word_count: int
    processing_time_ms: int
    file_type: str
    document_url: str | None = None


class BatchDeliveryResult(BaseModel):
    """Per-message results of a header / items / footer batch."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    header: DeliveryResult | None = None
    items: list[DeliveryResult] = Field(default_factory=list)
    footer: DeliveryResult | None = None

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.items if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.items if not r.success)

    @property
    def message_count(self) -> int:
        """Number of messages attempted, including header and footer."""
        extra = int(self.header is not None) + int(self.footer is not None)
        return len(self.items) + extra
