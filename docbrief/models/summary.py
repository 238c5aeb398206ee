"""Summary models.

:class:`SummaryOptions` carries the caller's length/style/language request,
:class:`SummaryDraft` is what the summarizer returns, and :class:`Summary`
is the persisted record.  Several summaries may exist for one document;
delivery always uses the most recent by ``created_at``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SummaryStyle(str, Enum):  # noqa: UP042
    """Supported summary styles."""

    CONCISE = "concise"
    DETAILED = "detailed"
    BULLETED = "bulleted"


class SummaryOptions(BaseModel):
    """Caller constraints for one summary."""

    model_config = ConfigDict(frozen=True)

    max_length: int = Field(default=500, gt=0, description="Soft word budget")
    style: SummaryStyle = SummaryStyle.CONCISE
    language: str = "English"


class SummaryDraft(BaseModel):
    """Output of :class:`~docbrief.services.summarization.summarizer.Summarizer`."""

    model_config = ConfigDict(frozen=True)

    text: str
    word_count: int
    model: str
    processing_time_ms: int
    # True when the first response was empty or far over budget.
    retried: bool = False


class Summary(BaseModel):
    """A persisted summary of one document."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    owner_id: str
    text: str
    word_count: int
    processing_time_ms: int
    model: str
    style: SummaryStyle = SummaryStyle.CONCISE
    language: str = "English"
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


def count_words(text: str) -> int:
    """Count whitespace-separated words in *text*."""
    return len(text.split())
