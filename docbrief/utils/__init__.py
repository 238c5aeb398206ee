"""Utility modules for docbrief.

- **errors** -- Domain exception hierarchy rooted at DocBriefError; the
  pipeline reacts to each branch differently (reject, retry, fail item).
- **concurrency** -- Semaphore-bounded gather and the timeout/retry wrapper
  used around every external call.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from docbrief.utils.concurrency import call_with_retry, throttled_gather
from docbrief.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    DeliveryError,
    DocBriefError,
    ExtractionFailedError,
    FileTooLargeError,
    InvalidRecipientError,
    LLMError,
    PermanentProcessingError,
    PipelineError,
    QuotaExceededError,
    RAGError,
    StorageError,
    SummarizationFailedError,
    TransientExternalError,
    UnsupportedFormatError,
    ValidationError,
)
from docbrief.utils.logging import configure_logging, get_logger

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "DeliveryError",
    "DocBriefError",
    "ExtractionFailedError",
    "FileTooLargeError",
    "InvalidRecipientError",
    "LLMError",
    "PermanentProcessingError",
    "PipelineError",
    "QuotaExceededError",
    "RAGError",
    "StorageError",
    "SummarizationFailedError",
    "TransientExternalError",
    "UnsupportedFormatError",
    "ValidationError",
    "call_with_retry",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
