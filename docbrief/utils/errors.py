"""Custom exception hierarchy for docbrief.

All application exceptions inherit from :class:`DocBriefError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "twilio", "chromadb") caused the failure.

The hierarchy is organised by how the pipeline reacts to the failure:

    DocBriefError  (base -- catch-all for any docbrief error)
    +-- ValidationError            (pre-flight, user-facing, never retried)
    |   +-- UnsupportedFormatError
    |   +-- FileTooLargeError
    |   +-- InvalidRecipientError
    |   +-- QuotaExceededError
    +-- TransientExternalError     (network / rate limit / timeout)
    |   +-- RAGError               (embedding or vector-store failure)
    |   +-- LLMError               (generation call failure)
    |   +-- DeliveryError          (delivery transport failure)
    +-- PermanentProcessingError   (document is marked failed)
    |   +-- ExtractionFailedError
    |   +-- SummarizationFailedError
    +-- StorageError               (persistence write failed)
    +-- PipelineError              (illegal document state transition)
    +-- ConfigurationError         (startup / missing config)
    +-- AuthenticationError        (token could not be resolved to an owner)

Callers retry ``TransientExternalError`` a small fixed number of times,
fail the current document on ``PermanentProcessingError`` and reject the
request up front on ``ValidationError``.
"""


class DocBriefError(Exception):
    """Base exception for all docbrief errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets, e.g.
    ``[twilio] Authentication failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Pre-flight validation errors
# ---------------------------------------------------------------------------

class ValidationError(DocBriefError):
    """Raised when a submission or recipient is rejected before any work starts."""

    def __init__(
        self,
        message: str = "Validation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedFormatError(ValidationError):
    """Raised when a document's media type is outside the supported set."""

    def __init__(
        self,
        message: str = "Unsupported document format",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class FileTooLargeError(ValidationError):
    """Raised when an uploaded file exceeds the configured size limit."""

    def __init__(
        self,
        message: str = "File too large",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidRecipientError(ValidationError):
    """Raised when a delivery address fails validation.

    Always raised before any delivery provider is contacted.
    """

    def __init__(
        self,
        message: str = "Invalid recipient address",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QuotaExceededError(ValidationError):
    """Raised when an owner exceeds the hourly upload quota."""

    def __init__(
        self,
        message: str = "Upload quota exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service errors (retryable)
# ---------------------------------------------------------------------------

class TransientExternalError(DocBriefError):
    """Raised when an external call fails on network, rate-limit or timeout.

    These are retried a small fixed number of times (see
    :func:`docbrief.utils.concurrency.call_with_retry`) or degraded via a
    fallback path where one exists.
    """

    def __init__(
        self,
        message: str = "External service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RAGError(TransientExternalError):
    """Raised when an embedding or vector-store operation fails."""

    def __init__(
        self,
        message: str = "RAG operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(TransientExternalError):
    """Raised when an LLM API call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DeliveryError(TransientExternalError):
    """Raised when a delivery provider cannot be reached or rejects a message."""

    def __init__(
        self,
        message: str = "Delivery failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Processing errors (document fails, batch continues)
# ---------------------------------------------------------------------------

class PermanentProcessingError(DocBriefError):
    """Raised when a document cannot be processed and retrying will not help."""

    def __init__(
        self,
        message: str = "Document processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionFailedError(PermanentProcessingError):
    """Raised when text extraction yields nothing usable."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SummarizationFailedError(PermanentProcessingError):
    """Raised when the summary cannot be produced after retrying."""

    def __init__(
        self,
        message: str = "Summarization failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------

class StorageError(DocBriefError):
    """Raised when a record-store or object-store operation fails."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PipelineError(DocBriefError):
    """Raised on an illegal document state transition."""

    def __init__(
        self,
        message: str = "Pipeline processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(DocBriefError):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str = "Configuration error",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AuthenticationError(DocBriefError):
    """Raised when a session token cannot be resolved to an owner."""

    def __init__(
        self,
        message: str = "Authentication failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
