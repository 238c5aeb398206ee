"""Central orchestrator for the document processing pipeline.

Moves each submitted document through

    uploaded -> extracting -> extracted -> summarizing -> summarized
             -> delivering -> completed            (or failed)

coordinating the object store, text extractor, embedding indexer,
summarizer and delivery dispatcher.  Every collaborator is injected.

ARCHITECTURE NOTE:
    Documents of a batch run concurrently under a semaphore
    (``throttled_gather``).  Each document is isolated: whatever goes
    wrong in one document's stage marks *that* document ``failed`` and
    the others carry on.

    Each stage follows the same pattern:
        1. Transition the frozen Document via model_copy and persist it
        2. Emit a ProgressEvent through the ProgressTracker
        3. Call the service under a timeout (and retry policy)
        4. Append ``started`` / ``completed`` / ``failed`` log entries

    Indexing is best-effort: summaries do not depend on the index, so an
    indexing failure is logged and the document continues.

    Delivery happens once per batch, after every document has settled:
    all summarized documents go out as one header / items / footer batch
    and each document completes or fails on its own item result.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from docbrief.models.delivery import BatchDeliveryResult, DeliveryItem
from docbrief.models.document import (
    Document,
    DocumentStatus,
    DocumentSubmission,
    ExtractionResult,
)
from docbrief.models.pipeline import (
    BatchResult,
    DocumentOutcome,
    LogStatus,
    PipelineStage,
    ProcessingLogEntry,
    ProcessingOptions,
    ProgressStage,
)
from docbrief.models.summary import Summary
from docbrief.pipeline.progress_tracker import ProgressTracker
from docbrief.services.delivery.recipient import normalize_recipient
from docbrief.utils.concurrency import call_with_retry, throttled_gather
from docbrief.utils.errors import (
    DeliveryError,
    DocBriefError,
    PipelineError,
    StorageError,
    ValidationError,
)
from docbrief.utils.logging import get_logger, pipeline_context

if TYPE_CHECKING:
    from docbrief.interfaces.object_store import IObjectStore
    from docbrief.interfaces.record_store import IRecordStore
    from docbrief.pipeline.validation_gate import ValidationGate
    from docbrief.services.delivery.dispatcher import DeliveryDispatcher
    from docbrief.services.extraction.text_extractor import TextExtractor
    from docbrief.services.indexing.embedding_indexer import EmbeddingIndexer
    from docbrief.services.summarization.summarizer import Summarizer


_T = TypeVar("_T")


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# Share of a document's work done once it reaches each status.  The batch
# percentage is the mean over its documents, so it can only grow.
_STATUS_FRACTIONS: dict[DocumentStatus, float] = {
    DocumentStatus.UPLOADED: 0.05,
    DocumentStatus.EXTRACTING: 0.1,
    DocumentStatus.EXTRACTED: 0.35,
    DocumentStatus.SUMMARIZING: 0.45,
    DocumentStatus.SUMMARIZED: 0.7,
    DocumentStatus.DELIVERING: 0.8,
    DocumentStatus.COMPLETED: 1.0,
    DocumentStatus.FAILED: 1.0,
}

_STATUS_PROGRESS_STAGES: dict[DocumentStatus, ProgressStage] = {
    DocumentStatus.UPLOADED: ProgressStage.UPLOADING,
    DocumentStatus.EXTRACTING: ProgressStage.EXTRACTING,
    DocumentStatus.EXTRACTED: ProgressStage.EXTRACTING,
    DocumentStatus.SUMMARIZING: ProgressStage.SUMMARIZING,
    DocumentStatus.SUMMARIZED: ProgressStage.SUMMARIZING,
    DocumentStatus.DELIVERING: ProgressStage.SENDING,
    DocumentStatus.COMPLETED: ProgressStage.COMPLETE,
    DocumentStatus.FAILED: ProgressStage.ERROR,
}


@dataclass
class _DocumentRun:
    """Mutable per-document bookkeeping for one pipeline run (internal only)."""

    document: Document
    summary: Summary | None = None
    chunk_count: int = 0
    failed_stage: PipelineStage | None = None
    error: str | None = None

    def outcome(self) -> DocumentOutcome:
        return DocumentOutcome(
            document_id=self.document.id,
            filename=self.document.filename,
            status=self.document.status,
            summary_id=self.summary.id if self.summary else None,
            chunk_count=self.chunk_count,
            degraded=self.document.extraction_degraded,
            failed_stage=self.failed_stage,
            error=self.error,
        )


class _BatchProgress:
    """Turns per-document status changes into batch-level progress events."""

    def __init__(self, tracker: ProgressTracker, session_id: str, document_ids: list[str]) -> None:
        self._tracker = tracker
        self._session_id = session_id
        self._fractions = {doc_id: 0.0 for doc_id in document_ids}

    @property
    def percent(self) -> float:
        if not self._fractions:
            return 100.0
        return 100.0 * sum(self._fractions.values()) / len(self._fractions)

    async def document_moved(
        self,
        document: Document,
        message: str,
        *,
        stage: ProgressStage | None = None,
        error: str | None = None,
    ) -> None:
        fraction = _STATUS_FRACTIONS[document.status]
        self._fractions[document.id] = max(self._fractions.get(document.id, 0.0), fraction)
        await self._tracker.update(
            self._session_id,
            stage or _STATUS_PROGRESS_STAGES[document.status],
            self.percent,
            message,
            document_id=document.id,
            error=error,
        )

    async def finish(self, message: str) -> None:
        await self._tracker.update(self._session_id, ProgressStage.COMPLETE, 100.0, message)


class DocumentPipeline:
    """Runs batches of documents through extraction, indexing, summarization
    and delivery.

    Parameters
    ----------
    record_store:
        Persists documents, summaries and the processing log.
    object_store:
        Holds the uploaded bytes.
    extractor, indexer, summarizer:
        Stage services.  ``indexer`` may be ``None`` to skip indexing.
    dispatcher:
        Delivery dispatcher; ``None`` disables delivery.
    progress_tracker:
        Receives one event per document status change.
    validation_gate:
        Pre-flight checks run by :meth:`submit_batch`.
    max_concurrent_documents:
        Worker limit within one batch.
    stage_timeout_seconds:
        Per-attempt timeout for each external call.
    external_call_retries:
        Retries for transient failures of indexing calls.
    retention_hours:
        Lifetime stamped on newly uploaded documents.
    max_chunk_chars:
        Chunk budget used for indexing.
    """

    def __init__(
        self,
        record_store: IRecordStore,
        object_store: IObjectStore,
        extractor: TextExtractor,
        summarizer: Summarizer,
        progress_tracker: ProgressTracker,
        validation_gate: ValidationGate,
        indexer: EmbeddingIndexer | None = None,
        dispatcher: DeliveryDispatcher | None = None,
        *,
        max_concurrent_documents: int = 3,
        stage_timeout_seconds: float = 120.0,
        external_call_retries: int = 2,
        retention_hours: int = 24,
        max_chunk_chars: int = 1000,
    ) -> None:
        self._record_store = record_store
        self._object_store = object_store
        self._extractor = extractor
        self._summarizer = summarizer
        self._progress_tracker = progress_tracker
        self._validation_gate = validation_gate
        self._indexer = indexer
        self._dispatcher = dispatcher
        self._max_concurrent_documents = max_concurrent_documents
        self._stage_timeout = stage_timeout_seconds
        self._retries = external_call_retries
        self._retention_hours = retention_hours
        self._max_chunk_chars = max_chunk_chars
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def submit_batch(
        self,
        submissions: list[DocumentSubmission],
        owner_id: str,
        options: ProcessingOptions | None = None,
        session_id: str | None = None,
    ) -> BatchResult:
        """Validate, store and process a batch of uploaded files.

        Raises
        ------
        ValidationError
            From the validation gate, an invalid recipient or a reused
            session id, before any bytes are stored.
        """
        options = options or ProcessingOptions()
        session_id = session_id or str(uuid.uuid4())
        self._progress_tracker.start_session(session_id, owner_id)

        media_types = await self._validation_gate.check(submissions, owner_id)
        if options.recipient is not None:
            normalize_recipient(options.recipient)

        await self._progress_tracker.update(
            session_id,
            ProgressStage.UPLOADING,
            0.0,
            f"Uploading {len(submissions)} document(s)",
        )

        documents: list[Document] = []
        upload_failures: list[DocumentOutcome] = []
        for submission, media_type in zip(submissions, media_types, strict=True):
            document_id = str(uuid.uuid4())
            storage_path = f"{owner_id}/{document_id}/{_safe_filename(submission.filename)}"
            document = Document.new(
                document_id=document_id,
                owner_id=owner_id,
                filename=submission.filename,
                media_type=media_type,
                size_bytes=submission.size_bytes,
                storage_path=storage_path,
                retention_hours=self._retention_hours,
            )
            start = time.monotonic()
            try:
                await self._object_store.put(storage_path, submission.data, media_type.value)
                await self._record_store.insert_document(document)
                await self._append_log(
                    document.id,
                    PipelineStage.UPLOAD,
                    LogStatus.COMPLETED,
                    f"Stored {submission.size_bytes} bytes",
                    duration_ms=_elapsed_ms(start),
                )
            except StorageError as exc:
                self._logger.error(
                    "upload_failed",
                    session_id=session_id,
                    filename=submission.filename,
                    error=str(exc),
                )
                upload_failures.append(
                    DocumentOutcome(
                        document_id=document_id,
                        filename=submission.filename,
                        status=DocumentStatus.FAILED,
                        failed_stage=PipelineStage.UPLOAD,
                        error=str(exc),
                    )
                )
                continue
            documents.append(document)

        self._logger.info(
            "batch_submitted",
            session_id=session_id,
            owner_id=owner_id,
            stored=len(documents),
            upload_failures=len(upload_failures),
        )

        result = await self.process_batch(documents, options, session_id)
        if not upload_failures:
            return result
        return result.model_copy(update={"outcomes": [*result.outcomes, *upload_failures]})

    async def process_batch(
        self,
        documents: list[Document],
        options: ProcessingOptions | None = None,
        session_id: str | None = None,
    ) -> BatchResult:
        """Run already-stored ``uploaded`` documents through the pipeline.

        Returns one outcome per document in input order.  Never raises for
        per-document failures.
        """
        options = options or ProcessingOptions()
        session_id = session_id or str(uuid.uuid4())
        owner_id = documents[0].owner_id if documents else None
        with pipeline_context(session_id=session_id, owner_id=owner_id):
            return await self._process(documents, options, session_id)

    async def _process(
        self, documents: list[Document], options: ProcessingOptions, session_id: str
    ) -> BatchResult:
        progress = _BatchProgress(self._progress_tracker, session_id, [d.id for d in documents])

        semaphore = asyncio.Semaphore(self._max_concurrent_documents)
        raw = await throttled_gather(
            [self._run_document(_DocumentRun(d), options, progress) for d in documents],
            semaphore,
            return_exceptions=True,
        )

        runs: list[_DocumentRun] = []
        for document, result in zip(documents, raw, strict=True):
            if isinstance(result, _DocumentRun):
                runs.append(result)
                continue
            # Only non-Exception BaseExceptions get here (e.g. cancellation).
            self._logger.error(
                "document_run_aborted",
                document_id=document.id,
                error=repr(result),
            )
            runs.append(
                await self._fail(
                    _DocumentRun(document),
                    PipelineStage.EXTRACTION,
                    PipelineError(message=f"Processing aborted: {result!r}"),
                    progress,
                )
            )

        delivery = None
        if options.recipient is not None and self._dispatcher is not None:
            delivery = await self._deliver(runs, options.recipient, progress)
        else:
            for run in runs:
                if run.document.status == DocumentStatus.SUMMARIZED:
                    await self._complete(run, progress)

        batch = BatchResult(
            session_id=session_id,
            outcomes=[run.outcome() for run in runs],
            delivery=delivery,
        )
        await progress.finish(
            f"{len(batch.completed)} document(s) completed, {len(batch.failed)} failed"
        )
        self._logger.info(
            "batch_complete",
            session_id=session_id,
            completed=len(batch.completed),
            failed=len(batch.failed),
            delivered=delivery.sent_count if delivery else 0,
        )
        return batch

    async def reprocess(
        self,
        document_id: str,
        owner_id: str,
        options: ProcessingOptions | None = None,
        session_id: str | None = None,
    ) -> DocumentOutcome:
        """Reset a finished document to ``uploaded`` and run it again.

        The new chunk set and summary replace the previous ones ("latest
        wins"), so repeated reprocessing converges on the same state.

        Raises
        ------
        ValidationError
            If the document does not exist for *owner_id* or
            *session_id* is already in use.
        PipelineError
            If the document is still being processed.
        """
        document = await self._record_store.get_document(document_id, owner_id=owner_id)
        if document is None:
            raise ValidationError(message=f"Document {document_id} not found")
        if not document.status.is_terminal:
            raise PipelineError(
                message=f"Document {document_id} is still {document.status.value}"
            )
        session_id = session_id or str(uuid.uuid4())
        self._progress_tracker.start_session(session_id, owner_id)

        document = await self._transition(
            document,
            DocumentStatus.UPLOADED,
            extracted_text=None,
            extraction_degraded=False,
            error_message=None,
        )
        self._logger.info("document_reprocess", document_id=document_id, owner_id=owner_id)
        result = await self.process_batch([document], options, session_id)
        return result.outcomes[0]

    # ------------------------------------------------------------------
    # Per-document stages
    # ------------------------------------------------------------------

    async def _run_document(
        self,
        run: _DocumentRun,
        options: ProcessingOptions,
        progress: _BatchProgress,
    ) -> _DocumentRun:
        with pipeline_context(document_id=run.document.id):
            return await self._run_stages(run, options, progress)

    async def _run_stages(
        self,
        run: _DocumentRun,
        options: ProcessingOptions,
        progress: _BatchProgress,
    ) -> _DocumentRun:
        stage = PipelineStage.EXTRACTION
        stage_start = time.monotonic()
        try:
            # -- Extraction --
            run.document = await self._transition(run.document, DocumentStatus.EXTRACTING)
            await progress.document_moved(
                run.document, f"Extracting text from {run.document.filename}"
            )
            extraction = await self._stage(
                run.document.id,
                stage,
                lambda: self._extract(run.document),
                retries=0,
            )
            run.document = await self._transition(
                run.document,
                DocumentStatus.EXTRACTED,
                extracted_text=extraction.text,
                extraction_degraded=extraction.degraded,
            )
            await progress.document_moved(
                run.document, f"Extracted {extraction.char_count} characters"
            )

            # -- Indexing (non-fatal) --
            if options.index_for_search and self._indexer is not None:
                await progress.document_moved(
                    run.document, "Indexing for search", stage=ProgressStage.INDEXING
                )
                run.chunk_count = await self._index(run.document)

            # -- Summarization --
            stage = PipelineStage.SUMMARIZATION
            stage_start = time.monotonic()
            run.document = await self._transition(run.document, DocumentStatus.SUMMARIZING)
            await progress.document_moved(run.document, f"Summarizing {run.document.filename}")
            text = extraction.text
            draft = await self._stage(
                run.document.id,
                stage,
                lambda: self._summarizer.summarize(text, options.summary),
                retries=0,
                # The summarizer applies its own per-call timeout and retries.
                timeout=self._stage_timeout * (self._retries + 2),
            )
            summary = Summary(
                id=str(uuid.uuid4()),
                document_id=run.document.id,
                owner_id=run.document.owner_id,
                text=draft.text,
                word_count=draft.word_count,
                processing_time_ms=draft.processing_time_ms,
                model=draft.model,
                style=options.summary.style,
                language=options.summary.language,
            )
            await self._record_store.insert_summary(summary)
            run.summary = summary
            run.document = await self._transition(run.document, DocumentStatus.SUMMARIZED)
            await progress.document_moved(
                run.document, f"Summary ready ({draft.word_count} words)"
            )
        except Exception as exc:  # noqa: BLE001 -- one document's failure must not abort the batch
            if not isinstance(exc, DocBriefError):
                self._logger.exception(
                    "document_stage_unexpected_error",
                    document_id=run.document.id,
                    stage=stage.value,
                )
            return await self._fail(
                run, stage, exc, progress, duration_ms=_elapsed_ms(stage_start)
            )
        return run

    async def _extract(self, document: Document) -> ExtractionResult:
        data = await self._object_store.get(document.storage_path)
        return await self._extractor.extract(data, document.media_type.value, document.filename)

    async def _index(self, document: Document) -> int:
        """Index the document's text; failures are logged and yield 0 chunks."""
        indexer = self._indexer
        if indexer is None:
            return 0
        text = document.extracted_text or ""
        start = time.monotonic()
        try:
            chunks = await self._stage(
                document.id,
                PipelineStage.INDEXING,
                lambda: indexer.index_text(
                    document.id, document.owner_id, text, self._max_chunk_chars
                ),
                retries=self._retries,
            )
        except Exception as exc:  # noqa: BLE001 -- summaries do not depend on the index
            self._logger.warning(
                "indexing_failed_continuing",
                document_id=document.id,
                error=str(exc),
            )
            await self._append_log(
                document.id,
                PipelineStage.INDEXING,
                LogStatus.FAILED,
                str(exc),
                duration_ms=_elapsed_ms(start),
                error_details=_error_details(exc),
                raise_on_error=False,
            )
            return 0
        return len(chunks)

    async def _stage(
        self,
        document_id: str,
        stage: PipelineStage,
        fn: Callable[[], Awaitable[_T]],
        *,
        retries: int,
        timeout: float | None = None,
    ) -> _T:
        """Run one stage call under a timeout and the retry policy.

        Appends the ``started`` and ``completed`` log entries; the caller
        records failures.
        """
        await self._append_log(document_id, stage, LogStatus.STARTED)
        start = time.monotonic()
        result = await call_with_retry(
            fn,
            operation=stage.value,
            timeout=timeout or self._stage_timeout,
            retries=retries,
        )
        await self._append_log(
            document_id, stage, LogStatus.COMPLETED, duration_ms=_elapsed_ms(start)
        )
        return result

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver(
        self,
        runs: list[_DocumentRun],
        recipient: str,
        progress: _BatchProgress,
    ) -> BatchDeliveryResult | None:
        dispatcher = self._dispatcher
        if dispatcher is None:
            return None
        ready: list[_DocumentRun] = []
        items: list[DeliveryItem] = []
        for run in runs:
            if run.document.status != DocumentStatus.SUMMARIZED:
                continue
            try:
                # Several summaries may exist after reprocessing; the newest wins.
                summary = await self._record_store.get_latest_summary(run.document.id)
                if summary is None:
                    raise PipelineError(message=f"No summary stored for {run.document.id}")
                run.document = await self._transition(run.document, DocumentStatus.DELIVERING)
                await self._append_log(run.document.id, PipelineStage.DELIVERY, LogStatus.STARTED)
            except DocBriefError as exc:
                await self._fail(run, PipelineStage.DELIVERY, exc, progress)
                continue
            run.summary = summary
            await progress.document_moved(run.document, f"Sending {run.document.filename}")
            ready.append(run)
            items.append(
                DeliveryItem(
                    document_id=run.document.id,
                    summary_id=summary.id,
                    owner_id=run.document.owner_id,
                    filename=run.document.filename,
                    summary_text=summary.text,
                    word_count=summary.word_count,
                    processing_time_ms=summary.processing_time_ms,
                    file_type=run.document.media_type.label,
                    document_url=self._object_store.public_ref(run.document.storage_path),
                )
            )

        if not ready:
            return None

        start = time.monotonic()
        try:
            batch = await dispatcher.send_batch(
                recipient, items, owner_id=ready[0].document.owner_id
            )
        except DocBriefError as exc:
            for run in ready:
                await self._fail(
                    run, PipelineStage.DELIVERY, exc, progress, duration_ms=_elapsed_ms(start)
                )
            return None

        for run, result in zip(ready, batch.items, strict=True):
            if result.success:
                await self._append_log(
                    run.document.id,
                    PipelineStage.DELIVERY,
                    LogStatus.COMPLETED,
                    f"Sent via {result.provider_name} ({result.provider_message_id})",
                    duration_ms=_elapsed_ms(start),
                    raise_on_error=False,
                )
                await self._complete(run, progress)
            else:
                error = DeliveryError(
                    message=result.error or "Delivery failed",
                    provider_name=result.provider_name,
                )
                await self._fail(
                    run, PipelineStage.DELIVERY, error, progress, duration_ms=_elapsed_ms(start)
                )
        return batch

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        document: Document,
        target: DocumentStatus,
        **updates: Any,
    ) -> Document:
        """Move *document* to *target* and persist it.

        Raises
        ------
        PipelineError
            If the transition is not allowed by the state machine.
        StorageError
            If the new state cannot be persisted.
        """
        if not document.status.can_transition_to(target):
            raise PipelineError(
                message=(
                    f"Illegal transition {document.status.value} -> {target.value} "
                    f"for document {document.id}"
                )
            )
        updated = document.model_copy(update={"status": target, "updated_at": _utcnow(), **updates})
        await self._record_store.update_document(updated)
        self._logger.debug(
            "document_transition",
            document_id=document.id,
            from_status=document.status.value,
            to_status=target.value,
        )
        return updated

    async def _complete(self, run: _DocumentRun, progress: _BatchProgress) -> None:
        try:
            run.document = await self._transition(run.document, DocumentStatus.COMPLETED)
        except StorageError as exc:
            await self._fail(run, PipelineStage.DELIVERY, exc, progress)
            return
        await progress.document_moved(run.document, f"{run.document.filename} completed")

    async def _fail(
        self,
        run: _DocumentRun,
        stage: PipelineStage,
        exc: BaseException,
        progress: _BatchProgress,
        *,
        duration_ms: int | None = None,
    ) -> _DocumentRun:
        """Mark the run's document ``failed`` and append the failure to its log.

        A failure to persist the failed state is logged; the in-memory
        outcome still reports the failure.
        """
        message = str(exc) or type(exc).__name__
        run.failed_stage = stage
        run.error = message
        failed = run.document.model_copy(
            update={
                "status": DocumentStatus.FAILED,
                "error_message": message,
                "updated_at": _utcnow(),
            }
        )
        try:
            await self._record_store.update_document(failed)
        except StorageError as store_exc:
            self._logger.error(
                "failed_state_not_persisted",
                document_id=run.document.id,
                error=str(store_exc),
            )
        await self._append_log(
            run.document.id,
            stage,
            LogStatus.FAILED,
            message,
            duration_ms=duration_ms,
            error_details=_error_details(exc),
            raise_on_error=False,
        )
        run.document = failed

        self._logger.warning(
            "document_failed",
            document_id=failed.id,
            stage=stage.value,
            error=message,
        )
        await progress.document_moved(
            failed, f"{failed.filename} failed during {stage.value}", error=message
        )
        return run

    async def _append_log(
        self,
        document_id: str,
        stage: PipelineStage,
        status: LogStatus,
        message: str = "",
        *,
        duration_ms: int | None = None,
        error_details: dict[str, Any] | None = None,
        raise_on_error: bool = True,
    ) -> None:
        entry = ProcessingLogEntry(
            document_id=document_id,
            stage=stage,
            status=status,
            message=message,
            duration_ms=duration_ms,
            error_details=error_details,
        )
        try:
            await self._record_store.append_log(entry)
        except StorageError as exc:
            self._logger.error(
                "processing_log_write_failed",
                document_id=document_id,
                stage=stage.value,
                status=status.value,
                error=str(exc),
            )
            if raise_on_error:
                raise


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _error_details(exc: BaseException) -> dict[str, Any]:
    details: dict[str, Any] = {"error_type": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, DocBriefError):
        details["message"] = exc.message
        if exc.provider_name:
            details["provider"] = exc.provider_name
    return details


def _safe_filename(filename: str) -> str:
    name = PurePath(filename.replace("\\", "/")).name
    cleaned = "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in name)
    return cleaned.lstrip(".") or "document"
