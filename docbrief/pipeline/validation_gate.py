"""Pre-flight validation gate for document submissions.

Runs before any bytes are stored or any processing starts.  A batch is
rejected as a whole when any check fails:

    1. batch is non-empty and within ``max_files_per_batch``
    2. every file is within ``max_file_size_bytes`` and non-empty
    3. every file resolves to a supported media type
    4. the owner's uploads in the last hour plus this batch stay within
       ``uploads_per_hour``

Failures raise :class:`ValidationError` subclasses, which are never
retried.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog

from docbrief.models.document import DocumentSubmission, MediaType, resolve_media_type
from docbrief.utils.errors import (
    FileTooLargeError,
    QuotaExceededError,
    UnsupportedFormatError,
    ValidationError,
)
from docbrief.utils.logging import get_logger

if TYPE_CHECKING:
    from docbrief.interfaces.record_store import IRecordStore

_QUOTA_WINDOW = timedelta(hours=1)


class ValidationGate:
    """Checks a batch of submissions against size, type, count and quota limits."""

    def __init__(
        self,
        record_store: IRecordStore,
        max_file_size_bytes: int = 10 * 1024 * 1024,
        max_files_per_batch: int = 5,
        uploads_per_hour: int = 20,
    ) -> None:
        self._record_store = record_store
        self._max_file_size_bytes = max_file_size_bytes
        self._max_files_per_batch = max_files_per_batch
        self._uploads_per_hour = uploads_per_hour
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def check(
        self,
        submissions: list[DocumentSubmission],
        owner_id: str,
        now: datetime | None = None,
    ) -> list[MediaType]:
        """Validate *submissions* for *owner_id*.

        Returns
        -------
        list[MediaType]
            The resolved media type of each submission, in order.

        Raises
        ------
        ValidationError
            Empty or oversized batch.
        FileTooLargeError
            A file exceeds the size limit.
        UnsupportedFormatError
            A file's type is not supported.
        QuotaExceededError
            The hourly upload quota would be exceeded.
        """
        if not submissions:
            raise ValidationError(message="No files submitted")
        if len(submissions) > self._max_files_per_batch:
            raise ValidationError(
                message=(
                    f"Too many files: {len(submissions)} submitted, "
                    f"at most {self._max_files_per_batch} per batch"
                )
            )

        media_types: list[MediaType] = []
        for submission in submissions:
            if submission.size_bytes == 0:
                raise ValidationError(message=f"{submission.filename} is empty")
            if submission.size_bytes > self._max_file_size_bytes:
                raise FileTooLargeError(
                    message=(
                        f"{submission.filename} is {submission.size_bytes} bytes; "
                        f"the limit is {self._max_file_size_bytes} bytes"
                    )
                )
            media_type = resolve_media_type(submission.content_type, submission.filename)
            if media_type is None:
                raise UnsupportedFormatError(
                    message=(
                        f"{submission.filename}: unsupported type "
                        f"{submission.content_type or 'unknown'!r}. "
                        "Supported: PDF, DOCX, DOC, TXT"
                    )
                )
            media_types.append(media_type)

        now = now or datetime.now(tz=timezone.utc)  # noqa: UP017
        recent = await self._record_store.count_uploads_since(owner_id, now - _QUOTA_WINDOW)
        if recent + len(submissions) > self._uploads_per_hour:
            self._logger.warning(
                "upload_quota_exceeded",
                owner_id=owner_id,
                recent=recent,
                requested=len(submissions),
                limit=self._uploads_per_hour,
            )
            raise QuotaExceededError(
                message=(
                    f"Upload limit of {self._uploads_per_hour} files per hour reached "
                    f"({recent} uploaded in the last hour)"
                )
            )

        self._logger.debug("submissions_validated", owner_id=owner_id, files=len(submissions))
        return media_types
