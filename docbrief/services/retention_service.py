"""Retention sweep for expired documents.

Uploaded documents are kept for a fixed window (24 h by default, stamped
as ``expires_at`` on upload).  The sweep removes every expired document's
chunks, stored bytes and records.  It runs as a background loop started by
the application lifespan and can be invoked once from the CLI.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from docbrief.utils.errors import DocBriefError

if TYPE_CHECKING:
    from docbrief.interfaces.chunk_store import IChunkStore
    from docbrief.interfaces.object_store import IObjectStore
    from docbrief.interfaces.record_store import IRecordStore

logger = structlog.get_logger(logger_name=__name__)


class RetentionService:
    """Deletes documents whose retention window has passed."""

    def __init__(
        self,
        record_store: IRecordStore,
        chunk_store: IChunkStore,
        object_store: IObjectStore,
    ) -> None:
        self._record_store = record_store
        self._chunk_store = chunk_store
        self._object_store = object_store

    async def sweep(self, now: datetime | None = None) -> int:
        """Purge all documents expired at *now*; return how many were removed.

        A document whose purge fails is logged and left for the next sweep.
        """
        now = now or datetime.now(tz=timezone.utc)  # noqa: UP017
        expired = await self._record_store.list_expired_documents(now)
        removed = 0
        for document in expired:
            try:
                await self._chunk_store.delete_document(document.id)
                await self._object_store.delete(document.storage_path)
                await self._record_store.delete_document(document.id)
            except DocBriefError as exc:
                logger.error(
                    "retention_purge_failed",
                    document_id=document.id,
                    error=str(exc),
                )
                continue
            removed += 1
            logger.debug("retention_document_purged", document_id=document.id)

        logger.info("retention_sweep_complete", expired=len(expired), removed=removed)
        return removed

    async def run_forever(self, interval_seconds: float) -> None:
        """Sweep every *interval_seconds* until cancelled."""
        while True:
            try:
                await self.sweep()
            except DocBriefError as exc:
                logger.error("retention_sweep_failed", error=str(exc))
            await asyncio.sleep(interval_seconds)
