"""SQLite-backed record store.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Providers (concrete adapter implementing IRecordStore).
# Database: ``data/docbrief.db`` - documents, summaries, delivery records
#           and the append-only processing log.
#
# Uses ``aiosqlite`` for async I/O.  All SQL is defined as module-level
# constants.  Timestamps are stored as UTC ISO-8601 strings, which sort
# lexicographically in time order, so range filters are plain string
# comparisons.
#
# processing_logs has no UPDATE statement anywhere: entries are only ever
# inserted (and removed together with their document by the retention
# sweep).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from docbrief.interfaces.record_store import IRecordStore
from docbrief.models.delivery import DeliveryRecord, DeliveryStatus
from docbrief.models.document import Document, DocumentStatus, MediaType
from docbrief.models.pipeline import (
    LogStatus,
    PipelineStage,
    ProcessingLogEntry,
    ProcessingStats,
)
from docbrief.models.summary import Summary, SummaryStyle
from docbrief.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/docbrief.db")

# ── Schema DDL ────────────────────────────────────────────────────────

_CREATE_DOCUMENTS_TABLE = """\
CREATE TABLE IF NOT EXISTS documents (
    id                   TEXT PRIMARY KEY,
    owner_id             TEXT    NOT NULL,
    filename             TEXT    NOT NULL,
    media_type           TEXT    NOT NULL,
    size_bytes           INTEGER NOT NULL,
    status               TEXT    NOT NULL,
    storage_path         TEXT    NOT NULL,
    extracted_text       TEXT,
    extraction_degraded  INTEGER NOT NULL DEFAULT 0,
    error_message        TEXT,
    created_at           TEXT    NOT NULL,
    expires_at           TEXT,
    updated_at           TEXT    NOT NULL
);
"""

_CREATE_SUMMARIES_TABLE = """\
CREATE TABLE IF NOT EXISTS summaries (
    id                  TEXT PRIMARY KEY,
    document_id         TEXT    NOT NULL REFERENCES documents(id),
    owner_id            TEXT    NOT NULL,
    text                TEXT    NOT NULL,
    word_count          INTEGER NOT NULL,
    processing_time_ms  INTEGER NOT NULL,
    model               TEXT    NOT NULL,
    style               TEXT    NOT NULL,
    language            TEXT    NOT NULL,
    created_at          TEXT    NOT NULL
);
"""

_CREATE_DELIVERIES_TABLE = """\
CREATE TABLE IF NOT EXISTS delivery_records (
    id                   TEXT PRIMARY KEY,
    owner_id             TEXT    NOT NULL,
    recipient            TEXT    NOT NULL,
    document_id          TEXT,
    summary_id           TEXT,
    artifact_ref         TEXT,
    status               TEXT    NOT NULL,
    attempts             INTEGER NOT NULL DEFAULT 0,
    last_error           TEXT,
    provider_name        TEXT,
    provider_message_id  TEXT,
    created_at           TEXT    NOT NULL,
    last_attempt_at      TEXT,
    delivered_at         TEXT
);
"""

_CREATE_LOGS_TABLE = """\
CREATE TABLE IF NOT EXISTS processing_logs (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id    TEXT    NOT NULL,
    stage          TEXT    NOT NULL,
    status         TEXT    NOT NULL,
    message        TEXT    NOT NULL DEFAULT '',
    duration_ms    INTEGER,
    error_details  TEXT,
    created_at     TEXT    NOT NULL
);
"""

_CREATE_INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_documents_expires ON documents(expires_at);",
    "CREATE INDEX IF NOT EXISTS idx_summaries_document ON summaries(document_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_deliveries_document ON delivery_records(document_id);",
    "CREATE INDEX IF NOT EXISTS idx_logs_document ON processing_logs(document_id);",
]

# ── DML ───────────────────────────────────────────────────────────────

_DOCUMENT_COLUMNS = (
    "id, owner_id, filename, media_type, size_bytes, status, storage_path, "
    "extracted_text, extraction_degraded, error_message, created_at, expires_at, updated_at"
)

_INSERT_DOCUMENT = f"""\
INSERT INTO documents ({_DOCUMENT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_DOCUMENT = """\
UPDATE documents
SET status = ?, extracted_text = ?, extraction_degraded = ?, error_message = ?,
    expires_at = ?, updated_at = ?
WHERE id = ?;
"""

_INSERT_SUMMARY = """\
INSERT INTO summaries (id, document_id, owner_id, text, word_count, processing_time_ms,
                       model, style, language, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_LATEST_SUMMARY = """\
SELECT * FROM summaries
WHERE document_id = ?
ORDER BY created_at DESC, rowid DESC
LIMIT 1;
"""

_DELIVERY_COLUMNS = (
    "id, owner_id, recipient, document_id, summary_id, artifact_ref, status, attempts, "
    "last_error, provider_name, provider_message_id, created_at, last_attempt_at, delivered_at"
)

_INSERT_DELIVERY = f"""\
INSERT INTO delivery_records ({_DELIVERY_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_DELIVERY = """\
UPDATE delivery_records
SET status = ?, attempts = ?, last_error = ?, provider_name = ?, provider_message_id = ?,
    last_attempt_at = ?, delivered_at = ?
WHERE id = ?;
"""

_INSERT_LOG = """\
INSERT INTO processing_logs (document_id, stage, status, message, duration_ms,
                             error_details, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_STATS = """\
SELECT
    (SELECT COUNT(*) FROM documents WHERE owner_id = ?)                          AS total_documents,
    (SELECT COUNT(*) FROM summaries WHERE owner_id = ?)                          AS total_summaries,
    (SELECT AVG(processing_time_ms) FROM summaries WHERE owner_id = ?)           AS avg_time,
    (SELECT COUNT(*) FROM documents WHERE owner_id = ? AND status = 'completed')  AS completed,
    (SELECT COUNT(*) FROM documents WHERE owner_id = ? AND status = 'failed')     AS failed;
"""


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)  # noqa: UP017
    return value.astimezone(timezone.utc).isoformat()  # noqa: UP017


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteRecordStore(IRecordStore):
    """SQLite-backed persistence for documents, summaries, deliveries and logs."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            for ddl in (
                _CREATE_DOCUMENTS_TABLE,
                _CREATE_SUMMARIES_TABLE,
                _CREATE_DELIVERIES_TABLE,
                _CREATE_LOGS_TABLE,
            ):
                await db.execute(ddl)
            for idx_sql in _CREATE_INDICES:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("record_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def insert_document(self, document: Document) -> None:
        await self._write(
            "insert_document",
            [(_INSERT_DOCUMENT, (
                document.id,
                document.owner_id,
                document.filename,
                document.media_type.value,
                document.size_bytes,
                document.status.value,
                document.storage_path,
                document.extracted_text,
                int(document.extraction_degraded),
                document.error_message,
                _iso(document.created_at),
                _iso(document.expires_at),
                _iso(document.updated_at),
            ))],
        )

    async def update_document(self, document: Document) -> None:
        await self._write(
            "update_document",
            [(_UPDATE_DOCUMENT, (
                document.status.value,
                document.extracted_text,
                int(document.extraction_degraded),
                document.error_message,
                _iso(document.expires_at),
                _iso(document.updated_at),
                document.id,
            ))],
        )

    async def get_document(self, document_id: str, owner_id: str | None = None) -> Document | None:
        if owner_id is None:
            rows = await self._fetch(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
            )
        else:
            rows = await self._fetch(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ? AND owner_id = ?",
                (document_id, owner_id),
            )
        return self._row_to_document(rows[0]) if rows else None

    async def list_documents(self, owner_id: str, limit: int = 50) -> list[Document]:
        rows = await self._fetch(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE owner_id = ? "
            "ORDER BY created_at DESC LIMIT ?",
            (owner_id, limit),
        )
        return [self._row_to_document(r) for r in rows]

    async def count_uploads_since(self, owner_id: str, since: datetime) -> int:
        rows = await self._fetch(
            "SELECT COUNT(*) AS n FROM documents WHERE owner_id = ? AND created_at >= ?",
            (owner_id, _iso(since)),
        )
        return int(rows[0]["n"]) if rows else 0

    async def list_expired_documents(self, now: datetime) -> list[Document]:
        rows = await self._fetch(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents "
            "WHERE expires_at IS NOT NULL AND expires_at <= ? ORDER BY expires_at",
            (_iso(now),),
        )
        return [self._row_to_document(r) for r in rows]

    async def delete_document(self, document_id: str) -> None:
        await self._write(
            "delete_document",
            [
                ("DELETE FROM summaries WHERE document_id = ?", (document_id,)),
                ("DELETE FROM delivery_records WHERE document_id = ?", (document_id,)),
                ("DELETE FROM processing_logs WHERE document_id = ?", (document_id,)),
                ("DELETE FROM documents WHERE id = ?", (document_id,)),
            ],
        )

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    async def insert_summary(self, summary: Summary) -> None:
        await self._write(
            "insert_summary",
            [(_INSERT_SUMMARY, (
                summary.id,
                summary.document_id,
                summary.owner_id,
                summary.text,
                summary.word_count,
                summary.processing_time_ms,
                summary.model,
                summary.style.value,
                summary.language,
                _iso(summary.created_at),
            ))],
        )

    async def get_latest_summary(self, document_id: str) -> Summary | None:
        rows = await self._fetch(_SELECT_LATEST_SUMMARY, (document_id,))
        if not rows:
            return None
        r = rows[0]
        return Summary(
            id=r["id"],
            document_id=r["document_id"],
            owner_id=r["owner_id"],
            text=r["text"],
            word_count=r["word_count"],
            processing_time_ms=r["processing_time_ms"],
            model=r["model"],
            style=SummaryStyle(r["style"]),
            language=r["language"],
            created_at=_parse(r["created_at"]),
        )

    # ------------------------------------------------------------------
    # Deliveries
    # ------------------------------------------------------------------

    async def insert_delivery(self, record: DeliveryRecord) -> None:
        await self._write(
            "insert_delivery",
            [(_INSERT_DELIVERY, (
                record.id,
                record.owner_id,
                record.recipient,
                record.document_id,
                record.summary_id,
                record.artifact_ref,
                record.status.value,
                record.attempts,
                record.last_error,
                record.provider_name,
                record.provider_message_id,
                _iso(record.created_at),
                _iso(record.last_attempt_at),
                _iso(record.delivered_at),
            ))],
        )

    async def update_delivery(self, record: DeliveryRecord) -> None:
        await self._write(
            "update_delivery",
            [(_UPDATE_DELIVERY, (
                record.status.value,
                record.attempts,
                record.last_error,
                record.provider_name,
                record.provider_message_id,
                _iso(record.last_attempt_at),
                _iso(record.delivered_at),
                record.id,
            ))],
        )

    async def get_delivery(self, delivery_id: str) -> DeliveryRecord | None:
        rows = await self._fetch(
            f"SELECT {_DELIVERY_COLUMNS} FROM delivery_records WHERE id = ?", (delivery_id,)
        )
        return self._row_to_delivery(rows[0]) if rows else None

    async def list_deliveries(self, document_id: str) -> list[DeliveryRecord]:
        rows = await self._fetch(
            f"SELECT {_DELIVERY_COLUMNS} FROM delivery_records WHERE document_id = ? "
            "ORDER BY created_at, rowid",
            (document_id,),
        )
        return [self._row_to_delivery(r) for r in rows]

    # ------------------------------------------------------------------
    # Processing log
    # ------------------------------------------------------------------

    async def append_log(self, entry: ProcessingLogEntry) -> None:
        await self._write(
            "append_log",
            [(_INSERT_LOG, (
                entry.document_id,
                entry.stage.value,
                entry.status.value,
                entry.message,
                entry.duration_ms,
                json.dumps(entry.error_details) if entry.error_details is not None else None,
                _iso(entry.created_at),
            ))],
        )

    async def list_logs(self, document_id: str) -> list[ProcessingLogEntry]:
        rows = await self._fetch(
            "SELECT document_id, stage, status, message, duration_ms, error_details, created_at "
            "FROM processing_logs WHERE document_id = ? ORDER BY id",
            (document_id,),
        )
        return [
            ProcessingLogEntry(
                document_id=r["document_id"],
                stage=PipelineStage(r["stage"]),
                status=LogStatus(r["status"]),
                message=r["message"],
                duration_ms=r["duration_ms"],
                error_details=json.loads(r["error_details"]) if r["error_details"] else None,
                created_at=_parse(r["created_at"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def get_processing_stats(self, owner_id: str) -> ProcessingStats:
        rows = await self._fetch(_SELECT_STATS, (owner_id,) * 5)
        r = rows[0]
        terminal = r["completed"] + r["failed"]
        return ProcessingStats(
            total_documents=r["total_documents"],
            total_summaries=r["total_summaries"],
            average_processing_time_ms=round(float(r["avg_time"] or 0.0), 1),
            success_rate=round(100.0 * r["completed"] / terminal, 1) if terminal else 0.0,
        )

    def get_provider_name(self) -> str:
        return "sqlite_record_store"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _write(
        self,
        operation: str,
        statements: Iterable[tuple[str, tuple[Any, ...]]],
    ) -> None:
        """Run *statements* in one transaction, wrapping failures in StorageError."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                for sql, params in statements:
                    await db.execute(sql, params)
                await db.commit()
        except aiosqlite.Error as exc:
            logger.error("record_store_write_failed", operation=operation, error=str(exc))
            raise StorageError(
                message=f"{operation} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def _fetch(self, sql: str, params: tuple[Any, ...] = ()) -> list[aiosqlite.Row]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(sql, params)
                return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    @staticmethod
    def _row_to_document(r: aiosqlite.Row) -> Document:
        return Document(
            id=r["id"],
            owner_id=r["owner_id"],
            filename=r["filename"],
            media_type=MediaType(r["media_type"]),
            size_bytes=r["size_bytes"],
            status=DocumentStatus(r["status"]),
            storage_path=r["storage_path"],
            extracted_text=r["extracted_text"],
            extraction_degraded=bool(r["extraction_degraded"]),
            error_message=r["error_message"],
            created_at=_parse(r["created_at"]),
            expires_at=_parse(r["expires_at"]),
            updated_at=_parse(r["updated_at"]),
        )

    @staticmethod
    def _row_to_delivery(r: aiosqlite.Row) -> DeliveryRecord:
        return DeliveryRecord(
            id=r["id"],
            owner_id=r["owner_id"],
            recipient=r["recipient"],
            document_id=r["document_id"],
            summary_id=r["summary_id"],
            artifact_ref=r["artifact_ref"],
            status=DeliveryStatus(r["status"]),
            attempts=r["attempts"],
            last_error=r["last_error"],
            provider_name=r["provider_name"],
            provider_message_id=r["provider_message_id"],
            created_at=_parse(r["created_at"]),
            last_attempt_at=_parse(r["last_attempt_at"]),
            delivered_at=_parse(r["delivered_at"]),
        )
