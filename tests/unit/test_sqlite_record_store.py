"""Unit tests for SQLiteRecordStore.

Each test gets an isolated database under pytest's tmp_path.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from docbrief.models.delivery import DeliveryRecord, DeliveryStatus
from docbrief.models.document import Document, DocumentStatus, MediaType
from docbrief.models.pipeline import LogStatus, PipelineStage, ProcessingLogEntry
from docbrief.models.summary import Summary, SummaryStyle
from docbrief.providers.storage.sqlite_record_store import SQLiteRecordStore


def _document(doc_id: str = "doc-1", owner_id: str = "alice", **updates: object) -> Document:
    document = Document.new(
        document_id=doc_id,
        owner_id=owner_id,
        filename=f"{doc_id}.pdf",
        media_type=MediaType.PDF,
        size_bytes=1234,
        storage_path=f"{owner_id}/{doc_id}/{doc_id}.pdf",
    )
    return document.model_copy(update=updates) if updates else document


def _summary(summary_id: str, doc_id: str = "doc-1", owner_id: str = "alice", **updates: object) -> Summary:
    fields: dict[str, object] = {
        "id": summary_id,
        "document_id": doc_id,
        "owner_id": owner_id,
        "text": f"Summary {summary_id}.",
        "word_count": 2,
        "processing_time_ms": 1000,
        "model": "fake-model",
        "style": SummaryStyle.DETAILED,
        "language": "French",
    }
    fields.update(updates)
    return Summary(**fields)


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteRecordStore:
    s = SQLiteRecordStore(db_path=tmp_path / "nested" / "records.db")
    await s.initialize()
    return s


# ======================================================================
# Documents
# ======================================================================


class TestDocuments:
    @pytest.mark.asyncio
    async def test_initialize_creates_parent_directory(self, tmp_path: Path) -> None:
        s = SQLiteRecordStore(db_path=tmp_path / "a" / "b" / "db.sqlite")
        await s.initialize()
        assert (tmp_path / "a" / "b" / "db.sqlite").exists()

    @pytest.mark.asyncio
    async def test_insert_and_get_round_trip(self, store: SQLiteRecordStore) -> None:
        document = _document()
        await store.insert_document(document)
        loaded = await store.get_document("doc-1")
        assert loaded is not None
        assert loaded.filename == "doc-1.pdf"
        assert loaded.media_type == MediaType.PDF
        assert loaded.status == DocumentStatus.UPLOADED
        assert loaded.expires_at == document.expires_at

    @pytest.mark.asyncio
    async def test_get_is_owner_scoped(self, store: SQLiteRecordStore) -> None:
        await store.insert_document(_document())
        assert await store.get_document("doc-1", owner_id="alice") is not None
        assert await store.get_document("doc-1", owner_id="bob") is None

    @pytest.mark.asyncio
    async def test_update_persists_state(self, store: SQLiteRecordStore) -> None:
        document = _document()
        await store.insert_document(document)
        await store.update_document(
            document.model_copy(
                update={
                    "status": DocumentStatus.EXTRACTED,
                    "extracted_text": "Body text",
                    "extraction_degraded": True,
                }
            )
        )
        loaded = await store.get_document("doc-1")
        assert loaded is not None
        assert loaded.status == DocumentStatus.EXTRACTED
        assert loaded.extracted_text == "Body text"
        assert loaded.extraction_degraded is True

    @pytest.mark.asyncio
    async def test_list_documents_only_for_owner(self, store: SQLiteRecordStore) -> None:
        await store.insert_document(_document("doc-1"))
        await store.insert_document(_document("doc-2"))
        await store.insert_document(_document("doc-3", owner_id="bob"))
        listed = await store.list_documents("alice")
        assert {d.id for d in listed} == {"doc-1", "doc-2"}
        assert len(await store.list_documents("alice", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_count_uploads_since(self, store: SQLiteRecordStore) -> None:
        now = datetime.now(tz=timezone.utc)
        await store.insert_document(_document("old", created_at=now - timedelta(hours=2)))
        await store.insert_document(_document("new", created_at=now))
        assert await store.count_uploads_since("alice", now - timedelta(hours=1)) == 1
        assert await store.count_uploads_since("bob", now - timedelta(hours=1)) == 0

    @pytest.mark.asyncio
    async def test_list_expired_documents(self, store: SQLiteRecordStore) -> None:
        now = datetime.now(tz=timezone.utc)
        await store.insert_document(_document("expired", expires_at=now - timedelta(minutes=1)))
        await store.insert_document(_document("fresh", expires_at=now + timedelta(hours=1)))
        expired = await store.list_expired_documents(now)
        assert [d.id for d in expired] == ["expired"]

    @pytest.mark.asyncio
    async def test_delete_document_cascades(self, store: SQLiteRecordStore) -> None:
        await store.insert_document(_document())
        await store.insert_summary(_summary("s1"))
        await store.append_log(
            ProcessingLogEntry(
                document_id="doc-1", stage=PipelineStage.UPLOAD, status=LogStatus.COMPLETED
            )
        )
        await store.insert_delivery(
            DeliveryRecord(id="dl-1", owner_id="alice", recipient="447700900123", document_id="doc-1")
        )

        await store.delete_document("doc-1")

        assert await store.get_document("doc-1") is None
        assert await store.get_latest_summary("doc-1") is None
        assert await store.list_logs("doc-1") == []
        assert await store.list_deliveries("doc-1") == []


# ======================================================================
# Summaries
# ======================================================================


class TestSummaries:
    @pytest.mark.asyncio
    async def test_latest_summary_wins(self, store: SQLiteRecordStore) -> None:
        base = datetime.now(tz=timezone.utc)
        await store.insert_summary(_summary("older", created_at=base - timedelta(minutes=5)))
        await store.insert_summary(_summary("newer", created_at=base))
        latest = await store.get_latest_summary("doc-1")
        assert latest is not None
        assert latest.id == "newer"
        assert latest.style == SummaryStyle.DETAILED
        assert latest.language == "French"

    @pytest.mark.asyncio
    async def test_same_timestamp_uses_insertion_order(self, store: SQLiteRecordStore) -> None:
        stamp = datetime.now(tz=timezone.utc)
        await store.insert_summary(_summary("first", created_at=stamp))
        await store.insert_summary(_summary("second", created_at=stamp))
        latest = await store.get_latest_summary("doc-1")
        assert latest is not None and latest.id == "second"

    @pytest.mark.asyncio
    async def test_missing_summary_is_none(self, store: SQLiteRecordStore) -> None:
        assert await store.get_latest_summary("nope") is None


# ======================================================================
# Deliveries and logs
# ======================================================================


class TestDeliveriesAndLogs:
    @pytest.mark.asyncio
    async def test_delivery_update(self, store: SQLiteRecordStore) -> None:
        record = DeliveryRecord(id="dl-1", owner_id="alice", recipient="447700900123")
        await store.insert_delivery(record)
        now = datetime.now(tz=timezone.utc)
        await store.update_delivery(
            record.model_copy(
                update={
                    "status": DeliveryStatus.SENT,
                    "attempts": 2,
                    "provider_name": "twilio",
                    "provider_message_id": "SM123",
                    "last_attempt_at": now,
                    "delivered_at": now,
                }
            )
        )
        loaded = await store.get_delivery("dl-1")
        assert loaded is not None
        assert loaded.status == DeliveryStatus.SENT
        assert loaded.attempts == 2
        assert loaded.provider_message_id == "SM123"
        assert loaded.delivered_at is not None

    @pytest.mark.asyncio
    async def test_logs_append_in_order_with_details(self, store: SQLiteRecordStore) -> None:
        for status in (LogStatus.STARTED, LogStatus.FAILED):
            await store.append_log(
                ProcessingLogEntry(
                    document_id="doc-1",
                    stage=PipelineStage.EXTRACTION,
                    status=status,
                    duration_ms=12 if status == LogStatus.FAILED else None,
                    error_details={"error_type": "ExtractionFailedError"}
                    if status == LogStatus.FAILED
                    else None,
                )
            )
        logs = await store.list_logs("doc-1")
        assert [e.status for e in logs] == [LogStatus.STARTED, LogStatus.FAILED]
        assert logs[1].duration_ms == 12
        assert logs[1].error_details == {"error_type": "ExtractionFailedError"}


# ======================================================================
# Stats
# ======================================================================


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_for_owner(self, store: SQLiteRecordStore) -> None:
        await store.insert_document(_document("d1", status=DocumentStatus.COMPLETED))
        await store.insert_document(_document("d2", status=DocumentStatus.COMPLETED))
        await store.insert_document(_document("d3", status=DocumentStatus.FAILED))
        await store.insert_document(_document("d4", status=DocumentStatus.SUMMARIZING))
        await store.insert_document(_document("x1", owner_id="bob", status=DocumentStatus.FAILED))
        await store.insert_summary(_summary("s1", doc_id="d1"))
        await store.insert_summary(_summary("s2", doc_id="d2", processing_time_ms=3000))

        stats = await store.get_processing_stats("alice")
        assert stats.total_documents == 4
        assert stats.total_summaries == 2
        assert stats.average_processing_time_ms == 2000.0
        assert stats.success_rate == pytest.approx(66.7)

    @pytest.mark.asyncio
    async def test_stats_empty(self, store: SQLiteRecordStore) -> None:
        stats = await store.get_processing_stats("nobody")
        assert stats.total_documents == 0
        assert stats.success_rate == 0.0
        assert stats.average_processing_time_ms == 0.0
