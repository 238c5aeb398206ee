"""Integration tests for the FastAPI endpoints using TestClient.

The application comes from ``create_app`` with a pre-built component
graph: real SQLite, object and in-memory chunk stores, the real pipeline
services, and in-process fakes for the LLM, embedding and delivery
backends.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from docbrief.config.settings import Settings
from docbrief.main import create_app
from docbrief.pipeline.orchestrator import DocumentPipeline
from docbrief.pipeline.progress_tracker import ProgressTracker
from docbrief.pipeline.validation_gate import ValidationGate
from docbrief.providers.identity.static_token_resolver import StaticTokenIdentityResolver
from docbrief.providers.storage.local_object_store import LocalObjectStore
from docbrief.providers.storage.sqlite_record_store import SQLiteRecordStore
from docbrief.providers.vector_store.memory_provider import InMemoryChunkStore
from docbrief.services.delivery.dispatcher import DeliveryDispatcher
from docbrief.services.extraction.text_extractor import TextExtractor
from docbrief.services.indexing.embedding_indexer import EmbeddingIndexer
from docbrief.services.retention_service import RetentionService
from docbrief.services.retrieval.qa_service import NO_CONTEXT_ANSWER, QAService
from docbrief.services.retrieval.retriever import Retriever
from docbrief.services.summarization.summarizer import Summarizer
from tests.conftest import (
    FakeEmbeddingProvider,
    FakeLLMProvider,
    RecordingDeliveryProvider,
    make_text,
)

_ALICE = {"Authorization": "Bearer token-alice"}
_BOB = {"Authorization": "Bearer token-bob"}
_MAX_FILE_BYTES = 2000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _UnreachableDeliveryProvider(RecordingDeliveryProvider):
    async def check_status(self) -> bool:
        return False


def _build_components(
    tmp_path: Path,
    settings: Settings,
    delivery: RecordingDeliveryProvider,
) -> dict[str, Any]:
    """Assemble the component graph the way main.build_components does."""
    record_store = SQLiteRecordStore(db_path=tmp_path / "api.db")
    object_store = LocalObjectStore(root_dir=tmp_path / "objects")
    chunk_store = InMemoryChunkStore()
    embedding = FakeEmbeddingProvider()
    progress_tracker = ProgressTracker()
    dispatcher = DeliveryDispatcher(delivery, record_store)
    retriever = Retriever(embedding, chunk_store, default_threshold=0.3)

    pipeline = DocumentPipeline(
        record_store=record_store,
        object_store=object_store,
        extractor=TextExtractor(),
        summarizer=Summarizer(FakeLLMProvider(), timeout=5.0, retries=0),
        progress_tracker=progress_tracker,
        validation_gate=ValidationGate(
            record_store,
            max_file_size_bytes=_MAX_FILE_BYTES,
            max_files_per_batch=3,
            uploads_per_hour=10,
        ),
        indexer=EmbeddingIndexer(embedding, chunk_store),
        dispatcher=dispatcher,
        stage_timeout_seconds=5.0,
        external_call_retries=0,
        max_chunk_chars=120,
    )
    return {
        "record_store": record_store,
        "object_store": object_store,
        "chunk_store": chunk_store,
        "retriever": retriever,
        "qa_service": QAService(
            retriever,
            FakeLLMProvider(default="Revenue grew [1]."),
            record_store=record_store,
            timeout=5.0,
            retries=0,
        ),
        "dispatcher": dispatcher,
        "pipeline": pipeline,
        "progress_tracker": progress_tracker,
        "retention_service": RetentionService(record_store, chunk_store, object_store),
        "identity_resolver": StaticTokenIdentityResolver(settings.get_api_token_map()),
        "provider_registry": {
            "llm": True,
            "embedding": True,
            "record_store": True,
            "chunk_store": "memory",
            "delivery": delivery.get_provider_name(),
        },
    }


def _upload(
    client: TestClient,
    *files: tuple[str, bytes, str],
    headers: dict[str, str] = _ALICE,
    **form: str,
) -> Any:
    return client.post(
        "/api/v1/documents",
        files=[("files", f) for f in files],
        data=form,
        headers=headers,
    )


def _text_file(name: str = "report.txt", topic: str = "revenue") -> tuple[str, bytes, str]:
    return (name, make_text(topic=topic).encode("utf-8"), "text/plain")


@pytest.fixture()
def api_settings(test_settings: Settings) -> Settings:
    return test_settings.model_copy(update={"cleanup_interval_seconds": 0})


@pytest.fixture()
def delivery() -> RecordingDeliveryProvider:
    return RecordingDeliveryProvider()


@pytest.fixture()
def client(tmp_path: Path, api_settings: Settings, delivery: RecordingDeliveryProvider):
    components = _build_components(tmp_path, api_settings, delivery)
    app = create_app(api_settings, components=components)
    with TestClient(app) as test_client:
        yield test_client


# ======================================================================
# Authentication
# ======================================================================


class TestAuthentication:
    def test_missing_token(self, client: TestClient) -> None:
        response = client.get("/api/v1/documents")
        assert response.status_code == 401
        assert response.json()["error"] == "AuthenticationError"

    def test_unknown_token(self, client: TestClient) -> None:
        response = client.get(
            "/api/v1/documents", headers={"Authorization": "Bearer token-mallory"}
        )
        assert response.status_code == 401

    def test_non_bearer_scheme(self, client: TestClient) -> None:
        response = client.get("/api/v1/stats", headers={"Authorization": "Basic token-alice"})
        assert response.status_code == 401

    def test_health_needs_no_token(self, client: TestClient) -> None:
        assert client.get("/api/v1/health").status_code == 200


# ======================================================================
# Upload and documents
# ======================================================================


class TestDocuments:
    def test_upload_processes_batch(self, client: TestClient) -> None:
        response = _upload(client, _text_file("a.txt"), _text_file("b.txt", topic="hiring"))

        assert response.status_code == 200
        body = response.json()
        assert body["completed"] == 2
        assert body["failed"] == 0
        assert body["delivered"] == 0
        assert [o["status"] for o in body["outcomes"]] == ["completed", "completed"]

        listing = client.get("/api/v1/documents", headers=_ALICE).json()
        assert listing["total"] == 2

    def test_get_document_with_summary(self, client: TestClient) -> None:
        outcome = _upload(client, _text_file()).json()["outcomes"][0]

        response = client.get(f"/api/v1/documents/{outcome['document_id']}", headers=_ALICE)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["filename"] == "report.txt"
        assert body["summary"] == "A short summary."
        assert body["summary_word_count"] == 3

    def test_other_owner_gets_404(self, client: TestClient) -> None:
        document_id = _upload(client, _text_file()).json()["outcomes"][0]["document_id"]

        assert client.get(f"/api/v1/documents/{document_id}", headers=_BOB).status_code == 404
        assert (
            client.get(f"/api/v1/documents/{document_id}/logs", headers=_BOB).status_code == 404
        )
        assert client.get("/api/v1/documents", headers=_BOB).json()["total"] == 0

    def test_unknown_document_404(self, client: TestClient) -> None:
        assert client.get("/api/v1/documents/nope", headers=_ALICE).status_code == 404

    def test_processing_log(self, client: TestClient) -> None:
        document_id = _upload(client, _text_file()).json()["outcomes"][0]["document_id"]

        response = client.get(f"/api/v1/documents/{document_id}/logs", headers=_ALICE)

        assert response.status_code == 200
        entries = response.json()["entries"]
        assert entries[0]["stage"] == "upload"
        assert {e["stage"] for e in entries} >= {"upload", "extraction", "summarization"}

    def test_failed_extraction_reported_per_document(self, client: TestClient) -> None:
        response = _upload(client, _text_file("good.txt"), ("tiny.txt", b"too short", "text/plain"))

        body = response.json()
        assert response.status_code == 200
        assert body["completed"] == 1
        assert body["failed"] == 1
        failed = [o for o in body["outcomes"] if o["status"] == "failed"][0]
        assert failed["failed_stage"] == "extraction"

    def test_reprocess(self, client: TestClient) -> None:
        document_id = _upload(client, _text_file()).json()["outcomes"][0]["document_id"]

        response = client.post(
            f"/api/v1/documents/{document_id}/reprocess",
            json={"style": "bulleted", "max_length": 100},
            headers=_ALICE,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    def test_reprocess_other_owner_404(self, client: TestClient) -> None:
        document_id = _upload(client, _text_file()).json()["outcomes"][0]["document_id"]
        response = client.post(f"/api/v1/documents/{document_id}/reprocess", headers=_BOB)
        assert response.status_code == 404


# ======================================================================
# Validation errors
# ======================================================================


class TestValidationErrors:
    def test_unsupported_format_415(self, client: TestClient) -> None:
        response = _upload(client, ("photo.png", b"\x89PNG....", "image/png"))
        assert response.status_code == 415
        assert response.json()["error"] == "UnsupportedFormatError"

    def test_file_too_large_413(self, client: TestClient) -> None:
        response = _upload(client, ("big.txt", b"x" * (_MAX_FILE_BYTES + 1), "text/plain"))
        assert response.status_code == 413

    def test_too_many_files_400(self, client: TestClient) -> None:
        response = _upload(client, *[_text_file(f"f{i}.txt") for i in range(4)])
        assert response.status_code == 400

    def test_invalid_recipient_400(
        self, client: TestClient, delivery: RecordingDeliveryProvider
    ) -> None:
        response = _upload(client, _text_file(), recipient="12345")
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRecipientError"
        assert delivery.sent == []
        assert client.get("/api/v1/documents", headers=_ALICE).json()["total"] == 0

    def test_unknown_style_400(self, client: TestClient) -> None:
        response = _upload(client, _text_file(), style="poetic")
        assert response.status_code == 400


# ======================================================================
# Delivery
# ======================================================================


class TestDelivery:
    def test_upload_with_recipient_delivers(
        self, client: TestClient, delivery: RecordingDeliveryProvider
    ) -> None:
        response = _upload(client, _text_file(), recipient="+44 7700 900123")

        assert response.json()["delivered"] == 1
        assert len(delivery.sent) == 3

    def test_deliver_latest_summary(
        self, client: TestClient, delivery: RecordingDeliveryProvider
    ) -> None:
        document_id = _upload(client, _text_file()).json()["outcomes"][0]["document_id"]

        response = client.post(
            f"/api/v1/documents/{document_id}/deliver",
            json={"recipient": "+447700900123"},
            headers=_ALICE,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["provider"] == "recording"
        assert body["attempts"] == 1
        assert body["delivery_id"]
        assert "A short summary." in delivery.sent[-1][1].body

    def test_deliver_without_dispatcher_503(self, client: TestClient) -> None:
        document_id = _upload(client, _text_file()).json()["outcomes"][0]["document_id"]
        client.app.state.dispatcher = None

        response = client.post(
            f"/api/v1/documents/{document_id}/deliver",
            json={"recipient": "+447700900123"},
            headers=_ALICE,
        )
        assert response.status_code == 503

    def test_test_message(self, client: TestClient, delivery: RecordingDeliveryProvider) -> None:
        response = client.post(
            "/api/v1/delivery/test", json={"recipient": "447700900123"}, headers=_ALICE
        )
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert "Test message" in delivery.sent[0][1].body


# ======================================================================
# Search, stats and progress
# ======================================================================


class TestSearchAndStats:
    def test_search_is_owner_scoped(self, client: TestClient) -> None:
        _upload(client, _text_file(topic="revenue"))

        alice = client.post(
            "/api/v1/search", json={"query": "quarterly revenue figures"}, headers=_ALICE
        ).json()
        bob = client.post(
            "/api/v1/search", json={"query": "quarterly revenue figures"}, headers=_BOB
        ).json()

        assert alice["total"] > 0
        assert alice["results"][0]["match_type"] == "semantic"
        assert bob["total"] == 0

    def test_search_rejects_empty_query(self, client: TestClient) -> None:
        response = client.post("/api/v1/search", json={"query": ""}, headers=_ALICE)
        assert response.status_code == 422

    def test_stats(self, client: TestClient) -> None:
        _upload(client, _text_file("a.txt"), ("tiny.txt", b"too short", "text/plain"))

        body = client.get("/api/v1/stats", headers=_ALICE).json()

        assert body["owner_id"] == "alice"
        assert body["stats"]["total_documents"] == 2
        assert body["stats"]["total_summaries"] == 1
        assert body["stats"]["success_rate"] == 50.0


# ======================================================================
# Question answering
# ======================================================================


class TestAsk:
    def test_answer_cites_callers_document(self, client: TestClient) -> None:
        _upload(client, _text_file("q3.txt", topic="revenue"))

        response = client.post(
            "/api/v1/ask", json={"query": "quarterly revenue figures"}, headers=_ALICE
        )

        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == "Revenue grew [1]."
        assert body["grounded"] is True
        assert body["sources"]
        assert {s["filename"] for s in body["sources"]} == {"q3.txt"}

    def test_other_owner_gets_no_context_answer(self, client: TestClient) -> None:
        _upload(client, _text_file(topic="revenue"))

        body = client.post(
            "/api/v1/ask", json={"query": "quarterly revenue figures"}, headers=_BOB
        ).json()

        assert body["answer"] == NO_CONTEXT_ANSWER
        assert body["grounded"] is False
        assert body["sources"] == []

    def test_requires_token(self, client: TestClient) -> None:
        response = client.post("/api/v1/ask", json={"query": "revenue"})
        assert response.status_code == 401

    def test_blank_question_400(self, client: TestClient) -> None:
        response = client.post("/api/v1/ask", json={"query": "   "}, headers=_ALICE)
        assert response.status_code == 400

    def test_without_llm_503(self, client: TestClient) -> None:
        client.app.state.qa_service = None
        response = client.post("/api/v1/ask", json={"query": "revenue"}, headers=_ALICE)
        assert response.status_code == 503


class TestProgress:
    def test_session_status_after_batch(self, client: TestClient) -> None:
        _upload(client, _text_file(), session_id="sess-1")

        response = client.get("/api/v1/sessions/sess-1/status", headers=_ALICE)

        assert response.status_code == 200
        body = response.json()
        assert body["stage"] == "complete"
        assert body["percent"] == 100.0

    def test_unknown_session_404(self, client: TestClient) -> None:
        assert client.get("/api/v1/sessions/nope/status", headers=_ALICE).status_code == 404

    def test_other_owner_cannot_read_session(self, client: TestClient) -> None:
        _upload(client, _text_file(), session_id="alice-sess")

        response = client.get("/api/v1/sessions/alice-sess/status", headers=_BOB)

        assert response.status_code == 404

    def test_reused_session_id_rejected(self, client: TestClient) -> None:
        assert _upload(client, _text_file(), session_id="once").status_code == 200

        response = _upload(client, _text_file("again.txt"), session_id="once")

        assert response.status_code == 400
        assert "already in use" in response.json()["detail"]
        assert client.get("/api/v1/documents", headers=_ALICE).json()["total"] == 1

    def test_websocket_sends_current_snapshot(self, client: TestClient) -> None:
        _upload(client, _text_file(), session_id="sess-ws")

        with client.websocket_connect("/ws/progress/sess-ws?token=token-alice") as websocket:
            message = websocket.receive_json()

        assert message["session_id"] == "sess-ws"
        assert message["stage"] == "complete"
        assert message["percent"] == 100.0

    def test_websocket_accepts_bearer_header(self, client: TestClient) -> None:
        _upload(client, _text_file(), session_id="sess-hdr")

        with client.websocket_connect("/ws/progress/sess-hdr", headers=_ALICE) as websocket:
            assert websocket.receive_json()["session_id"] == "sess-hdr"

    def test_websocket_without_token_rejected(self, client: TestClient) -> None:
        _upload(client, _text_file(), session_id="sess-anon")

        with pytest.raises(WebSocketDisconnect) as excinfo:
            with client.websocket_connect("/ws/progress/sess-anon"):
                pass

        assert excinfo.value.code == 1008

    def test_websocket_for_other_owner_rejected(self, client: TestClient) -> None:
        _upload(client, _text_file(), session_id="alice-ws")

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/progress/alice-ws?token=token-bob"):
                pass

    def test_session_claimed_by_websocket_is_not_usable_by_other_owner(
        self, client: TestClient
    ) -> None:
        with client.websocket_connect("/ws/progress/early?token=token-alice"):
            pass

        response = _upload(client, _text_file(), headers=_BOB, session_id="early")

        assert response.status_code == 400
        assert _upload(client, _text_file(), session_id="early").status_code == 200


# ======================================================================
# Health
# ======================================================================


class TestHealth:
    def test_healthy(self, client: TestClient) -> None:
        body = client.get("/api/v1/health").json()
        assert body["status"] == "healthy"
        assert body["version"] == "0.1.0"
        assert body["providers"]["delivery_ok"] is True

    def test_degraded_when_delivery_unreachable(
        self, tmp_path: Path, api_settings: Settings
    ) -> None:
        components = _build_components(tmp_path, api_settings, _UnreachableDeliveryProvider())
        with TestClient(create_app(api_settings, components=components)) as client:
            body = client.get("/api/v1/health").json()
        assert body["status"] == "degraded"
        assert body["providers"]["delivery_ok"] is False

    def test_unhealthy_without_llm(self, client: TestClient) -> None:
        client.app.state.provider_registry = {
            **client.app.state.provider_registry,
            "llm": False,
        }
        assert client.get("/api/v1/health").json()["status"] == "unhealthy"
