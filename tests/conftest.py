"""Shared pytest fixtures and in-process test doubles for the docbrief suite."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from docbrief.config.settings import Settings
from docbrief.interfaces.delivery_provider import IDeliveryProvider
from docbrief.interfaces.embedding_provider import IEmbeddingProvider
from docbrief.interfaces.llm_provider import ILLMProvider
from docbrief.models.delivery import DeliveryArtifact, DeliveryResult
from docbrief.providers.storage.local_object_store import LocalObjectStore
from docbrief.providers.storage.sqlite_record_store import SQLiteRecordStore
from docbrief.providers.vector_store.memory_provider import InMemoryChunkStore
from docbrief.utils.errors import LLMError, RAGError

_WORD_RE = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Deterministic bag-of-words embeddings; identical texts get identical vectors.

    Set ``available = False`` to simulate an unreachable backend: every
    call then raises :class:`RAGError`.
    """

    def __init__(self, dimension: int = 32) -> None:
        self.dimension = dimension
        self.available = True
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            vec[bucket] += 1.0
        return vec

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if not self.available:
            raise RAGError(message="embedding backend unreachable", provider_name="fake")
        return [self._vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return self.dimension

    def get_provider_name(self) -> str:
        return "fake-embedding"

    def is_available(self) -> bool:
        return self.available


class FakeLLMProvider(ILLMProvider):
    """Returns queued responses in order, then repeats *default*.

    Queued ``Exception`` instances are raised instead of returned.
    """

    def __init__(self, responses: list[Any] | None = None, default: str = "A short summary.") -> None:
        self.responses = list(responses or [])
        self.default = default
        self.prompts: list[str] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        self.prompts.append(user_prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response

    def get_model_name(self) -> str:
        return "fake-model"

    def get_provider_name(self) -> str:
        return "fake-llm"

    def is_available(self) -> bool:
        return True


class RecordingDeliveryProvider(IDeliveryProvider):
    """Records every send; fails the calls whose 0-based index is in *fail_on*."""

    def __init__(self, fail_on: set[int] | None = None, delay: float = 0.0) -> None:
        self.sent: list[tuple[str, DeliveryArtifact]] = []
        self.fail_on = fail_on or set()
        self.delay = delay

    async def send(self, recipient: str, artifact: DeliveryArtifact) -> DeliveryResult:
        index = len(self.sent)
        self.sent.append((recipient, artifact))
        if index in self.fail_on:
            return DeliveryResult(success=False, error="rejected", provider_name="recording")
        return DeliveryResult(
            success=True, provider_message_id=f"msg-{index}", provider_name="recording"
        )

    async def check_status(self) -> bool:
        return True

    def get_message_delay(self) -> float:
        return self.delay

    def get_provider_name(self) -> str:
        return "recording"

    def is_available(self) -> bool:
        return True


def make_text(sentences: int = 6, topic: str = "revenue") -> str:
    """Plain-text body comfortably above the extraction minimum."""
    return " ".join(
        f"Sentence {i} explains the quarterly {topic} figures in some detail."
        for i in range(1, sentences + 1)
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="",
        database_path=str(tmp_path / "docbrief.db"),
        object_store_dir=str(tmp_path / "objects"),
        chunk_store="memory",
        delivery_provider="auto",
        twilio_account_sid="",
        twilio_auth_token="",
        twilio_whatsapp_number="",
        meta_access_token="",
        meta_phone_number_id="",
        webhook_delivery_url="",
        api_tokens="token-alice:alice,token-bob:bob",
        app_env="test",
    )


@pytest_asyncio.fixture
async def record_store(tmp_path: Path) -> SQLiteRecordStore:
    store = SQLiteRecordStore(db_path=tmp_path / "records.db")
    await store.initialize()
    return store


@pytest.fixture()
def object_store(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore(root_dir=tmp_path / "objects")


@pytest.fixture()
def chunk_store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture()
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def llm_provider() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture()
def delivery_provider() -> RecordingDeliveryProvider:
    return RecordingDeliveryProvider()


@pytest.fixture()
def transient_llm_error() -> LLMError:
    return LLMError(message="rate limited", provider_name="fake-llm")
