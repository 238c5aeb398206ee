"""Unit tests for EmbeddingIndexer."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from docbrief.interfaces.chunk_store import IChunkStore
from docbrief.interfaces.embedding_provider import IEmbeddingProvider
from docbrief.providers.vector_store.memory_provider import InMemoryChunkStore
from docbrief.services.chunking.chunker import Chunker
from docbrief.services.indexing.embedding_indexer import EmbeddingIndexer, chunk_id_for
from docbrief.utils.errors import RAGError
from tests.conftest import FakeEmbeddingProvider


def _mock_embedding(vectors: list[list[float]], dimension: int = 3) -> MagicMock:
    mock = MagicMock(spec=IEmbeddingProvider)
    mock.embed = AsyncMock(return_value=vectors)
    mock.get_dimension.return_value = dimension
    mock.get_provider_name.return_value = "mock"
    return mock


class TestChunkId:
    def test_stable_zero_padded_id(self) -> None:
        assert chunk_id_for("doc-1", 0) == "doc-1:00000"
        assert chunk_id_for("doc-1", 42) == "doc-1:00042"


class TestEmbeddingIndexer:
    @pytest.fixture()
    def store(self) -> InMemoryChunkStore:
        return InMemoryChunkStore()

    @pytest.mark.asyncio
    async def test_index_builds_owner_scoped_chunks(self, store: InMemoryChunkStore) -> None:
        indexer = EmbeddingIndexer(FakeEmbeddingProvider(dimension=8), store)
        chunks = await indexer.index("doc-1", "alice", ["First part.", "Second part."])

        assert [c.id for c in chunks] == ["doc-1:00000", "doc-1:00001"]
        assert [c.sequence for c in chunks] == [0, 1]
        assert all(c.owner_id == "alice" and c.document_id == "doc-1" for c in chunks)
        assert all(len(c.embedding) == 8 for c in chunks)
        assert await store.count(document_id="doc-1") == 2

    @pytest.mark.asyncio
    async def test_blank_chunks_are_skipped(self, store: InMemoryChunkStore) -> None:
        indexer = EmbeddingIndexer(FakeEmbeddingProvider(), store)
        chunks = await indexer.index("doc-1", "alice", ["Real text.", "   ", ""])
        assert len(chunks) == 1

    @pytest.mark.asyncio
    async def test_reindex_replaces_instead_of_appending(self, store: InMemoryChunkStore) -> None:
        indexer = EmbeddingIndexer(FakeEmbeddingProvider(), store)
        await indexer.index("doc-1", "alice", ["A.", "B.", "C."])
        await indexer.index("doc-1", "alice", ["A.", "B.", "C."])
        assert await store.count(document_id="doc-1") == 3

        await indexer.index("doc-1", "alice", ["Only one now."])
        assert await store.count(document_id="doc-1") == 1

    @pytest.mark.asyncio
    async def test_empty_input_clears_document(self, store: InMemoryChunkStore) -> None:
        indexer = EmbeddingIndexer(FakeEmbeddingProvider(), store)
        await indexer.index("doc-1", "alice", ["A.", "B."])
        assert await indexer.index("doc-1", "alice", []) == []
        assert await store.count(document_id="doc-1") == 0

    @pytest.mark.asyncio
    async def test_vector_count_mismatch_raises(self) -> None:
        store = MagicMock(spec=IChunkStore)
        store.replace_document_chunks = AsyncMock(return_value=0)
        indexer = EmbeddingIndexer(_mock_embedding([[0.1, 0.2, 0.3]]), store)

        with pytest.raises(RAGError, match="Expected 2 embeddings"):
            await indexer.index("doc-1", "alice", ["A.", "B."])
        store.replace_document_chunks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dimension_mismatch_raises(self) -> None:
        store = MagicMock(spec=IChunkStore)
        store.replace_document_chunks = AsyncMock(return_value=0)
        indexer = EmbeddingIndexer(_mock_embedding([[0.1, 0.2]], dimension=3), store)

        with pytest.raises(RAGError, match="dimension 2"):
            await indexer.index("doc-1", "alice", ["A."])
        store.replace_document_chunks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_previous_set(self, store: InMemoryChunkStore) -> None:
        embedding = FakeEmbeddingProvider()
        indexer = EmbeddingIndexer(embedding, store)
        await indexer.index("doc-1", "alice", ["A.", "B."])

        embedding.available = False
        with pytest.raises(RAGError):
            await indexer.index("doc-1", "alice", ["C."])
        assert await store.count(document_id="doc-1") == 2

    @pytest.mark.asyncio
    async def test_index_text_chunks_first(self, store: InMemoryChunkStore) -> None:
        indexer = EmbeddingIndexer(FakeEmbeddingProvider(), store, chunker=Chunker(max_chars=15))
        chunks = await indexer.index_text("doc-1", "alice", "Hello world. This is a test.")
        assert [c.text for c in chunks] == ["Hello world.", "This is a test."]

    @pytest.mark.asyncio
    async def test_remove_deletes_chunks(self, store: InMemoryChunkStore) -> None:
        indexer = EmbeddingIndexer(FakeEmbeddingProvider(), store)
        await indexer.index("doc-1", "alice", ["A.", "B."])
        assert await indexer.remove("doc-1") == 2
        assert await store.count() == 0
