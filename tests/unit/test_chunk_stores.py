"""Unit tests for the chunk store providers.

InMemoryChunkStore is exercised directly.  ChromaDBChunkStore runs against
a real persistent client in tmp_path for storage behaviour, and against a
mocked collection where a specific failure must be injected.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from docbrief.models.rag import Chunk
from docbrief.providers.vector_store.chromadb_provider import ChromaDBChunkStore
from docbrief.providers.vector_store.memory_provider import InMemoryChunkStore
from docbrief.services.indexing.embedding_indexer import chunk_id_for
from docbrief.utils.errors import RAGError


def _chunk(
    sequence: int,
    document_id: str = "doc-1",
    owner_id: str = "alice",
    embedding: list[float] | None = None,
    text: str | None = None,
) -> Chunk:
    return Chunk(
        id=f"{document_id}-{sequence}",
        document_id=document_id,
        owner_id=owner_id,
        sequence=sequence,
        text=text or f"Chunk {sequence} of {document_id}.",
        embedding=embedding if embedding is not None else [1.0, float(sequence), 0.0],
    )


class _FlakyDeleteCollection:
    """Delegates to a real collection but fails the first ``delete`` call."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self._failed = False

    def delete(self, **kwargs: Any) -> Any:
        if not self._failed:
            self._failed = True
            raise RuntimeError("database is locked")
        return self._inner.delete(**kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)


# ======================================================================
# InMemoryChunkStore
# ======================================================================


class TestInMemoryChunkStore:
    @pytest.fixture()
    def store(self) -> InMemoryChunkStore:
        return InMemoryChunkStore()

    @pytest.mark.asyncio
    async def test_replace_swaps_whole_set(self, store: InMemoryChunkStore) -> None:
        await store.replace_document_chunks("doc-1", "alice", [_chunk(0), _chunk(1), _chunk(2)])
        await store.replace_document_chunks("doc-1", "alice", [_chunk(0)])
        assert await store.count(document_id="doc-1") == 1

    @pytest.mark.asyncio
    async def test_replace_with_empty_list_clears(self, store: InMemoryChunkStore) -> None:
        await store.replace_document_chunks("doc-1", "alice", [_chunk(0)])
        await store.replace_document_chunks("doc-1", "alice", [])
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_foreign_chunk_rejected(self, store: InMemoryChunkStore) -> None:
        with pytest.raises(ValueError, match="does not belong"):
            await store.replace_document_chunks("doc-1", "alice", [_chunk(0, owner_id="bob")])

    @pytest.mark.asyncio
    async def test_query_ranks_by_cosine_and_scopes_owner(self, store: InMemoryChunkStore) -> None:
        await store.replace_document_chunks(
            "doc-1",
            "alice",
            [_chunk(0, embedding=[1.0, 0.0, 0.0]), _chunk(1, embedding=[0.6, 0.8, 0.0])],
        )
        await store.replace_document_chunks(
            "doc-2", "bob", [_chunk(0, document_id="doc-2", owner_id="bob", embedding=[1.0, 0.0, 0.0])]
        )

        results = await store.query([1.0, 0.0, 0.0], "alice", top_k=5)
        assert [c.id for c, _ in results] == ["doc-1-0", "doc-1-1"]
        assert results[0][1] == pytest.approx(1.0)
        assert results[1][1] == pytest.approx(0.6)
        assert all(c.owner_id == "alice" for c, _ in results)

    @pytest.mark.asyncio
    async def test_query_clips_negative_similarity(self, store: InMemoryChunkStore) -> None:
        await store.replace_document_chunks("doc-1", "alice", [_chunk(0, embedding=[-1.0, 0.0, 0.0])])
        results = await store.query([1.0, 0.0, 0.0], "alice")
        assert results[0][1] == 0.0

    @pytest.mark.asyncio
    async def test_query_respects_top_k(self, store: InMemoryChunkStore) -> None:
        await store.replace_document_chunks("doc-1", "alice", [_chunk(i) for i in range(6)])
        assert len(await store.query([1.0, 0.0, 0.0], "alice", top_k=2)) == 2

    @pytest.mark.asyncio
    async def test_query_unknown_owner_empty(self, store: InMemoryChunkStore) -> None:
        assert await store.query([1.0, 0.0, 0.0], "nobody") == []

    @pytest.mark.asyncio
    async def test_get_owner_chunks_sorted(self, store: InMemoryChunkStore) -> None:
        await store.replace_document_chunks("doc-b", "alice", [_chunk(1, "doc-b"), _chunk(0, "doc-b")])
        await store.replace_document_chunks("doc-a", "alice", [_chunk(0, "doc-a")])
        chunks = await store.get_owner_chunks("alice")
        assert [c.id for c in chunks] == ["doc-a-0", "doc-b-0", "doc-b-1"]

    @pytest.mark.asyncio
    async def test_delete_and_count(self, store: InMemoryChunkStore) -> None:
        await store.replace_document_chunks("doc-1", "alice", [_chunk(0), _chunk(1)])
        await store.replace_document_chunks("doc-2", "bob", [_chunk(0, "doc-2", "bob")])
        assert await store.count(owner_id="alice") == 2
        assert await store.delete_document("doc-1") == 2
        assert await store.delete_document("doc-1") == 0
        assert await store.count() == 1


# ======================================================================
# ChromaDBChunkStore (persistent client)
# ======================================================================


class TestChromaDBChunkStore:
    @pytest.fixture()
    def store(self, tmp_path: Path) -> ChromaDBChunkStore:
        return ChromaDBChunkStore(
            persist_directory=str(tmp_path / "chroma"),
            collection_name="test_chunks",
        )

    def test_get_provider_name(self, store: ChromaDBChunkStore) -> None:
        assert store.get_provider_name() == "chromadb"

    @pytest.mark.asyncio
    async def test_replace_drops_stale_chunks(self, store: ChromaDBChunkStore) -> None:
        await store.replace_document_chunks("doc-1", "alice", [_chunk(0), _chunk(1), _chunk(2)])
        assert await store.count(document_id="doc-1") == 3

        await store.replace_document_chunks("doc-1", "alice", [_chunk(0)])
        assert await store.count(document_id="doc-1") == 1
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_owner_chunks_and_counts(self, store: ChromaDBChunkStore) -> None:
        await store.replace_document_chunks("doc-1", "alice", [_chunk(1), _chunk(0)])
        await store.replace_document_chunks("doc-2", "bob", [_chunk(0, "doc-2", "bob")])

        chunks = await store.get_owner_chunks("alice")
        assert [c.id for c in chunks] == ["doc-1-0", "doc-1-1"]
        assert chunks[0].text == "Chunk 0 of doc-1."
        assert await store.count(document_id="doc-1", owner_id="alice") == 2
        assert await store.count(document_id="doc-1", owner_id="bob") == 0

    @pytest.mark.asyncio
    async def test_delete_document(self, store: ChromaDBChunkStore) -> None:
        await store.replace_document_chunks("doc-1", "alice", [_chunk(0), _chunk(1)])
        assert await store.delete_document("doc-1") == 2
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_query_on_empty_collection(self, store: ChromaDBChunkStore) -> None:
        assert await store.query([1.0, 0.0, 0.0], "alice") == []

    @pytest.mark.asyncio
    async def test_failed_reindex_keeps_previous_set_with_indexer_ids(
        self, store: ChromaDBChunkStore
    ) -> None:
        old = [
            Chunk(
                id=chunk_id_for("doc-1", i),
                document_id="doc-1",
                owner_id="alice",
                sequence=i,
                text=f"old {i}.",
                embedding=[1.0, float(i), 0.0],
            )
            for i in range(3)
        ]
        new = [
            c.model_copy(update={"text": f"new {c.sequence}.", "embedding": [0.0, 1.0, 1.0]})
            for c in old[:2]
        ]
        await store.replace_document_chunks("doc-1", "alice", old)
        store._collection = _FlakyDeleteCollection(store._collection)

        with pytest.raises(RAGError, match="previous chunk set"):
            await store.replace_document_chunks("doc-1", "alice", new)

        chunks = await store.get_owner_chunks("alice")
        assert [c.text for c in chunks] == ["old 0.", "old 1.", "old 2."]
        results = await store.query([1.0, 0.0, 0.0], "alice", top_k=1)
        assert results[0][0].text == "old 0."

# ======================================================================
# ChromaDBChunkStore (mocked collection)
# ======================================================================


class TestChromaDBChunkStoreMocked:
    @pytest.fixture()
    def collection(self) -> MagicMock:
        collection = MagicMock()
        collection.get.return_value = {"ids": []}
        collection.count.return_value = 2
        return collection

    @pytest.fixture()
    def store(self, collection: MagicMock) -> ChromaDBChunkStore:
        client = MagicMock()
        client.get_or_create_collection.return_value = collection
        return ChromaDBChunkStore(client=client)

    @pytest.mark.asyncio
    async def test_query_filters_by_owner_and_converts_distance(
        self, store: ChromaDBChunkStore, collection: MagicMock
    ) -> None:
        collection.query.return_value = {
            "ids": [["doc-1-1", "doc-1-0"]],
            "documents": [["second", "first"]],
            "metadatas": [
                [
                    {"document_id": "doc-1", "owner_id": "alice", "sequence": 1},
                    {"document_id": "doc-1", "owner_id": "alice", "sequence": 0},
                ]
            ],
            "distances": [[0.4, 0.1]],
        }

        results = await store.query([1.0, 0.0, 0.0], "alice", top_k=5)

        kwargs = collection.query.call_args.kwargs
        assert kwargs["where"] == {"owner_id": "alice"}
        assert kwargs["n_results"] == 2
        assert [c.id for c, _ in results] == ["doc-1-0", "doc-1-1"]
        assert results[0][1] == pytest.approx(0.9)
        assert results[1][1] == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_query_failure_raises_rag_error(
        self, store: ChromaDBChunkStore, collection: MagicMock
    ) -> None:
        collection.query.side_effect = RuntimeError("index corrupt")
        with pytest.raises(RAGError, match="index corrupt"):
            await store.query([1.0, 0.0, 0.0], "alice")

    @pytest.mark.asyncio
    async def test_failed_upsert_restores_previous_set(
        self, store: ChromaDBChunkStore, collection: MagicMock
    ) -> None:
        collection.get.return_value = {
            "ids": ["doc-1-0", "doc-1-1"],
            "embeddings": [[1.0, 0.0, 0.0], [1.0, 1.0, 0.0]],
            "documents": ["old zero", "old one"],
            "metadatas": [
                {"document_id": "doc-1", "owner_id": "alice", "sequence": 0},
                {"document_id": "doc-1", "owner_id": "alice", "sequence": 1},
            ],
        }
        collection.upsert.side_effect = [RuntimeError("disk full"), None]

        with pytest.raises(RAGError, match="upsert failed"):
            await store.replace_document_chunks("doc-1", "alice", [_chunk(0)])

        collection.delete.assert_not_called()
        restore = collection.upsert.call_args_list[1].kwargs
        assert restore["ids"] == ["doc-1-0", "doc-1-1"]
        assert restore["documents"] == ["old zero", "old one"]

    @pytest.mark.asyncio
    async def test_failed_stale_delete_removes_added_ids_and_restores(
        self, store: ChromaDBChunkStore, collection: MagicMock
    ) -> None:
        collection.get.return_value = {
            "ids": ["old-0", "old-1"],
            "embeddings": [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
            "documents": ["a", "b"],
            "metadatas": [{}, {}],
        }
        collection.delete.side_effect = [RuntimeError("locked"), None]

        with pytest.raises(RAGError, match="previous chunk set"):
            await store.replace_document_chunks("doc-1", "alice", [_chunk(0)])

        assert collection.delete.call_args_list[0].kwargs == {"ids": ["old-0", "old-1"]}
        assert collection.delete.call_args_list[1].kwargs == {"ids": ["doc-1-0"]}
        assert collection.upsert.call_args_list[-1].kwargs["ids"] == ["old-0", "old-1"]

    def test_build_where(self) -> None:
        assert ChromaDBChunkStore._build_where() is None
        assert ChromaDBChunkStore._build_where(owner_id="a") == {"owner_id": "a"}
        assert ChromaDBChunkStore._build_where(document_id="d", owner_id="a") == {
            "$and": [{"document_id": "d"}, {"owner_id": "a"}]
        }
