"""ChromaDB chunk store adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IChunkStore`.
Uses cosine distance for similarity search and stores ``owner_id``,
``document_id`` and ``sequence`` as chunk metadata so every read can be
filtered by owner inside ChromaDB itself.

ChromaDB has no multi-statement transactions.  Replacement and queries are
therefore serialised through one ``asyncio.Lock``: a searcher waits while a
document's chunk set is being swapped and then sees only the new set.  The
blocking client calls run in a worker thread so a slow disk write does not
stall other documents' stages.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# ChromaDB's bundled telemetry client is disabled before import.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from docbrief.interfaces.chunk_store import IChunkStore
from docbrief.models.rag import Chunk
from docbrief.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    docbrief always passes pre-computed embeddings, so ChromaDB's built-in
    embedding must never run (it would download a default ONNX model).
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "docbrief uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBChunkStore(IChunkStore):
    """Owner-scoped chunk store backed by ChromaDB with local persistence.

    Parameters
    ----------
    persist_directory:
        Directory for ChromaDB's on-disk data.
    collection_name:
        Name of the collection holding all owners' chunks.
    client:
        Optional pre-built ChromaDB client (tests pass an ephemeral one).
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "docbrief_chunks",
        client: Any | None = None,
    ) -> None:
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            # Collection persisted with a different embedding function.
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # IChunkStore implementation
    # ------------------------------------------------------------------

    async def replace_document_chunks(
        self,
        document_id: str,
        owner_id: str,
        chunks: list[Chunk],
    ) -> int:
        """Swap *document_id*'s chunk set for *chunks*.

        Chunk ids are deterministic per sequence, so the upsert overwrites
        the previous set in place.  The previous records (with their
        embeddings) are snapshotted first; if the upsert or the delete of
        stale ids fails, the snapshot is written back and any id that only
        the new set used is removed.
        """
        for chunk in chunks:
            if chunk.document_id != document_id or chunk.owner_id != owner_id:
                raise ValueError(
                    f"Chunk {chunk.id} does not belong to document {document_id} "
                    f"of owner {owner_id}"
                )

        async with self._lock:
            try:
                snapshot = await asyncio.to_thread(
                    self._collection.get,
                    where={"document_id": document_id},
                    include=["embeddings", "documents", "metadatas"],
                )
            except Exception as exc:
                raise RAGError(
                    message=f"ChromaDB read before replace failed: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            old_ids = list(snapshot["ids"] or [])

            new_ids = [c.id for c in chunks]
            if chunks:
                try:
                    await asyncio.to_thread(
                        self._collection.upsert,
                        ids=new_ids,
                        embeddings=[c.embedding for c in chunks],
                        documents=[c.text for c in chunks],
                        metadatas=[self._chunk_to_metadata(c) for c in chunks],
                    )
                except Exception as exc:
                    await self._restore(document_id, snapshot, new_ids)
                    raise RAGError(
                        message=f"ChromaDB upsert failed: {exc}",
                        provider_name=self.get_provider_name(),
                    ) from exc

            new_id_set = set(new_ids)
            stale_ids = [i for i in old_ids if i not in new_id_set]
            if stale_ids:
                try:
                    await asyncio.to_thread(self._collection.delete, ids=stale_ids)
                except Exception as exc:
                    await self._restore(document_id, snapshot, new_ids)
                    raise RAGError(
                        message=f"ChromaDB delete of previous chunk set failed: {exc}",
                        provider_name=self.get_provider_name(),
                    ) from exc

        logger.info(
            "chromadb_replace_document_chunks",
            document_id=document_id,
            owner_id=owner_id,
            replaced=len(old_ids),
            stored=len(chunks),
        )
        return len(chunks)

    async def _restore(
        self, document_id: str, snapshot: dict[str, Any], new_ids: list[str]
    ) -> None:
        """Write *snapshot* back after a failed replace.

        Must be called with ``self._lock`` held.  A failure here is logged
        and left to the caller's ``RAGError``; the next successful replace
        of the document overwrites whatever remains.
        """
        old_ids = list(snapshot["ids"] or [])
        kept = set(old_ids)
        added_ids = [i for i in new_ids if i not in kept]
        try:
            if added_ids:
                await asyncio.to_thread(self._collection.delete, ids=added_ids)
            if old_ids:
                embeddings = snapshot.get("embeddings")
                await asyncio.to_thread(
                    self._collection.upsert,
                    ids=old_ids,
                    embeddings=[[float(v) for v in e] for e in embeddings],
                    documents=list(snapshot.get("documents") or [""] * len(old_ids)),
                    metadatas=list(snapshot.get("metadatas") or [{}] * len(old_ids)),
                )
        except Exception as exc:
            logger.error(
                "chromadb_restore_failed",
                document_id=document_id,
                chunk_count=len(old_ids),
                error=str(exc),
            )
        else:
            logger.warning(
                "chromadb_replace_rolled_back", document_id=document_id, restored=len(old_ids)
            )

    async def query(
        self,
        embedding: list[float],
        owner_id: str,
        top_k: int = 5,
    ) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search restricted to *owner_id*'s chunks."""
        try:
            async with self._lock:
                total = await asyncio.to_thread(self._collection.count)
                if total == 0:
                    return []
                results = await asyncio.to_thread(
                    self._collection.query,
                    query_embeddings=[embedding],
                    n_results=min(top_k, total),
                    where={"owner_id": owner_id},
                    include=["documents", "metadatas", "distances"],
                )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results["ids"] or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = results["documents"][0] if results["documents"] else [""] * len(ids)
        metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(ids)
        distances = results["distances"][0] if results["distances"] else [1.0] * len(ids)

        matches: list[tuple[Chunk, float]] = []
        for chunk_id, text, meta, distance in zip(ids, documents, metadatas, distances, strict=True):
            similarity = max(0.0, min(1.0, 1.0 - distance))
            matches.append((self._metadata_to_chunk(chunk_id, text, meta), similarity))

        matches.sort(key=lambda m: m[1], reverse=True)
        logger.debug("chromadb_query", owner_id=owner_id, results_count=len(matches))
        return matches

    async def get_owner_chunks(self, owner_id: str) -> list[Chunk]:
        try:
            async with self._lock:
                results = await asyncio.to_thread(
                    self._collection.get,
                    where={"owner_id": owner_id},
                    include=["documents", "metadatas"],
                )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB get failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"] or []
        documents = results["documents"] or [""] * len(ids)
        metadatas = results["metadatas"] or [{}] * len(ids)
        chunks = [
            self._metadata_to_chunk(chunk_id, text, meta)
            for chunk_id, text, meta in zip(ids, documents, metadatas, strict=True)
        ]
        chunks.sort(key=lambda c: (c.document_id, c.sequence))
        return chunks

    async def delete_document(self, document_id: str) -> int:
        try:
            async with self._lock:
                existing = await asyncio.to_thread(
                    self._collection.get, where={"document_id": document_id}
                )
                ids = list(existing["ids"] or [])
                if ids:
                    await asyncio.to_thread(self._collection.delete, ids=ids)
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_delete_document", document_id=document_id, deleted_count=len(ids))
        return len(ids)

    async def count(self, document_id: str | None = None, owner_id: str | None = None) -> int:
        where = self._build_where(document_id=document_id, owner_id=owner_id)
        try:
            if where is None:
                return await asyncio.to_thread(self._collection.count)
            existing = await asyncio.to_thread(self._collection.get, where=where, include=[])
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return len(existing["ids"] or [])

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Metadata helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_where(
        document_id: str | None = None, owner_id: str | None = None
    ) -> dict[str, Any] | None:
        conditions: list[dict[str, Any]] = []
        if document_id is not None:
            conditions.append({"document_id": document_id})
        if owner_id is not None:
            conditions.append({"owner_id": owner_id})
        if not conditions:
            return None
        if len(conditions) == 1:
            return conditions[0]
        return {"$and": conditions}

    @staticmethod
    def _chunk_to_metadata(chunk: Chunk) -> dict[str, Any]:
        return {
            "document_id": chunk.document_id,
            "owner_id": chunk.owner_id,
            "sequence": chunk.sequence,
        }

    @staticmethod
    def _metadata_to_chunk(chunk_id: str, text: str, meta: dict[str, Any]) -> Chunk:
        return Chunk(
            id=chunk_id,
            document_id=str(meta.get("document_id", "")),
            owner_id=str(meta.get("owner_id", "")),
            sequence=int(meta.get("sequence", 0)),
            text=text or "",
        )
