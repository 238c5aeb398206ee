"""In-memory chunk store.

Keeps chunks in a dict keyed by document id.  A document's chunk set is an
immutable tuple that is swapped in one assignment, which makes
replacement atomic for any concurrent reader on the event loop.  Cosine
similarity is computed with numpy.

Suitable for development, the CLI and tests; data is lost on restart.
"""

from __future__ import annotations

import numpy as np
import structlog

from docbrief.interfaces.chunk_store import IChunkStore
from docbrief.models.rag import Chunk

logger = structlog.get_logger(logger_name=__name__)


class InMemoryChunkStore(IChunkStore):
    """Process-local chunk store with brute-force cosine search."""

    def __init__(self) -> None:
        # document_id -> (owner_id, chunk tuple)
        self._documents: dict[str, tuple[str, tuple[Chunk, ...]]] = {}

    async def replace_document_chunks(
        self,
        document_id: str,
        owner_id: str,
        chunks: list[Chunk],
    ) -> int:
        for chunk in chunks:
            if chunk.document_id != document_id or chunk.owner_id != owner_id:
                raise ValueError(
                    f"Chunk {chunk.id} does not belong to document {document_id} "
                    f"of owner {owner_id}"
                )
        if chunks:
            self._documents[document_id] = (owner_id, tuple(chunks))
        else:
            self._documents.pop(document_id, None)
        logger.debug("memory_replace_document_chunks", document_id=document_id, stored=len(chunks))
        return len(chunks)

    async def query(
        self,
        embedding: list[float],
        owner_id: str,
        top_k: int = 5,
    ) -> list[tuple[Chunk, float]]:
        candidates = [c for c in self._owner_chunks(owner_id) if c.embedding]
        if not candidates:
            return []

        query_vec = np.asarray(embedding, dtype=float)
        matrix = np.asarray([c.embedding for c in candidates], dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms > 0, matrix @ query_vec / norms, 0.0)
        scores = np.clip(scores, 0.0, 1.0)

        order = np.argsort(-scores, kind="stable")[:top_k]
        return [(candidates[i], float(scores[i])) for i in order]

    async def get_owner_chunks(self, owner_id: str) -> list[Chunk]:
        return sorted(self._owner_chunks(owner_id), key=lambda c: (c.document_id, c.sequence))

    async def delete_document(self, document_id: str) -> int:
        entry = self._documents.pop(document_id, None)
        return len(entry[1]) if entry else 0

    async def count(self, document_id: str | None = None, owner_id: str | None = None) -> int:
        total = 0
        for doc_id, (doc_owner, chunks) in list(self._documents.items()):
            if document_id is not None and doc_id != document_id:
                continue
            if owner_id is not None and doc_owner != owner_id:
                continue
            total += len(chunks)
        return total

    def get_provider_name(self) -> str:
        return "memory"

    def _owner_chunks(self, owner_id: str) -> list[Chunk]:
        chunks: list[Chunk] = []
        for doc_owner, doc_chunks in list(self._documents.values()):
            if doc_owner == owner_id:
                chunks.extend(doc_chunks)
        return chunks
