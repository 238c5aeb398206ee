"""Embedding indexer: chunk texts -> embedded, owner-scoped chunks -> store.

The :class:`EmbeddingIndexer` coordinates the chunker, the embedding
provider and the chunk store without any of them knowing about each
other.  A document's chunks are embedded in one batch and then swapped
into the store as a whole set, so re-indexing a document replaces its
previous chunks instead of adding to them.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from docbrief.models.rag import Chunk
from docbrief.services.chunking.chunker import Chunker
from docbrief.utils.errors import RAGError

if TYPE_CHECKING:
    from docbrief.interfaces.chunk_store import IChunkStore
    from docbrief.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)


def chunk_id_for(document_id: str, sequence: int) -> str:
    """Stable chunk id, so re-indexing overwrites rather than duplicates."""
    return f"{document_id}:{sequence:05d}"


class EmbeddingIndexer:
    """Embeds document chunks and stores them in the chunk store.

    Parameters
    ----------
    embedding_provider:
        Generates embedding vectors for chunk text.
    chunk_store:
        Owner-scoped store receiving the embedded chunks.
    chunker:
        Used by :meth:`index_text` to split raw text first.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        chunk_store: IChunkStore,
        chunker: Chunker | None = None,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._chunk_store = chunk_store
        self._chunker = chunker or Chunker()

    async def index(self, document_id: str, owner_id: str, chunks: list[str]) -> list[Chunk]:
        """Embed *chunks* and atomically replace the document's chunk set.

        Raises
        ------
        RAGError
            If embedding fails, returns the wrong number of vectors, a
            vector has the wrong dimension, or the store write fails.
        """
        start = time.monotonic()
        texts = [c for c in chunks if c.strip()]
        if not texts:
            await self._chunk_store.replace_document_chunks(document_id, owner_id, [])
            logger.info("index_empty_document", document_id=document_id)
            return []

        vectors = await self._embedding_provider.embed(texts)
        if len(vectors) != len(texts):
            raise RAGError(
                message=f"Expected {len(texts)} embeddings, got {len(vectors)}",
                provider_name=self._embedding_provider.get_provider_name(),
            )

        dimension = self._embedding_provider.get_dimension()
        records: list[Chunk] = []
        for sequence, (text, vector) in enumerate(zip(texts, vectors, strict=True)):
            if dimension and len(vector) != dimension:
                raise RAGError(
                    message=(
                        f"Embedding for chunk {sequence} has dimension {len(vector)}, "
                        f"expected {dimension}"
                    ),
                    provider_name=self._embedding_provider.get_provider_name(),
                )
            records.append(
                Chunk(
                    id=chunk_id_for(document_id, sequence),
                    document_id=document_id,
                    owner_id=owner_id,
                    sequence=sequence,
                    text=text,
                    embedding=list(vector),
                )
            )

        stored = await self._chunk_store.replace_document_chunks(document_id, owner_id, records)
        logger.info(
            "document_indexed",
            document_id=document_id,
            owner_id=owner_id,
            chunks=stored,
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return records

    async def index_text(
        self,
        document_id: str,
        owner_id: str,
        text: str,
        max_chars: int | None = None,
    ) -> list[Chunk]:
        """Chunk *text* and index the result."""
        return await self.index(document_id, owner_id, self._chunker.chunk(text, max_chars))

    async def remove(self, document_id: str) -> int:
        """Drop every chunk of *document_id* from the store."""
        return await self._chunk_store.delete_document(document_id)
