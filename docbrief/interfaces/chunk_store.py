"""Abstract base class for the owner-scoped chunk store.

The chunk store persists :class:`~docbrief.models.rag.Chunk` records with
their embedding vectors and answers nearest-neighbour queries.  Two
guarantees are part of the contract:

- **Owner scoping** - every read takes an ``owner_id`` and only ever
  returns chunks carrying that owner id.
- **Atomic replacement** - :meth:`replace_document_chunks` swaps a
  document's whole chunk set; a concurrent :meth:`query` sees either the
  old set or the new one, never a mix.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docbrief.models.rag import Chunk


# Concrete implementations:
#   ChromaDBChunkStore  - persistent, local (chromadb)
#   InMemoryChunkStore  - process-local, for development and tests
# Located in: docbrief/providers/vector_store/
class IChunkStore(ABC):
    """Contract for persisting and searching embedded chunks."""

    @abstractmethod
    async def replace_document_chunks(
        self,
        document_id: str,
        owner_id: str,
        chunks: list[Chunk],
    ) -> int:
        """Atomically replace every stored chunk of *document_id*.

        Parameters
        ----------
        document_id:
            Document whose chunk set is replaced.
        owner_id:
            Owner of the document; every chunk must carry it.
        chunks:
            The new chunk set (may be empty, which clears the document).

        Returns
        -------
        int
            Number of chunks now stored for the document.

        Raises
        ------
        docbrief.utils.errors.RAGError
            If the backend write fails.  The previous set stays visible.
        """

    @abstractmethod
    async def query(
        self,
        embedding: list[float],
        owner_id: str,
        top_k: int = 5,
    ) -> list[tuple[Chunk, float]]:
        """Return up to *top_k* of *owner_id*'s chunks nearest to *embedding*.

        Returns
        -------
        list[tuple[Chunk, float]]
            ``(chunk, cosine_similarity)`` pairs sorted by descending
            similarity.  Similarity is clamped to ``[0, 1]``.
        """

    @abstractmethod
    async def get_owner_chunks(self, owner_id: str) -> list[Chunk]:
        """Return every chunk owned by *owner_id* (used for lexical search)."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> int:
        """Delete all chunks of *document_id*.  Returns the number removed."""

    @abstractmethod
    async def count(self, document_id: str | None = None, owner_id: str | None = None) -> int:
        """Count stored chunks, optionally filtered by document and/or owner."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
