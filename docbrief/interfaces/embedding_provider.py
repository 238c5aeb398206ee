"""Abstract base class for text-embedding service providers.

Defines the contract for generating fixed-dimension embedding vectors from
text.  The indexer embeds chunk texts through it and the retriever embeds
queries through it, so both always agree on the vector space.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider - text-embedding-3-small (requires API key)
# Located in: docbrief/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used for indexing and search."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations handle
            batching internally if the underlying API has a per-call limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        docbrief.utils.errors.RAGError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string (e.g. a query)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        This value must remain constant for the lifetime of the provider
        instance and must match the vectors already held by the chunk store.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
