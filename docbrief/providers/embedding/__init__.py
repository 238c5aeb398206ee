"""Embedding provider adapters.

OpenAIEmbeddingProvider implements IEmbeddingProvider
(docbrief/interfaces/embedding_provider.py) and also serves
OpenAI-compatible endpoints via OPENAI_BASE_URL.
"""

from docbrief.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
