"""Chunk store adapters.

- ChromaDBChunkStore -- persistent, owner-filtered cosine search.
- InMemoryChunkStore -- process-local numpy search for development and tests.
"""

from docbrief.providers.vector_store.chromadb_provider import ChromaDBChunkStore
from docbrief.providers.vector_store.memory_provider import InMemoryChunkStore

__all__ = ["ChromaDBChunkStore", "InMemoryChunkStore"]
