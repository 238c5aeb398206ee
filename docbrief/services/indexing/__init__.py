"""Embedding and storage of document chunks."""

from docbrief.services.indexing.embedding_indexer import EmbeddingIndexer

__all__ = ["EmbeddingIndexer"]
