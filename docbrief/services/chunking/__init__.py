"""Sentence-aligned chunking of extracted text."""

from docbrief.services.chunking.chunker import Chunker, split_sentences

__all__ = ["Chunker", "split_sentences"]
