"""Chunk and retrieval models for owner-scoped semantic search.

A :class:`Chunk` is one sentence-aligned fragment of a document's text plus
its embedding vector.  Every chunk carries the ``owner_id`` of the document
it came from; the chunk stores and the retriever use it to keep all reads
inside one owner's data.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Chunk(BaseModel):
    """A bounded text fragment of one document."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    owner_id: str
    # 0-based position within the document; monotonic per document.
    sequence: int = Field(ge=0)
    text: str
    embedding: list[float] = Field(default_factory=list)


class MatchType(str, Enum):  # noqa: UP042
    """How a search result was found."""

    SEMANTIC = "semantic"
    LEXICAL = "lexical"


class SearchResult(BaseModel):
    """One retrieved chunk with its similarity to the query."""

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    similarity: float = Field(ge=0.0, le=1.0)
    match_type: MatchType = MatchType.SEMANTIC


class AnswerSource(BaseModel):
    """A retrieved passage an answer was grounded on."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk_id: str
    sequence: int
    similarity: float = Field(ge=0.0, le=1.0)
    match_type: MatchType
    # ``None`` when the document record is gone (e.g. purged mid-question).
    filename: str | None = None


class Answer(BaseModel):
    """Reply to a question asked over one owner's indexed documents."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer: str
    sources: list[AnswerSource] = Field(default_factory=list)
    # ``False`` when no passage matched and the LLM was never asked.
    grounded: bool = True
    model: str | None = None
