"""Question answering over one owner's indexed documents.

Retrieves the owner's best-matching chunks through the :class:`Retriever`
(semantic search with lexical fallback) and asks the injected
:class:`ILLMProvider` to answer from those passages only.  When nothing
matches, the LLM is never called and a fixed "nothing found" answer is
returned, so an answer is never made up from the model's general
knowledge.

Provider failures propagate as :class:`TransientExternalError` (the API
maps them to 502); there is no canned fallback answer on error.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from docbrief.models.rag import Answer, AnswerSource, SearchResult
from docbrief.utils.concurrency import call_with_retry
from docbrief.utils.errors import ValidationError

if TYPE_CHECKING:
    from docbrief.interfaces.llm_provider import ILLMProvider
    from docbrief.interfaces.record_store import IRecordStore
    from docbrief.services.retrieval.retriever import Retriever

logger = structlog.get_logger(logger_name=__name__)

NO_CONTEXT_ANSWER = (
    "I couldn't find any relevant information in the uploaded documents "
    "to answer your question."
)
EMPTY_REPLY_ANSWER = "Sorry, I could not generate a response."

_SYSTEM_PROMPT = (
    "You answer questions about the user's own documents. Use only the numbered "
    "passages you are given. If they do not contain the answer, say so plainly. "
    "Cite passages by their number in square brackets, e.g. [2]."
)

_MAX_TOKENS = 800


class QAService:
    """Answers free-text questions from an owner's indexed chunks.

    Parameters
    ----------
    retriever:
        Owner-scoped chunk search.
    llm_provider:
        Text-generation backend.
    record_store:
        Optional; when given, sources carry the document's filename.
    timeout:
        Per-attempt timeout for the generation call, in seconds.
    retries:
        Retries for transient generation failures.
    temperature:
        Sampling temperature passed to the provider.
    """

    def __init__(
        self,
        retriever: Retriever,
        llm_provider: ILLMProvider,
        record_store: IRecordStore | None = None,
        timeout: float = 60.0,
        retries: int = 2,
        temperature: float = 0.2,
    ) -> None:
        self._retriever = retriever
        self._llm = llm_provider
        self._record_store = record_store
        self._timeout = timeout
        self._retries = retries
        self._temperature = temperature

    async def ask(
        self,
        query: str,
        owner_id: str,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> Answer:
        """Answer *query* from *owner_id*'s documents.

        Raises
        ------
        ValidationError
            If *query* is blank.
        TransientExternalError
            If retrieval or generation keeps failing.
        """
        question = query.strip()
        if not question:
            raise ValidationError(message="Question must not be empty")

        start = time.monotonic()
        results = await self._retriever.search(
            question, owner_id, limit=limit, threshold=threshold
        )
        if not results:
            logger.info("qa_no_context", owner_id=owner_id)
            return Answer(question=question, answer=NO_CONTEXT_ANSWER, grounded=False)

        sources = await self._sources(results, owner_id)
        prompt = build_qa_prompt(question, results, sources)
        reply = await call_with_retry(
            lambda: self._llm.complete(
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=prompt,
                temperature=self._temperature,
                max_tokens=_MAX_TOKENS,
            ),
            operation="qa_generation",
            timeout=self._timeout,
            retries=self._retries,
        )
        answer = reply.strip() or EMPTY_REPLY_ANSWER

        logger.info(
            "qa_answered",
            owner_id=owner_id,
            sources=len(sources),
            model=self._llm.get_model_name(),
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return Answer(
            question=question,
            answer=answer,
            sources=sources,
            model=self._llm.get_model_name(),
        )

    async def _sources(self, results: list[SearchResult], owner_id: str) -> list[AnswerSource]:
        filenames: dict[str, str | None] = {}
        for result in results:
            document_id = result.chunk.document_id
            if document_id in filenames:
                continue
            filenames[document_id] = None
            if self._record_store is not None:
                document = await self._record_store.get_document(document_id, owner_id=owner_id)
                if document is not None:
                    filenames[document_id] = document.filename
        return [
            AnswerSource(
                document_id=r.chunk.document_id,
                chunk_id=r.chunk.id,
                sequence=r.chunk.sequence,
                similarity=r.similarity,
                match_type=r.match_type,
                filename=filenames[r.chunk.document_id],
            )
            for r in results
        ]


def build_qa_prompt(
    question: str, results: list[SearchResult], sources: list[AnswerSource]
) -> str:
    """Render the user prompt: numbered passages, then the question."""
    passages = []
    for number, (result, source) in enumerate(zip(results, sources, strict=True), start=1):
        label = source.filename or source.document_id
        passages.append(f"[{number}] ({label})\n{result.chunk.text}")
    context = "\n\n".join(passages)
    return (
        "Answer the question based only on the context below.\n\n"
        f"Context:\n{context}\n\n"
        f"Question: {question}\n\n"
        "Answer:"
    )
