"""Owner-scoped retrieval over indexed document chunks.

Semantic search embeds the query and asks the chunk store for the nearest
neighbours among the caller's chunks.  When the embedding backend or the
vector query fails, the retriever falls back to lexical term-overlap
scoring over the same owner's chunks, so search degrades instead of
erroring.  Every result is re-checked against the requesting owner before
it is returned.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from docbrief.interfaces.cache_provider import make_cache_key
from docbrief.models.rag import Chunk, MatchType, SearchResult
from docbrief.utils.errors import RAGError

if TYPE_CHECKING:
    from docbrief.interfaces.cache_provider import ICacheProvider
    from docbrief.interfaces.chunk_store import IChunkStore
    from docbrief.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)

_TERM_RE = re.compile(r"\w+", re.UNICODE)
_STOPWORDS = frozenset(
    {"a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "is",
     "it", "of", "on", "or", "that", "the", "this", "to", "was", "with"}
)


def _terms(text: str) -> set[str]:
    return {t for t in _TERM_RE.findall(text.lower()) if t not in _STOPWORDS}


class Retriever:
    """Semantic search with a lexical fallback.

    Parameters
    ----------
    embedding_provider:
        Embeds the query text.
    chunk_store:
        Owner-scoped chunk store to search.
    cache:
        Optional cache for query embeddings.
    default_limit, default_threshold:
        Used when :meth:`search` is called without explicit values.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        chunk_store: IChunkStore,
        cache: ICacheProvider | None = None,
        default_limit: int = 5,
        default_threshold: float = 0.7,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._chunk_store = chunk_store
        self._cache = cache
        self._default_limit = default_limit
        self._default_threshold = default_threshold

    async def search(
        self,
        query: str,
        owner_id: str,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Return up to *limit* chunks of *owner_id* matching *query*.

        Parameters
        ----------
        query:
            Free-text query.
        owner_id:
            Only this owner's chunks are considered.
        limit:
            Maximum number of results.
        threshold:
            Minimum similarity in [0, 1].

        Returns
        -------
        list[SearchResult]
            Results sorted by descending similarity.

        Raises
        ------
        RAGError
            Only when both the semantic and the lexical path fail.
        """
        limit = self._default_limit if limit is None else limit
        threshold = self._default_threshold if threshold is None else threshold
        if not query.strip() or limit <= 0:
            return []

        try:
            results = await self._semantic_search(query, owner_id, limit, threshold)
        except Exception as exc:  # noqa: BLE001 -- any backend failure degrades to lexical
            logger.warning(
                "semantic_search_failed",
                owner_id=owner_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            try:
                results = await self._lexical_search(query, owner_id, limit, threshold)
            except Exception as fallback_exc:
                logger.error("lexical_search_failed", owner_id=owner_id, error=str(fallback_exc))
                raise RAGError(
                    message=f"Search failed: {exc}; lexical fallback failed: {fallback_exc}",
                    provider_name=self._chunk_store.get_provider_name(),
                ) from fallback_exc

        return self._enforce_owner(results, owner_id)

    # ------------------------------------------------------------------
    # Search paths
    # ------------------------------------------------------------------

    async def _semantic_search(
        self, query: str, owner_id: str, limit: int, threshold: float
    ) -> list[SearchResult]:
        embedding = await self._query_embedding(query, owner_id)
        matches = await self._chunk_store.query(embedding, owner_id=owner_id, top_k=limit)
        results = [
            SearchResult(chunk=chunk, similarity=score, match_type=MatchType.SEMANTIC)
            for chunk, score in matches
            if score >= threshold
        ]
        results.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug("semantic_search", owner_id=owner_id, results=len(results))
        return results[:limit]

    async def _lexical_search(
        self, query: str, owner_id: str, limit: int, threshold: float
    ) -> list[SearchResult]:
        query_terms = _terms(query)
        if not query_terms:
            return []

        scored: list[tuple[Chunk, float]] = []
        for chunk in await self._chunk_store.get_owner_chunks(owner_id):
            overlap = len(query_terms & _terms(chunk.text))
            if overlap:
                scored.append((chunk, overlap / len(query_terms)))

        scored.sort(key=lambda m: m[1], reverse=True)
        results = [
            SearchResult(chunk=chunk, similarity=score, match_type=MatchType.LEXICAL)
            for chunk, score in scored
            if score >= threshold
        ][:limit]
        logger.info("lexical_search", owner_id=owner_id, results=len(results))
        return results

    async def _query_embedding(self, query: str, owner_id: str) -> list[float]:
        key = make_cache_key(
            "query_embedding",
            owner_id,
            self._embedding_provider.get_provider_name(),
            " ".join(query.split()),
        )
        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                return list(cached)
        embedding = await self._embedding_provider.embed_single(query)
        if self._cache is not None:
            await self._cache.set(key, embedding)
        return embedding

    @staticmethod
    def _enforce_owner(results: list[SearchResult], owner_id: str) -> list[SearchResult]:
        allowed: list[SearchResult] = []
        for result in results:
            if result.chunk.owner_id != owner_id:
                logger.error(
                    "cross_owner_result_dropped",
                    owner_id=owner_id,
                    chunk_owner=result.chunk.owner_id,
                    chunk_id=result.chunk.id,
                )
                continue
            allowed.append(result)
        return allowed
