"""In-process TTL cache for query embeddings, backed by ``cachetools``.

Keys come from :func:`~docbrief.interfaces.cache_provider.make_cache_key`,
which hashes its parts so raw search queries never appear in cache keys
or in the ``cache_lookup`` debug lines.  The retriever includes the owner
id in every key, so two owners never share an entry even for identical
queries.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import structlog
from cachetools import TTLCache

from docbrief.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """Bounded TTL cache for a single process.

    Parameters
    ----------
    max_size:
        Entries kept before the oldest is evicted.
    ttl:
        Seconds an entry stays valid after it was set.
    timer:
        Clock for expiry (tests pass a controllable one).
    """

    def __init__(
        self,
        max_size: int = 512,
        ttl: int = 3600,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=max_size, ttl=ttl, timer=timer)
        self.hits = 0
        self.misses = 0

    async def get(self, key: str) -> Any | None:
        value = self._cache.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        logger.debug("cache_lookup", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any) -> None:
        # Lists are frozen to tuples; callers copy them back out.
        self._cache[key] = tuple(value) if isinstance(value, list) else value

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)
