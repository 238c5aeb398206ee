"""Abstract base class for cache service providers.

Defines the key-value cache contract used by the retriever to keep query
embeddings between searches.  Implementations may use an in-memory TTL
cache or a network store without touching the retriever.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Any


def make_cache_key(namespace: str, *parts: str) -> str:
    """Return ``<namespace>:<sha256 of parts>``.

    Parts are joined with a NUL separator so ``("ab", "c")`` and
    ``("a", "bc")`` never collide.
    """
    digest = hashlib.sha256("\x00".join(parts).encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}"


class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async to allow for network-backed stores without
    blocking the event loop.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or ``None`` if missing/expired."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store *value* under *key* using the cache's configured TTL."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key* from the cache (no-op if absent)."""
