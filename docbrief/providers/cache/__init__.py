"""Cache provider adapters."""

from docbrief.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
