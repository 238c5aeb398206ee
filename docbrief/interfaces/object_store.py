"""Abstract base class for the blob/object store collaborator.

The pipeline stores uploaded bytes here and reads them back at processing
time.  The core only depends on these three calls; storage internals are
the adapter's business.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: LocalObjectStore (docbrief/providers/storage/)
class IObjectStore(ABC):
    """Contract for storing and fetching raw document bytes."""

    @abstractmethod
    async def get(self, path: str) -> bytes:
        """Return the bytes stored at *path*.

        Raises
        ------
        docbrief.utils.errors.StorageError
            If the object does not exist or cannot be read.
        """

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str = "") -> str:
        """Store *data* at *path* and return a public reference (URL/URI)."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove the object at *path* (no-op if absent)."""

    @abstractmethod
    def public_ref(self, path: str) -> str:
        """Return the public reference for *path* without touching storage."""
