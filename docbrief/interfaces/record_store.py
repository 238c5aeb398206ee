"""Abstract base class for the relational record store collaborator.

Persists documents, summaries, delivery records and the append-only
processing log.  Reads that serve a user take an ``owner_id`` so callers
cannot reach another owner's records by id alone.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from docbrief.models.delivery import DeliveryRecord
from docbrief.models.document import Document
from docbrief.models.pipeline import ProcessingLogEntry, ProcessingStats
from docbrief.models.summary import Summary


# Concrete implementations: SQLiteRecordStore (docbrief/providers/storage/)
class IRecordStore(ABC):
    """Contract for document, summary, delivery and audit-log persistence.

    Every write raises :class:`~docbrief.utils.errors.StorageError` on
    failure; writes are never dropped silently.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""

    # -- Documents ---------------------------------------------------------

    @abstractmethod
    async def insert_document(self, document: Document) -> None:
        """Persist a new document."""

    @abstractmethod
    async def update_document(self, document: Document) -> None:
        """Persist the current state of an existing document."""

    @abstractmethod
    async def get_document(self, document_id: str, owner_id: str | None = None) -> Document | None:
        """Return a document by id, restricted to *owner_id* when given."""

    @abstractmethod
    async def list_documents(self, owner_id: str, limit: int = 50) -> list[Document]:
        """Return an owner's documents, newest first."""

    @abstractmethod
    async def count_uploads_since(self, owner_id: str, since: datetime) -> int:
        """Count documents *owner_id* created at or after *since*."""

    @abstractmethod
    async def list_expired_documents(self, now: datetime) -> list[Document]:
        """Return documents whose ``expires_at`` is at or before *now*."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Delete a document with its summaries, deliveries and log entries."""

    # -- Summaries ---------------------------------------------------------

    @abstractmethod
    async def insert_summary(self, summary: Summary) -> None:
        """Persist a summary.  Older summaries of the document are kept."""

    @abstractmethod
    async def get_latest_summary(self, document_id: str) -> Summary | None:
        """Return the most recent summary of a document by ``created_at``."""

    # -- Deliveries --------------------------------------------------------

    @abstractmethod
    async def insert_delivery(self, record: DeliveryRecord) -> None:
        """Persist a new delivery record."""

    @abstractmethod
    async def update_delivery(self, record: DeliveryRecord) -> None:
        """Persist the current state of a delivery record."""

    @abstractmethod
    async def get_delivery(self, delivery_id: str) -> DeliveryRecord | None:
        """Return a delivery record by id."""

    @abstractmethod
    async def list_deliveries(self, document_id: str) -> list[DeliveryRecord]:
        """Return a document's delivery records, oldest first."""

    # -- Processing log ----------------------------------------------------

    @abstractmethod
    async def append_log(self, entry: ProcessingLogEntry) -> None:
        """Append one audit entry.  Existing entries are never modified."""

    @abstractmethod
    async def list_logs(self, document_id: str) -> list[ProcessingLogEntry]:
        """Return a document's audit trail in insertion order."""

    # -- Stats -------------------------------------------------------------

    @abstractmethod
    async def get_processing_stats(self, owner_id: str) -> ProcessingStats:
        """Return aggregate processing statistics for *owner_id*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
