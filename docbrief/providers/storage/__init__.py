"""Persistence adapters: SQLite record store and local object store."""

from docbrief.providers.storage.local_object_store import LocalObjectStore
from docbrief.providers.storage.sqlite_record_store import SQLiteRecordStore

__all__ = ["LocalObjectStore", "SQLiteRecordStore"]
