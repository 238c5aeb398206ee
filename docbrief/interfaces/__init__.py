"""Public interface definitions for all external collaborators.

Every external service the docbrief core touches is reached through one of
the abstract base classes in this package.  Concrete adapters live in
``docbrief/providers/`` and are wired together in ``docbrief/main.py``,
so tests can inject fakes for any collaborator.

CONCRETE PROVIDER MAP:
    Interface            →  Concrete implementations (in docbrief/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider   →  OpenAIEmbeddingProvider
    ILLMProvider         →  OpenAILLMProvider
    IChunkStore          →  ChromaDBChunkStore, InMemoryChunkStore
    IRecordStore         →  SQLiteRecordStore
    IObjectStore         →  LocalObjectStore
    IIdentityResolver    →  StaticTokenIdentityResolver
    IDeliveryProvider    →  TwilioWhatsAppProvider, MetaWhatsAppProvider,
                            WebhookDeliveryProvider, LogDeliveryProvider
    ICacheProvider       →  MemoryCacheProvider
"""

from docbrief.interfaces.cache_provider import ICacheProvider
from docbrief.interfaces.chunk_store import IChunkStore
from docbrief.interfaces.delivery_provider import IDeliveryProvider
from docbrief.interfaces.embedding_provider import IEmbeddingProvider
from docbrief.interfaces.identity_resolver import IIdentityResolver
from docbrief.interfaces.llm_provider import ILLMProvider
from docbrief.interfaces.object_store import IObjectStore
from docbrief.interfaces.record_store import IRecordStore

__all__ = [
    "ICacheProvider",
    "IChunkStore",
    "IDeliveryProvider",
    "IEmbeddingProvider",
    "IIdentityResolver",
    "ILLMProvider",
    "IObjectStore",
    "IRecordStore",
]
