"""docbrief FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and starts the retention sweep alongside the server.

``build_components`` is also used by the CLI, which needs the same object
graph without the web server.
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from docbrief.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from docbrief.api.routes import router as api_router
from docbrief.api.websocket import websocket_progress
from docbrief.config.loader import load_config
from docbrief.config.settings import Settings
from docbrief.interfaces.chunk_store import IChunkStore
from docbrief.interfaces.delivery_provider import IDeliveryProvider
from docbrief.pipeline.orchestrator import DocumentPipeline
from docbrief.pipeline.progress_tracker import ProgressTracker
from docbrief.pipeline.validation_gate import ValidationGate
from docbrief.providers.cache.memory_cache import MemoryCacheProvider
from docbrief.providers.delivery.log_provider import LogDeliveryProvider
from docbrief.providers.delivery.meta_provider import MetaWhatsAppProvider
from docbrief.providers.delivery.twilio_provider import TwilioWhatsAppProvider
from docbrief.providers.delivery.webhook_provider import WebhookDeliveryProvider
from docbrief.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from docbrief.providers.identity.static_token_resolver import StaticTokenIdentityResolver
from docbrief.providers.llm.openai_provider import OpenAILLMProvider
from docbrief.providers.storage.local_object_store import LocalObjectStore
from docbrief.providers.storage.sqlite_record_store import SQLiteRecordStore
from docbrief.providers.vector_store.chromadb_provider import ChromaDBChunkStore
from docbrief.providers.vector_store.memory_provider import InMemoryChunkStore
from docbrief.services.chunking.chunker import Chunker
from docbrief.services.delivery.dispatcher import DeliveryDispatcher
from docbrief.services.extraction.text_extractor import TextExtractor
from docbrief.services.indexing.embedding_indexer import EmbeddingIndexer
from docbrief.services.retention_service import RetentionService
from docbrief.services.retrieval.qa_service import QAService
from docbrief.services.retrieval.retriever import Retriever
from docbrief.services.summarization.summarizer import Summarizer
from docbrief.utils.errors import ConfigurationError
from docbrief.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)

_VERSION = str(config.get("app", {}).get("version", "0.1.0"))


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_delivery_provider(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> IDeliveryProvider:
    """Select the delivery backend named by ``DELIVERY_PROVIDER``.

    ``auto`` picks the first configured backend in the order
    twilio -> meta -> webhook -> log.  Naming a backend whose credentials
    are missing is a configuration error rather than a silent fallback.
    """
    available = app_settings.get_available_delivery_providers()
    requested = app_settings.delivery_provider.strip().lower() or "auto"
    name = available[0] if requested == "auto" else requested

    if name not in ("twilio", "meta", "webhook", "log"):
        raise ConfigurationError(message=f"Unknown delivery provider: {requested}")
    if name not in available:
        raise ConfigurationError(
            message=f"Delivery provider {name!r} selected but its credentials are not configured",
            provider_name=name,
        )

    if name == "twilio":
        return TwilioWhatsAppProvider(settings=app_settings, http_client=http_client)
    if name == "meta":
        return MetaWhatsAppProvider(settings=app_settings, http_client=http_client)
    if name == "webhook":
        return WebhookDeliveryProvider(settings=app_settings, http_client=http_client)
    return LogDeliveryProvider()


def _build_chunk_store(app_settings: Settings) -> IChunkStore:
    """Return the chunk store named by ``CHUNK_STORE`` (chromadb or memory)."""
    backend = app_settings.chunk_store.strip().lower()
    if backend == "memory":
        return InMemoryChunkStore()
    if backend == "chromadb":
        return ChromaDBChunkStore(
            persist_directory=app_settings.chromadb_persist_dir,
            collection_name=app_settings.chromadb_collection,
        )
    raise ConfigurationError(message=f"Unknown chunk store: {app_settings.chunk_store}")


# ---------------------------------------------------------------------------
# Component assembly
# ---------------------------------------------------------------------------


def build_components(
    app_settings: Settings,
    app_config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``
    (or used directly by the CLI).
    """
    app_config = app_config if app_config is not None else config
    summary_config = app_config.get("summary", {})

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=30.0)

    # -- Storage --
    record_store = SQLiteRecordStore(db_path=app_settings.database_path)
    object_store = LocalObjectStore(
        root_dir=app_settings.object_store_dir,
        public_base_url=app_settings.object_store_public_base_url,
    )
    chunk_store = _build_chunk_store(app_settings)

    # -- AI providers --
    llm = OpenAILLMProvider(settings=app_settings)
    embedding = OpenAIEmbeddingProvider(settings=app_settings)
    cache = MemoryCacheProvider(
        max_size=app_settings.query_embedding_cache_size,
        ttl=app_settings.query_embedding_cache_ttl,
    )

    # -- Services --
    extractor = TextExtractor(min_text_length=app_settings.min_text_length)
    chunker = Chunker(max_chars=app_settings.max_chunk_chars)
    indexer = (
        EmbeddingIndexer(embedding_provider=embedding, chunk_store=chunk_store, chunker=chunker)
        if embedding.is_available()
        else None
    )
    retriever = Retriever(
        embedding_provider=embedding,
        chunk_store=chunk_store,
        cache=cache,
        default_limit=app_settings.search_default_limit,
        default_threshold=app_settings.search_default_threshold,
    )
    summarizer = Summarizer(
        llm_provider=llm,
        timeout=app_settings.stage_timeout_seconds,
        retries=app_settings.external_call_retries,
        max_input_chars=app_settings.summary_max_input_chars,
        temperature=float(summary_config.get("temperature", 0.3)),
    )

    qa_service = (
        QAService(
            retriever=retriever,
            llm_provider=llm,
            record_store=record_store,
            timeout=app_settings.stage_timeout_seconds,
            retries=app_settings.external_call_retries,
        )
        if llm.is_available()
        else None
    )

    # -- Delivery --
    delivery_provider = _build_delivery_provider(app_settings, http_client)
    dispatcher = DeliveryDispatcher(provider=delivery_provider, record_store=record_store)

    # -- Pipeline --
    progress_tracker = ProgressTracker(
        session_ttl_seconds=app_settings.progress_session_ttl_seconds
    )
    validation_gate = ValidationGate(
        record_store=record_store,
        max_file_size_bytes=app_settings.max_file_size_bytes,
        max_files_per_batch=app_settings.max_files_per_batch,
        uploads_per_hour=app_settings.uploads_per_hour,
    )
    pipeline = DocumentPipeline(
        record_store=record_store,
        object_store=object_store,
        extractor=extractor,
        summarizer=summarizer,
        progress_tracker=progress_tracker,
        validation_gate=validation_gate,
        indexer=indexer,
        dispatcher=dispatcher,
        max_concurrent_documents=app_settings.max_concurrent_documents,
        stage_timeout_seconds=app_settings.stage_timeout_seconds,
        external_call_retries=app_settings.external_call_retries,
        retention_hours=app_settings.retention_hours,
        max_chunk_chars=app_settings.max_chunk_chars,
    )
    retention_service = RetentionService(
        record_store=record_store,
        chunk_store=chunk_store,
        object_store=object_store,
    )
    identity_resolver = StaticTokenIdentityResolver(app_settings.get_api_token_map())

    # -- Provider registry for /health --
    provider_registry: dict[str, Any] = {
        "llm": llm.is_available(),
        "embedding": embedding.is_available(),
        "record_store": True,
        "chunk_store": chunk_store.get_provider_name(),
        "delivery": delivery_provider.get_provider_name(),
    }

    return {
        "http_client": http_client,
        "record_store": record_store,
        "object_store": object_store,
        "chunk_store": chunk_store,
        "retriever": retriever,
        "qa_service": qa_service,
        "dispatcher": dispatcher,
        "pipeline": pipeline,
        "progress_tracker": progress_tracker,
        "retention_service": retention_service,
        "identity_resolver": identity_resolver,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


def _make_lifespan(app_settings: Settings, components: dict[str, Any] | None):  # noqa: ANN202
    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Initialise providers and services on startup, clean up on shutdown."""
        built = components if components is not None else build_components(app_settings)
        for key, value in built.items():
            setattr(application.state, key, value)

        await built["record_store"].initialize()

        retention_task: asyncio.Task[None] | None = None
        retention_service: RetentionService | None = built.get("retention_service")
        if retention_service is not None and app_settings.cleanup_interval_seconds > 0:
            retention_task = asyncio.create_task(
                retention_service.run_forever(app_settings.cleanup_interval_seconds)
            )

        _logger.info(
            "app_startup",
            version=_VERSION,
            environment=app_settings.app_env,
            providers=built.get("provider_registry", {}),
        )

        yield

        # -- Shutdown: stop the sweep loop, close the shared httpx client --
        if retention_task is not None:
            retention_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await retention_task
        http_client: httpx.AsyncClient | None = built.get("http_client")
        if http_client is not None:
            await http_client.aclose()
        _logger.info("app_shutdown", message="HTTP client closed")

    return _lifespan


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    components: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Parameters
    ----------
    app_settings:
        Settings to build from; the module-level settings by default.
    components:
        Pre-built component dict (tests); built from settings on startup
        when omitted.
    """
    app_settings = app_settings or settings
    application = FastAPI(
        title="docbrief API",
        version=_VERSION,
        description=(
            "Upload documents, extract and index their text, generate AI "
            "summaries, and deliver them through a configurable channel."
        ),
        lifespan=_make_lifespan(app_settings, components),
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/progress/{session_id}")
    async def ws_progress(websocket: WebSocket, session_id: str) -> None:
        await websocket_progress(websocket, session_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "docbrief.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
