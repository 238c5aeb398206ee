"""Unit tests for factory functions in docbrief/main.py.

Covers delivery provider selection, chunk store selection,
build_components assembly and the create_app factory.  No real network
calls or API keys are required.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI

from docbrief.config.settings import Settings
from docbrief.utils.errors import ConfigurationError


# ======================================================================
# Shared helpers
# ======================================================================


def _settings(tmp_path: Path, **overrides) -> Settings:
    """Build a Settings instance with every credential empty.

    Storage paths point into tmp_path and the in-memory chunk store is
    used unless overridden.
    """
    defaults = {
        "_env_file": None,
        "openai_api_key": "",
        "openai_base_url": "",
        "database_path": str(tmp_path / "records.db"),
        "object_store_dir": str(tmp_path / "objects"),
        "chunk_store": "memory",
        "chromadb_persist_dir": str(tmp_path / "chroma"),
        "delivery_provider": "auto",
        "twilio_account_sid": "",
        "twilio_auth_token": "",
        "twilio_whatsapp_number": "",
        "meta_access_token": "",
        "meta_phone_number_id": "",
        "webhook_delivery_url": "",
        "api_tokens": "token-alice:alice",
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(**defaults)


_TWILIO = {
    "twilio_account_sid": "AC123",
    "twilio_auth_token": "tok",
    "twilio_whatsapp_number": "+14155238886",
}


# ======================================================================
# _build_delivery_provider
# ======================================================================


class TestBuildDeliveryProvider:
    """Tests for delivery backend selection."""

    @pytest.fixture()
    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient()

    def test_auto_falls_back_to_log(self, tmp_path: Path, http_client: httpx.AsyncClient) -> None:
        from docbrief.main import _build_delivery_provider

        provider = _build_delivery_provider(_settings(tmp_path), http_client)
        assert provider.get_provider_name() == "log"

    def test_auto_prefers_twilio(self, tmp_path: Path, http_client: httpx.AsyncClient) -> None:
        from docbrief.main import _build_delivery_provider

        settings = _settings(
            tmp_path, webhook_delivery_url="https://hooks.example.com", **_TWILIO
        )
        assert _build_delivery_provider(settings, http_client).get_provider_name() == "twilio"

    def test_auto_picks_webhook_when_only_one(
        self, tmp_path: Path, http_client: httpx.AsyncClient
    ) -> None:
        from docbrief.main import _build_delivery_provider

        settings = _settings(tmp_path, webhook_delivery_url="https://hooks.example.com")
        assert _build_delivery_provider(settings, http_client).get_provider_name() == "webhook"

    def test_explicit_meta(self, tmp_path: Path, http_client: httpx.AsyncClient) -> None:
        from docbrief.main import _build_delivery_provider

        settings = _settings(
            tmp_path,
            delivery_provider="META",
            meta_access_token="token",
            meta_phone_number_id="123",
            **_TWILIO,
        )
        assert _build_delivery_provider(settings, http_client).get_provider_name() == "meta"

    def test_explicit_but_unconfigured_raises(
        self, tmp_path: Path, http_client: httpx.AsyncClient
    ) -> None:
        from docbrief.main import _build_delivery_provider

        with pytest.raises(ConfigurationError, match="not configured"):
            _build_delivery_provider(_settings(tmp_path, delivery_provider="twilio"), http_client)

    def test_unknown_provider_raises(self, tmp_path: Path, http_client: httpx.AsyncClient) -> None:
        from docbrief.main import _build_delivery_provider

        with pytest.raises(ConfigurationError, match="Unknown delivery provider"):
            _build_delivery_provider(_settings(tmp_path, delivery_provider="pigeon"), http_client)


# ======================================================================
# _build_chunk_store
# ======================================================================


class TestBuildChunkStore:
    def test_memory(self, tmp_path: Path) -> None:
        from docbrief.main import _build_chunk_store

        assert _build_chunk_store(_settings(tmp_path)).get_provider_name() == "memory"

    def test_chromadb(self, tmp_path: Path) -> None:
        from docbrief.main import _build_chunk_store

        store = _build_chunk_store(_settings(tmp_path, chunk_store="chromadb"))
        assert store.get_provider_name() == "chromadb"

    def test_unknown(self, tmp_path: Path) -> None:
        from docbrief.main import _build_chunk_store

        with pytest.raises(ConfigurationError):
            _build_chunk_store(_settings(tmp_path, chunk_store="redis"))


# ======================================================================
# build_components
# ======================================================================


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_without_api_key(self, tmp_path: Path) -> None:
        from docbrief.main import build_components

        components = build_components(_settings(tmp_path), app_config={})
        try:
            for key in (
                "record_store",
                "object_store",
                "chunk_store",
                "retriever",
                "qa_service",
                "dispatcher",
                "pipeline",
                "progress_tracker",
                "retention_service",
                "identity_resolver",
                "provider_registry",
            ):
                assert key in components

            registry = components["provider_registry"]
            assert registry["llm"] is False
            assert registry["embedding"] is False
            assert registry["delivery"] == "log"
            assert registry["chunk_store"] == "memory"
            # Without embeddings the pipeline skips indexing.
            assert components["pipeline"]._indexer is None
            assert components["qa_service"] is None
            assert await components["identity_resolver"].resolve("token-alice") == "alice"
        finally:
            await components["http_client"].aclose()

    @pytest.mark.asyncio
    async def test_with_api_key_enables_indexing(self, tmp_path: Path) -> None:
        from docbrief.main import build_components

        components = build_components(
            _settings(tmp_path, openai_api_key="sk-test"),
            app_config={"summary": {"temperature": 0.1}},
        )
        try:
            assert components["provider_registry"]["llm"] is True
            assert components["pipeline"]._indexer is not None
            assert components["qa_service"] is not None
        finally:
            await components["http_client"].aclose()


# ======================================================================
# create_app
# ======================================================================


class TestCreateApp:
    def test_returns_fastapi_with_routes(self, tmp_path: Path) -> None:
        from docbrief.main import create_app

        app = create_app(_settings(tmp_path), components={})
        assert isinstance(app, FastAPI)
        paths = {getattr(route, "path", "") for route in app.routes}
        assert "/api/v1/health" in paths
        assert "/api/v1/documents" in paths
        assert "/ws/progress/{session_id}" in paths
