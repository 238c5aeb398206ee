"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources, in priority order:
#
#   1. **Environment variables** - e.g. OPENAI_API_KEY=sk-abc123
#   2. **.env file** - key=value lines in the project root .env file
#
# Field `openai_api_key` maps to env var `OPENAI_API_KEY`.  Defaults apply
# when neither source sets a value.
#
# Credentials default to "" which means "not configured": provider
# selection in main.py skips backends whose credentials are empty or
# still hold a placeholder value from .env.example.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

# Substrings that mark a credential copied from .env.example but never filled in.
_PLACEHOLDER_MARKERS = ("your-", "your_", "placeholder", "xxxxxxxx", "changeme")


def is_configured(value: str) -> bool:
    """Return ``True`` if *value* looks like a real credential."""
    if not value or not value.strip():
        return False
    lowered = value.lower()
    return not any(marker in lowered for marker in _PLACEHOLDER_MARKERS)


class Settings(BaseSettings):
    """docbrief application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === AI Providers ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_text_model: str = ""  # Override summary model (default gpt-4o-mini)
    openai_embedding_model: str = ""  # Override embedding model (default text-embedding-3-small)
    openai_timeout_seconds: float = 60.0

    # === Storage ===
    database_path: str = "data/docbrief.db"
    object_store_dir: str = "data/objects"
    object_store_public_base_url: str = ""  # Prefix for public refs; empty = file:// URIs
    chunk_store: str = "chromadb"  # "chromadb" or "memory"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "docbrief_chunks"

    # === Delivery ===
    # "auto" picks the first configured backend: twilio -> meta -> webhook -> log.
    delivery_provider: str = "auto"
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_number: str = ""
    meta_access_token: str = ""
    meta_phone_number_id: str = ""
    meta_api_version: str = "v18.0"
    webhook_delivery_url: str = ""
    webhook_delivery_secret: str = ""
    delivery_message_delay_seconds: float | None = None  # None = provider default

    # === Processing limits ===
    max_file_size_bytes: int = 10 * 1024 * 1024
    max_files_per_batch: int = 5
    uploads_per_hour: int = 20
    retention_hours: int = 24
    max_concurrent_documents: int = 3
    stage_timeout_seconds: float = 120.0
    external_call_retries: int = 2
    max_chunk_chars: int = 1000
    min_text_length: int = 50
    summary_max_input_chars: int = 100_000

    # === Retrieval ===
    search_default_limit: int = 5
    search_default_threshold: float = 0.7
    query_embedding_cache_size: int = 512
    query_embedding_cache_ttl: int = 3600

    # === Identity ===
    # Comma-separated "token:owner_id" pairs accepted by the static resolver.
    api_tokens: str = ""

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cleanup_interval_seconds: int = 3600
    progress_session_ttl_seconds: int = 3600

    def get_api_token_map(self) -> dict[str, str]:
        """Parse ``api_tokens`` into a ``{token: owner_id}`` mapping."""
        mapping: dict[str, str] = {}
        for pair in self.api_tokens.split(","):
            token, sep, owner_id = pair.strip().partition(":")
            if sep and token and owner_id:
                mapping[token.strip()] = owner_id.strip()
        return mapping

    def get_available_delivery_providers(self) -> list[str]:
        """Return delivery backend names whose credentials are configured."""
        providers: list[str] = []
        if (
            is_configured(self.twilio_account_sid)
            and is_configured(self.twilio_auth_token)
            and is_configured(self.twilio_whatsapp_number)
        ):
            providers.append("twilio")
        if is_configured(self.meta_access_token) and is_configured(self.meta_phone_number_id):
            providers.append("meta")
        if is_configured(self.webhook_delivery_url):
            providers.append("webhook")
        providers.append("log")
        return providers
