"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the
# Settings-derived values on top.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from docbrief.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to merge; a fresh one is built when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "limits": {
            "max_file_size_bytes": settings.max_file_size_bytes,
            "max_files_per_batch": settings.max_files_per_batch,
            "uploads_per_hour": settings.uploads_per_hour,
            "retention_hours": settings.retention_hours,
        },
        "pipeline": {
            "max_concurrent_documents": settings.max_concurrent_documents,
            "stage_timeout_seconds": settings.stage_timeout_seconds,
            "external_call_retries": settings.external_call_retries,
        },
        "delivery": {
            "provider": settings.delivery_provider,
            "available_providers": settings.get_available_delivery_providers(),
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
