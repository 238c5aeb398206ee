"""Configuration module - exports Settings, load_config, and a module-level singleton."""

from docbrief.config.loader import load_config
from docbrief.config.settings import Settings, is_configured

settings = Settings()

__all__ = ["Settings", "is_configured", "load_config", "settings"]
