"""Identity resolver adapters."""

from docbrief.providers.identity.static_token_resolver import StaticTokenIdentityResolver

__all__ = ["StaticTokenIdentityResolver"]
