"""Static token identity resolver.

Maps opaque API tokens to owner ids from configuration (``API_TOKENS``).
Session management proper lives outside docbrief; this adapter is enough
for single-tenant deployments, the CLI and tests.
"""

from __future__ import annotations

import hmac

import structlog

from docbrief.interfaces.identity_resolver import IIdentityResolver
from docbrief.utils.errors import AuthenticationError

logger = structlog.get_logger(logger_name=__name__)


class StaticTokenIdentityResolver(IIdentityResolver):
    """Resolves tokens against a fixed ``{token: owner_id}`` mapping."""

    def __init__(self, tokens: dict[str, str]) -> None:
        self._tokens = dict(tokens)

    async def resolve(self, token: str) -> str:
        if token:
            for known, owner_id in self._tokens.items():
                if hmac.compare_digest(known.encode(), token.encode()):
                    return owner_id
        logger.warning("token_rejected")
        raise AuthenticationError(
            message="Unknown or missing access token",
            provider_name="static_token",
        )
