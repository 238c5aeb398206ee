"""Abstract base class for the session/identity resolver collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: StaticTokenIdentityResolver (docbrief/providers/identity/)
class IIdentityResolver(ABC):
    """Resolves an opaque session token to the owning principal's id."""

    @abstractmethod
    async def resolve(self, token: str) -> str:
        """Return the owner id for *token*.

        Raises
        ------
        docbrief.utils.errors.AuthenticationError
            If the token is unknown or empty.
        """
