"""Abstract base class for LLM service providers.

Defines the text-generation contract used by the summarizer.  Keeping the
summarizer behind this interface means the generation backend can change
in one place (``docbrief/main.py``) and tests can inject a fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OpenAILLMProvider
# Located in: docbrief/providers/llm/
class ILLMProvider(ABC):
    """Contract for text-generation services."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The prompt containing the actual request and data.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response (may be empty).

        Raises
        ------
        docbrief.utils.errors.LLMError
            If the API call fails.
        """

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the model identifier recorded on each summary."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this LLM provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
