"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider` for
summary generation.  When a custom ``openai_base_url`` is configured, the
client points at that URL instead of the default OpenAI endpoint, so any
OpenAI-compatible service can generate summaries.
"""

from __future__ import annotations

import openai
import structlog

from docbrief.config.settings import Settings, is_configured
from docbrief.interfaces.llm_provider import ILLMProvider
from docbrief.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    Uses ``gpt-4o-mini`` by default; override with ``OPENAI_TEXT_MODEL``.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key or "unset",
            "timeout": openai.Timeout(settings.openai_timeout_seconds, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion via the chat completions API.

        Returns an empty string when the model produced no content; the
        summarizer decides whether that warrants a retry.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.choices:
            return ""
        content = response.choices[0].message.content or ""
        logger.info(
            "openai_completion",
            model=self._text_model,
            tokens=response.usage.total_tokens if response.usage else None,
            chars=len(content),
        )
        return content

    def get_model_name(self) -> str:
        return self._text_model

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if a real API key is configured."""
        return is_configured(self._api_key)
