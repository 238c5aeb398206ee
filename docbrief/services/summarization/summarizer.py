"""LLM-backed document summarization.

Builds a style-specific prompt, asks the injected :class:`ILLMProvider` for
a completion under the transient-retry policy, and checks the result
against the caller's word budget.  An empty or far-over-budget response
gets exactly one retry with a stricter instruction; the output itself is
never cut.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from docbrief.models.summary import SummaryDraft, SummaryOptions, SummaryStyle, count_words
from docbrief.utils.concurrency import call_with_retry
from docbrief.utils.errors import SummarizationFailedError, TransientExternalError

if TYPE_CHECKING:
    from docbrief.interfaces.llm_provider import ILLMProvider

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MAX_INPUT_CHARS = 100_000
# Responses longer than this multiple of max_length trigger a retry.
_OVER_BUDGET_FACTOR = 2
# Rough token allowance per requested word when sizing max_tokens.
_TOKENS_PER_WORD = 2

_STYLE_INSTRUCTIONS: dict[SummaryStyle, str] = {
    SummaryStyle.CONCISE: "Create a concise, paragraph-style summary",
    SummaryStyle.DETAILED: (
        "Create a detailed summary covering all main points and important details"
    ),
    SummaryStyle.BULLETED: "Create a bullet-point summary with the key points",
}

_SYSTEM_PROMPT = (
    "You are a professional document summarizer. You produce faithful summaries "
    "that keep the original context and meaning, in clear, professional language."
)

_STRICT_SUFFIX = (
    "\n\nIMPORTANT: your previous answer was {problem}. Respond with the summary "
    "only, and keep it strictly under {max_length} words."
)


class Summarizer:
    """Generates summaries of extracted document text.

    Parameters
    ----------
    llm_provider:
        Text-generation backend.
    timeout:
        Per-attempt timeout for each generation call, in seconds.
    retries:
        Retries for transient generation failures.
    max_input_chars:
        Input beyond this length is cut at a sentence boundary before
        prompting.
    temperature:
        Sampling temperature passed to the provider.
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        timeout: float = 120.0,
        retries: int = 2,
        max_input_chars: int = _DEFAULT_MAX_INPUT_CHARS,
        temperature: float = 0.3,
    ) -> None:
        self._llm = llm_provider
        self._timeout = timeout
        self._retries = retries
        self._max_input_chars = max_input_chars
        self._temperature = temperature

    async def summarize(self, text: str, options: SummaryOptions | None = None) -> SummaryDraft:
        """Summarize *text* according to *options*.

        Raises
        ------
        SummarizationFailedError
            If the input is empty, generation keeps failing, or the model
            returns nothing even after the stricter retry.
        """
        options = options or SummaryOptions()
        if not text.strip():
            raise SummarizationFailedError(message="Cannot summarize empty text")

        start = time.monotonic()
        source = self._fit_input(text)
        prompt = build_summary_prompt(source, options)

        summary = await self._generate(prompt, options)
        retried = False
        problem = self._budget_problem(summary, options)
        if problem:
            logger.warning(
                "summary_retry",
                problem=problem,
                words=count_words(summary),
                max_length=options.max_length,
            )
            retried = True
            summary = await self._generate(
                prompt + _STRICT_SUFFIX.format(problem=problem, max_length=options.max_length),
                options,
            )
            if not summary:
                raise SummarizationFailedError(
                    message="Model returned an empty summary twice",
                    provider_name=self._llm.get_provider_name(),
                )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        words = count_words(summary)
        logger.info(
            "summary_generated",
            model=self._llm.get_model_name(),
            words=words,
            style=options.style.value,
            retried=retried,
            elapsed_ms=elapsed_ms,
        )
        return SummaryDraft(
            text=summary,
            word_count=words,
            model=self._llm.get_model_name(),
            processing_time_ms=elapsed_ms,
            retried=retried,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _generate(self, prompt: str, options: SummaryOptions) -> str:
        max_tokens = max(256, options.max_length * _TOKENS_PER_WORD * _OVER_BUDGET_FACTOR)
        try:
            result = await call_with_retry(
                lambda: self._llm.complete(
                    system_prompt=_SYSTEM_PROMPT,
                    user_prompt=prompt,
                    temperature=self._temperature,
                    max_tokens=max_tokens,
                ),
                operation="summary_generation",
                timeout=self._timeout,
                retries=self._retries,
            )
        except TransientExternalError as exc:
            raise SummarizationFailedError(
                message=f"Summary generation failed: {exc.message}",
                provider_name=self._llm.get_provider_name(),
            ) from exc
        return result.strip()

    @staticmethod
    def _budget_problem(summary: str, options: SummaryOptions) -> str | None:
        if not summary:
            return "empty"
        if count_words(summary) > _OVER_BUDGET_FACTOR * options.max_length:
            return "far too long"
        return None

    def _fit_input(self, text: str) -> str:
        if len(text) <= self._max_input_chars:
            return text
        cut = text[: self._max_input_chars]
        boundary = max(cut.rfind(mark) for mark in (". ", "! ", "? ", ".\n", "!\n", "?\n"))
        if boundary > self._max_input_chars // 2:
            cut = cut[: boundary + 1]
        logger.info("summary_input_truncated", original_chars=len(text), kept_chars=len(cut))
        return cut


def build_summary_prompt(text: str, options: SummaryOptions) -> str:
    """Render the user prompt for *text* under *options*."""
    return (
        f"Please analyze the following document and create a {options.style.value} "
        f"summary in {options.language}.\n\n"
        "Requirements:\n"
        f"- Maximum length: {options.max_length} words\n"
        f"- {_STYLE_INSTRUCTIONS[options.style]}\n"
        "- Focus on the main ideas, key findings, and important conclusions\n"
        "- Maintain the original context and meaning\n\n"
        f"Document text:\n{text}\n\n"
        "Summary:"
    )
