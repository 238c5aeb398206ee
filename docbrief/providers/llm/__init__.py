"""LLM provider adapters.

OpenAILLMProvider implements ILLMProvider (docbrief/interfaces/llm_provider.py)
for gpt-4o-mini and any OpenAI-compatible API.  main.py builds it once and
injects it into the Summarizer.
"""

from docbrief.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
