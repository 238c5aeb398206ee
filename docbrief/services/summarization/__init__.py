"""Summary generation."""

from docbrief.services.summarization.summarizer import Summarizer, build_summary_prompt

__all__ = ["Summarizer", "build_summary_prompt"]
