"""Owner-scoped semantic retrieval with lexical fallback, and question answering on top."""

from docbrief.services.retrieval.qa_service import QAService
from docbrief.services.retrieval.retriever import Retriever

__all__ = ["QAService", "Retriever"]
