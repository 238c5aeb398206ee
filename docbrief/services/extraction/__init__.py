"""Document text extraction."""

from docbrief.services.extraction.text_extractor import TextExtractor

__all__ = ["TextExtractor"]
