"""docbrief: document extraction, summarization, search and delivery pipeline."""

__version__ = "0.1.0"
