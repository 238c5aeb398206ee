"""docbrief services: extraction, chunking, indexing, retrieval,
summarization, delivery and retention.

Each service receives its collaborators through its constructor; the
wiring lives in docbrief/main.py.
"""
