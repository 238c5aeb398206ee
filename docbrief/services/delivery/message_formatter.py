"""Message bodies for batch summary delivery.

A batch goes out as a header, one message per document and a footer with
processing statistics.  Bodies use WhatsApp's lightweight markup
(``*bold*``, ``_italic_``), which other channels show as plain text.
"""

from __future__ import annotations

from datetime import datetime, timezone

from docbrief.models.delivery import DeliveryItem

_RULE = "-" * 30


def _seconds(ms: int | float) -> int:
    return round(ms / 1000)


def format_header(document_count: int) -> str:
    return (
        "*DocBrief - Document Summary Report*\n\n"
        f"I've processed {document_count} document(s) for you. "
        "Here are the summaries:"
    )


def format_item(item: DeliveryItem, index: int, total: int) -> str:
    """Format one document summary as message *index* of *total*."""
    return (
        f"*Document {index}/{total}*\n{_RULE}\n\n"
        f"*{item.filename}*\n\n"
        f"*Summary:*\n{item.summary_text}\n\n"
        "*Details:*\n"
        f"- Word count: {item.word_count:,}\n"
        f"- Processing time: {_seconds(item.processing_time_ms)}s\n"
        f"- File type: {item.file_type}\n"
        f"{_RULE}"
    )


def format_footer(items: list[DeliveryItem]) -> str:
    """Statistics footer: total words, average processing time, count."""
    total_words = sum(i.word_count for i in items)
    average_ms = sum(i.processing_time_ms for i in items) / len(items) if items else 0
    return (
        "*Summary Complete!*\n\n"
        "*Processing Stats:*\n"
        f"- Total words processed: {total_words:,}\n"
        f"- Average processing time: {_seconds(average_ms)}s\n"
        f"- Documents processed: {len(items)}"
    )


def format_test_message(provider_name: str, now: datetime | None = None) -> str:
    now = now or datetime.now(tz=timezone.utc)  # noqa: UP017
    return (
        "*Test message from DocBrief*\n\n"
        f"Your {provider_name} delivery integration is working correctly.\n"
        f"Timestamp: {now:%Y-%m-%d %H:%M:%S} UTC\n\n"
        "_This is an automated test message._"
    )
