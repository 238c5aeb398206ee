"""Unit tests for recipient validation and delivery message formatting."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from docbrief.models.delivery import DeliveryItem
from docbrief.services.delivery.message_formatter import (
    format_footer,
    format_header,
    format_item,
    format_test_message,
)
from docbrief.services.delivery.recipient import (
    format_for_whatsapp,
    is_valid_recipient,
    normalize_recipient,
)
from docbrief.utils.errors import InvalidRecipientError


def _item(filename: str = "report.pdf", words: int = 120, ms: int = 4500) -> DeliveryItem:
    return DeliveryItem(
        document_id="doc-1",
        summary_id="sum-1",
        owner_id="alice",
        filename=filename,
        summary_text="The report covers revenue.",
        word_count=words,
        processing_time_ms=ms,
        file_type="PDF",
    )


# ======================================================================
# Recipient validation
# ======================================================================


class TestNormalizeRecipient:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("+44 7700 900123", "447700900123"),
            ("1-555-123-4567", "15551234567"),
            ("whatsapp:+4915112345678", "4915112345678"),
            ("1234567", "1234567"),
            ("123456789012345", "123456789012345"),
        ],
    )
    def test_valid_numbers_are_reduced_to_digits(self, raw: str, expected: str) -> None:
        assert normalize_recipient(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        ["12345", "123456", "1234567890123456", "", "no digits here", "07700900123"],
    )
    def test_invalid_numbers_raise(self, raw: str) -> None:
        with pytest.raises(InvalidRecipientError):
            normalize_recipient(raw)

    def test_is_valid_recipient(self) -> None:
        assert is_valid_recipient("+1 555 123 4567") is True
        assert is_valid_recipient("12345") is False

    def test_whatsapp_address_form(self) -> None:
        assert format_for_whatsapp("+44 7700 900123") == "whatsapp:+447700900123"
        assert format_for_whatsapp("whatsapp:+14155238886") == "whatsapp:+14155238886"


# ======================================================================
# Message formatting
# ======================================================================


class TestMessageFormatter:
    def test_header_states_document_count(self) -> None:
        header = format_header(3)
        assert "I've processed 3 document(s)" in header
        assert header.startswith("*DocBrief")

    def test_item_carries_position_and_details(self) -> None:
        body = format_item(_item(words=1234, ms=4500), 2, 5)
        assert "*Document 2/5*" in body
        assert "*report.pdf*" in body
        assert "The report covers revenue." in body
        assert "Word count: 1,234" in body
        assert "Processing time: 4s" in body or "Processing time: 5s" in body
        assert "File type: PDF" in body

    def test_footer_aggregates_items(self) -> None:
        footer = format_footer([_item(words=100, ms=2000), _item(words=300, ms=4000)])
        assert "Total words processed: 400" in footer
        assert "Average processing time: 3s" in footer
        assert "Documents processed: 2" in footer

    def test_footer_with_no_items(self) -> None:
        footer = format_footer([])
        assert "Documents processed: 0" in footer
        assert "Average processing time: 0s" in footer

    def test_test_message_names_provider(self) -> None:
        now = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        body = format_test_message("twilio", now=now)
        assert "twilio delivery integration" in body
        assert "2024-05-01 12:30:00 UTC" in body
