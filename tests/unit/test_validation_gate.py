"""Unit tests for the pre-flight ValidationGate."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from docbrief.interfaces.record_store import IRecordStore
from docbrief.models.document import DocumentSubmission, MediaType
from docbrief.pipeline.validation_gate import ValidationGate
from docbrief.utils.errors import (
    FileTooLargeError,
    QuotaExceededError,
    UnsupportedFormatError,
    ValidationError,
)


def _submission(name: str = "a.txt", data: bytes = b"hello", content_type: str = "") -> DocumentSubmission:
    return DocumentSubmission(filename=name, content_type=content_type, data=data)


class TestValidationGate:
    @pytest.fixture()
    def store(self) -> MagicMock:
        mock = MagicMock(spec=IRecordStore)
        mock.count_uploads_since = AsyncMock(return_value=0)
        return mock

    @pytest.fixture()
    def gate(self, store: MagicMock) -> ValidationGate:
        return ValidationGate(store, max_file_size_bytes=100, max_files_per_batch=3, uploads_per_hour=5)

    @pytest.mark.asyncio
    async def test_resolves_media_types_in_order(self, gate: ValidationGate) -> None:
        types = await gate.check(
            [
                _submission("a.pdf"),
                _submission("b.bin", content_type="text/plain"),
                _submission("c.docx", content_type="application/octet-stream"),
            ],
            "alice",
        )
        assert types == [MediaType.PDF, MediaType.TEXT, MediaType.DOCX]

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, gate: ValidationGate) -> None:
        with pytest.raises(ValidationError, match="No files"):
            await gate.check([], "alice")

    @pytest.mark.asyncio
    async def test_too_many_files_rejected(self, gate: ValidationGate) -> None:
        with pytest.raises(ValidationError, match="Too many files"):
            await gate.check([_submission() for _ in range(4)], "alice")

    @pytest.mark.asyncio
    async def test_empty_file_rejected(self, gate: ValidationGate) -> None:
        with pytest.raises(ValidationError, match="empty"):
            await gate.check([_submission(data=b"")], "alice")

    @pytest.mark.asyncio
    async def test_oversized_file_rejected(self, gate: ValidationGate) -> None:
        with pytest.raises(FileTooLargeError):
            await gate.check([_submission(data=b"x" * 101)], "alice")

    @pytest.mark.asyncio
    async def test_file_at_limit_accepted(self, gate: ValidationGate) -> None:
        assert await gate.check([_submission(data=b"x" * 100)], "alice") == [MediaType.TEXT]

    @pytest.mark.asyncio
    async def test_unsupported_type_rejected(self, gate: ValidationGate) -> None:
        with pytest.raises(UnsupportedFormatError, match="photo.png"):
            await gate.check([_submission("photo.png", content_type="image/png")], "alice")

    @pytest.mark.asyncio
    async def test_declared_unsupported_type_wins_over_extension(self, gate: ValidationGate) -> None:
        with pytest.raises(UnsupportedFormatError):
            await gate.check([_submission("report.pdf", content_type="image/jpeg")], "alice")

    @pytest.mark.asyncio
    async def test_quota_counts_recent_uploads(self, gate: ValidationGate, store: MagicMock) -> None:
        store.count_uploads_since.return_value = 4
        with pytest.raises(QuotaExceededError):
            await gate.check([_submission(), _submission("b.txt")], "alice")

        store.count_uploads_since.return_value = 3
        await gate.check([_submission(), _submission("b.txt")], "alice")

    @pytest.mark.asyncio
    async def test_quota_window_is_one_hour(self, gate: ValidationGate, store: MagicMock) -> None:
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        await gate.check([_submission()], "alice", now=now)
        store.count_uploads_since.assert_awaited_once_with("alice", now - timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_size_checked_before_quota(self, gate: ValidationGate, store: MagicMock) -> None:
        store.count_uploads_since.return_value = 100
        with pytest.raises(FileTooLargeError):
            await gate.check([_submission(data=b"x" * 500)], "alice")
        store.count_uploads_since.assert_not_awaited()
