"""Text extraction for uploaded documents.

Turns raw document bytes into plain text.  PDFs are read with PyMuPDF
(fitz), Word documents with python-docx, plain text is decoded with a
small encoding cascade.  All parsers are synchronous and run in a worker
thread via ``asyncio.to_thread``.

When PyMuPDF cannot open a PDF, a best-effort scan of the raw content
streams for text-showing operators (``(...) Tj`` / ``[...] TJ`` inside
``BT ... ET``) is attempted.  Its output is flagged ``degraded=True`` and
must pass a printable-character check; it is never reported as a normal
parse.
"""

from __future__ import annotations

import asyncio
import io
import re

import docx
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from docbrief.models.document import ExtractionResult, MediaType, resolve_media_type
from docbrief.utils.errors import ExtractionFailedError, UnsupportedFormatError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MIN_TEXT_LENGTH = 50
# Degraded output below this share of printable characters is garbage.
_MIN_PRINTABLE_RATIO = 0.85

_TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")

# PDF operator scan
_STREAM_RE = re.compile(rb"(?<!end)stream\r?\n(.*?)\r?\nendstream", re.DOTALL)
_TEXT_BLOCK_RE = re.compile(r"\bBT\b(.*?)\bET\b", re.DOTALL)
_TJ_RE = re.compile(r"\(((?:\\.|[^\\)])*)\)\s*Tj")
_TJ_ARRAY_RE = re.compile(r"\[((?:\\.|[^\]])*)\]\s*TJ")
_ARRAY_STRING_RE = re.compile(r"\(((?:\\.|[^\\)])*)\)")
_PDF_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f"}

_HORIZONTAL_WS_RE = re.compile(r"[ \t\f\v\u00a0]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class TextExtractor:
    """Extracts plain text from PDF, Word and plain-text documents.

    Parameters
    ----------
    min_text_length:
        Minimum number of characters of normalised text for an extraction
        to count as successful.
    """

    def __init__(self, min_text_length: int = _DEFAULT_MIN_TEXT_LENGTH) -> None:
        self._min_text_length = min_text_length

    async def extract(self, data: bytes, media_type: str, filename: str) -> ExtractionResult:
        """Extract text from *data*.

        Parameters
        ----------
        data:
            Raw document bytes.
        media_type:
            Declared content type.  Authoritative when supported; a missing
            or generic type is resolved from *filename*'s extension.
        filename:
            Original filename.

        Returns
        -------
        ExtractionResult
            Normalised text, the resolved media type, the method used and
            whether the output is degraded.

        Raises
        ------
        UnsupportedFormatError
            If the format cannot be resolved to a supported type.
        ExtractionFailedError
            If the parser fails or the output is too short or unreadable.
        """
        resolved = resolve_media_type(media_type, filename)
        if resolved is None:
            raise UnsupportedFormatError(
                message=f"Unsupported document type {media_type or 'unknown'!r} for {filename}"
            )

        if resolved == MediaType.PDF:
            text, method, pages, degraded = await asyncio.to_thread(self._extract_pdf, data)
        elif resolved.is_word_processing:
            text, method, pages, degraded = await asyncio.to_thread(
                self._extract_word, data, filename
            )
        else:
            text, method, pages, degraded = self._decode_text(data), "plain-text", None, False

        text = normalize_whitespace(text)
        self._check_quality(text, degraded=degraded, filename=filename)

        logger.info(
            "extraction_complete",
            filename=filename,
            media_type=resolved.value,
            method=method,
            chars=len(text),
            degraded=degraded,
        )
        return ExtractionResult(
            text=text,
            media_type=resolved,
            degraded=degraded,
            method=method,
            page_count=pages,
        )

    # ------------------------------------------------------------------
    # Format handlers
    # ------------------------------------------------------------------

    def _extract_pdf(self, data: bytes) -> tuple[str, str, int | None, bool]:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:  # noqa: BLE001 -- fitz raises several unrelated types
            logger.warning("pdf_open_failed", error=str(exc))
            return self._scan_pdf_operators(data), "pdf-operator-scan", None, True

        try:
            pages = [page.get_text("text") for page in doc]
        finally:
            doc.close()
        return "\n\n".join(p.strip() for p in pages if p.strip()), "pymupdf", len(pages), False

    @staticmethod
    def _extract_word(data: bytes, filename: str) -> tuple[str, str, int | None, bool]:
        try:
            document = docx.Document(io.BytesIO(data))
        except Exception as exc:  # noqa: BLE001 -- zipfile/lxml/KeyError depending on damage
            raise ExtractionFailedError(
                message=f"Could not parse Word document {filename}: {exc}",
                provider_name="python-docx",
            ) from exc

        parts = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    parts.append(" ".join(cells))
        return "\n\n".join(parts), "python-docx", None, False

    @staticmethod
    def _decode_text(data: bytes) -> str:
        for encoding in _TEXT_ENCODINGS:
            try:
                return data.decode(encoding)
            except UnicodeDecodeError:
                continue
        # latin-1 accepts every byte sequence.
        return data.decode("latin-1")

    @staticmethod
    def _scan_pdf_operators(data: bytes) -> str:
        """Pull string operands of Tj/TJ operators out of raw PDF streams."""
        streams = _STREAM_RE.findall(data) or [data]
        fragments: list[str] = []
        for raw in streams:
            content = raw.decode("latin-1")
            for block in _TEXT_BLOCK_RE.findall(content):
                for literal in _TJ_RE.findall(block):
                    fragments.append(_unescape_pdf_string(literal))
                for array in _TJ_ARRAY_RE.findall(block):
                    fragments.append(
                        "".join(_unescape_pdf_string(s) for s in _ARRAY_STRING_RE.findall(array))
                    )
        return " ".join(f for f in fragments if f.strip())

    # ------------------------------------------------------------------
    # Quality gate
    # ------------------------------------------------------------------

    def _check_quality(self, text: str, *, degraded: bool, filename: str) -> None:
        if len(text) < self._min_text_length:
            raise ExtractionFailedError(
                message=(
                    f"Extracted text from {filename} is too short "
                    f"({len(text)} < {self._min_text_length} characters)"
                )
            )
        if degraded:
            ratio = printable_ratio(text)
            if ratio < _MIN_PRINTABLE_RATIO:
                raise ExtractionFailedError(
                    message=(
                        f"Fallback extraction of {filename} produced unreadable text "
                        f"({ratio:.0%} printable)"
                    )
                )
            logger.warning("extraction_degraded", filename=filename, printable_ratio=round(ratio, 3))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_whitespace(text: str) -> str:
    """Collapse runs of spaces, trim lines and keep at most one blank line."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_HORIZONTAL_WS_RE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def printable_ratio(text: str) -> float:
    """Share of characters in *text* that are printable or whitespace."""
    if not text:
        return 0.0
    good = sum(1 for ch in text if ch.isprintable() or ch.isspace())
    return good / len(text)


def _unescape_pdf_string(literal: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(literal):
        ch = literal[i]
        if ch == "\\" and i + 1 < len(literal):
            nxt = literal[i + 1]
            if nxt in _PDF_ESCAPES:
                out.append(_PDF_ESCAPES[nxt])
                i += 2
                continue
            octal = re.match(r"[0-7]{1,3}", literal[i + 1 :])
            if octal:
                out.append(chr(int(octal.group(), 8)))
                i += 1 + len(octal.group())
                continue
            out.append(nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)
