"""Sentence-aligned text chunking.

Splits extracted document text into chunks of at most ``max_chars``
characters for embedding.  Boundaries fall only between sentences, found
by an abbreviation-aware splitter that does not break on "Dr.", "vs.",
"etc." and similar.  A single sentence longer than the budget becomes its
own oversized chunk; text is never cut mid-sentence.

The output depends only on the input text and budget.
"""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MAX_CHARS = 1000

# Common abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Ave",
        "Blvd",
        "Vol",
        "No",
        "Fig",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "govt",
        "inc",
        "ltd",
        "co",
        "ft",
        "e.g",
        "i.e",
    }
)

_ABBREVIATION_RE = re.compile(
    r"(?<![\w.])("
    + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True))
    + r")\."
)
_SENTENCE_END_RE = re.compile(r"[.!?](?:\s|$)")


class Chunker:
    """Greedy sentence packer.

    Parameters
    ----------
    max_chars:
        Default character budget per chunk.
    """

    def __init__(self, max_chars: int = _DEFAULT_MAX_CHARS) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self._max_chars = max_chars

    def chunk(self, text: str, max_chars: int | None = None) -> list[str]:
        """Split *text* into sentence-aligned chunks.

        Parameters
        ----------
        text:
            Text to split.  Empty or whitespace-only text yields ``[]``.
        max_chars:
            Character budget overriding the instance default.

        Returns
        -------
        list[str]
            Chunks in document order.  Each is at most *max_chars* long
            unless it consists of a single longer sentence.
        """
        budget = max_chars if max_chars is not None else self._max_chars
        if budget <= 0:
            raise ValueError("max_chars must be positive")
        if not text or not text.strip():
            return []

        chunks: list[str] = []
        current: list[str] = []
        current_len = 0

        for sentence in split_sentences(text):
            # +1 for the joining space.
            added = len(sentence) + (1 if current else 0)
            if current and current_len + added > budget:
                chunks.append(" ".join(current))
                current, current_len = [], 0
                added = len(sentence)
            current.append(sentence)
            current_len += added

        if current:
            chunks.append(" ".join(current))

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            max_chars=budget,
            oversized=sum(1 for c in chunks if len(c) > budget),
        )
        return chunks


def split_sentences(text: str) -> list[str]:
    """Split *text* at sentence boundaries while respecting abbreviations.

    Handles ``.``, ``!``, ``?`` followed by whitespace or end-of-string.
    Whitespace inside each sentence is collapsed to single spaces.

    Periods after known abbreviations are masked with ``\\x00`` (same
    length, so indices stay aligned with the original text) before the
    boundary scan.
    """
    masked = _ABBREVIATION_RE.sub(lambda m: m.group(1) + "\x00", text)

    sentences: list[str] = []
    last = 0
    for match in _SENTENCE_END_RE.finditer(masked):
        end = match.end()
        sentence = " ".join(text[last:end].split())
        if sentence:
            sentences.append(sentence)
        last = end

    # Trailing text that didn't end with punctuation.
    remainder = " ".join(text[last:].split())
    if remainder:
        sentences.append(remainder)
    return sentences
