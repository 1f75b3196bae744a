"""Paragraph-first chunker with a sentence-level fallback.

Pipeline:
  1. Split on blank lines into paragraphs; drop empty ones.
  2. Greedily pack paragraphs (joined by a blank line) up to ``max_size``.
     When the next paragraph does not fit: flush if the buffer reached
     ``min_size``; otherwise allow an overflow up to ``max_size * 1.2``;
     otherwise flush the undersized buffer anyway.
  3. Any packed segment longer than ``max_size * 1.5`` is re-split on
     sentence boundaries and re-packed up to ``max_size`` (no floor).
  4. If nothing was produced, return the first ``max_size`` characters.

A single sentence longer than ``max_size`` is kept whole.
"""

from __future__ import annotations

import re

from cortex.db.models import ChunkSegment
from cortex.ingest.base import BaseChunker

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")

# One sentence: a run of non-terminal characters with its terminal
# punctuation and trailing whitespace, or a bare run of terminals.
# Consecutive matches tile the input exactly.
_SENTENCE = re.compile(r"[^。！？.!?]+(?:[。！？.!?]+\s*)?|[。！？.!?]+\s*")

_SEPARATOR = "\n\n"
_OVERFLOW_FACTOR = 1.2
_RESPLIT_FACTOR = 1.5


def chunk_text(text: str, min_size: int = 500, max_size: int = 800) -> list[str]:
    """Split *text* into ordered, size-bounded segments.

    Args:
        text: Extracted document text.
        min_size: Soft minimum segment length in characters.
        max_size: Target maximum segment length in characters.

    Returns:
        At least one segment for any non-empty input.

    Raises:
        ValueError: If *text* is empty or the size bounds are inconsistent.
    """
    if not text:
        raise ValueError("text must not be empty")
    if min_size < 1 or max_size < min_size:
        raise ValueError(f"invalid bounds: min_size={min_size}, max_size={max_size}")

    packed = _pack_paragraphs(text, min_size, max_size)

    segments: list[str] = []
    for seg in packed:
        if len(seg) <= max_size * _RESPLIT_FACTOR:
            segments.append(seg)
        else:
            segments.extend(_pack_sentences(seg, max_size))

    return segments or [text[:max_size]]


def _pack_paragraphs(text: str, min_size: int, max_size: int) -> list[str]:
    results: list[str] = []
    current = ""

    for para in _PARAGRAPH_BREAK.split(text):
        trimmed = para.strip()
        if not trimmed:
            continue

        if len(current) + len(trimmed) + 1 <= max_size:
            current = current + _SEPARATOR + trimmed if current else trimmed
        elif len(current) >= min_size:
            results.append(current)
            current = trimmed
        elif len(current) + len(trimmed) + 1 <= max_size * _OVERFLOW_FACTOR:
            current = current + _SEPARATOR + trimmed if current else trimmed
        else:
            if current:
                results.append(current)
            current = trimmed

    if current:
        results.append(current)
    return results


def _pack_sentences(segment: str, max_size: int) -> list[str]:
    results: list[str] = []
    sub = ""

    for sentence in _SENTENCE.findall(segment):
        if len(sub) + len(sentence) <= max_size:
            sub += sentence
            continue
        # whitespace at a cut point is a boundary, like the paragraph separator
        if sub.strip():
            results.append(sub.rstrip())
        sub = sentence

    if sub.strip():
        results.append(sub.rstrip())
    return results


class ParagraphChunker(BaseChunker):
    """Chunk extracted document text with :func:`chunk_text`.

    Default bounds: 500–800 characters.
    """

    def __init__(self, min_size: int = 500, max_size: int = 800) -> None:
        super().__init__(min_size=min_size, max_size=max_size)

    def chunk(self, document_id: int | None, content: str) -> list[ChunkSegment]:
        texts = chunk_text(content, min_size=self.min_size, max_size=self.max_size)
        return self._make_segments(document_id, texts)
