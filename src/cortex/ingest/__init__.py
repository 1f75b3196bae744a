"""Cortex ingest pipeline — document chunking."""

from cortex.ingest.base import BaseChunker
from cortex.ingest.paragraph import ParagraphChunker, chunk_text

__all__ = [
    "BaseChunker",
    "ParagraphChunker",
    "chunk_text",
]
