"""Base chunker interface for Cortex documents."""

from __future__ import annotations

from abc import ABC, abstractmethod

from cortex.db.models import ChunkSegment


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Sizes are measured in characters. ``min_size`` is a soft floor the
    chunker tries to reach before flushing; ``max_size`` is the target
    ceiling for a segment.
    """

    def __init__(self, min_size: int = 500, max_size: int = 800) -> None:
        if min_size < 1:
            raise ValueError("min_size must be >= 1")
        if max_size < min_size:
            raise ValueError("max_size must be >= min_size")
        self.min_size = min_size
        self.max_size = max_size

    @abstractmethod
    def chunk(self, document_id: int | None, content: str) -> list[ChunkSegment]:
        """Split *content* into ChunkSegments for *document_id*.

        Args:
            document_id: Id of the parent document (None for a dry run).
            content: Full extracted text of the document.

        Returns:
            Ordered list of ChunkSegments with sequential ``position``.
        """

    @staticmethod
    def _make_segments(document_id: int | None, texts: list[str]) -> list[ChunkSegment]:
        """Convert a list of text strings into sequentially positioned segments."""
        return [
            ChunkSegment(content=t, position=i, document_id=document_id)
            for i, t in enumerate(texts)
        ]
