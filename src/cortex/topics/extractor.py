"""Topic extraction — label chunks with 1-2 core topics via the LLM gateway.

The model is asked for JSON of the form::

    {"topics": [{"label": "...", "relevance": 0.9}]}

Each label is found-or-created (reusing a label bumps its weight) and
linked to the chunk with its relevance score.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from cortex.db.models import ChunkSegment, Message, Role
from cortex.db.repository import NotFoundError, Repository
from cortex.llm.errors import LLMError, LLMErrorKind
from cortex.llm.gateway import LLMGateway
from cortex.llm.providers import TaskType

logger = logging.getLogger(__name__)

_EXTRACT_PROMPT = """\
You are a topic extraction assistant. Extract 1-2 core topic labels from the given text.
Requirements:
- Each label is a short noun phrase (2-6 words)
- Labels reflect the central subject of the text, not incidental details
- Reply with JSON only

Reply format:
{"topics": [{"label": "topic name", "relevance": 0.9}]}"""

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_MAX_LABEL = 100


@dataclass
class ExtractedTopic:
    label: str
    topic_id: int
    relevance: float


@dataclass
class ExtractionReport:
    """Outcome of extracting topics for every chunk of a document."""

    processed: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)


class TopicExtractor:
    """Extract and persist chunk topics.

    Args:
        gateway: LLMGateway used with the ``topic_extract`` task type.
        repo:    Open Repository instance.
    """

    def __init__(self, gateway: LLMGateway, repo: Repository) -> None:
        self._gateway = gateway
        self._repo = repo

    def extract_chunk(self, chunk: ChunkSegment) -> list[ExtractedTopic]:
        """Extract topics for one persisted chunk and link them.

        Raises:
            ValueError: If *chunk* has not been persisted.
            LLMError: MALFORMED_RESPONSE when the reply is not the expected JSON.
        """
        if chunk.id is None:
            raise ValueError("chunk must be persisted before topic extraction")

        reply = self._gateway.invoke(
            TaskType.TOPIC_EXTRACT,
            [
                Message(role=Role.SYSTEM, content=_EXTRACT_PROMPT),
                Message(role=Role.USER, content=chunk.content),
            ],
        )
        extracted: list[ExtractedTopic] = []
        for label, relevance in parse_topics(reply):
            topic_id = self._repo.find_or_create_topic(label)
            self._repo.link_chunk_to_topic(chunk.id, topic_id, relevance)
            extracted.append(ExtractedTopic(label=label, topic_id=topic_id, relevance=relevance))
        logger.debug("Chunk %d → %s", chunk.id, [t.label for t in extracted])
        return extracted

    def extract_document(self, document_id: int) -> ExtractionReport:
        """Extract topics for every chunk of *document_id*.

        A chunk whose model call fails is recorded in the report and does not
        stop the run. Unusable provider settings (ConfigError) abort it and
        leave the document in status "error".

        Raises:
            NotFoundError: Unknown document.
            ValueError: The document has no chunks.
            ConfigError: Provider settings are corrupt or incomplete.
        """
        if self._repo.get_document(document_id) is None:
            raise NotFoundError(f"Document {document_id} not found")
        chunks = self._repo.list_chunks(document_id)
        if not chunks:
            raise ValueError(f"Document {document_id} has no chunks")

        self._repo.set_document_status(document_id, "extracting")
        report = ExtractionReport(total=len(chunks))
        status = "error"
        try:
            for chunk in chunks:
                try:
                    self.extract_chunk(chunk)
                    report.processed += 1
                except LLMError as exc:
                    logger.warning("Topic extraction failed for chunk %d: %s", chunk.id, exc)
                    report.errors.append(f"chunk {chunk.position}: {exc.user_message()}")
            status = "done"
        finally:
            # A ConfigError aborts the run; the document never stays "extracting".
            self._repo.set_document_status(document_id, status)
        logger.info(
            "Document %d: extracted topics for %d/%d chunks", document_id, report.processed, report.total
        )
        return report


def parse_topics(reply: str) -> list[tuple[str, float]]:
    """Parse the model's JSON reply into ``(label, relevance)`` pairs.

    Tolerates a surrounding Markdown code fence. Relevance is clamped to
    [0, 1]; blank labels are skipped.

    Raises:
        LLMError: MALFORMED_RESPONSE if the reply does not have the expected shape.
    """
    text = reply.strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
        items = data["topics"]
        if not isinstance(items, list):
            raise TypeError("'topics' is not a list")
        pairs: list[tuple[str, float]] = []
        for item in items:
            label = str(item["label"]).strip()[:_MAX_LABEL]
            relevance = min(1.0, max(0.0, float(item.get("relevance", 1.0))))
            if label:
                pairs.append((label, relevance))
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise LLMError(
            LLMErrorKind.MALFORMED_RESPONSE,
            f"Topic extraction reply is not valid topic JSON: {exc}",
        ) from exc
    return pairs
