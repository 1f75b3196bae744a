"""One-shot topic summaries.

Every chunk linked to a topic is numbered and sent with a summary prompt
in a single ``summarize`` call. The reply replaces the topic's stored
summary; a failed call keeps the previous summary as it was.
"""

from __future__ import annotations

import logging

from cortex.db.models import Message, Role, TopicSummary
from cortex.db.repository import NotFoundError, Repository
from cortex.llm.gateway import LLMGateway
from cortex.llm.providers import TaskType

logger = logging.getLogger(__name__)

_SUMMARY_PROMPT = """\
You are a content summarization assistant. Write a structured summary of the \
following passages about the topic "{label}".
Requirements:
- Cover the core points of every passage
- Use clear, plain language
- Moderate length (300-600 words)
- Markdown formatting is allowed"""

_PASSAGE_SEPARATOR = "\n\n---\n\n"


class TopicSummarizer:
    """Generate topic summaries through the LLM gateway.

    Args:
        gateway: LLMGateway used with the ``summarize`` task type.
        repo:    Open Repository instance.
    """

    def __init__(self, gateway: LLMGateway, repo: Repository) -> None:
        self._gateway = gateway
        self._repo = repo

    def generate_summary(self, topic_id: int) -> TopicSummary:
        """Summarize every chunk of *topic_id* and store the reply.

        Raises:
            NotFoundError: Unknown topic.
            ValueError: The topic has no linked chunks.
            LLMError / ConfigError: From the gateway; the stored summary is unchanged.
        """
        topic = self._repo.get_topic(topic_id)
        if topic is None:
            raise NotFoundError(f"Topic {topic_id} not found")
        chunks = self._repo.get_topic_chunks(topic_id)
        if not chunks:
            raise ValueError(f"Topic {topic_id} has no linked chunks")

        passages = _PASSAGE_SEPARATOR.join(
            f"[Passage {i}]\n{chunk.content}" for i, chunk in enumerate(chunks, start=1)
        )
        reply = self._gateway.invoke(
            TaskType.SUMMARIZE,
            [
                Message(role=Role.SYSTEM, content=_SUMMARY_PROMPT.format(label=topic.label)),
                Message(role=Role.USER, content=passages),
            ],
        )
        summary = self._repo.upsert_summary(topic_id, reply)
        logger.info("Summarized topic %d from %d chunk(s)", topic_id, len(chunks))
        return summary

