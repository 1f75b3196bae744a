"""Topic conversations: start, continue, and manage multi-turn transcripts.

A conversation is created by its first successful turn and stays
appendable until it is deleted. The stored transcript is replayed verbatim
as the context of every later turn, so it only ever grows by complete
user/assistant pairs: a turn whose model call fails leaves the stored
transcript untouched. Transcripts are never truncated, so context length
grows with every turn.

Two concurrent turns on the same conversation are not coordinated here;
the later write wins.
"""

from __future__ import annotations

import logging
from typing import Sequence

from cortex.db.models import ConversationRecord, ConversationSummary, Message, Role
from cortex.db.repository import NotFoundError, Repository
from cortex.llm.gateway import LLMGateway
from cortex.llm.providers import TaskType

logger = logging.getLogger(__name__)

_CONVERSATION_TASKS = frozenset([TaskType.SUMMARIZE, TaskType.EXPLORE])
_CONTENT_SEPARATOR = "\n\n"


class ConversationStore:
    """Conversation lifecycle over a Repository, with every turn sent through an LLMGateway.

    Without a gateway the store is read-only: listing, reading, renaming and
    deleting work, starting or continuing a conversation raises RuntimeError.
    """

    def __init__(self, repo: Repository, gateway: LLMGateway | None = None) -> None:
        self._repo = repo
        self._gateway = gateway

    def _invoke(self, task_type: TaskType | str, messages: list[Message]) -> str:
        if self._gateway is None:
            raise RuntimeError("ConversationStore has no LLM gateway; it is read-only")
        return self._gateway.invoke(task_type, messages)

    def start_conversation(
        self,
        topic_id: int,
        prompt_template_id: int,
        chunk_contents: Sequence[str],
        *,
        title: str | None = None,
        task_type: TaskType | str = TaskType.SUMMARIZE,
    ) -> ConversationRecord:
        """Open a conversation: template system prompt + source text, then the first reply.

        The record is only created once the model has replied.

        Args:
            topic_id: Topic the conversation belongs to.
            prompt_template_id: Template whose ``system_prompt`` seeds the conversation.
            chunk_contents: Source passages, in order; joined into one user message.
            title: Conversation title (defaults to the template name).
            task_type: ``summarize`` or ``explore``; reused for every later turn.

        Raises:
            NotFoundError: Unknown topic or template.
            ValueError: No non-blank content, or an unsupported task type.
            LLMError / ConfigError: From the gateway; nothing is persisted.
        """
        task = TaskType(task_type)
        if task not in _CONVERSATION_TASKS:
            raise ValueError(f"task_type must be summarize or explore, got '{task.value}'")

        if self._repo.get_topic(topic_id) is None:
            raise NotFoundError(f"Topic {topic_id} not found")
        template = self._repo.get_prompt_template(prompt_template_id)
        if template is None:
            raise NotFoundError(f"Prompt template {prompt_template_id} not found")

        parts = [c for c in chunk_contents if c.strip()]
        if not parts:
            raise ValueError("chunk_contents must contain at least one non-blank passage")

        messages = [
            Message(role=Role.SYSTEM, content=template.system_prompt),
            Message(role=Role.USER, content=_CONTENT_SEPARATOR.join(parts)),
        ]
        reply = self._invoke(task, messages)

        record = self._repo.create_conversation(
            topic_id=topic_id,
            title=title or template.name,
            messages=[*messages, Message(role=Role.ASSISTANT, content=reply)],
            prompt_template_id=template.id,
            task_type=task.value,
        )
        logger.info("Started conversation %d on topic %d (%s)", record.id, topic_id, task.value)
        return record

    def start_topic_conversation(
        self,
        topic_id: int,
        prompt_template_id: int,
        *,
        title: str | None = None,
        task_type: TaskType | str = TaskType.SUMMARIZE,
    ) -> ConversationRecord:
        """Start a conversation over every chunk linked to *topic_id*, in document order."""
        chunks = self._repo.get_topic_chunks(topic_id)
        if not chunks and self._repo.get_topic(topic_id) is None:
            raise NotFoundError(f"Topic {topic_id} not found")
        return self.start_conversation(
            topic_id,
            prompt_template_id,
            [c.content for c in chunks],
            title=title,
            task_type=task_type,
        )

    def continue_conversation(self, conversation_id: int, user_text: str) -> ConversationRecord:
        """Append one user turn, send the whole transcript, and store the reply.

        Raises:
            NotFoundError: Unknown conversation.
            ValueError: Blank *user_text*.
            LLMError / ConfigError: From the gateway; the stored transcript
                is left exactly as it was.
        """
        if not user_text.strip():
            raise ValueError("user_text must not be blank")

        record = self.get_conversation(conversation_id)
        transcript = list(record.messages)
        transcript.append(Message(role=Role.USER, content=user_text))

        reply = self._invoke(record.task_type, transcript)

        updated = self._repo.update_conversation_messages(
            conversation_id, [*transcript, Message(role=Role.ASSISTANT, content=reply)]
        )
        logger.info(
            "Conversation %d continued (%d messages)", conversation_id, updated.message_count
        )
        return updated

    def list_conversations(self, topic_id: int) -> list[ConversationSummary]:
        return self._repo.list_conversations(topic_id)

    def get_conversation(self, conversation_id: int) -> ConversationRecord:
        record = self._repo.get_conversation(conversation_id)
        if record is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return record

    def rename_conversation(self, conversation_id: int, title: str) -> ConversationRecord:
        if not title.strip():
            raise ValueError("title must not be blank")
        return self._repo.rename_conversation(conversation_id, title.strip())

    def delete_conversation(self, conversation_id: int) -> None:
        if not self._repo.delete_conversation(conversation_id):
            raise NotFoundError(f"Conversation {conversation_id} not found")
        logger.info("Deleted conversation %d", conversation_id)
