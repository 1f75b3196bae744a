"""Repository pattern for all Cortex database operations.

Single interface for: documents, chunks, topics, topic summaries,
provider settings, prompt templates, and topic conversations.
"""

from __future__ import annotations

import json
import sqlite3

from cortex.db.models import (
    ChunkSegment,
    ConversationRecord,
    ConversationSummary,
    Document,
    Message,
    PromptTemplate,
    ProviderConfigRecord,
    Topic,
    TopicSummary,
)

# Millisecond resolution so consecutive turns get distinct updated_at values.
_NOW = "strftime('%Y-%m-%d %H:%M:%f', 'now')"


class NotFoundError(LookupError):
    """Raised when a referenced conversation, template, topic, or document does not exist."""


class Repository:
    """Data access layer for all Cortex database entities.

    Wraps an open sqlite3.Connection and provides typed methods. The
    connection is owned by the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see cortex.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, filename: str, status: str = "parsing") -> int:
        """Insert a document record and return its id."""
        cur = self._conn.execute(
            "INSERT INTO documents (filename, status) VALUES (?, ?)", (filename, status)
        )
        self._conn.commit()
        return cur.lastrowid

    def get_document(self, document_id: int) -> Document | None:
        row = self._conn.execute(
            "SELECT id, filename, status, chunk_count, created_at FROM documents WHERE id = ?",
            (document_id,),
        ).fetchone()
        return _row_to_document(row) if row else None

    def get_document_by_filename(self, filename: str) -> Document | None:
        """Return the most recent document with *filename*, or None."""
        row = self._conn.execute(
            """
            SELECT id, filename, status, chunk_count, created_at FROM documents
            WHERE filename = ? ORDER BY id DESC LIMIT 1
            """,
            (filename,),
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[Document]:
        rows = self._conn.execute(
            "SELECT id, filename, status, chunk_count, created_at FROM documents ORDER BY id"
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def set_document_status(self, document_id: int, status: str) -> None:
        self._conn.execute(
            "UPDATE documents SET status = ? WHERE id = ?", (status, document_id)
        )
        self._conn.commit()

    def delete_document(self, document_id: int) -> None:
        """Delete a document; its chunks and topic links cascade."""
        self._conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def replace_chunks(self, document_id: int, segments: list[ChunkSegment]) -> list[ChunkSegment]:
        """Replace every chunk of *document_id* with *segments* in one transaction.

        Re-ingestion never edits chunks in place: the old set is deleted
        (topic links cascade) and the new set inserted. The document is
        marked ``done`` with the new chunk count.

        Returns:
            The persisted segments, with ``id`` and ``document_id`` set.

        Raises:
            NotFoundError: If the document does not exist.
        """
        if self.get_document(document_id) is None:
            raise NotFoundError(f"Document {document_id} not found")

        stored: list[ChunkSegment] = []
        with self._conn:
            self._conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
            for seg in segments:
                cur = self._conn.execute(
                    """
                    INSERT INTO chunks (document_id, content, position, token_count)
                    VALUES (?, ?, ?, ?)
                    """,
                    (document_id, seg.content, seg.position, _estimate_tokens(seg.content)),
                )
                stored.append(
                    ChunkSegment(
                        content=seg.content,
                        position=seg.position,
                        document_id=document_id,
                        id=cur.lastrowid,
                    )
                )
            self._conn.execute(
                "UPDATE documents SET status = 'done', chunk_count = ? WHERE id = ?",
                (len(stored), document_id),
            )
        return stored

    def list_chunks(self, document_id: int) -> list[ChunkSegment]:
        """Return the chunks of *document_id* in document order."""
        rows = self._conn.execute(
            """
            SELECT id, document_id, content, position FROM chunks
            WHERE document_id = ? ORDER BY position
            """,
            (document_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def get_chunk(self, chunk_id: int) -> ChunkSegment | None:
        row = self._conn.execute(
            "SELECT id, document_id, content, position FROM chunks WHERE id = ?",
            (chunk_id,),
        ).fetchone()
        return _row_to_chunk(row) if row else None

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def find_or_create_topic(self, label: str) -> int:
        """Return the id of the topic *label*, creating it if needed.

        Reusing an existing label increments its weight.
        """
        row = self._conn.execute("SELECT id FROM topics WHERE label = ?", (label,)).fetchone()
        if row:
            self._conn.execute("UPDATE topics SET weight = weight + 1 WHERE id = ?", (row["id"],))
            self._conn.commit()
            return row["id"]
        cur = self._conn.execute("INSERT INTO topics (label, weight) VALUES (?, 1)", (label,))
        self._conn.commit()
        return cur.lastrowid

    def link_chunk_to_topic(self, chunk_id: int, topic_id: int, relevance: float = 1.0) -> None:
        """Associate a chunk with a topic; re-linking updates the relevance."""
        self._conn.execute(
            """
            INSERT INTO chunk_topics (chunk_id, topic_id, relevance) VALUES (?, ?, ?)
            ON CONFLICT(chunk_id, topic_id) DO UPDATE SET relevance = excluded.relevance
            """,
            (chunk_id, topic_id, relevance),
        )
        self._conn.commit()

    def get_topic(self, topic_id: int) -> Topic | None:
        row = self._conn.execute(
            """
            SELECT t.id, t.label, t.weight, t.created_at, COUNT(ct.chunk_id) AS chunk_count
            FROM topics t LEFT JOIN chunk_topics ct ON ct.topic_id = t.id
            WHERE t.id = ? GROUP BY t.id
            """,
            (topic_id,),
        ).fetchone()
        return _row_to_topic(row) if row else None

    def list_topics(self) -> list[Topic]:
        """Return all topics with chunk counts, heaviest first."""
        rows = self._conn.execute(
            """
            SELECT t.id, t.label, t.weight, t.created_at, COUNT(ct.chunk_id) AS chunk_count
            FROM topics t LEFT JOIN chunk_topics ct ON ct.topic_id = t.id
            GROUP BY t.id ORDER BY t.weight DESC, t.id
            """
        ).fetchall()
        return [_row_to_topic(r) for r in rows]

    def get_topic_chunks(self, topic_id: int) -> list[ChunkSegment]:
        """Return the chunks linked to *topic_id* in document order."""
        rows = self._conn.execute(
            """
            SELECT c.id, c.document_id, c.content, c.position
            FROM chunk_topics ct JOIN chunks c ON c.id = ct.chunk_id
            WHERE ct.topic_id = ?
            ORDER BY c.document_id, c.position
            """,
            (topic_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def delete_topic(self, topic_id: int) -> None:
        """Delete a topic; its chunk links and conversations cascade."""
        self._conn.execute("DELETE FROM topics WHERE id = ?", (topic_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Topic summaries
    # ------------------------------------------------------------------

    def get_summary(self, topic_id: int) -> TopicSummary | None:
        row = self._conn.execute(
            "SELECT id, topic_id, summary_text, generated_at FROM topic_summaries WHERE topic_id = ?",
            (topic_id,),
        ).fetchone()
        return _row_to_summary(row) if row else None

    def upsert_summary(self, topic_id: int, summary_text: str) -> TopicSummary:
        """Store *summary_text* as the topic's summary, replacing any earlier one.

        Raises:
            NotFoundError: If the topic does not exist.
        """
        if self.get_topic(topic_id) is None:
            raise NotFoundError(f"Topic {topic_id} not found")
        self._conn.execute(
            f"""
            INSERT INTO topic_summaries (topic_id, summary_text, generated_at)
            VALUES (?, ?, {_NOW})
            ON CONFLICT(topic_id) DO UPDATE SET
                summary_text = excluded.summary_text,
                generated_at = excluded.generated_at
            """,
            (topic_id, summary_text),
        )
        self._conn.commit()
        return self.get_summary(topic_id)

    # ------------------------------------------------------------------
    # Provider settings
    # ------------------------------------------------------------------

    def get_active_llm_config(self) -> ProviderConfigRecord | None:
        """Return the single active provider config, or None when unconfigured."""
        row = self._conn.execute(
            """
            SELECT id, provider, base_url, api_key_secret, default_model, task_models,
                   is_active, created_at, updated_at
            FROM llm_config WHERE is_active = 1 ORDER BY id DESC LIMIT 1
            """
        ).fetchone()
        return _row_to_llm_config(row) if row else None

    def save_llm_config(self, record: ProviderConfigRecord) -> int:
        """Store *record* as the active config, deactivating all others atomically.

        Returns:
            The id of the new active row.
        """
        with self._conn:
            self._conn.execute(
                f"UPDATE llm_config SET is_active = 0, updated_at = {_NOW} WHERE is_active = 1"
            )
            cur = self._conn.execute(
                f"""
                INSERT INTO llm_config
                    (provider, base_url, api_key_secret, default_model, task_models,
                     is_active, updated_at)
                VALUES (?, ?, ?, ?, ?, 1, {_NOW})
                """,
                (
                    record.provider,
                    record.base_url,
                    record.api_key_secret,
                    record.default_model,
                    json.dumps(record.task_models),
                ),
            )
        return cur.lastrowid

    def deactivate_llm_configs(self) -> None:
        """Deactivate every stored config (reverts to the built-in provider)."""
        self._conn.execute(
            f"UPDATE llm_config SET is_active = 0, updated_at = {_NOW} WHERE is_active = 1"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Prompt templates
    # ------------------------------------------------------------------

    def add_prompt_template(
        self,
        name: str,
        system_prompt: str,
        description: str = "",
        is_preset: bool = False,
    ) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO prompt_templates (name, description, system_prompt, is_preset)
            VALUES (?, ?, ?, ?)
            """,
            (name, description, system_prompt, int(is_preset)),
        )
        self._conn.commit()
        return cur.lastrowid

    def get_prompt_template(self, template_id: int) -> PromptTemplate | None:
        row = self._conn.execute(
            """
            SELECT id, name, description, system_prompt, is_preset, created_at
            FROM prompt_templates WHERE id = ?
            """,
            (template_id,),
        ).fetchone()
        return _row_to_template(row) if row else None

    def get_prompt_template_by_name(self, name: str) -> PromptTemplate | None:
        row = self._conn.execute(
            """
            SELECT id, name, description, system_prompt, is_preset, created_at
            FROM prompt_templates WHERE name = ? ORDER BY id LIMIT 1
            """,
            (name,),
        ).fetchone()
        return _row_to_template(row) if row else None

    def list_prompt_templates(self) -> list[PromptTemplate]:
        """Return presets first, then user templates, each in creation order."""
        rows = self._conn.execute(
            """
            SELECT id, name, description, system_prompt, is_preset, created_at
            FROM prompt_templates ORDER BY is_preset DESC, id
            """
        ).fetchall()
        return [_row_to_template(r) for r in rows]

    # ------------------------------------------------------------------
    # Topic conversations
    # ------------------------------------------------------------------

    def create_conversation(
        self,
        topic_id: int,
        title: str,
        messages: list[Message],
        prompt_template_id: int | None = None,
        task_type: str = "summarize",
    ) -> ConversationRecord:
        """Insert a conversation and return the stored record."""
        cur = self._conn.execute(
            f"""
            INSERT INTO topic_conversations
                (topic_id, title, messages, prompt_template_id, task_type, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, {_NOW}, {_NOW})
            """,
            (topic_id, title, _dump_messages(messages), prompt_template_id, task_type),
        )
        self._conn.commit()
        return self.get_conversation(cur.lastrowid)

    def get_conversation(self, conversation_id: int) -> ConversationRecord | None:
        row = self._conn.execute(
            """
            SELECT id, topic_id, title, messages, prompt_template_id, task_type,
                   created_at, updated_at
            FROM topic_conversations WHERE id = ?
            """,
            (conversation_id,),
        ).fetchone()
        return _row_to_conversation(row) if row else None

    def list_conversations(self, topic_id: int) -> list[ConversationSummary]:
        """Return conversation summaries for *topic_id*, most recently updated first."""
        rows = self._conn.execute(
            """
            SELECT id, topic_id, title, messages, created_at, updated_at
            FROM topic_conversations WHERE topic_id = ?
            ORDER BY updated_at DESC, id DESC
            """,
            (topic_id,),
        ).fetchall()
        return [
            ConversationSummary(
                id=r["id"],
                topic_id=r["topic_id"],
                title=r["title"],
                message_count=len(json.loads(r["messages"])),
                created_at=r["created_at"],
                updated_at=r["updated_at"],
            )
            for r in rows
        ]

    def update_conversation_messages(
        self, conversation_id: int, messages: list[Message]
    ) -> ConversationRecord:
        """Overwrite the transcript of a conversation and bump ``updated_at``.

        Raises:
            NotFoundError: If the conversation does not exist.
        """
        cur = self._conn.execute(
            f"UPDATE topic_conversations SET messages = ?, updated_at = {_NOW} WHERE id = ?",
            (_dump_messages(messages), conversation_id),
        )
        self._conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return self.get_conversation(conversation_id)

    def rename_conversation(self, conversation_id: int, title: str) -> ConversationRecord:
        """Set a conversation's title and bump ``updated_at``.

        Raises:
            NotFoundError: If the conversation does not exist.
        """
        cur = self._conn.execute(
            f"UPDATE topic_conversations SET title = ?, updated_at = {_NOW} WHERE id = ?",
            (title, conversation_id),
        )
        self._conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return self.get_conversation(conversation_id)

    def delete_conversation(self, conversation_id: int) -> bool:
        """Delete a conversation. Returns False if it did not exist."""
        cur = self._conn.execute(
            "DELETE FROM topic_conversations WHERE id = ?", (conversation_id,)
        )
        self._conn.commit()
        return cur.rowcount > 0


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _estimate_tokens(text: str) -> int:
    """Approximate token count: 4 characters ≈ 1 token."""
    return max(1, len(text) // 4)


def _dump_messages(messages: list[Message]) -> str:
    return json.dumps([m.to_dict() for m in messages], ensure_ascii=False)


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        filename=row["filename"],
        status=row["status"],
        chunk_count=row["chunk_count"],
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> ChunkSegment:
    return ChunkSegment(
        id=row["id"],
        document_id=row["document_id"],
        content=row["content"],
        position=row["position"],
    )


def _row_to_topic(row: sqlite3.Row) -> Topic:
    return Topic(
        id=row["id"],
        label=row["label"],
        weight=row["weight"],
        chunk_count=row["chunk_count"],
        created_at=row["created_at"],
    )


def _row_to_llm_config(row: sqlite3.Row) -> ProviderConfigRecord:
    try:
        task_models = json.loads(row["task_models"] or "{}")
    except json.JSONDecodeError:
        task_models = {}
    if not isinstance(task_models, dict):
        task_models = {}
    return ProviderConfigRecord(
        id=row["id"],
        provider=row["provider"],
        base_url=row["base_url"] or "",
        api_key_secret=row["api_key_secret"],
        default_model=row["default_model"] or "",
        task_models={str(k): str(v) for k, v in task_models.items() if v},
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_template(row: sqlite3.Row) -> PromptTemplate:
    return PromptTemplate(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        system_prompt=row["system_prompt"],
        is_preset=bool(row["is_preset"]),
        created_at=row["created_at"],
    )


def _row_to_summary(row: sqlite3.Row) -> TopicSummary:
    return TopicSummary(
        id=row["id"],
        topic_id=row["topic_id"],
        summary_text=row["summary_text"],
        generated_at=row["generated_at"],
    )


def _row_to_conversation(row: sqlite3.Row) -> ConversationRecord:
    return ConversationRecord(
        id=row["id"],
        topic_id=row["topic_id"],
        title=row["title"],
        messages=[Message.from_dict(m) for m in json.loads(row["messages"])],
        prompt_template_id=row["prompt_template_id"],
        task_type=row["task_type"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
