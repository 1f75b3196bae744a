"""Tests for the Repository data-access layer."""

from __future__ import annotations

import json

import pytest

from cortex.db.models import ChunkSegment, Message, ProviderConfigRecord, Role
from cortex.db.repository import NotFoundError, Repository


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _segments(*texts: str) -> list[ChunkSegment]:
    return [ChunkSegment(content=t, position=i) for i, t in enumerate(texts)]


def _document_with_chunks(repo: Repository, *texts: str, filename: str = "notes.txt"):
    doc_id = repo.add_document(filename)
    return doc_id, repo.replace_chunks(doc_id, _segments(*texts))


def _transcript(*pairs: tuple[str, str]) -> list[Message]:
    return [Message(role=r, content=c) for r, c in pairs]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def test_add_and_get_document(repo):
    doc_id = repo.add_document("report.txt")
    doc = repo.get_document(doc_id)
    assert doc.filename == "report.txt"
    assert doc.status == "parsing"
    assert doc.chunk_count == 0


def test_get_document_missing_returns_none(repo):
    assert repo.get_document(999) is None


def test_get_document_by_filename_returns_latest(repo):
    repo.add_document("a.txt")
    second = repo.add_document("a.txt")
    assert repo.get_document_by_filename("a.txt").id == second
    assert repo.get_document_by_filename("missing.txt") is None


def test_list_documents_in_creation_order(repo):
    repo.add_document("one.txt")
    repo.add_document("two.txt")
    assert [d.filename for d in repo.list_documents()] == ["one.txt", "two.txt"]


def test_set_document_status(repo):
    doc_id = repo.add_document("a.txt")
    repo.set_document_status(doc_id, "error")
    assert repo.get_document(doc_id).status == "error"


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------


def test_replace_chunks_persists_in_order(repo):
    doc_id, stored = _document_with_chunks(repo, "first", "second", "third")
    assert [c.position for c in stored] == [0, 1, 2]
    assert all(c.id is not None and c.document_id == doc_id for c in stored)
    assert [c.content for c in repo.list_chunks(doc_id)] == ["first", "second", "third"]


def test_replace_chunks_marks_document_done(repo):
    doc_id, _ = _document_with_chunks(repo, "a", "b")
    doc = repo.get_document(doc_id)
    assert doc.status == "done"
    assert doc.chunk_count == 2


def test_replace_chunks_replaces_previous_set(repo):
    doc_id, _ = _document_with_chunks(repo, "old one", "old two", "old three")
    repo.replace_chunks(doc_id, _segments("new"))
    chunks = repo.list_chunks(doc_id)
    assert [c.content for c in chunks] == ["new"]
    assert repo.get_document(doc_id).chunk_count == 1


def test_replace_chunks_stores_token_estimate(repo, tmp_db):
    doc_id, stored = _document_with_chunks(repo, "x" * 40, "y")
    rows = tmp_db.execute(
        "SELECT token_count FROM chunks WHERE document_id = ? ORDER BY position", (doc_id,)
    ).fetchall()
    assert [r["token_count"] for r in rows] == [10, 1]


def test_replace_chunks_unknown_document_raises(repo):
    with pytest.raises(NotFoundError):
        repo.replace_chunks(42, _segments("orphan"))


def test_get_chunk(repo):
    _, stored = _document_with_chunks(repo, "only")
    assert repo.get_chunk(stored[0].id).content == "only"
    assert repo.get_chunk(999) is None


def test_delete_document_cascades_chunks(repo):
    doc_id, stored = _document_with_chunks(repo, "a", "b")
    repo.delete_document(doc_id)
    assert repo.get_document(doc_id) is None
    assert repo.get_chunk(stored[0].id) is None


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------


def test_find_or_create_topic_reuses_label_and_bumps_weight(repo):
    first = repo.find_or_create_topic("stage lighting")
    again = repo.find_or_create_topic("stage lighting")
    assert first == again
    assert repo.get_topic(first).weight == 2


def test_link_chunk_to_topic_upserts_relevance(repo, tmp_db):
    _, stored = _document_with_chunks(repo, "a")
    topic_id = repo.find_or_create_topic("t")
    repo.link_chunk_to_topic(stored[0].id, topic_id, 0.4)
    repo.link_chunk_to_topic(stored[0].id, topic_id, 0.9)
    rows = tmp_db.execute("SELECT relevance FROM chunk_topics").fetchall()
    assert len(rows) == 1
    assert rows[0]["relevance"] == pytest.approx(0.9)


def test_list_topics_heaviest_first_with_chunk_counts(repo):
    _, stored = _document_with_chunks(repo, "a", "b")
    light = repo.find_or_create_topic("light")
    heavy = repo.find_or_create_topic("heavy")
    repo.find_or_create_topic("heavy")
    repo.link_chunk_to_topic(stored[0].id, heavy)
    repo.link_chunk_to_topic(stored[1].id, heavy)

    topics = repo.list_topics()
    assert [t.id for t in topics] == [heavy, light]
    assert topics[0].chunk_count == 2
    assert topics[1].chunk_count == 0


def test_get_topic_chunks_in_document_order(repo):
    _, stored = _document_with_chunks(repo, "p0", "p1", "p2")
    topic_id = repo.find_or_create_topic("t")
    repo.link_chunk_to_topic(stored[2].id, topic_id)
    repo.link_chunk_to_topic(stored[0].id, topic_id)
    assert [c.content for c in repo.get_topic_chunks(topic_id)] == ["p0", "p2"]


def test_reingest_drops_topic_links(repo):
    doc_id, stored = _document_with_chunks(repo, "a")
    topic_id = repo.find_or_create_topic("t")
    repo.link_chunk_to_topic(stored[0].id, topic_id)
    repo.replace_chunks(doc_id, _segments("b"))
    assert repo.get_topic_chunks(topic_id) == []


# ---------------------------------------------------------------------------
# Topic summaries
# ---------------------------------------------------------------------------


def test_summary_missing_returns_none(repo):
    assert repo.get_summary(repo.find_or_create_topic("t")) is None


def test_upsert_summary_replaces_previous(repo, tmp_db):
    topic_id = repo.find_or_create_topic("t")
    first = repo.upsert_summary(topic_id, "first draft")
    second = repo.upsert_summary(topic_id, "second draft")
    assert second.id == first.id
    assert repo.get_summary(topic_id).summary_text == "second draft"
    assert tmp_db.execute("SELECT COUNT(*) FROM topic_summaries").fetchone()[0] == 1


def test_upsert_summary_unknown_topic(repo):
    with pytest.raises(NotFoundError):
        repo.upsert_summary(999, "text")


def test_delete_topic_cascades_summary(repo):
    topic_id = repo.find_or_create_topic("t")
    repo.upsert_summary(topic_id, "text")
    repo.delete_topic(topic_id)
    assert repo.get_summary(topic_id) is None


# ---------------------------------------------------------------------------
# Provider settings
# ---------------------------------------------------------------------------


def test_no_active_llm_config_by_default(repo):
    assert repo.get_active_llm_config() is None


def test_save_llm_config_keeps_single_active_row(repo, tmp_db):
    repo.save_llm_config(ProviderConfigRecord(provider="openai", api_key_secret="c2stMQ=="))
    repo.save_llm_config(
        ProviderConfigRecord(provider="openrouter", api_key_secret="c2stMg==", task_models={"summarize": "m"})
    )
    active = tmp_db.execute("SELECT COUNT(*) FROM llm_config WHERE is_active = 1").fetchone()[0]
    assert active == 1
    record = repo.get_active_llm_config()
    assert record.provider == "openrouter"
    assert record.task_models == {"summarize": "m"}


def test_deactivate_llm_configs(repo):
    repo.save_llm_config(ProviderConfigRecord(provider="openai", api_key_secret="eA=="))
    repo.deactivate_llm_configs()
    assert repo.get_active_llm_config() is None


def test_corrupt_task_models_read_as_empty(repo, tmp_db):
    repo.save_llm_config(ProviderConfigRecord(provider="openai", api_key_secret="eA=="))
    tmp_db.execute("UPDATE llm_config SET task_models = 'not json'")
    tmp_db.commit()
    assert repo.get_active_llm_config().task_models == {}


def test_null_task_models_are_skipped(repo, tmp_db):
    repo.save_llm_config(ProviderConfigRecord(provider="openai", api_key_secret="eA=="))
    tmp_db.execute(
        """UPDATE llm_config SET task_models = '{"summarize": null, "explore": "gpt-4.1"}'"""
    )
    tmp_db.commit()
    assert repo.get_active_llm_config().task_models == {"explore": "gpt-4.1"}


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------


def test_prompt_templates_presets_first(repo):
    custom = repo.add_prompt_template("Mine", "You are mine.")
    preset = repo.add_prompt_template("Preset", "You are a preset.", is_preset=True)
    assert [t.id for t in repo.list_prompt_templates()] == [preset, custom]
    assert repo.get_prompt_template(preset).is_preset is True
    assert repo.get_prompt_template_by_name("Mine").system_prompt == "You are mine."
    assert repo.get_prompt_template(999) is None


# ---------------------------------------------------------------------------
# Topic conversations
# ---------------------------------------------------------------------------


def test_create_and_get_conversation_roundtrip(repo):
    topic_id = repo.find_or_create_topic("t")
    messages = _transcript(
        (Role.SYSTEM, "You are a summarizer."),
        (Role.USER, "Hello world."),
        (Role.ASSISTANT, "A greeting."),
    )
    record = repo.create_conversation(topic_id, "Summary", messages, task_type="explore")

    loaded = repo.get_conversation(record.id)
    assert loaded.messages == messages
    assert loaded.title == "Summary"
    assert loaded.task_type == "explore"
    assert loaded.created_at is not None


def test_conversation_preserves_unicode_verbatim(repo, tmp_db):
    topic_id = repo.find_or_create_topic("t")
    text = "话题提取 — “quoted” \n\n tabs\t"
    record = repo.create_conversation(topic_id, "u", _transcript((Role.USER, text)))
    raw = tmp_db.execute("SELECT messages FROM topic_conversations").fetchone()[0]
    assert "话题提取" in raw
    assert json.loads(raw)[0]["content"] == text
    assert repo.get_conversation(record.id).messages[0].content == text


def test_get_conversation_missing_returns_none(repo):
    assert repo.get_conversation(123) is None


def test_update_conversation_messages(repo):
    topic_id = repo.find_or_create_topic("t")
    record = repo.create_conversation(topic_id, "c", _transcript((Role.SYSTEM, "s")))
    updated = repo.update_conversation_messages(
        record.id, _transcript((Role.SYSTEM, "s"), (Role.USER, "u"))
    )
    assert updated.message_count == 2
    assert updated.updated_at >= record.updated_at


def test_update_missing_conversation_raises(repo):
    with pytest.raises(NotFoundError):
        repo.update_conversation_messages(5, [])


def test_rename_conversation(repo):
    topic_id = repo.find_or_create_topic("t")
    record = repo.create_conversation(topic_id, "old", [])
    assert repo.rename_conversation(record.id, "new").title == "new"
    with pytest.raises(NotFoundError):
        repo.rename_conversation(999, "x")


def test_list_conversations_most_recent_first(repo):
    topic_id = repo.find_or_create_topic("t")
    other = repo.find_or_create_topic("other")
    first = repo.create_conversation(topic_id, "first", [])
    second = repo.create_conversation(topic_id, "second", _transcript((Role.USER, "u")))
    repo.create_conversation(other, "elsewhere", [])

    summaries = repo.list_conversations(topic_id)
    assert [s.id for s in summaries] == [second.id, first.id]
    assert summaries[0].message_count == 1


def test_delete_conversation(repo):
    topic_id = repo.find_or_create_topic("t")
    record = repo.create_conversation(topic_id, "c", [])
    assert repo.delete_conversation(record.id) is True
    assert repo.delete_conversation(record.id) is False
    assert repo.get_conversation(record.id) is None


def test_delete_topic_cascades_conversations(repo):
    topic_id = repo.find_or_create_topic("t")
    record = repo.create_conversation(topic_id, "c", [])
    repo.delete_topic(topic_id)
    assert repo.get_topic(topic_id) is None
    assert repo.get_conversation(record.id) is None
