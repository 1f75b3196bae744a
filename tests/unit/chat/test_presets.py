"""Tests for preset prompt templates."""

from __future__ import annotations

from cortex.chat.presets import PRESET_TEMPLATES, seed_presets


def test_seed_presets_inserts_all(repo):
    assert seed_presets(repo) == len(PRESET_TEMPLATES)
    templates = repo.list_prompt_templates()
    assert {t.name for t in templates} == {p.name for p in PRESET_TEMPLATES}
    assert all(t.is_preset for t in templates)


def test_seed_presets_idempotent(repo):
    seed_presets(repo)
    assert seed_presets(repo) == 0
    assert len(repo.list_prompt_templates()) == len(PRESET_TEMPLATES)


def test_seed_presets_keeps_custom_templates(repo):
    repo.add_prompt_template("Mine", "You are mine.")
    seed_presets(repo)
    templates = repo.list_prompt_templates()
    assert templates[-1].name == "Mine"
    assert templates[-1].is_preset is False


def test_presets_have_unique_names_and_prompts():
    names = [p.name for p in PRESET_TEMPLATES]
    assert len(names) == len(set(names))
    assert all(p.system_prompt.strip() for p in PRESET_TEMPLATES)
