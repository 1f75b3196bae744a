"""Preset prompt templates seeded into a new database.

Each preset's ``system_prompt`` becomes the first message of a
conversation started with it.
"""

from __future__ import annotations

from dataclasses import dataclass

from cortex.db.repository import Repository


@dataclass(frozen=True)
class PresetTemplate:
    name: str
    description: str
    system_prompt: str


PRESET_TEMPLATES: tuple[PresetTemplate, ...] = (
    PresetTemplate(
        name="Academic summary",
        description="Structured academic summary covering core arguments and evidence",
        system_prompt=(
            "You are a professional academic summarization assistant. Using the text "
            "passages provided, write a structured academic summary.\n\n"
            "Requirements:\n"
            "- Cover the core arguments and evidence of every passage\n"
            "- Organise it as background → core arguments → supporting evidence → conclusion\n"
            "- 300-600 words\n"
            "- Use Markdown"
        ),
    ),
    PresetTemplate(
        name="Blog style",
        description="Readable, informal blog article",
        system_prompt=(
            "You are an accomplished blog writer. Using the text passages provided, "
            "write an engaging, easy-to-read blog article.\n\n"
            "Requirements:\n"
            "- Lively language suitable for publication\n"
            "- Short paragraphs and subheadings\n"
            "- 400-800 words\n"
            "- Use Markdown, with bold text and quotes where they help"
        ),
    ),
    PresetTemplate(
        name="Reading notes",
        description="Key points, memorable quotes, and a reflection section",
        system_prompt=(
            "You are an assistant who takes excellent reading notes. Using the text "
            "passages provided, produce reading notes.\n\n"
            "Requirements:\n"
            "- Numbered list of key points\n"
            "- Memorable quotes as > block quotes\n"
            "- A short annotation on each important idea\n"
            "- Directions worth researching further\n"
            "- End with an empty 'Personal reflections' section for the reader\n"
            "- Use Markdown"
        ),
    ),
    PresetTemplate(
        name="Conversation digest",
        description="Concise digest of a recorded discussion",
        system_prompt=(
            "You are a conversation analysis assistant. Using the text passages "
            "provided, write a concise digest of the discussion.\n\n"
            "Requirements:\n"
            "- The core issues and conclusions\n"
            "- Each participant's main positions, where identifiable\n"
            "- Points of agreement and disagreement\n"
            "- Action items, if any\n"
            "- Use Markdown"
        ),
    ),
    PresetTemplate(
        name="Outline first",
        description="Multi-phase skill: outline → confirm → draft → refine",
        system_prompt=(
            "You turn source material into a polished article in phases. Work strictly "
            "one phase per reply and wait for the user between phases.\n\n"
            "Phase 1 (this reply): propose a numbered outline with a one-line purpose "
            "per section, then ask the user to confirm or adjust it.\n"
            "Phase 2: after the user confirms, write the full draft following the "
            "agreed outline.\n"
            "Phase 3: refine the draft according to the user's feedback, returning the "
            "complete revised text each time.\n\n"
            "Base every claim on the provided passages. Use Markdown."
        ),
    ),
)


def seed_presets(repo: Repository) -> int:
    """Insert any preset not yet present (matched by name). Returns the number added."""
    added = 0
    for preset in PRESET_TEMPLATES:
        if repo.get_prompt_template_by_name(preset.name) is None:
            repo.add_prompt_template(
                name=preset.name,
                system_prompt=preset.system_prompt,
                description=preset.description,
                is_preset=True,
            )
            added += 1
    return added
