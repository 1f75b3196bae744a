"""Domain models for the Cortex database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Speaker of a conversation message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """One transcript entry.

    ``to_dict()`` is both the persisted shape and the provider wire shape.
    """

    role: Role
    content: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user") as well as Role members.
        object.__setattr__(self, "role", Role(self.role))

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        return cls(role=Role(data["role"]), content=str(data["content"]))


@dataclass
class Document:
    id: int
    filename: str
    status: str = "parsing"  # parsing | done | extracting | error
    chunk_count: int = 0
    created_at: str | None = None


@dataclass(frozen=True)
class ChunkSegment:
    """A bounded slice of a document's text.

    ``position`` is the sequence index within the source document.
    ``id`` and ``document_id`` are None until the segment is persisted.
    """

    content: str
    position: int
    document_id: int | None = None
    id: int | None = None


@dataclass
class Topic:
    id: int
    label: str
    weight: int = 0
    chunk_count: int = 0
    created_at: str | None = None


@dataclass
class ProviderConfigRecord:
    """Stored provider settings. ``api_key_secret`` is encoded, never cleartext."""

    provider: str
    base_url: str = ""
    api_key_secret: str | None = field(default=None, repr=False)
    default_model: str = ""
    task_models: dict[str, str] = field(default_factory=dict)
    is_active: bool = True
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class PromptTemplate:
    id: int
    name: str
    system_prompt: str
    description: str = ""
    is_preset: bool = False
    created_at: str | None = None


@dataclass
class ConversationRecord:
    """A persisted multi-turn exchange anchored to a topic."""

    id: int
    topic_id: int
    title: str
    messages: list[Message] = field(default_factory=list)
    prompt_template_id: int | None = None
    task_type: str = "summarize"
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def message_count(self) -> int:
        return len(self.messages)


@dataclass
class ConversationSummary:
    """Listing row for a conversation (no transcript)."""

    id: int
    topic_id: int
    title: str
    message_count: int
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class TopicSummary:
    """The current summary of a topic (generated by the model or edited by hand)."""

    id: int
    topic_id: int
    summary_text: str
    generated_at: str | None = None
