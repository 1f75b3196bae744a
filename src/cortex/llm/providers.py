"""Provider dispatch over LiteLLM.

Every model call in Cortex ends in :func:`send`. Providers form a closed
set: ``builtin`` uses LiteLLM's own routing for a ``provider/model``
string with the credential taken from the environment; ``openai``,
``openrouter`` and ``custom`` are all OpenAI-compatible endpoints and
share one request path (custom = any endpoint speaking that shape).

LiteLLM's internal retries are disabled here; retry is the gateway's job.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum

import litellm

from cortex.llm.errors import LLMError, LLMErrorKind

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


class Provider(str, Enum):
    BUILTIN = "builtin"
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    CUSTOM = "custom"


class TaskType(str, Enum):
    """Named use-case, used only to look up a per-task model override."""

    TOPIC_EXTRACT = "topic_extract"
    SUMMARIZE = "summarize"
    EXPLORE = "explore"
    CHUNK_MERGE = "chunk_merge"


@dataclass(frozen=True)
class ProviderDefaults:
    base_url: str
    default_model: str


PROVIDER_DEFAULTS: dict[Provider, ProviderDefaults] = {
    Provider.BUILTIN: ProviderDefaults(base_url="", default_model="gemini/gemini-2.5-flash"),
    Provider.OPENAI: ProviderDefaults(
        base_url="https://api.openai.com/v1", default_model="gpt-4.1-mini"
    ),
    Provider.OPENROUTER: ProviderDefaults(
        base_url="https://openrouter.ai/api/v1", default_model="anthropic/claude-sonnet-4"
    ),
    Provider.CUSTOM: ProviderDefaults(base_url="", default_model=""),
}

_OPENROUTER_HEADERS: dict[str, str] = {
    "HTTP-Referer": "https://cortex.local",
    "X-Title": "Cortex",
}

# LiteLLM provider prefix → env var holding the built-in provider's key.
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


@dataclass(frozen=True)
class EffectiveConfig:
    """Fully resolved settings for one invocation. ``api_key`` is cleartext, in memory only."""

    provider: Provider
    base_url: str
    model: str
    api_key: str = field(default="", repr=False)


def builtin_key_env(model: str) -> str | None:
    """Return the env var the built-in provider reads for *model*, or None if keyless."""
    prefix = model.split("/")[0].lower() if "/" in model else "openai"
    return _PROVIDER_ENV.get(prefix)


def builtin_api_key(model: str) -> str:
    """Return the built-in provider's credential for *model* from the environment."""
    env_var = builtin_key_env(model)
    return os.getenv(env_var, "") if env_var else ""


def send(
    config: EffectiveConfig,
    messages: list[dict],
    *,
    max_tokens: int = 32_768,
    timeout: float = 120.0,
) -> str:
    """Issue one chat completion request and return the assistant text.

    Args:
        config: Resolved provider settings.
        messages: OpenAI-style ``{role, content}`` message list.
        max_tokens: Maximum output tokens.
        timeout: Connection timeout in seconds.

    Returns:
        The text content of the first choice.

    Raises:
        LLMError: MALFORMED_RESPONSE if the reply carries no text.
        Exception: Any transport or provider error from LiteLLM, unchanged.
    """
    kwargs: dict = {
        "model": config.model,
        "messages": messages,
        "max_tokens": max_tokens,
        "timeout": timeout,
        "num_retries": 0,
    }

    if config.provider is Provider.BUILTIN:
        if config.base_url:
            kwargs["api_base"] = config.base_url
        if config.api_key:
            kwargs["api_key"] = config.api_key
    else:
        kwargs["custom_llm_provider"] = "openai"
        kwargs["api_base"] = config.base_url.rstrip("/")
        kwargs["api_key"] = config.api_key
        if config.provider is Provider.OPENROUTER:
            kwargs["extra_headers"] = dict(_OPENROUTER_HEADERS)

    response = litellm.completion(**kwargs)
    return extract_content(response, config.provider.value)


def extract_content(response: object, provider: str = "") -> str:
    """Pull the assistant text out of a completion response.

    Raises:
        LLMError: MALFORMED_RESPONSE when the expected shape is missing or empty.
    """
    try:
        content = response.choices[0].message.content  # type: ignore[attr-defined]
    except (AttributeError, IndexError, KeyError, TypeError) as exc:
        raise LLMError(
            LLMErrorKind.MALFORMED_RESPONSE,
            f"Unexpected response shape from provider '{provider}'",
            provider=provider,
            attempts=1,
            last_error=exc,
        ) from exc

    if not isinstance(content, str) or not content.strip():
        raise LLMError(
            LLMErrorKind.MALFORMED_RESPONSE,
            f"Provider '{provider}' returned an empty reply",
            provider=provider,
            attempts=1,
        )
    return content
