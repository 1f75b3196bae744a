"""Cortex LLM layer — provider resolution, invocation, and retry."""

from cortex.llm.errors import LLMError, LLMErrorKind
from cortex.llm.gateway import LLMGateway
from cortex.llm.providers import EffectiveConfig, Provider, TaskType
from cortex.llm.resolver import ConfigFieldError, ProviderConfigResolver, ProviderConfigView

__all__ = [
    "ConfigFieldError",
    "EffectiveConfig",
    "LLMError",
    "LLMErrorKind",
    "LLMGateway",
    "Provider",
    "ProviderConfigResolver",
    "ProviderConfigView",
    "TaskType",
]
