"""Provider configuration resolution.

Resolution order for ``resolve(task_type)`` (first match wins):
  1. No active llm_config row → built-in provider, built-in default model,
     credential from the environment.
  2. Active row → decode its stored key (failure is a ConfigError, never a
     silent fallback to the built-in provider).
  3. Model: task override → row default model → provider family default.

The built-in "fallback" is static: it is chosen here, once, before any
network attempt. It is not triggered by a failing configured provider.

The active row may change between two resolve() calls made for the same
logical request; no transaction spans a conversation turn and a config
update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cortex.config import ConfigError
from cortex.db.models import ProviderConfigRecord
from cortex.llm.providers import (
    PROVIDER_DEFAULTS,
    EffectiveConfig,
    Provider,
    TaskType,
    builtin_api_key,
)
from cortex.llm.secrets import decode_secret, encode_secret

logger = logging.getLogger(__name__)

_DEFAULT_BUILTIN_MODEL = PROVIDER_DEFAULTS[Provider.BUILTIN].default_model


class ConfigFieldError(ConfigError):
    """A provider config save was rejected because of one field."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(f"{field_name}: {message}")
        self.field = field_name
        self.reason = message


@dataclass
class ProviderConfigView:
    """Read-side view of the provider settings. Never carries the key itself."""

    provider: str
    base_url: str
    default_model: str
    task_models: dict[str, str] = field(default_factory=dict)
    has_api_key: bool = False
    is_configured: bool = False


class ProviderConfigResolver:
    """Resolve, read, and save provider settings through an injected store.

    Args:
        store: Object with ``get_active_llm_config()``, ``save_llm_config()``
            and ``deactivate_llm_configs()`` (normally a Repository).
        builtin_model: LiteLLM model string for the built-in provider.
        builtin_base_url: Endpoint override for the built-in provider.
    """

    def __init__(
        self,
        store,
        *,
        builtin_model: str = _DEFAULT_BUILTIN_MODEL,
        builtin_base_url: str = "",
    ) -> None:
        self._store = store
        self._builtin_model = builtin_model
        self._builtin_base_url = builtin_base_url

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, task_type: TaskType | str) -> EffectiveConfig:
        """Return the effective provider, endpoint, key, and model for *task_type*.

        Unrecognised task types use the default model.

        Raises:
            ConfigError: If the active row names an unknown provider or its
                stored key cannot be decoded.
        """
        task_key = task_type.value if isinstance(task_type, TaskType) else str(task_type)
        record = self._store.get_active_llm_config()

        if record is None:
            cfg = EffectiveConfig(
                provider=Provider.BUILTIN,
                base_url=self._builtin_base_url,
                model=self._builtin_model,
                api_key=builtin_api_key(self._builtin_model),
            )
            logger.debug("No active provider config; using built-in model %s", cfg.model)
            return cfg

        provider = _parse_provider(record.provider, error=ConfigError)

        if provider is Provider.BUILTIN:
            base_default, model_default = self._builtin_base_url, self._builtin_model
        else:
            defaults = PROVIDER_DEFAULTS[provider]
            base_default, model_default = defaults.base_url, defaults.default_model

        model = record.task_models.get(task_key) or record.default_model or model_default

        if provider is Provider.BUILTIN:
            api_key = builtin_api_key(model)
        else:
            api_key = decode_secret(record.api_key_secret) if record.api_key_secret else ""

        cfg = EffectiveConfig(
            provider=provider,
            base_url=record.base_url or base_default,
            model=model,
            api_key=api_key,
        )
        logger.debug("Resolved task %s → provider=%s model=%s", task_key, provider.value, model)
        return cfg

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def get_config(self) -> ProviderConfigView:
        """Return the current settings with only a key-presence flag."""
        record = self._store.get_active_llm_config()
        if record is None:
            return ProviderConfigView(
                provider=Provider.BUILTIN.value,
                base_url=self._builtin_base_url,
                default_model=self._builtin_model,
                has_api_key=bool(builtin_api_key(self._builtin_model)),
                is_configured=False,
            )
        return ProviderConfigView(
            provider=record.provider,
            base_url=record.base_url,
            default_model=record.default_model,
            task_models=dict(record.task_models),
            has_api_key=bool(record.api_key_secret),
            is_configured=True,
        )

    def save_config(
        self,
        provider: Provider | str,
        *,
        base_url: str = "",
        api_key: str | None = None,
        default_model: str = "",
        task_models: dict[str, str] | None = None,
    ) -> ProviderConfigView:
        """Validate and store new provider settings as the active config.

        ``api_key`` is write-only. ``None`` or a blank string keeps the key
        already stored for the same provider.

        Raises:
            ConfigFieldError: Naming the first invalid field.
        """
        parsed = _parse_provider(provider, error=None)
        base_url = base_url.strip()
        default_model = default_model.strip()
        models = _validate_task_models(task_models or {})

        if base_url and not base_url.startswith(("http://", "https://")):
            raise ConfigFieldError("base_url", f"must start with http:// or https://, got '{base_url}'")
        if parsed is Provider.CUSTOM and not base_url:
            raise ConfigFieldError("base_url", "is required for the custom provider")
        if parsed is Provider.CUSTOM and not default_model:
            raise ConfigFieldError("default_model", "is required for the custom provider")

        api_key = (api_key or "").strip()
        secret: str | None = None
        if parsed is Provider.BUILTIN:
            if api_key:
                raise ConfigFieldError(
                    "api_key",
                    "the built-in provider reads its key from the environment; do not store one",
                )
        elif api_key:
            secret = encode_secret(api_key)
        else:
            current = self._store.get_active_llm_config()
            if current is not None and current.provider == parsed.value:
                secret = current.api_key_secret
            if not secret:
                raise ConfigFieldError("api_key", f"is required for the {parsed.value} provider")

        self._store.save_llm_config(
            ProviderConfigRecord(
                provider=parsed.value,
                base_url=base_url,
                api_key_secret=secret,
                default_model=default_model,
                task_models=models,
            )
        )
        logger.info("Saved provider config: provider=%s", parsed.value)
        return self.get_config()

    def reset(self) -> None:
        """Deactivate all stored settings; resolution reverts to the built-in provider."""
        self._store.deactivate_llm_configs()
        logger.info("Provider config reset to built-in")


def _parse_provider(value: Provider | str, *, error: type[ConfigError] | None) -> Provider:
    try:
        return Provider(value)
    except ValueError:
        choices = ", ".join(p.value for p in Provider)
        if error is None:
            raise ConfigFieldError("provider", f"unknown provider '{value}' (choose: {choices})") from None
        raise error(f"Stored provider '{value}' is not one of: {choices}") from None


def _validate_task_models(task_models: dict[str, str]) -> dict[str, str]:
    known = {t.value for t in TaskType}
    cleaned: dict[str, str] = {}
    for task, model in task_models.items():
        key = task.value if isinstance(task, TaskType) else str(task)
        if key not in known:
            raise ConfigFieldError(
                "task_models", f"unknown task type '{key}' (choose: {', '.join(sorted(known))})"
            )
        if model and model.strip():
            cleaned[key] = model.strip()
    return cleaned
