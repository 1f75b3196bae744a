"""Single entry point for every model invocation in Cortex.

``invoke()`` resolves the provider for the task, then sends the whole
message list. Failures (transport errors, non-2xx responses, timeouts)
are retried against the SAME provider after a fixed delay: 1 attempt +
``max_retries`` retries, no exponential backoff, no jitter. A reply that
arrives but has no usable text is not retried.

The delay blocks only the calling request; nothing here holds a lock.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from cortex.config import ConfigError, LLMCfg
from cortex.db.models import Message
from cortex.llm.errors import LLMError, LLMErrorKind
from cortex.llm.providers import EffectiveConfig, Provider, TaskType, send
from cortex.llm.resolver import ProviderConfigResolver

logger = logging.getLogger(__name__)

_PING_MESSAGES = [Message(role="user", content="Reply with the single word: pong")]


def _is_transient(exc: BaseException) -> bool:
    """Transport and provider failures are retried; unreadable replies and bad settings are not."""
    if isinstance(exc, ConfigError):
        return False
    if isinstance(exc, LLMError) and exc.kind is LLMErrorKind.MALFORMED_RESPONSE:
        return False
    return isinstance(exc, Exception)


class LLMGateway:
    """Invoke the resolved provider with bounded retry.

    Args:
        resolver: Provider settings resolver.
        max_retries: Retries after the first failed attempt.
        retry_delay: Fixed wait between attempts, in seconds.
        timeout: Provider connection timeout, in seconds.
        max_tokens: Maximum output tokens requested.
        sender: Callable with the signature of :func:`cortex.llm.providers.send`.
        sleep: Delay function (``time.sleep``; replaced in tests).
    """

    def __init__(
        self,
        resolver: ProviderConfigResolver,
        *,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        timeout: float = 120.0,
        max_tokens: int = 32_768,
        sender: Callable[..., str] = send,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._resolver = resolver
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._send = sender
        self._sleep = sleep

    @classmethod
    def from_config(cls, resolver: ProviderConfigResolver, cfg: LLMCfg, **kwargs) -> LLMGateway:
        """Build a gateway from the ``llm:`` config section."""
        return cls(
            resolver,
            max_retries=cfg.max_retries,
            retry_delay=cfg.retry_delay,
            timeout=cfg.timeout,
            max_tokens=cfg.max_tokens,
            **kwargs,
        )

    def invoke(self, task_type: TaskType | str, messages: Sequence[Message]) -> str:
        """Send *messages* for *task_type* and return the assistant's reply text.

        Raises:
            ConfigError: Stored settings are corrupt or incomplete (not retried).
            LLMError: PROVIDER_UNAVAILABLE once every attempt failed, or
                MALFORMED_RESPONSE for an unreadable reply.
            ValueError: If *messages* is empty.
        """
        if not messages:
            raise ValueError("messages must not be empty")

        config = self._resolver.resolve(task_type)
        _check_ready(config)

        payload = [m.to_dict() for m in messages]
        attempts = self.max_retries + 1
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception(_is_transient),
            sleep=self._sleep,
            before_sleep=self._log_retry(config, attempts),
        )

        try:
            return retrying(
                self._send, config, payload, max_tokens=self.max_tokens, timeout=self.timeout
            )
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
        except LLMError as exc:
            exc.attempts = retrying.statistics.get("attempt_number", 1)
            raise

        logger.error(
            "LLM call failed after %d attempts (provider=%s): %s",
            attempts,
            config.provider.value,
            str(last_error)[:100],
        )
        raise LLMError(
            LLMErrorKind.PROVIDER_UNAVAILABLE,
            f"Provider '{config.provider.value}' unavailable after {attempts} attempts: {last_error}",
            provider=config.provider.value,
            attempts=attempts,
            last_error=last_error,
        ) from last_error

    def _log_retry(self, config: EffectiveConfig, attempts: int) -> Callable[[RetryCallState], None]:
        def before_sleep(state: RetryCallState) -> None:
            logger.warning(
                "LLM attempt %d/%d failed (provider=%s), retrying in %.1fs: %s",
                state.attempt_number,
                attempts,
                config.provider.value,
                self.retry_delay,
                str(state.outcome.exception())[:100],
            )

        return before_sleep

    def check_connection(self) -> str:
        """Send a tiny prompt with the current settings and return the reply."""
        return self.invoke(TaskType.EXPLORE, _PING_MESSAGES)


def _check_ready(config: EffectiveConfig) -> None:
    """Reject settings that cannot produce an authenticated request."""
    if not config.model:
        raise ConfigError(
            f"No model configured for provider '{config.provider.value}'. "
            "Set one with:  cortex llm set --default-model ..."
        )
    if config.provider is Provider.BUILTIN:
        return
    if not config.api_key:
        raise ConfigError(
            f"API key not configured for provider '{config.provider.value}'. "
            "Set it with:  cortex llm set --api-key ..."
        )
    if not config.base_url:
        raise ConfigError(
            f"Base URL not configured for provider '{config.provider.value}'. "
            "Set it with:  cortex llm set --base-url ..."
        )
