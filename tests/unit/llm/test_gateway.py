"""Tests for LLMGateway invocation and retry."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from cortex.config import ConfigError, LLMCfg
from cortex.db.models import Message, Role
from cortex.llm.errors import LLMError, LLMErrorKind
from cortex.llm.gateway import LLMGateway
from cortex.llm.providers import EffectiveConfig, Provider, TaskType
from cortex.llm.resolver import ProviderConfigResolver

_MESSAGES = [
    Message(role=Role.SYSTEM, content="You are a summarizer."),
    Message(role=Role.USER, content="Hello world."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolver(config: EffectiveConfig) -> MagicMock:
    resolver = MagicMock(spec=ProviderConfigResolver)
    resolver.resolve.return_value = config
    return resolver


_OPENAI = EffectiveConfig(Provider.OPENAI, "https://api.openai.com/v1", "gpt-4.1-mini", "sk-x")


def _gateway(sender, config: EffectiveConfig = _OPENAI, **kwargs):
    sleep = MagicMock()
    gateway = LLMGateway(_resolver(config), sender=sender, sleep=sleep, **kwargs)
    return gateway, sleep


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------


def test_invoke_returns_reply_and_sends_wire_messages():
    sender = MagicMock(return_value="A summary.")
    gateway, sleep = _gateway(sender)

    assert gateway.invoke(TaskType.SUMMARIZE, _MESSAGES) == "A summary."
    config, payload = sender.call_args.args
    assert config is _OPENAI
    assert payload == [
        {"role": "system", "content": "You are a summarizer."},
        {"role": "user", "content": "Hello world."},
    ]
    sleep.assert_not_called()


def test_invoke_resolves_for_task_type():
    sender = MagicMock(return_value="ok")
    gateway, _ = _gateway(sender)
    gateway.invoke("topic_extract", _MESSAGES)
    gateway._resolver.resolve.assert_called_once_with("topic_extract")


def test_invoke_passes_limits_to_sender():
    sender = MagicMock(return_value="ok")
    gateway, _ = _gateway(sender, max_tokens=256, timeout=9.0)
    gateway.invoke(TaskType.EXPLORE, _MESSAGES)
    assert sender.call_args.kwargs == {"max_tokens": 256, "timeout": 9.0}


def test_invoke_recovers_after_transient_failure():
    sender = MagicMock(side_effect=[ConnectionError("reset"), "second time lucky"])
    gateway, sleep = _gateway(sender)
    assert gateway.invoke(TaskType.SUMMARIZE, _MESSAGES) == "second time lucky"
    assert sender.call_count == 2
    sleep.assert_called_once_with(1.0)


# ---------------------------------------------------------------------------
# Exhausted retries
# ---------------------------------------------------------------------------


def test_invoke_makes_exactly_three_attempts_then_raises():
    cause = ConnectionError("unreachable")
    sender = MagicMock(side_effect=cause)
    gateway, sleep = _gateway(sender)

    with pytest.raises(LLMError) as exc_info:
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)

    err = exc_info.value
    assert err.kind is LLMErrorKind.PROVIDER_UNAVAILABLE
    assert err.attempts == 3
    assert err.last_error is cause
    assert err.provider == "openai"
    assert err.__cause__ is cause
    assert sender.call_count == 3
    assert sleep.call_count == 2
    sleep.assert_called_with(1.0)


def test_invoke_retries_same_provider():
    sender = MagicMock(side_effect=RuntimeError("500 Internal Server Error"))
    gateway, _ = _gateway(sender)
    with pytest.raises(LLMError):
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    assert {call.args[0] for call in sender.call_args_list} == {_OPENAI}


def test_max_retries_zero_single_attempt():
    sender = MagicMock(side_effect=ConnectionError("down"))
    gateway, sleep = _gateway(sender, max_retries=0)
    with pytest.raises(LLMError) as exc_info:
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    assert exc_info.value.attempts == 1
    sleep.assert_not_called()


def test_negative_max_retries_rejected():
    with pytest.raises(ValueError):
        LLMGateway(_resolver(_OPENAI), max_retries=-1)


def test_retry_warnings_logged(caplog):
    sender = MagicMock(side_effect=ConnectionError("down"))
    gateway, _ = _gateway(sender)
    with caplog.at_level("WARNING", logger="cortex.llm.gateway"):
        with pytest.raises(LLMError):
            gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    warnings = [r for r in caplog.records if r.levelname == "WARNING"]
    assert len(warnings) == 2
    assert "sk-x" not in caplog.text


# ---------------------------------------------------------------------------
# Not retried
# ---------------------------------------------------------------------------


def test_malformed_response_not_retried():
    sender = MagicMock(side_effect=LLMError(LLMErrorKind.MALFORMED_RESPONSE, "empty"))
    gateway, sleep = _gateway(sender)
    with pytest.raises(LLMError) as exc_info:
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    assert exc_info.value.kind is LLMErrorKind.MALFORMED_RESPONSE
    assert exc_info.value.attempts == 1
    assert sender.call_count == 1
    sleep.assert_not_called()


def test_malformed_after_transient_failure_reports_attempt_number():
    sender = MagicMock(
        side_effect=[ConnectionError("reset"), LLMError(LLMErrorKind.MALFORMED_RESPONSE, "empty")]
    )
    gateway, sleep = _gateway(sender)
    with pytest.raises(LLMError) as exc_info:
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    assert exc_info.value.kind is LLMErrorKind.MALFORMED_RESPONSE
    assert exc_info.value.attempts == 2
    sleep.assert_called_once_with(1.0)


def test_config_error_during_attempt_not_retried():
    sender = MagicMock(side_effect=ConfigError("bad settings"))
    gateway, sleep = _gateway(sender)
    with pytest.raises(ConfigError):
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    assert sender.call_count == 1
    sleep.assert_not_called()


def test_missing_api_key_fails_before_any_attempt():
    config = EffectiveConfig(Provider.OPENAI, "https://api.openai.com/v1", "gpt-4.1-mini", "")
    sender = MagicMock()
    gateway, _ = _gateway(sender, config)
    with pytest.raises(ConfigError, match="API key"):
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    sender.assert_not_called()


def test_missing_model_fails_before_any_attempt():
    config = EffectiveConfig(Provider.CUSTOM, "http://localhost:8000/v1", "", "k")
    sender = MagicMock()
    gateway, _ = _gateway(sender, config)
    with pytest.raises(ConfigError, match="model"):
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    sender.assert_not_called()


def test_builtin_without_key_is_attempted():
    config = EffectiveConfig(Provider.BUILTIN, "", "ollama/llama3", "")
    sender = MagicMock(return_value="local reply")
    gateway, _ = _gateway(sender, config)
    assert gateway.invoke(TaskType.SUMMARIZE, _MESSAGES) == "local reply"


def test_resolver_config_error_propagates():
    resolver = MagicMock(spec=ProviderConfigResolver)
    resolver.resolve.side_effect = ConfigError("corrupt key")
    sender = MagicMock()
    gateway = LLMGateway(resolver, sender=sender, sleep=MagicMock())
    with pytest.raises(ConfigError):
        gateway.invoke(TaskType.SUMMARIZE, _MESSAGES)
    sender.assert_not_called()


def test_empty_messages_rejected():
    gateway, _ = _gateway(MagicMock())
    with pytest.raises(ValueError):
        gateway.invoke(TaskType.SUMMARIZE, [])


# ---------------------------------------------------------------------------
# Construction and end-to-end through LiteLLM
# ---------------------------------------------------------------------------


def test_from_config_applies_llm_section():
    cfg = LLMCfg(max_retries=5, retry_delay=0.25, timeout=30.0, max_tokens=1000)
    gateway = LLMGateway.from_config(_resolver(_OPENAI), cfg)
    assert gateway.max_retries == 5
    assert gateway.retry_delay == 0.25
    assert gateway.timeout == 30.0
    assert gateway.max_tokens == 1000


def test_check_connection_uses_litellm(repo):
    resolver = ProviderConfigResolver(repo)
    resolver.save_config("openai", api_key="sk-test")
    gateway = LLMGateway(resolver, sleep=MagicMock())

    mock_response = MagicMock()
    mock_response.choices[0].message.content = "pong"
    with patch(
        "cortex.llm.providers.litellm.completion", return_value=mock_response
    ) as mock_completion:
        assert gateway.check_connection() == "pong"

    kwargs = mock_completion.call_args.kwargs
    assert kwargs["api_key"] == "sk-test"
    assert kwargs["model"] == "gpt-4.1-mini"
