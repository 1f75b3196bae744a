"""LLM invocation errors."""

from __future__ import annotations

from enum import Enum


class LLMErrorKind(str, Enum):
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    MALFORMED_RESPONSE = "malformed_response"


class LLMError(RuntimeError):
    """A model invocation failed.

    Attributes:
        kind: PROVIDER_UNAVAILABLE after every attempt failed, or
            MALFORMED_RESPONSE when a successful reply had no usable text.
        provider: Provider name the call was routed to.
        attempts: Number of attempts made.
        last_error: The underlying exception of the final attempt, if any.
    """

    def __init__(
        self,
        kind: LLMErrorKind,
        message: str,
        *,
        provider: str = "",
        attempts: int = 0,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.attempts = attempts
        self.last_error = last_error

    def user_message(self) -> str:
        """Short, actionable description for an end user."""
        if self.kind is LLMErrorKind.MALFORMED_RESPONSE:
            return "The model replied, but the reply could not be read. Try again or pick another model."
        return simplify_error(self.last_error if self.last_error is not None else str(self))


def simplify_error(error: BaseException | str) -> str:
    """Map a raw provider failure to a user-facing sentence."""
    raw = str(error)
    status = getattr(error, "status_code", None)
    lowered = raw.lower()

    if "timeout" in lowered or "timed out" in lowered or "etimedout" in lowered or "econnreset" in lowered:
        return "The LLM service timed out. Try again later; if it persists, check the provider settings."
    if status == 429 or "429" in raw or "rate limit" in lowered:
        return "The LLM service is rate limiting requests. Wait a few seconds and try again."
    if status == 401 or "401" in raw or "unauthorized" in lowered or "invalid_api_key" in lowered:
        return "The API key is invalid or expired. Check it with:  cortex llm set --api-key ..."
    if status == 402 or "402" in raw or "insufficient" in lowered or "payment" in lowered:
        return "The provider account has insufficient balance."
    if status in (500, 502, 503) or any(code in raw for code in ("500", "502", "503")):
        return "The LLM service is temporarily unavailable (retried automatically). Try again later."
    if "model" in lowered and ("not found" in lowered or "does not exist" in lowered):
        return "The configured model does not exist. Check the model name with:  cortex llm show"
    if len(raw) > 200:
        return f"LLM call failed: {raw[:150]}..."
    return f"LLM call failed: {raw}"
