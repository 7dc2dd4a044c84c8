"""Client for the remote analytics assistant (an OpenAI-compatible chat API)."""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from jsonschema import Draft7Validator
from openai import (  # type: ignore[import-untyped]
    APIConnectionError,
    APIError,
    APITimeoutError,
    OpenAI,
    OpenAIError,
    RateLimitError,
)

from dataflow.config import AppConfig

_LOGGER = logging.getLogger(__name__)
_RETRY_DELAYS = (1, 2, 4)
_RECOVERABLE_ERRORS: tuple[type[OpenAIError], ...] = (
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    APIError,
)

SYSTEM_PROMPT = (
    "You are the analytics assistant of a business-intelligence dashboard for "
    "private-equity portfolios. Answer the user's question using the supplied "
    "context. Respond with a single JSON object of the form "
    '{"content": "<answer>", "suggestions": ["<follow-up question>", ...]}.'
)

REPLY_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["content"],
    "properties": {
        "content": {"type": "string", "minLength": 1},
        "suggestions": {"type": "array", "items": {"type": "string"}},
    },
}
_REPLY_VALIDATOR = Draft7Validator(REPLY_SCHEMA)


class AssistantError(RuntimeError):
    """The assistant could not produce a usable reply."""


@dataclass(slots=True)
class AssistantReply:
    content: str
    suggestions: list[str] = field(default_factory=list)


class AssistantClient(Protocol):
    """Anything that can answer a conversation."""

    def reply(
        self,
        messages: Sequence[Mapping[str, Any]],
        context: Mapping[str, Any] | None = None,
    ) -> AssistantReply:
        ...


def _sanitize_response(response_text: str) -> str:
    """Return JSON content without code fences or a leading ``json`` label."""

    text = response_text.strip()
    fence_match = re.fullmatch(
        r"```\s*(?:json)?\s*(?P<body>.*)```",
        text,
        flags=re.DOTALL | re.IGNORECASE,
    )
    if fence_match:
        return fence_match.group("body").strip()
    if text[:4].lower() == "json" and (len(text) == 4 or text[4].isspace()):
        return text[4:].lstrip()
    return text


def parse_reply(response_text: str) -> AssistantReply:
    """Validate the model output against :data:`REPLY_SCHEMA`."""

    try:
        payload = json.loads(_sanitize_response(response_text))
    except json.JSONDecodeError as exc:
        raise AssistantError("Assistant response was not valid JSON") from exc

    errors = sorted(_REPLY_VALIDATOR.iter_errors(payload), key=lambda error: list(error.path))
    if errors:
        details = "; ".join(error.message for error in errors)
        raise AssistantError(f"Assistant response did not match the reply schema: {details}")
    return AssistantReply(
        content=payload["content"],
        suggestions=list(payload.get("suggestions") or []),
    )


def build_prompt(
    messages: Sequence[Mapping[str, Any]],
    context: Mapping[str, Any] | None,
) -> list[dict[str, str]]:
    prompt = [{"role": "system", "content": SYSTEM_PROMPT}]
    if context:
        prompt.append(
            {
                "role": "system",
                "content": "Context:\n" + json.dumps(context, default=str, sort_keys=True),
            }
        )
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        if role in {"user", "assistant"} and isinstance(content, str):
            prompt.append({"role": role, "content": content})
    return prompt


class OpenAIAssistant:
    """Assistant backed by the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        model_name: str = "gpt-4o-mini",
        sleep=time.sleep,
    ) -> None:
        if not api_key:
            raise ValueError("OPENAI_API_KEY is not configured")
        self._model_name = model_name
        self._client = OpenAI(api_key=api_key, base_url=base_url)
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: AppConfig) -> "OpenAIAssistant | None":
        if not config.openai_api_key:
            return None
        return cls(
            config.openai_api_key,
            base_url=config.openai_base_url,
            model_name=config.openai_model,
        )

    def reply(
        self,
        messages: Sequence[Mapping[str, Any]],
        context: Mapping[str, Any] | None = None,
    ) -> AssistantReply:
        if not messages:
            raise ValueError("messages must not be empty")
        return parse_reply(self._chat_complete(build_prompt(messages, context)))

    def _chat_complete(self, prompt: list[dict[str, str]]) -> str:
        last_exc: OpenAIError | None = None
        for attempt, delay in enumerate(_RETRY_DELAYS, start=1):
            try:
                response = self._client.chat.completions.create(
                    model=self._model_name,
                    messages=prompt,
                    temperature=0.2,
                )
                if not response.choices:
                    raise AssistantError("Assistant response did not include any choices")
                content = getattr(response.choices[0].message, "content", None)
                if isinstance(content, str) and content:
                    return content
                raise AssistantError("Assistant response did not include message content")
            except _RECOVERABLE_ERRORS as exc:
                last_exc = exc
                _LOGGER.warning(
                    "Recoverable assistant error (attempt %s/%s): %s",
                    attempt,
                    len(_RETRY_DELAYS),
                    exc,
                )
                if attempt == len(_RETRY_DELAYS):
                    break
                self._sleep(delay)
            except OpenAIError as exc:
                _LOGGER.exception("Assistant request failed on attempt %s", attempt)
                raise AssistantError(f"Assistant request failed: {exc}") from exc

        _LOGGER.error(
            "Assistant request failed after %s attempts",
            len(_RETRY_DELAYS),
            exc_info=last_exc,
        )
        raise AssistantError(f"Assistant request failed after retries: {last_exc}") from last_exc


__all__ = [
    "AssistantClient",
    "AssistantError",
    "AssistantReply",
    "OpenAIAssistant",
    "REPLY_SCHEMA",
    "build_prompt",
    "parse_reply",
]
