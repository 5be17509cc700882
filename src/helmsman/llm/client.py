"""Built-in OpenAI-compatible httpx backend with tenacity retry.

Provides a sync HTTP client for OpenAI-compatible chat completion APIs
with function calling. Reads configuration from constructor arguments or
environment variables.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Sequence
from typing import Any

import httpx
import tenacity

from helmsman.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)
from helmsman.llm.protocols import ChatResponse
from helmsman.models.messages import Message, ToolCall, ToolDefinition

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}

_THINK_RE = re.compile(r"<think>(.*?)</think>", re.DOTALL)


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable.

    Retryable: 429, 500, 502, 503, 504, connection errors.
    Not retryable: 401, 403, 400, other client errors.
    """
    if isinstance(exc, LLMAuthError):
        return False
    if isinstance(exc, LLMRateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


def message_to_openai(msg: Message) -> dict[str, Any]:
    """Convert a Message to an OpenAI chat message dict."""
    if msg.role == "tool":
        return {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}
    if msg.role == "assistant" and msg.tool_calls:
        return {
            "role": "assistant",
            "content": msg.content or None,
            "tool_calls": [tc.to_openai() for tc in msg.tool_calls],
        }
    return {"role": msg.role, "content": msg.content}


class OpenAIChatBackend:
    """Sync httpx backend for OpenAI-compatible chat completions.

    Implements the ChatBackend protocol. Supports retry with exponential
    backoff for transient errors (429, 5xx). Fails immediately on
    authentication errors (401, 403).

    Usage::

        with OpenAIChatBackend(api_key="sk-...", model="gpt-4o-mini") as backend:
            reply = backend.chat_with_tools(messages, tools)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str = "gpt-4o-mini",
        *,
        temperature: float | None = None,
        timeout: float = 120.0,
        max_retries: int = 3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            api_key: API key. Falls back to HELMSMAN_OPENAI_API_KEY env var.
            base_url: API base URL. Falls back to HELMSMAN_OPENAI_BASE_URL env
                var, then to https://api.openai.com/v1.
            model: Model for chat requests.
            temperature: Sampling temperature (provider default when None).
            timeout: Request timeout in seconds.
            max_retries: Maximum number of attempts for retryable errors.
            transport: Optional httpx transport (tests use MockTransport).

        Raises:
            LLMConfigError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("HELMSMAN_OPENAI_API_KEY", "")
        if not self._api_key:
            raise LLMConfigError(
                "No API key provided. Pass api_key= or set HELMSMAN_OPENAI_API_KEY "
                "environment variable."
            )
        self._base_url = (
            base_url
            or os.environ.get("HELMSMAN_OPENAI_BASE_URL", "https://api.openai.com/v1")
        ).rstrip("/")
        self._model = model
        self._temperature = temperature
        self._max_retries = max_retries
        self._client = httpx.Client(
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            transport=transport,
        )

    @property
    def model(self) -> str:
        return self._model

    def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> ChatResponse:
        """Send the conversation plus tool definitions, parse the reply.

        Raises:
            LLMAuthError: On 401/403 (no retry).
            LLMRateLimitError: On 429 after all retries exhausted.
            LLMResponseError: On unexpected response format.
            LLMClientError: On other HTTP or connection failures.
        """
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [message_to_openai(m) for m in messages],
        }
        if tools:
            payload["tools"] = [t.to_openai() for t in tools]
        if self._temperature is not None:
            payload["temperature"] = self._temperature

        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=(
                tenacity.wait_exponential(multiplier=1, min=1, max=30)
                + tenacity.wait_random(0, 2)
            ),
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            data = retryer(self._do_chat, payload)
        except httpx.HTTPStatusError as exc:
            raise LLMClientError(
                f"HTTP {exc.response.status_code} from model backend: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise LLMClientError(f"Model backend request failed: {exc}") from exc
        return self.parse_response(data)

    def _do_chat(self, payload: dict[str, Any]) -> dict:
        """Execute a single chat completion request (no retry)."""
        response = self._client.post(f"{self._base_url}/chat/completions", json=payload)

        if response.status_code in _AUTH_ERROR_STATUS_CODES:
            raise LLMAuthError(
                f"Authentication failed: HTTP {response.status_code} - "
                f"{response.text}"
            )

        if response.status_code == 429:
            retry_after_raw = response.headers.get("Retry-After")
            retry_after: float | None = None
            if retry_after_raw is not None:
                try:
                    retry_after = float(retry_after_raw)
                except (ValueError, TypeError):
                    pass
            raise LLMRateLimitError(
                f"Rate limited: HTTP 429 - {response.text}",
                retry_after=retry_after,
            )

        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMResponseError(f"Model backend returned invalid JSON: {exc}") from exc
        if "choices" not in data:
            raise LLMResponseError(
                f"Unexpected response format: missing 'choices' key. "
                f"Response: {data}"
            )
        return data

    def close(self) -> None:
        """Close the underlying httpx client."""
        self._client.close()

    def __enter__(self) -> OpenAIChatBackend:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @classmethod
    def parse_response(cls, response: dict) -> ChatResponse:
        """Build a ChatResponse from a chat completion response dict.

        Raises:
            LLMResponseError: If the response format is unexpected.
        """
        try:
            message = response["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError(
                f"Cannot extract message from response: {exc}. "
                f"Response: {response}"
            ) from exc

        content = message.get("content") or ""
        reasoning = cls.extract_reasoning(message)
        if reasoning is not None and "<think>" in content:
            content = _THINK_RE.sub("", content).strip()

        tool_calls: list[ToolCall] = []
        for raw in message.get("tool_calls") or ():
            try:
                tool_calls.append(ToolCall.from_openai(raw))
            except (KeyError, TypeError) as exc:
                raise LLMResponseError(f"Malformed tool call in response: {raw!r}") from exc
        return ChatResponse(content=content, reasoning=reasoning, tool_calls=tuple(tool_calls))

    @staticmethod
    def extract_reasoning(message: dict) -> str | None:
        """Extract reasoning text from an assistant message dict.

        Checks, in priority order: the parsed ``reasoning`` field, OpenAI's
        ``reasoning_content``, then ``<think>`` tags in the content.
        """
        reasoning = message.get("reasoning")
        if reasoning:
            return reasoning

        reasoning_content = message.get("reasoning_content")
        if reasoning_content:
            return reasoning_content

        content = message.get("content") or ""
        think_match = _THINK_RE.search(content)
        if think_match:
            return think_match.group(1).strip() or None
        return None
