"""Model backend: protocol, OpenAI-compatible client and errors."""

from helmsman.llm.client import OpenAIChatBackend, message_to_openai
from helmsman.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)
from helmsman.llm.protocols import ChatBackend, ChatResponse

__all__ = [
    "ChatBackend",
    "ChatResponse",
    "LLMAuthError",
    "LLMClientError",
    "LLMConfigError",
    "LLMRateLimitError",
    "LLMResponseError",
    "OpenAIChatBackend",
    "message_to_openai",
]
