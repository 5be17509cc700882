"""Helmsman: a single-agent orchestrator for tool-driven games.

A language model drives an upstream tool server through rounds of
"ask model, execute requested tools, feed results back" until it produces
a final answer. Long histories are compressed without losing login
exchanges, and an autoplay supervisor can keep the agent playing on a
timer.
"""

from helmsman._version import __version__

# Facade
from helmsman.agent import Agent

# Data model and configuration
from helmsman.models.messages import (
    ContentBlock,
    Message,
    ToolCall,
    ToolDefinition,
    ToolResult,
)
from helmsman.models.config import (
    DEFAULT_AUTOPLAY_INTERVAL,
    DEFAULT_RETRY_DELAYS,
    HelmsmanConfig,
)

# Transport and tools
from helmsman.transport.client import UpstreamClient
from helmsman.transport.stub import StubUpstreamClient
from helmsman.toolkit.gateway import ToolGateway
from helmsman.toolkit.credentials import register_credential_tools

# History compression
from helmsman.engine.compression import (
    COMPRESSED_MARKER,
    ToolCategory,
    classify_tool,
    compress_history,
    estimate_token_count,
)

# Turns and autoplay
from helmsman.orchestrator import (
    AutoplayCallbacks,
    AutoplayCoordinator,
    AutoplayState,
    AutoplayStatus,
    TurnCallbacks,
    TurnConfig,
    TurnEngine,
    TurnResult,
    TurnState,
)

# Model backend
from helmsman.llm import ChatBackend, ChatResponse, OpenAIChatBackend

# Sessions and storage
from helmsman.session import (
    ConversationHistory,
    SessionInit,
    SessionManager,
    history_has_system_prompt,
    load_system_prompt,
    prepend_system_prompt,
)
from helmsman.storage import SessionInfo, SessionStore

# Exceptions
from helmsman.exceptions import (
    AutoplayAlreadyRunningError,
    AutoplayCircuitOpenError,
    AutoplayError,
    AutoplayNotRunningError,
    BackendError,
    ConfigurationError,
    HelmsmanError,
    RoundBudgetExceededError,
    SessionError,
    ToolExecutionError,
    ToolRateLimitedError,
    TransportCancelledError,
    TransportClosedError,
    TransportError,
    TurnCancelledError,
    TurnDeadlineExceededError,
    TurnError,
    UpstreamConnectionError,
    UpstreamHTTPError,
    UpstreamProtocolError,
    UpstreamRateLimitError,
    UpstreamRPCError,
)

__all__ = [
    "__version__",
    # Facade
    "Agent",
    # Data model and configuration
    "ContentBlock",
    "Message",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    "DEFAULT_AUTOPLAY_INTERVAL",
    "DEFAULT_RETRY_DELAYS",
    "HelmsmanConfig",
    # Transport and tools
    "UpstreamClient",
    "StubUpstreamClient",
    "ToolGateway",
    "register_credential_tools",
    # History compression
    "COMPRESSED_MARKER",
    "ToolCategory",
    "classify_tool",
    "compress_history",
    "estimate_token_count",
    # Turns and autoplay
    "AutoplayCallbacks",
    "AutoplayCoordinator",
    "AutoplayState",
    "AutoplayStatus",
    "TurnCallbacks",
    "TurnConfig",
    "TurnEngine",
    "TurnResult",
    "TurnState",
    # Model backend
    "ChatBackend",
    "ChatResponse",
    "OpenAIChatBackend",
    # Sessions and storage
    "ConversationHistory",
    "SessionInit",
    "SessionManager",
    "history_has_system_prompt",
    "load_system_prompt",
    "prepend_system_prompt",
    "SessionInfo",
    "SessionStore",
    # Exceptions
    "AutoplayAlreadyRunningError",
    "AutoplayCircuitOpenError",
    "AutoplayError",
    "AutoplayNotRunningError",
    "BackendError",
    "ConfigurationError",
    "HelmsmanError",
    "RoundBudgetExceededError",
    "SessionError",
    "ToolExecutionError",
    "ToolRateLimitedError",
    "TransportCancelledError",
    "TransportClosedError",
    "TransportError",
    "TurnCancelledError",
    "TurnDeadlineExceededError",
    "TurnError",
    "UpstreamConnectionError",
    "UpstreamHTTPError",
    "UpstreamProtocolError",
    "UpstreamRateLimitError",
    "UpstreamRPCError",
]
