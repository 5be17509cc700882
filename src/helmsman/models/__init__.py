"""Domain models for Helmsman."""

from helmsman.models.config import (
    AVG_TOOL_CALLS_PER_TURN,
    DEFAULT_AUTOPLAY_INTERVAL,
    DEFAULT_RETRY_DELAYS,
    GAME_TICK_SECONDS,
    HelmsmanConfig,
)
from helmsman.models.messages import (
    ContentBlock,
    Message,
    Role,
    ToolCall,
    ToolDefinition,
    ToolResult,
)

__all__ = [
    "AVG_TOOL_CALLS_PER_TURN",
    "DEFAULT_AUTOPLAY_INTERVAL",
    "DEFAULT_RETRY_DELAYS",
    "GAME_TICK_SECONDS",
    "HelmsmanConfig",
    "ContentBlock",
    "Message",
    "Role",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
]
