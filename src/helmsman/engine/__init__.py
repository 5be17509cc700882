"""Conversation history engine: compression and token estimates."""

from helmsman.engine.compression import (
    COMPRESSED_MARKER,
    TRUNCATION_MARKER,
    ToolCategory,
    classify_tool,
    compress_history,
    estimate_token_count,
    validate_truncation,
)

__all__ = [
    "COMPRESSED_MARKER",
    "TRUNCATION_MARKER",
    "ToolCategory",
    "classify_tool",
    "compress_history",
    "estimate_token_count",
    "validate_truncation",
]
